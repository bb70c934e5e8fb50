# This file marks the dto directory as a Python package.

from .settings_dto import EngineSettingsDTO, DIALECTS

from .world_info_dto import WorldInfoDTO, WorldInfoEntryDTO

__all__ = [
    # Engine settings
    'EngineSettingsDTO', 'DIALECTS',
    # World info import
    'WorldInfoDTO', 'WorldInfoEntryDTO'
]
