import os
import logging
from dotenv import load_dotenv
from config import EngineConfig
from lore_engine.context import context
from lore_engine.extensions import log

def create_engine(config=EngineConfig, **overrides):
    """
    Builds a LoreEngine from a config class. Keyword overrides replace
    individual settings (e.g. `rng`, `token_estimator`, `warner`).
    """
    load_dotenv(override=True)
    app_log_level_str = os.getenv("APP_LOG_LEVEL", "INFO").upper()
    log_level_map = logging.getLevelNamesMapping()

    context.log_level = log_level_map.get(app_log_level_str, logging.INFO)
    log.setLevel(context.log_level)

    from .core.directives import DecoratedDialect, PlainDialect
    from .core.engine import LoreEngine
    from .dto.settings_dto import EngineSettingsDTO
    from .utils.tokenizers import get_token_estimator

    settings = EngineSettingsDTO(
        scan_depth=config.SCAN_DEPTH,
        match_whole_words=config.MATCH_WHOLE_WORDS,
        case_sensitive=config.CASE_SENSITIVE,
        recursive_scanning=config.RECURSIVE_SCANNING,
        max_recursion_steps=config.MAX_RECURSION_STEPS,
        use_group_scoring=config.USE_GROUP_SCORING,
        budget_percent=config.BUDGET_PERCENT,
        budget_cap=config.BUDGET_CAP,
        insertion_strategy=config.INSERTION_STRATEGY,
        min_activations=config.MIN_ACTIVATIONS,
        min_activations_depth_max=config.MIN_ACTIVATIONS_DEPTH_MAX,
        dialect=config.DIALECT,
    )
    dialect = DecoratedDialect() if settings.dialect == 'decorated' else PlainDialect()

    kwargs = {
        'settings': settings,
        'dialect': dialect,
        'token_estimator': get_token_estimator(config.TOKENIZER_MODEL_GROUP),
    }
    kwargs.update(overrides)
    log.debug(f"Creating lore engine with {settings.dialect} dialect")
    return LoreEngine(**kwargs)
