from pydantic import BaseModel, field_validator
from typing import Optional

from lore_engine.constants import (DEFAULT_MAX_RECURSION_STEPS, HARD_MAX_RECURSION_STEPS,
                                   InsertionStrategy)
from lore_engine.errors import BudgetConfigError, EngineConfigError

DIALECTS = ('plain', 'decorated')


class EngineSettingsDTO(BaseModel):
    """
    Engine-wide activation settings, validated before any pass runs.
    Budget misconfiguration raises BudgetConfigError directly.
    """
    scan_depth: Optional[int] = None
    match_whole_words: bool = True
    case_sensitive: bool = False
    recursive_scanning: bool = False
    max_recursion_steps: int = DEFAULT_MAX_RECURSION_STEPS
    use_group_scoring: bool = False
    budget_percent: float = 25
    budget_cap: int = 0
    insertion_strategy: InsertionStrategy = InsertionStrategy.CHARACTER_LORE_FIRST
    min_activations: int = 0
    min_activations_depth_max: int = 0
    dialect: str = 'plain'

    model_config = {"from_attributes": True}

    @field_validator('budget_percent')
    @classmethod
    def validate_budget_percent(cls, value: float) -> float:
        if value <= 0:
            raise BudgetConfigError(f"budget_percent must be positive, got {value}")
        return value

    @field_validator('budget_cap')
    @classmethod
    def validate_budget_cap(cls, value: int) -> int:
        if value < 0:
            raise BudgetConfigError(f"budget_cap must not be negative, got {value}")
        return value

    @field_validator('scan_depth')
    @classmethod
    def validate_scan_depth(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            raise EngineConfigError(f"scan_depth must not be negative, got {value}")
        return value

    @field_validator('max_recursion_steps')
    @classmethod
    def clamp_max_recursion_steps(cls, value: int) -> int:
        return min(max(value, 0), HARD_MAX_RECURSION_STEPS)

    @field_validator('min_activations', 'min_activations_depth_max')
    @classmethod
    def clamp_non_negative(cls, value: int) -> int:
        return max(value, 0)

    @field_validator('dialect')
    @classmethod
    def validate_dialect(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in DIALECTS:
            raise EngineConfigError(f"Unknown dialect '{value}', expected one of {', '.join(DIALECTS)}")
        return value
