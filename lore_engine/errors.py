class LoreEngineError(Exception):
    """Base exception for lore engine errors."""
    pass

class EngineConfigError(LoreEngineError):
    """Raised when the engine is built with invalid settings or collaborators."""
    pass

class BudgetConfigError(EngineConfigError):
    """Raised when the token budget configuration is unusable."""
    pass

class WorldInfoImportError(LoreEngineError):
    """Raised by strict world info imports on malformed input."""
    pass
