class EngineConfig:
    SCAN_DEPTH = None
    MATCH_WHOLE_WORDS = True
    CASE_SENSITIVE = False
    RECURSIVE_SCANNING = False
    MAX_RECURSION_STEPS = 3
    USE_GROUP_SCORING = False
    BUDGET_PERCENT = 25
    BUDGET_CAP = 0
    INSERTION_STRATEGY = 'character_lore_first'
    MIN_ACTIVATIONS = 0
    MIN_ACTIVATIONS_DEPTH_MAX = 0
    DIALECT = 'plain'
    TOKENIZER_MODEL_GROUP = None

class EngineTestingConfig(EngineConfig):
    TOKENIZER_MODEL_GROUP = 'char'
