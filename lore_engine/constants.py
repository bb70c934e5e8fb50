from enum import Enum


class MessageRole:
    """
    Class for message roles
    """
    SYSTEM = 'system'
    USER = 'user'
    ASSISTANT = 'assistant'

VALID_ROLES = (MessageRole.SYSTEM, MessageRole.USER, MessageRole.ASSISTANT)


class SelectiveLogic(Enum):
    AND_ANY = 'and_any'
    NOT_ALL = 'not_all'
    NOT_ANY = 'not_any'
    AND_ALL = 'and_all'

SELECTIVE_LOGIC_BY_INDEX = {
    0: SelectiveLogic.AND_ANY,
    1: SelectiveLogic.NOT_ALL,
    2: SelectiveLogic.NOT_ANY,
    3: SelectiveLogic.AND_ALL,
}


class ForceState(Enum):
    NONE = 'none'
    ACTIVATE = 'activate'
    DEACTIVATE = 'deactivate'


class ScanState(Enum):
    ELIGIBLE = 'eligible'
    DELAYED = 'delayed'
    EXCLUDED = 'excluded'


class ScanPass(Enum):
    INITIAL = 'initial'
    RECURSION = 'recursion'
    MIN_ACTIVATIONS = 'min_activations'


class InsertionStrategy(Enum):
    CHARACTER_LORE_FIRST = 'character_lore_first'
    GLOBAL_LORE_FIRST = 'global_lore_first'
    EVENLY = 'evenly'


class InjectOperation(Enum):
    APPEND = 'append'
    PREPEND = 'prepend'
    REPLACE = 'replace'


class GenerationType:
    NORMAL = 'normal'
    CONTINUE = 'continue'
    IMPERSONATE = 'impersonate'
    SWIPE = 'swipe'
    REGENERATE = 'regenerate'
    QUIET = 'quiet'


class EntryPosition:
    BEFORE_CHAR_DEFS = 'before_char_defs'
    AFTER_CHAR_DEFS = 'after_char_defs'
    TOP_OF_AN = 'top_of_an'
    BOTTOM_OF_AN = 'bottom_of_an'
    AT_DEPTH = 'at_depth'
    BEFORE_EXAMPLE_MESSAGES = 'before_example_messages'
    AFTER_EXAMPLE_MESSAGES = 'after_example_messages'
    OUTLET = 'outlet'
    # decorator dialect positions
    DEPTH = 'depth'
    REVERSE_DEPTH = 'reverse_depth'

DECORATED_POSITIONS = ('after_desc', 'before_desc', 'personality', 'scenario')

# scan buffer
MAX_SCAN_DEPTH = 1000
MAX_RECURSE_BUFFER_BYTES = 1_000_000
MATCHER = '\x01'
JOINER = '\n' + MATCHER

# recursion
DEFAULT_MAX_RECURSION_STEPS = 3
HARD_MAX_RECURSION_STEPS = 10

# regex keys
JS_REGEX_CACHE_MAX = 512
JS_REGEX_MAX_INPUT_BYTES = 500_000
JS_REGEX_FLAGS = 'dgimsuyv'

# entry defaults
DEFAULT_INSERTION_ORDER = 100
DEFAULT_GROUP_WEIGHT = 100
DEFAULT_ENTRY_DEPTH = 4
DEFAULT_SOURCE_NAME = 'lorebook'
IGNORE_ON_MAX_CONTEXT_PRIORITY = -1000

# persisted decorator flags
KEEP_ACTIVATE_PREFIX = '__internal_ka_'
DONT_ACTIVATE_PREFIX = '__internal_da_'

# tokenizers
TOKENIZERS_PATH = './assets/tokenizers'
CLAUDE3_MODEL_GROUP = 'claude3'
GPT4_MODEL_GROUP = 'gpt-4'
CHAR_MODEL_GROUP = 'char'
DEFAULT_TIKTOKEN_ENCODING = 'cl100k_base'
