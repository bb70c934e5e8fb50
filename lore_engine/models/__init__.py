from .lorebook import LoreEntry, LoreBook
from .entry_extensions import EntryExtensions
from .active import Active, Inject, SearchQuery
from .scan_input import ScanContext, ScanInput
from .result import ActivationResult
from .timed_effects import TimedEffects, TimedEffectsStore
from .chat_variables import ChatVariables, InMemoryChatVariables

__all__ = [
    'Active',
    'ActivationResult',
    'ChatVariables',
    'EntryExtensions',
    'InMemoryChatVariables',
    'Inject',
    'LoreBook',
    'LoreEntry',
    'ScanContext',
    'ScanInput',
    'SearchQuery',
    'TimedEffects',
    'TimedEffectsStore',
]
