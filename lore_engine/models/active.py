from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple

from lore_engine.constants import ForceState, InjectOperation, MessageRole
from lore_engine.models.lorebook import LoreEntry


@dataclass(frozen=True)
class SearchQuery:
    """
    Extra key query attached by directives. `negative` inverts the result,
    `all` requires every key to be found instead of any.
    """
    keys: Tuple[str, ...]
    negative: bool = False
    all: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'keys', tuple(str(k) for k in (self.keys or ())))


@dataclass(frozen=True)
class Inject:
    operation: InjectOperation = InjectOperation.APPEND
    location: str = ''
    param: str = ''
    lore: bool = False

    def with_changes(self, **changes) -> 'Inject':
        return replace(self, **changes)


@dataclass(frozen=True)
class Active:
    """
    An entry that passed evaluation for the current activation, with the
    placement and matching options its directives resolved to.
    """
    entry: LoreEntry
    content: str
    tokens: int = 0
    depth: int = 0
    position: str = ''
    role: str = MessageRole.SYSTEM
    order: int = 0
    priority: int = 0
    source: str = ''
    inject: Optional[Inject] = None
    scan_depth: Optional[int] = None
    full_word_match: bool = True
    case_sensitive: bool = False
    dont_search_when_recursive: bool = False
    recursive_override: Optional[bool] = None
    force_state: ForceState = ForceState.NONE
    keep_activate_after_match: bool = False
    dont_activate_after_match: bool = False
    search_queries: Tuple[SearchQuery, ...] = ()
    ignore_budget: bool = False

    @property
    def id(self) -> str:
        return self.entry.id or ''

    def with_changes(self, **changes) -> 'Active':
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'content': self.content,
            'tokens': self.tokens,
            'depth': self.depth,
            'position': self.position,
            'role': self.role,
            'order': self.order,
            'priority': self.priority,
            'source': self.source,
        }
        if self.inject is not None:
            data['inject'] = {
                'operation': self.inject.operation.value,
                'location': self.inject.location,
                'param': self.inject.param,
                'lore': self.inject.lore,
            }
        return data
