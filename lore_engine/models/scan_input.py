from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from lore_engine.constants import GenerationType
from lore_engine.models.chat_variables import ChatVariables
from lore_engine.models.lorebook import LoreBook
from lore_engine.models.timed_effects import TimedEffectsStore

SCAN_CONTEXT_FIELDS = (
    'persona_description',
    'character_description',
    'character_personality',
    'character_depth_prompt',
    'scenario',
    'creator_notes',
)


@dataclass(frozen=True)
class ScanContext:
    """
    Non-chat text an entry may opt into matching against, one field per
    `match_*` extension flag.
    """
    persona_description: Optional[str] = None
    character_description: Optional[str] = None
    character_personality: Optional[str] = None
    character_depth_prompt: Optional[str] = None
    scenario: Optional[str] = None
    creator_notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> 'ScanContext':
        data = data or {}
        return cls(**{
            name: None if data.get(name) is None else str(data.get(name))
            for name in SCAN_CONTEXT_FIELDS
        })


@dataclass
class ScanInput:
    """
    Everything one activation call looks at.

    `messages` are chronological (oldest first). `timed_effects` and
    `chat_variables` are caller-owned stores; when omitted the engine uses
    empty throwaway ones.
    """
    messages: List[str] = field(default_factory=list)
    global_books: List[LoreBook] = field(default_factory=list)
    character_books: List[LoreBook] = field(default_factory=list)
    chat_books: List[LoreBook] = field(default_factory=list)
    persona_books: List[LoreBook] = field(default_factory=list)

    max_context: Optional[int] = None
    scan_context: ScanContext = field(default_factory=ScanContext)
    scan_injects: List[str] = field(default_factory=list)

    trigger: str = GenerationType.NORMAL
    character_name: Optional[str] = None
    character_tags: List[str] = field(default_factory=list)
    forced_activations: List[str] = field(default_factory=list)

    turn_count: Optional[int] = None
    greeting_index: Optional[int] = None
    chat_length: Optional[int] = None

    timed_effects: Optional[TimedEffectsStore] = None
    chat_variables: Optional[ChatVariables] = None

    def __post_init__(self):
        self.messages = [str(m) for m in (self.messages or [])]
        if isinstance(self.scan_context, Mapping):
            self.scan_context = ScanContext.from_dict(self.scan_context)
        self.scan_injects = [s.strip() for s in map(str, self.scan_injects or []) if s.strip()]
        self.character_tags = [str(t) for t in (self.character_tags or [])]
        self.forced_activations = [str(i) for i in (self.forced_activations or [])]

    @property
    def books(self) -> List[LoreBook]:
        return [*self.global_books, *self.character_books, *self.chat_books, *self.persona_books]

    @property
    def effective_turn_count(self) -> int:
        return len(self.messages) if self.turn_count is None else self.turn_count

    @property
    def effective_chat_length(self) -> int:
        return len(self.messages) if self.chat_length is None else self.chat_length

    def force_activate(self, entry_id: str) -> bool:
        return entry_id in self.forced_activations

