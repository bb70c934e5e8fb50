from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Any, Dict, List, Optional

from lore_engine.constants import DEFAULT_INSERTION_ORDER, EntryPosition
from lore_engine.models.lorebook import LoreBook, LoreEntry
from lore_engine.utils.utils import presence, safe_int, string_list, to_bool, underscore

POSITION_MAP = {
    0: EntryPosition.BEFORE_CHAR_DEFS,
    1: EntryPosition.AFTER_CHAR_DEFS,
    2: EntryPosition.TOP_OF_AN,
    3: EntryPosition.BOTTOM_OF_AN,
    4: EntryPosition.AT_DEPTH,
    5: EntryPosition.BEFORE_EXAMPLE_MESSAGES,
    6: EntryPosition.AFTER_EXAMPLE_MESSAGES,
    7: EntryPosition.OUTLET,
    'before_char': EntryPosition.BEFORE_CHAR_DEFS,
    'before_main': EntryPosition.BEFORE_CHAR_DEFS,
    'after_char': EntryPosition.AFTER_CHAR_DEFS,
    'after_main': EntryPosition.AFTER_CHAR_DEFS,
    'top_an': EntryPosition.TOP_OF_AN,
    'bottom_an': EntryPosition.BOTTOM_OF_AN,
    '@d': EntryPosition.AT_DEPTH,
    'depth': EntryPosition.AT_DEPTH,
    'in_chat': EntryPosition.AT_DEPTH,
}

BOOK_RESERVED_KEYS = {
    'name', 'description', 'scan_depth', 'scanDepth', 'token_budget', 'tokenBudget',
    'recursive_scanning', 'recursiveScanning', 'entries', 'extensions',
}

ENTRY_RESERVED_KEYS = {
    'uid', 'id', 'key', 'keys', 'keysecondary', 'keySecondary', 'secondary_keys', 'secondaryKeys',
    'content', 'disable', 'enabled', 'order', 'insertion_order', 'insertionOrder', 'priority',
    'use_regex', 'useRegex', 'case_sensitive', 'caseSensitive', 'constant', 'name', 'comment',
    'memo', 'selective', 'position', 'pos', 'extensions',
}


def snake_case_keys(value: Any) -> Any:
    """Recursively snake-cases dict keys; snake_case spellings win over camelCase duplicates."""
    if isinstance(value, list):
        return [snake_case_keys(v) for v in value]
    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            raw = str(key)
            canonical = underscore(raw)
            if canonical == raw or canonical not in out:
                out[canonical] = snake_case_keys(item)
        return out
    return value

def collect_extensions(data: Dict[str, Any], reserved: set) -> Dict[str, Any]:
    extensions = snake_case_keys(data['extensions']) if isinstance(data.get('extensions'), dict) else {}
    for key, value in data.items():
        if key in reserved or str(key).startswith('_'):
            continue
        canonical = underscore(key)
        if canonical == key or canonical not in extensions:
            extensions[canonical] = snake_case_keys(value)
    return extensions

def map_position(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return POSITION_MAP.get(value)
    text = str(value).strip()
    if not text:
        return None
    index = safe_int(text)
    if index is not None:
        return POSITION_MAP.get(index)
    return POSITION_MAP.get(text) or POSITION_MAP.get(text.lower()) or underscore(text)

def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


class WorldInfoEntryDTO(BaseModel):
    """
    One entry of a SillyTavern world-info file, normalized from its native
    field names (`key`, `keysecondary`, `disable`, `order`, numeric
    `position`). Fields the engine does not model land in `extensions`.
    """
    id: Optional[str] = None
    keys: List[str]
    secondary_keys: List[str] = Field(default_factory=list)
    content: str = ''
    enabled: bool = True
    insertion_order: int = DEFAULT_INSERTION_ORDER
    priority: Optional[int] = None
    use_regex: bool = False
    case_sensitive: Optional[bool] = None
    constant: Optional[bool] = False
    name: Optional[str] = None
    comment: Optional[str] = None
    selective: Optional[bool] = None
    position: Optional[str] = None
    extensions: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode='before')
    @classmethod
    def from_world_info(cls, data: Any) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise ValueError(f"World info entry must be an object, got {type(data).__name__}")
        data = {str(k): v for k, v in data.items()}

        secondary_keys = string_list(_first(data, 'secondary_keys', 'keysecondary', 'keySecondary', 'secondaryKeys'))
        selective = data.get('selective')
        disable = data.get('disable')
        uid = _first(data, 'uid', 'id')
        case_sensitive = _first(data, 'case_sensitive', 'caseSensitive')
        order = safe_int(_first(data, 'insertion_order', 'order', 'insertionOrder', 'priority'))

        extensions = collect_extensions(data, ENTRY_RESERVED_KEYS)
        char_filter = extensions.get('character_filter')
        if isinstance(char_filter, dict):
            extensions.setdefault('character_filter_names', string_list(char_filter.get('names')))
            extensions.setdefault('character_filter_tags', string_list(char_filter.get('tags')))
            exclude = _first(char_filter, 'is_exclude', 'exclude')
            if exclude is not None:
                extensions.setdefault('character_filter_exclude', to_bool(exclude))

        return {
            'id': None if uid is None else str(uid),
            'keys': string_list(_first(data, 'keys', 'key')),
            'secondary_keys': secondary_keys,
            'content': '' if data.get('content') is None else str(data['content']),
            'enabled': (not to_bool(disable)) if disable is not None else to_bool(data.get('enabled'), default=True),
            'insertion_order': DEFAULT_INSERTION_ORDER if order is None else order,
            'priority': safe_int(data.get('priority')),
            'use_regex': to_bool(_first(data, 'use_regex', 'useRegex')),
            'case_sensitive': None if case_sensitive is None else to_bool(case_sensitive),
            'constant': to_bool(data.get('constant')),
            'name': presence(data.get('name')),
            'comment': presence(_first(data, 'comment', 'memo')),
            'selective': (True if secondary_keys else None) if selective is None else to_bool(selective),
            'position': map_position(_first(data, 'position', 'pos')),
            'extensions': extensions,
        }

    @field_validator('keys')
    @classmethod
    def require_keys(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("World info entry has no keys")
        return value

    def to_entry(self) -> LoreEntry:
        return LoreEntry(
            keys=self.keys,
            secondary_keys=self.secondary_keys,
            content=self.content,
            enabled=self.enabled,
            insertion_order=self.insertion_order,
            priority=self.priority,
            use_regex=self.use_regex,
            case_sensitive=self.case_sensitive,
            constant=self.constant,
            name=self.name,
            id=self.id,
            comment=self.comment,
            selective=bool(self.selective),
            position=self.position,
            extensions=self.extensions,
        )


class WorldInfoDTO(BaseModel):
    """
    Book-level fields of a world-info file. `entries` stay raw so each
    one can be validated (and skipped) on its own.
    """
    name: Optional[str] = None
    description: Optional[str] = None
    scan_depth: Optional[int] = None
    token_budget: Optional[int] = None
    recursive_scanning: Optional[bool] = None
    extensions: Dict[str, Any] = Field(default_factory=dict)
    entries: List[Any] = Field(default_factory=list)

    @model_validator(mode='before')
    @classmethod
    def from_world_info(cls, data: Any) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise ValueError(f"World info must be an object, got {type(data).__name__}")
        data = {str(k): v for k, v in data.items()}

        raw_entries = data.get('entries')
        if isinstance(raw_entries, dict):
            # {uid: entry} maps are ordered by numeric uid first
            items = sorted(raw_entries.items(), key=lambda kv: (safe_int(kv[0]) is None, safe_int(kv[0]) or 0, str(kv[0])))
            entries = [value for _, value in items]
        elif isinstance(raw_entries, list):
            entries = raw_entries
        else:
            entries = []

        recursive = _first(data, 'recursive_scanning', 'recursiveScanning')
        return {
            'name': presence(data.get('name')),
            'description': presence(data.get('description')),
            'scan_depth': safe_int(_first(data, 'scan_depth', 'scanDepth')),
            'token_budget': safe_int(_first(data, 'token_budget', 'tokenBudget')),
            'recursive_scanning': None if recursive is None else to_bool(recursive),
            'extensions': collect_extensions(data, BOOK_RESERVED_KEYS),
            'entries': entries,
        }

    def to_book(self, entries: List[LoreEntry]) -> LoreBook:
        return LoreBook(
            entries=tuple(entries),
            name=self.name,
            description=self.description,
            scan_depth=self.scan_depth,
            token_budget=self.token_budget,
            recursive_scanning=self.recursive_scanning,
            extensions=self.extensions,
        )
