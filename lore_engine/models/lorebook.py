from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import Any, Dict, List, Mapping, Optional, Tuple

from lore_engine.constants import DEFAULT_INSERTION_ORDER
from lore_engine.models.entry_extensions import EntryExtensions


@dataclass(frozen=True)
class LoreEntry:
    keys: Tuple[str, ...]
    content: str
    extensions: Mapping[str, Any] = field(default_factory=dict)
    enabled: bool = True
    insertion_order: int = DEFAULT_INSERTION_ORDER
    use_regex: bool = False
    case_sensitive: Optional[bool] = None
    constant: Optional[bool] = None
    name: Optional[str] = None
    priority: Optional[int] = None
    id: Optional[str] = None
    comment: Optional[str] = None
    selective: bool = False
    secondary_keys: Tuple[str, ...] = ()
    position: Optional[str] = None

    def __post_init__(self):
        # lists are accepted for convenience and frozen into tuples
        object.__setattr__(self, 'keys', tuple(str(k) for k in (self.keys or ())))
        object.__setattr__(self, 'secondary_keys', tuple(str(k) for k in (self.secondary_keys or ())))
        object.__setattr__(self, 'extensions', dict(self.extensions or {}))
        object.__setattr__(self, 'content', '' if self.content is None else str(self.content))

    @property
    def is_constant(self) -> bool:
        return self.constant is True

    @property
    def has_secondary(self) -> bool:
        return self.selective and any(k.strip() for k in self.secondary_keys)

    @cached_property
    def ext(self) -> EntryExtensions:
        return EntryExtensions.wrap(self.extensions)

    def with_changes(self, **changes) -> 'LoreEntry':
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'keys': list(self.keys),
            'content': self.content,
            'enabled': self.enabled,
            'insertion_order': self.insertion_order,
            'use_regex': self.use_regex,
            'extensions': dict(self.extensions),
            'selective': self.selective,
            'secondary_keys': list(self.secondary_keys),
        }
        for key in ('case_sensitive', 'constant', 'name', 'priority', 'id', 'comment', 'position'):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'LoreEntry':
        return cls(
            keys=data.get('keys') or (),
            content=data.get('content', ''),
            extensions=data.get('extensions') or {},
            enabled=data.get('enabled', True),
            insertion_order=int(data.get('insertion_order', DEFAULT_INSERTION_ORDER)),
            use_regex=bool(data.get('use_regex', False)),
            case_sensitive=data.get('case_sensitive'),
            constant=data.get('constant'),
            name=data.get('name'),
            priority=data.get('priority'),
            id=None if data.get('id') is None else str(data.get('id')),
            comment=data.get('comment'),
            selective=bool(data.get('selective', False)),
            secondary_keys=data.get('secondary_keys') or (),
            position=data.get('position'),
        )


@dataclass(frozen=True)
class LoreBook:
    entries: Tuple[LoreEntry, ...] = ()
    scan_depth: Optional[int] = None
    token_budget: Optional[int] = None
    recursive_scanning: Optional[bool] = None
    name: Optional[str] = None
    description: Optional[str] = None
    extensions: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        entries = tuple(e if isinstance(e, LoreEntry) else LoreEntry.from_dict(e) for e in (self.entries or ()))
        object.__setattr__(self, 'entries', entries)
        object.__setattr__(self, 'extensions', dict(self.extensions or {}))

    def world(self, index: int) -> str:
        """
        Namespace used to make entry ids unique across books.
        """
        for key in ('world', 'st_world', 'source', 'id'):
            value = self.extensions.get(key)
            if value is not None and str(value).strip():
                return str(value).strip()
        if self.name and self.name.strip():
            return self.name.strip()
        return f"book{index}"

    @property
    def enabled_entries(self) -> List[LoreEntry]:
        return [e for e in self.entries if e.enabled]

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'entries': [e.to_dict() for e in self.entries],
            'extensions': dict(self.extensions),
        }
        for key in ('name', 'description', 'scan_depth', 'token_budget', 'recursive_scanning'):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data
