from dataclasses import dataclass, field
from typing import Any, Dict, List

from lore_engine.models.active import Active
from lore_engine.models.lorebook import LoreEntry


@dataclass
class ActivationResult:
    activated: List[Active] = field(default_factory=list)
    total_tokens: int = 0
    outlets: Dict[str, List[str]] = field(default_factory=dict)
    passes: int = 0

    @property
    def activated_entries(self) -> List[LoreEntry]:
        return [a.entry for a in self.activated]

    @property
    def ids(self) -> List[str]:
        return [a.id for a in self.activated]

    def outlet(self, name: str) -> str:
        return '\n'.join(self.outlets.get(name, []))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'activated': [a.to_dict() for a in self.activated],
            'total_tokens': self.total_tokens,
            'outlets': {name: list(contents) for name, contents in self.outlets.items()},
            'passes': self.passes,
        }
