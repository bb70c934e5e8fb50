from typing import Any, Dict, Optional, Protocol


class ChatVariables(Protocol):
    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


class InMemoryChatVariables:
    """Dict-backed variable store, used when the caller supplies none."""
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self.variables: Dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Optional[Any]:
        return self.variables.get(key)

    def set(self, key: str, value: Any) -> None:
        self.variables[key] = value

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.variables)
