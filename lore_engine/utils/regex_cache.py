import re
from collections import OrderedDict
from typing import Optional, Pattern, Tuple

from lore_engine.constants import JS_REGEX_CACHE_MAX, JS_REGEX_FLAGS

_JS_NAMED_GROUP = re.compile(r'\(\?<(?![=!])([A-Za-z_][A-Za-z0-9_]*)>')
_JS_NAMED_BACKREF = re.compile(r'\\k<([A-Za-z_][A-Za-z0-9_]*)>')

_MISSING = object()


def split_js_regex_literal(value: str) -> Optional[Tuple[str, str]]:
    """
    Splits a `/pattern/flags` literal into (pattern, flags).
    Returns None if the value is not shaped like a literal.
    """
    if not value or not value.startswith('/'):
        return None
    last = value.rfind('/')
    if last <= 0:
        return None
    pattern = value[1:last]
    flags = value[last + 1:]
    if not pattern:
        return None
    if any(flag not in JS_REGEX_FLAGS for flag in flags):
        return None
    return pattern, flags

def is_js_regex_literal(value: str) -> bool:
    return split_js_regex_literal(value) is not None

def compile_js_regex(pattern: str, flags: str = '') -> Pattern:
    """
    Compiles a JavaScript regex source with Python's `re`.
    Raises re.error if the pattern is not valid.
    """
    options = 0
    if 'i' in flags:
        options |= re.IGNORECASE
    if 'm' in flags:
        options |= re.MULTILINE
    if 's' in flags:
        options |= re.DOTALL
    source = _JS_NAMED_GROUP.sub(r'(?P<\1>', pattern)
    source = _JS_NAMED_BACKREF.sub(r'(?P=\1)', source)
    return re.compile(source, options)


class JsRegexCache:
    """
    Memoizes compiled regex literals, including failed compilations,
    in a capped LRU.
    """
    def __init__(self, max_size: int = JS_REGEX_CACHE_MAX):
        self.max_size = max_size
        self._cache: 'OrderedDict[str, Optional[Pattern]]' = OrderedDict()
        self.compile_count = 0

    def fetch(self, literal: str) -> Optional[Pattern]:
        """
        Returns the compiled pattern for a `/pattern/flags` literal, or None
        when the literal is malformed or does not compile.
        """
        cached = self._cache.get(literal, _MISSING)
        if cached is not _MISSING:
            self._cache.move_to_end(literal)
            return cached

        parts = split_js_regex_literal(literal)
        compiled = None
        if parts is not None:
            self.compile_count += 1
            try:
                compiled = compile_js_regex(*parts)
            except re.error:
                compiled = None
        self._store(literal, compiled)
        return compiled

    def fetch_raw(self, pattern: str, case_sensitive: bool) -> Optional[Pattern]:
        """
        Compiles a bare pattern (no slashes), as used by regex-enabled entries.
        """
        return self.fetch(f"/{pattern}/" if case_sensitive else f"/{pattern}/i")

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, literal: str) -> bool:
        return literal in self._cache

    def _store(self, literal: str, compiled: Optional[Pattern]) -> None:
        self._cache[literal] = compiled
        while len(self._cache) > self.max_size:
            self._cache.popitem(last=False)
