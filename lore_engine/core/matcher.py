import re
from typing import Dict, Hashable, Iterable, Optional, Protocol, Sequence

from lore_engine.constants import JS_REGEX_MAX_INPUT_BYTES, SelectiveLogic
from lore_engine.context import context
from lore_engine.models.active import SearchQuery
from lore_engine.models.lorebook import LoreEntry
from lore_engine.utils.regex_cache import JsRegexCache, is_js_regex_literal
from lore_engine.utils.utils import create_logger, truncate_literal

matcher_log = create_logger(__name__, entity_name='LORE_MATCHER', level=context.log_level)

_EDGE_PUNCTUATION = re.compile(r'^\W+|\W+$')
_WHITESPACE = re.compile(r'\s+')


class Warner(Protocol):
    def warn(self, message: str, key: Optional[Hashable] = None) -> None:
        ...


class LogWarner:
    """
    Sends each distinct warning to the matcher logger once.
    """
    def __init__(self, logger=None):
        self.logger = logger or matcher_log
        self.warned: Dict[Hashable, bool] = {}

    def warn(self, message: str, key: Optional[Hashable] = None) -> None:
        key = message if key is None else key
        if key in self.warned:
            return
        self.warned[key] = True
        self.logger.warning(message)


class Matcher:
    """
    Keyword and regex matching against scan buffer text.
    """
    def __init__(self, regex_cache: Optional[JsRegexCache] = None, warner: Optional[Warner] = None):
        self.regex_cache = regex_cache if regex_cache is not None else JsRegexCache()
        self.warner = warner if warner is not None else LogWarner()

    def match(self, haystack: str, needle: str, case_sensitive: bool = False,
              whole_word: bool = True, use_regex: bool = False) -> bool:
        needle = (needle or '').strip()
        if not needle:
            return False
        haystack = haystack or ''

        if is_js_regex_literal(needle):
            return self._regex_match(haystack, needle, self.regex_cache.fetch(needle))
        if use_regex:
            return self._regex_match(haystack, needle, self.regex_cache.fetch_raw(needle, case_sensitive))

        if not case_sensitive:
            haystack = haystack.lower()
            needle = needle.lower()

        if whole_word:
            if _WHITESPACE.search(needle):
                return needle in haystack
            for token in haystack.split():
                if token == needle or _EDGE_PUNCTUATION.sub('', token) == needle:
                    return True
            return False

        return needle.replace(' ', '') in haystack.replace(' ', '')

    def match_any(self, haystack: str, keys: Iterable[str], **options) -> bool:
        return any(self.match(haystack, key, **options) for key in _clean_keys(keys))

    def match_all(self, haystack: str, keys: Iterable[str], **options) -> bool:
        keys = _clean_keys(keys)
        return bool(keys) and all(self.match(haystack, key, **options) for key in keys)

    def count(self, haystack: str, keys: Iterable[str], **options) -> int:
        return sum(1 for key in _clean_keys(keys) if self.match(haystack, key, **options))

    def matches_entry(self, entry: LoreEntry, haystack: str, case_sensitive: bool = False,
                      whole_word: bool = True, search_queries: Sequence[SearchQuery] = ()) -> bool:
        """
        Directive-driven matching: every query must hold (after negation),
        the primary keys being one mandatory query.
        """
        primary = _clean_keys(entry.keys)
        if not primary:
            return False

        queries = list(search_queries)
        queries.append(SearchQuery(keys=tuple(primary)))
        secondary = _clean_keys(entry.secondary_keys)
        if entry.selective and secondary:
            queries.append(SearchQuery(keys=tuple(secondary)))

        options = dict(case_sensitive=case_sensitive, whole_word=whole_word, use_regex=entry.use_regex)
        for query in queries:
            if query.all:
                result = self.match_all(haystack, query.keys, **options)
            else:
                result = self.match_any(haystack, query.keys, **options)
            if query.negative:
                result = not result
            if not result:
                return False
        return True

    def match_selective_logic(self, entry: LoreEntry, haystack: str, case_sensitive: bool = False,
                              whole_word: bool = True, logic: Optional[SelectiveLogic] = None) -> bool:
        """
        Primary keys must match; secondary keys then combine per the
        entry's selective logic.
        """
        options = dict(case_sensitive=case_sensitive, whole_word=whole_word, use_regex=entry.use_regex)
        if not self.match_any(haystack, entry.keys, **options):
            return False

        secondary = _clean_keys(entry.secondary_keys)
        if not (entry.selective and secondary):
            return True

        logic = logic or entry.ext.selective_logic
        has_any = False
        has_all = True
        for key in secondary:
            matched = self.match(haystack, key, **options)
            has_any = has_any or matched
            has_all = has_all and matched
            if logic == SelectiveLogic.AND_ANY and matched:
                return True
            if logic == SelectiveLogic.NOT_ALL and not matched:
                return True

        if logic == SelectiveLogic.NOT_ANY:
            return not has_any
        if logic == SelectiveLogic.AND_ALL:
            return has_all
        return False

    def _regex_match(self, haystack: str, literal: str, compiled) -> bool:
        if compiled is None:
            self.warner.warn(f"Invalid regex key: {truncate_literal(literal)}", ('regex_invalid', literal))
            return False
        size = len(haystack.encode('utf-8'))
        if size > JS_REGEX_MAX_INPUT_BYTES:
            self.warner.warn(f"Regex key skipped, input too large (bytes={size}): {truncate_literal(literal)}",
                             ('regex_input_too_large', literal))
            return False
        return compiled.search(haystack) is not None


def _clean_keys(keys: Iterable[str]):
    return [k.strip() for k in (str(key) for key in (keys or ())) if k.strip()]


def match_selective_logic(entry: LoreEntry, text: str, case_sensitive: bool = False,
                          match_whole_words: bool = True, matcher: Optional[Matcher] = None) -> bool:
    """
    Standalone selective-logic check, for scanning text outside of an
    activation (e.g. an author's note).
    """
    matcher = matcher or Matcher()
    return matcher.match_selective_logic(entry, text, case_sensitive=case_sensitive, whole_word=match_whole_words)
