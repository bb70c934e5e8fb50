from lore_engine.constants import SelectiveLogic
from lore_engine.core.matcher import Matcher
from lore_engine.models.lorebook import LoreEntry


def score(matcher: Matcher, entry: LoreEntry, text: str, case_sensitive: bool = False,
          whole_word: bool = True) -> int:
    """
    Match strength of an entry against the scan text, used to break ties
    inside an inclusion group.
    """
    primary = [k for k in entry.keys if k.strip()]
    if not text or not primary:
        return 0

    options = dict(case_sensitive=case_sensitive, whole_word=whole_word, use_regex=entry.use_regex)
    primary_score = matcher.count(text, primary, **options)

    secondary = [k for k in entry.secondary_keys if k.strip()]
    if not secondary:
        return primary_score

    secondary_score = matcher.count(text, secondary, **options)
    if entry.ext.selective_logic == SelectiveLogic.AND_ALL:
        if secondary_score == len(secondary):
            return primary_score + secondary_score
        return primary_score
    return primary_score + secondary_score
