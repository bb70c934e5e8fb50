from lore_engine.core.matcher import Matcher
from lore_engine.core.scorer import score
from lore_engine.models.lorebook import LoreEntry


def test_counts_primary_matches():
    entry = LoreEntry(keys=['dragon', 'wyrm', 'drake'], content='')
    assert score(Matcher(), entry, 'a dragon and a wyrm') == 2

def test_adds_secondary_matches():
    entry = LoreEntry(keys=['dragon'], secondary_keys=['fire', 'ice'], selective=True, content='')
    assert score(Matcher(), entry, 'dragon fire') == 2

def test_and_all_adds_secondary_only_when_complete():
    entry = LoreEntry(keys=['dragon'], secondary_keys=['fire', 'ice'], selective=True, content='',
                      extensions={'selective_logic': 3})
    assert score(Matcher(), entry, 'dragon fire') == 1
    assert score(Matcher(), entry, 'dragon fire ice') == 3

def test_zero_without_text_or_keys():
    assert score(Matcher(), LoreEntry(keys=['dragon'], content=''), '') == 0
    assert score(Matcher(), LoreEntry(keys=[' '], content=''), 'dragon') == 0
