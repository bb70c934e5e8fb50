import pytest
from lore_engine.constants import EntryPosition, MessageRole
from lore_engine.core.directives import (PLAIN_DIRECTIVES, dont_activate_key, keep_activate_key,
                                         parse_directives)
from lore_engine.models.chat_variables import InMemoryChatVariables
from lore_engine.models.lorebook import LoreBook, LoreEntry
from lore_engine.models.scan_input import ScanInput


def run(engine, entries, messages, **kwargs):
    book = LoreBook(entries=entries, name='lore')
    return engine.activate(ScanInput(messages=messages, global_books=[book], **kwargs))

@pytest.fixture
def decorated(make_engine):
    return make_engine(dialect='decorated')


# --- Parsing ---

def test_parse_leading_directives():
    parsed = parse_directives('@@depth 2\n@@additional_keys castle, keep\nThe dragon sleeps.')
    assert parsed.names == ('depth', 'additional_keys')
    assert parsed.directives[1].args == ('castle', 'keep')
    assert parsed.directives[1].raw_args == 'castle, keep'
    assert parsed.content == 'The dragon sleeps.'

def test_parse_without_directives_keeps_content():
    assert parse_directives('  Plain text ').content == '  Plain text '

def test_parse_stops_at_unknown_directive():
    parsed = parse_directives('@@activate\n@@custom thing\nBody', known=PLAIN_DIRECTIVES)
    assert parsed.names == ('activate',)
    assert parsed.content == '@@custom thing\nBody'


# --- Decorated dialect ---

def test_depth_and_role(decorated):
    entry = LoreEntry(keys=['dragon'], content='@@depth 2\n@@role user\nDragon lore', id='1')
    result = run(decorated, [entry], ['a dragon appears'])
    active = result.activated[0]
    assert active.content == 'Dragon lore'
    assert active.depth == 2
    assert active.position == EntryPosition.DEPTH
    assert active.role == MessageRole.USER

def test_end_places_at_depth_zero(decorated):
    entry = LoreEntry(keys=['dragon'], content='@@end\nDragon lore')
    active = run(decorated, [entry], ['dragon']).activated[0]
    assert (active.position, active.depth) == (EntryPosition.DEPTH, 0)

@pytest.mark.parametrize('directive', ['@@depth abc', '@@role narrator', '@@position nowhere',
                                       '@@scan_depth', '@@priority high', '@@bogus'])
def test_malformed_or_unknown_directive_rejects_entry(decorated, directive):
    entry = LoreEntry(keys=['dragon'], content=f"{directive}\nDragon lore")
    assert run(decorated, [entry], ['dragon']).activated == []

def test_custom_position(decorated):
    entry = LoreEntry(keys=['dragon'], content='@@position pt_sidebar\nDragon lore')
    assert run(decorated, [entry], ['dragon']).activated[0].position == 'pt_sidebar'

def test_activate_and_dont_activate(decorated):
    forced = LoreEntry(keys=['zzz'], content='@@activate\nAlways', id='1')
    blocked = LoreEntry(keys=['dragon'], content='@@dont_activate\nNever', id='2')
    assert run(decorated, [forced, blocked], ['dragon']).ids == ['lore.1']

def test_additional_and_exclude_keys(decorated):
    entry = LoreEntry(keys=['dragon'], content='@@additional_keys castle\n@@exclude_keys knight\nLore')
    assert run(decorated, [entry], ['a dragon']).activated == []
    assert len(run(decorated, [entry], ['a dragon at the castle']).activated) == 1
    assert run(decorated, [entry], ['a dragon, a castle and a knight']).activated == []

def test_partial_word_matching(decorated):
    entry = LoreEntry(keys=['drag'], content='@@match_partial_word\nLore')
    assert len(run(decorated, [entry], ['dragons everywhere']).activated) == 1

def test_is_greeting(decorated):
    entry = LoreEntry(keys=['dragon'], content='@@is_greeting 1\nGreeting lore')
    assert len(run(decorated, [entry], ['dragon'], greeting_index=0).activated) == 1
    assert run(decorated, [entry], ['dragon'], greeting_index=1).activated == []

def test_activate_only_after(decorated):
    entry = LoreEntry(keys=['dragon'], content='@@activate_only_after 3\nLate lore')
    assert run(decorated, [entry], ['dragon'], chat_length=2).activated == []
    assert len(run(decorated, [entry], ['dragon'], chat_length=3).activated) == 1

def test_activate_only_every(decorated):
    entry = LoreEntry(keys=['dragon'], content='@@activate_only_every 2\nEven lore')
    assert run(decorated, [entry], ['dragon'], chat_length=3).activated == []
    assert len(run(decorated, [entry], ['dragon'], chat_length=4).activated) == 1

def test_probability_directive(make_engine, fixed_rng):
    entry = LoreEntry(keys=['dragon'], content='@@probability 50\nMaybe')
    assert run(make_engine(dialect='decorated', rng=fixed_rng(0.9)), [entry], ['dragon']).activated == []
    assert len(run(make_engine(dialect='decorated', rng=fixed_rng(0.1)), [entry], ['dragon']).activated) == 1

def test_keep_activate_after_match(decorated):
    entry = LoreEntry(keys=['dragon'], content='@@keep_activate_after_match\nKept', id='1')
    variables = InMemoryChatVariables()

    assert run(decorated, [entry], ['dragon'], chat_variables=variables).ids == ['lore.1']
    assert variables.get(keep_activate_key(entry.with_changes(id='lore.1'))) == 'true'
    assert run(decorated, [entry], ['nothing relevant'], chat_variables=variables).ids == ['lore.1']

def test_dont_activate_after_match(decorated):
    entry = LoreEntry(keys=['dragon'], content='@@dont_activate_after_match\nOnce', id='1')
    variables = InMemoryChatVariables()

    assert run(decorated, [entry], ['dragon'], chat_variables=variables).ids == ['lore.1']
    assert variables.get(dont_activate_key(entry.with_changes(id='lore.1'))) == 'true'
    assert run(decorated, [entry], ['dragon'], chat_variables=variables).activated == []

def test_flag_key_falls_back_to_content_hash():
    entry = LoreEntry(keys=['dragon'], content='Some lore')
    assert keep_activate_key(entry).startswith('__internal_ka_')
    assert len(keep_activate_key(entry)) == len('__internal_ka_') + 8

def test_inject_lore_appends_to_named_entry(decorated):
    castle = LoreEntry(keys=['castle'], content='The castle stands.', comment='Castle', id='1')
    addition = LoreEntry(keys=['castle'], content='@@inject_lore Castle\nIt is very old.', id='2')
    result = run(decorated, [castle, addition], ['the castle'])
    assert result.ids == ['lore.1']
    assert result.activated[0].content == 'The castle stands. It is very old.'

def test_inject_lore_replace(decorated):
    castle = LoreEntry(keys=['castle'], content='The castle is new.', comment='Castle', id='1')
    patch = LoreEntry(keys=['castle'], content='@@inject_lore Castle\n@@inject_replace new\nruined', id='2')
    result = run(decorated, [castle, patch], ['the castle'])
    assert result.activated[0].content == 'The castle is ruined.'

def test_inject_lore_without_target_is_dropped(decorated):
    orphan = LoreEntry(keys=['castle'], content='@@inject_lore Tower\nLost text', id='1')
    result = run(decorated, [orphan], ['the castle'])
    assert result.activated == []
    assert result.outlets == {}

def test_inject_at_goes_to_outlet(decorated):
    entry = LoreEntry(keys=['castle'], content='@@inject_at notes\nSide note', id='1')
    result = run(decorated, [entry], ['the castle'])
    assert result.activated == []
    assert result.outlet('notes') == 'Side note'

def test_priority_decides_budget(make_engine):
    engine = make_engine(dialect='decorated', budget_percent=10)
    low = LoreEntry(keys=['dragon'], content='one two three four five six', id='low')
    high = LoreEntry(keys=['dragon'], content='@@priority 500\nsix five four three two one', id='high')
    result = run(engine, [low, high], ['dragon'], max_context=100)
    assert result.ids == ['lore.high']
    assert result.total_tokens == 6

def test_ignore_on_max_context_sorts_last(make_engine):
    engine = make_engine(dialect='decorated', budget_percent=10)
    spare = LoreEntry(keys=['dragon'], content='@@ignore_on_max_context\none two three four five six', id='a',
                      insertion_order=500)
    main = LoreEntry(keys=['dragon'], content='six five four three two one', id='b')
    assert run(engine, [spare, main], ['dragon'], max_context=100).ids == ['lore.b']

def test_finalize_sorts_by_order(decorated):
    first = LoreEntry(keys=['dragon'], content='Low', id='1', insertion_order=1)
    second = LoreEntry(keys=['dragon'], content='High', id='2', insertion_order=50)
    assert run(decorated, [first, second], ['dragon']).ids == ['lore.2', 'lore.1']

def test_folder_entries_never_activate(decorated):
    folder = LoreEntry(keys=['dragon'], content='Folder', extensions={'mode': 'folder'})
    assert run(decorated, [folder], ['dragon']).activated == []

def test_macro_comments_are_not_scanned(decorated):
    entry = LoreEntry(keys=['dragon'], content='Lore')
    assert run(decorated, [entry], ['{{// dragon }} hello']).activated == []

def test_recursive_directive_feeds_recursion(make_engine):
    engine = make_engine(dialect='decorated')
    feeder = LoreEntry(keys=['wolf'], content='@@recursive\nThe pack howls', id='a')
    follower = LoreEntry(keys=['howls'], content='Moon lore', id='b')
    assert run(engine, [feeder, follower], ['a wolf']).ids == ['lore.a', 'lore.b']

def test_unrecursive_directive_blocks_recursion(make_engine):
    engine = make_engine(dialect='decorated', recursive_scanning=True)
    feeder = LoreEntry(keys=['wolf'], content='@@unrecursive\nThe pack howls', id='a')
    follower = LoreEntry(keys=['howls'], content='Moon lore', id='b')
    assert run(engine, [feeder, follower], ['a wolf']).ids == ['lore.a']

def test_no_recursive_search(make_engine):
    engine = make_engine(dialect='decorated', recursive_scanning=True)
    feeder = LoreEntry(keys=['wolf'], content='The pack howls', id='a')
    follower = LoreEntry(keys=['howls'], content='@@no_recursive_search\nMoon lore', id='b')
    assert run(engine, [feeder, follower], ['a wolf']).ids == ['lore.a']


# --- Plain dialect ---

def test_plain_activate_directive(engine):
    entry = LoreEntry(keys=['zzz'], content='@@activate\nAlways here', id='1')
    result = run(engine, [entry], ['dragon'])
    assert result.activated[0].content == 'Always here'

def test_plain_dont_activate_beats_constant(engine):
    entry = LoreEntry(keys=['dragon'], content='@@dont_activate\nNever', constant=True)
    assert run(engine, [entry], ['dragon']).activated == []

def test_plain_keeps_unknown_directive_as_content(engine):
    entry = LoreEntry(keys=['dragon'], content='@@depth 2\nLore')
    assert run(engine, [entry], ['dragon']).activated[0].content == '@@depth 2\nLore'

def test_plain_outlet(engine):
    entry = LoreEntry(keys=['dragon'], content='Outlet lore', position=EntryPosition.OUTLET,
                      extensions={'outletName': 'side'})
    result = run(engine, [entry], ['dragon'])
    assert result.activated == []
    assert result.outlets == {'side': ['Outlet lore']}
