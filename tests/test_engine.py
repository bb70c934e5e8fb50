import pytest
from lore_engine import create_engine
from lore_engine.constants import InsertionStrategy
from lore_engine.core.directives import DecoratedDialect, PlainDialect
from lore_engine.core.engine import LoreEngine, namespace_entries, sort_entries
from lore_engine.errors import EngineConfigError
from lore_engine.models.lorebook import LoreBook, LoreEntry
from lore_engine.models.scan_input import ScanInput
from lore_engine.utils.tokenizers import CharTokenEstimator
from config import EngineTestingConfig


def entry(entry_id, order=100, keys=('dragon',), content=None, **kwargs):
    return LoreEntry(keys=list(keys), content=content or f"{entry_id} lore", id=entry_id,
                     insertion_order=order, **kwargs)

def run(engine, entries, messages, **kwargs):
    book = LoreBook(entries=entries, name='lore')
    return engine.activate(ScanInput(messages=messages, global_books=[book], **kwargs))

def ids(entries):
    return [e.id for e in entries]


# --- Ordering and namespacing ---

def test_character_lore_first():
    ordered = sort_entries([entry('g1', 5), entry('g2', 50)], [entry('c1', 1)],
                           [entry('chat', 0)], [entry('persona', 0)])
    assert ids(ordered) == ['chat', 'persona', 'c1', 'g2', 'g1']

def test_global_lore_first():
    ordered = sort_entries([entry('g1', 5)], [entry('c1', 50)], [], [],
                           strategy=InsertionStrategy.GLOBAL_LORE_FIRST)
    assert ids(ordered) == ['g1', 'c1']

def test_evenly_merges_by_order():
    ordered = sort_entries([entry('g1', 5), entry('g2', 50)], [entry('c1', 10)], [], [],
                           strategy=InsertionStrategy.EVENLY)
    assert ids(ordered) == ['g2', 'c1', 'g1']

def test_namespace_entries():
    book = LoreBook(name='world', entries=[entry('5'), LoreEntry(keys=['x'], content=''), entry('other.3')])
    assert ids(namespace_entries(book, 0)) == ['world.5', 'world.1', 'other.3']

def test_unnamed_books_get_index_namespace(make_engine):
    first = LoreBook(entries=[entry('1')])
    second = LoreBook(entries=[entry('1')])
    result = make_engine().activate(ScanInput(messages=['dragon'], global_books=[first], character_books=[second]))
    assert sorted(result.ids) == ['book0.1', 'book1.1']


# --- Activation rules ---

def test_no_books_no_activation(engine):
    result = engine.activate(ScanInput(messages=['dragon']))
    assert result.activated == []
    assert result.passes == 0

def test_key_match_activates(engine):
    result = run(engine, [entry('a'), entry('b', keys=('wyrm',))], ['A Dragon!'])
    assert result.ids == ['lore.a']
    assert result.total_tokens == 2

def test_empty_primary_keys_never_match(engine):
    assert run(engine, [entry('a', keys=()), entry('b', keys=('  ',))], ['dragon']).activated == []

def test_constant_entries_activate(engine):
    assert run(engine, [entry('a', keys=(), constant=True)], ['nothing']).ids == ['lore.a']

def test_disabled_entries_are_skipped(engine):
    assert run(engine, [entry('a', enabled=False, constant=True)], ['dragon']).activated == []

def test_forced_activation(engine):
    result = run(engine, [entry('a', keys=('zzz',))], ['dragon'], forced_activations=['lore.a'])
    assert result.ids == ['lore.a']

def test_generation_triggers(engine):
    only_continue = entry('a', extensions={'triggers': ['continue']})
    assert run(engine, [only_continue], ['dragon']).activated == []
    assert run(engine, [only_continue], ['dragon'], trigger='continue').ids == ['lore.a']

def test_character_filter(engine):
    alice_only = entry('a', extensions={'characterFilterNames': ['Alice']})
    not_bob = entry('b', extensions={'character_filter_names': ['Bob'], 'character_filter_exclude': True})
    assert run(engine, [alice_only, not_bob], ['dragon'], character_name='Alice').ids == ['lore.a', 'lore.b']
    assert run(engine, [alice_only, not_bob], ['dragon'], character_name='Bob').activated == []

def test_probability(make_engine, fixed_rng):
    maybe = entry('a', extensions={'probability': 30})
    assert run(make_engine(rng=fixed_rng(0.5)), [maybe], ['dragon']).activated == []
    assert run(make_engine(rng=fixed_rng(0.2)), [maybe], ['dragon']).ids == ['lore.a']

def test_probability_can_be_disabled(make_engine, fixed_rng):
    always = entry('a', extensions={'probability': 30, 'useProbability': False})
    assert run(make_engine(rng=fixed_rng(0.99)), [always], ['dragon']).ids == ['lore.a']

def test_case_sensitivity(make_engine):
    assert run(make_engine(case_sensitive=True), [entry('a')], ['Dragon']).activated == []
    assert run(make_engine(case_sensitive=True), [entry('a', case_sensitive=False)], ['Dragon']).ids == ['lore.a']

def test_whole_word_setting(make_engine):
    assert run(make_engine(), [entry('a', keys=('drag',))], ['dragon']).activated == []
    assert run(make_engine(match_whole_words=False), [entry('a', keys=('drag',))], ['dragon']).ids == ['lore.a']

def test_scan_depth_limits_window(make_engine):
    assert run(make_engine(scan_depth=1), [entry('a')], ['dragon', 'hello']).activated == []
    assert run(make_engine(scan_depth=2), [entry('a')], ['dragon', 'hello']).ids == ['lore.a']

def test_book_scan_depth_is_default(make_engine):
    book = LoreBook(name='lore', scan_depth=1, entries=[entry('a')])
    result = make_engine().activate(ScanInput(messages=['dragon', 'hello'], global_books=[book]))
    assert result.activated == []

def test_entry_scan_depth(make_engine):
    deep = entry('a', extensions={'scanDepth': 2})
    assert run(make_engine(scan_depth=1), [deep], ['dragon', 'hello']).ids == ['lore.a']

def test_scan_context(engine):
    forest = entry('a', keys=('forest',), extensions={'match_scenario': True})
    plain = entry('b', keys=('forest',))
    result = run(engine, [forest, plain], ['hello'], scan_context={'scenario': 'A dark forest'})
    assert result.ids == ['lore.a']

def test_scan_injects(engine):
    assert run(engine, [entry('a')], ['hello'], scan_injects=['a dragon note']).ids == ['lore.a']

def test_min_activations_widens_window(make_engine):
    engine = make_engine(scan_depth=1, min_activations=1)
    result = run(engine, [entry('a')], ['dragon', 'hello'])
    assert result.ids == ['lore.a']
    assert result.passes == 2

def test_min_activations_stops_at_depth_max(make_engine):
    engine = make_engine(scan_depth=1, min_activations=1, min_activations_depth_max=1)
    assert run(engine, [entry('a')], ['dragon', 'hello', 'hi']).activated == []

def test_result_to_dict(engine):
    data = run(engine, [entry('a', position='outlet', extensions={'outlet_name': 'side'}), entry('b')],
               ['dragon']).to_dict()
    assert [a['id'] for a in data['activated']] == ['lore.b']
    assert data['outlets'] == {'side': ['a lore']}
    assert data['passes'] == 1


# --- Construction ---

def test_bad_collaborators_raise():
    with pytest.raises(EngineConfigError):
        LoreEngine(token_estimator=object())
    with pytest.raises(EngineConfigError):
        LoreEngine(rng=object())

def test_create_engine_from_config():
    engine = create_engine(EngineTestingConfig)
    assert isinstance(engine.dialect, PlainDialect)
    assert isinstance(engine.token_estimator, CharTokenEstimator)
    assert engine.settings.max_recursion_steps == EngineTestingConfig.MAX_RECURSION_STEPS

def test_create_engine_decorated():
    class DecoratedConfig(EngineTestingConfig):
        DIALECT = 'decorated'
        INSERTION_STRATEGY = 'evenly'

    engine = create_engine(DecoratedConfig)
    assert isinstance(engine.dialect, DecoratedDialect)
    assert engine.settings.insertion_strategy == InsertionStrategy.EVENLY
