from lore_engine.constants import HARD_MAX_RECURSION_STEPS, ScanPass, ScanState
from lore_engine.core.buffer import ScanBuffer
from lore_engine.core.recursion import RecursionController, scan_state
from lore_engine.models.lorebook import LoreBook, LoreEntry
from lore_engine.models.scan_input import ScanInput


def run(engine, entries, messages, **kwargs):
    book = LoreBook(entries=entries, name='lore')
    return engine.activate(ScanInput(messages=messages, global_books=[book], **kwargs))

def wolf_entries(feeder_ext=None, follower_ext=None):
    return [
        LoreEntry(keys=['wolf'], content='The pack howls', id='a', extensions=feeder_ext or {}),
        LoreEntry(keys=['howls'], content='The moon rises', id='b', extensions=follower_ext or {}),
    ]

def test_scan_state_outside_recursion():
    delayed = LoreEntry(keys=['x'], content='', extensions={'delayUntilRecursion': True})
    assert scan_state(delayed, in_recursive_pass=False, current_depth=1) == ScanState.DELAYED
    assert scan_state(LoreEntry(keys=['x'], content=''), False, 0) == ScanState.ELIGIBLE

def test_scan_state_in_recursion():
    level_two = LoreEntry(keys=['x'], content='', extensions={'delay_until_recursion': 2})
    excluded = LoreEntry(keys=['x'], content='', extensions={'exclude_recursion': True})
    assert scan_state(level_two, True, 1) == ScanState.DELAYED
    assert scan_state(level_two, True, 2) == ScanState.ELIGIBLE
    assert scan_state(excluded, True, 0) == ScanState.EXCLUDED

def test_zero_steps_means_hard_limit():
    controller = RecursionController([], max_recursion_steps=0, recursive_enabled=True)
    assert controller.max_passes == HARD_MAX_RECURSION_STEPS

def test_delay_levels_are_released_in_order():
    entries = [
        LoreEntry(keys=['x'], content='', extensions={'delay_until_recursion': 3}),
        LoreEntry(keys=['x'], content='', extensions={'delay_until_recursion': 1}),
    ]
    controller = RecursionController(entries, max_recursion_steps=5, recursive_enabled=False)
    assert controller.current_delay_level == 1
    assert controller.begin_pass() == ScanPass.INITIAL
    assert controller.finish_pass(ScanBuffer([], 1), [], 0) == ScanPass.RECURSION
    assert controller.current_delay_level == 3
    controller.begin_pass()
    assert controller.finish_pass(ScanBuffer([], 1), [], 0) is None
    assert not controller.should_continue()

def test_feed_reaches_buffer_only_when_another_pass_follows():
    buffer = ScanBuffer(['hello'], 1)
    controller = RecursionController([], max_recursion_steps=3, recursive_enabled=True)
    controller.begin_pass()
    controller.overflowed = True
    assert controller.finish_pass(buffer, ['The pack howls'], 1) is None
    assert not buffer.has_recurse()

def test_recursion_activates_follower(make_engine):
    result = run(make_engine(recursive_scanning=True), wolf_entries(), ['I hear a wolf'])
    assert result.ids == ['lore.a', 'lore.b']
    assert result.passes == 3

def test_book_can_enable_recursion(make_engine):
    book = LoreBook(entries=wolf_entries(), name='lore', recursive_scanning=True)
    result = make_engine().activate(ScanInput(messages=['a wolf'], global_books=[book]))
    assert result.ids == ['lore.a', 'lore.b']

def test_no_recursion_without_setting(make_engine):
    assert run(make_engine(), wolf_entries(), ['I hear a wolf']).ids == ['lore.a']

def test_prevent_recursion(make_engine):
    entries = wolf_entries(feeder_ext={'preventRecursion': True})
    assert run(make_engine(recursive_scanning=True), entries, ['a wolf']).ids == ['lore.a']

def test_exclude_recursion(make_engine):
    entries = wolf_entries(follower_ext={'excludeRecursion': True})
    assert run(make_engine(recursive_scanning=True), entries, ['a wolf']).ids == ['lore.a']

def test_exclude_recursion_ignored_without_recursion(make_engine):
    entries = wolf_entries(follower_ext={'excludeRecursion': True})
    assert run(make_engine(), entries, ['a wolf howls']).ids == ['lore.a', 'lore.b']

def test_delayed_entry_waits_for_recursion(make_engine):
    entries = wolf_entries(follower_ext={'delay_until_recursion': 1})
    result = run(make_engine(recursive_scanning=True), entries, ['a wolf howls'])
    assert result.ids == ['lore.a', 'lore.b']

def test_delay_levels_release_without_recursive_scanning(make_engine):
    entries = [
        LoreEntry(keys=['wolf'], content='Pack', id='a'),
        LoreEntry(keys=['wolf'], content='Level one', id='b', extensions={'delay_until_recursion': 1}),
        LoreEntry(keys=['wolf'], content='Level two', id='c', extensions={'delay_until_recursion': 2}),
    ]
    result = run(make_engine(), entries, ['a wolf'])
    assert sorted(result.ids) == ['lore.a', 'lore.b', 'lore.c']
    assert result.passes == 2

def test_recursion_steps_limit_passes(make_engine):
    chain = [
        LoreEntry(keys=['wolf'], content='howl', id='a'),
        LoreEntry(keys=['howl'], content='moon', id='b'),
        LoreEntry(keys=['moon'], content='tide', id='c'),
        LoreEntry(keys=['tide'], content='shore', id='d'),
    ]
    assert run(make_engine(recursive_scanning=True, max_recursion_steps=2), chain, ['wolf']).ids == \
        ['lore.a', 'lore.b']
    assert run(make_engine(recursive_scanning=True), chain, ['wolf']).ids == ['lore.a', 'lore.b', 'lore.c']
