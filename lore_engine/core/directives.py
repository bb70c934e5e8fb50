import hashlib
import random
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from lore_engine.constants import (DECORATED_POSITIONS, DEFAULT_SOURCE_NAME, DONT_ACTIVATE_PREFIX,
                                   EntryPosition, ForceState, IGNORE_ON_MAX_CONTEXT_PRIORITY,
                                   InjectOperation, KEEP_ACTIVATE_PREFIX, MessageRole, ScanPass,
                                   VALID_ROLES)
from lore_engine.context import context
from lore_engine.core.buffer import ScanBuffer
from lore_engine.core.matcher import Matcher
from lore_engine.dto.settings_dto import EngineSettingsDTO
from lore_engine.models.active import Active, Inject, SearchQuery
from lore_engine.models.chat_variables import ChatVariables
from lore_engine.models.entry_extensions import EntryExtensions
from lore_engine.models.lorebook import LoreEntry
from lore_engine.models.scan_input import ScanInput
from lore_engine.models.timed_effects import TimedEffectsStore
from lore_engine.utils.tokenizers import TokenEstimator
from lore_engine.utils.utils import create_logger, safe_int

directives_log = create_logger(__name__, entity_name='LORE_DIRECTIVES', level=context.log_level)

DIRECTIVE_PREFIX = '@@'
PLAIN_DIRECTIVES = ('activate', 'dont_activate')

_MACRO_COMMENT = re.compile(r'\{\{//(.+?)\}\}')
_COMMENT_MACRO = re.compile(r'\{\{comment:(.+?)\}\}', re.IGNORECASE)


@dataclass(frozen=True)
class Directive:
    name: str
    args: Tuple[str, ...] = ()
    raw_args: str = ''


@dataclass(frozen=True)
class ParsedContent:
    directives: Tuple[Directive, ...]
    content: str

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(d.name for d in self.directives)


def parse_directives(content: str, known: Optional[Sequence[str]] = None) -> ParsedContent:
    """
    Splits leading `@@name arg1,arg2` lines off an entry's content.

    With `known`, parsing stops at the first directive not in it and that
    line is kept as content.
    """
    lines = (content or '').split('\n')
    directives: List[Directive] = []
    index = 0
    while index < len(lines):
        line = lines[index].strip()
        if not line.startswith(DIRECTIVE_PREFIX):
            break
        body = line[len(DIRECTIVE_PREFIX):].strip()
        name, _, raw_args = body.partition(' ')
        if not name or (known is not None and name not in known):
            break
        raw_args = raw_args.strip()
        args = tuple(a.strip() for a in raw_args.split(',') if a.strip())
        directives.append(Directive(name=name, args=args, raw_args=raw_args))
        index += 1

    if not directives:
        return ParsedContent(directives=(), content=content or '')
    return ParsedContent(directives=tuple(directives), content='\n'.join(lines[index:]).strip())


def strip_macro_comments(text: str) -> str:
    return _COMMENT_MACRO.sub('', _MACRO_COMMENT.sub('', text))


def entry_source(entry: LoreEntry) -> str:
    if entry.comment:
        return entry.comment
    if entry.name:
        return entry.name
    return DEFAULT_SOURCE_NAME


@dataclass
class PassScan:
    """
    What a dialect sees while evaluating entries during one pass.
    """
    buffer: ScanBuffer
    scan_pass: ScanPass
    matcher: Matcher
    settings: EngineSettingsDTO
    scan_input: ScanInput
    timed_effects: TimedEffectsStore
    chat_variables: ChatVariables
    token_estimator: TokenEstimator
    rng: random.Random
    recursive_enabled: bool = False

    @property
    def in_recursion(self) -> bool:
        return self.scan_pass == ScanPass.RECURSION

    def text(self, scan_depth: Optional[int], ext: Optional[EntryExtensions], include_recursion: bool = True) -> str:
        return self.buffer.get(scan_depth, self.scan_pass, ext, include_recursion=include_recursion)

    def case_sensitive(self, entry: LoreEntry) -> bool:
        if entry.case_sensitive is not None:
            return entry.case_sensitive
        return self.settings.case_sensitive

    def match_whole_words(self, entry: LoreEntry) -> bool:
        if entry.ext.match_whole_words is not None:
            return entry.ext.match_whole_words
        return self.settings.match_whole_words

    def estimate(self, text: str) -> int:
        return int(self.token_estimator.estimate(text))


class DirectiveEvaluator:
    """
    Rule dialect used by the engine. `evaluate` returns an Active for an
    entry that activates in the current pass, or None.
    """
    name = 'base'
    # plain entries are cut at the running budget while scanning
    tracks_running_budget = False

    def evaluate(self, entry: LoreEntry, scan: PassScan) -> Optional[Active]:
        raise NotImplementedError

    def feeds_recursion(self, active: Active, recursive_enabled: bool) -> bool:
        return recursive_enabled

    def scan_text(self, active: Active, scan: PassScan) -> str:
        return scan.text(active.scan_depth, active.entry.ext,
                         include_recursion=not active.dont_search_when_recursive)

    def on_activated(self, active: Active, scan: PassScan) -> None:
        pass

    def budget_order(self, actives: List[Active]) -> List[Active]:
        return list(actives)

    def finalize(self, actives: List[Active]) -> Tuple[List[Active], Dict[str, List[str]]]:
        return list(actives), {}


class PlainDialect(DirectiveEvaluator):
    """
    Keyword dialect: enabled entries activate when constant, forced, sticky
    or when their keys match under the entry's selective logic.
    """
    name = 'plain'
    tracks_running_budget = True

    def evaluate(self, entry: LoreEntry, scan: PassScan) -> Optional[Active]:
        if not entry.enabled:
            return None
        ext = entry.ext
        if not ext.triggered_by(scan.scan_input.trigger):
            return None
        if not ext.matches_character(scan.scan_input.character_name, scan.scan_input.character_tags):
            return None

        parsed = parse_directives(entry.content, known=PLAIN_DIRECTIVES)
        if 'activate' in parsed.names:
            return self._build_active(entry, parsed.content, scan)
        if 'dont_activate' in parsed.names:
            return None

        if (scan.scan_input.force_activate(entry.id) or entry.is_constant
                or scan.timed_effects.sticky_active(entry.id)):
            return self._build_active(entry, parsed.content, scan)

        text = scan.text(ext.scan_depth, ext)
        if not text:
            return None
        if scan.matcher.match_selective_logic(entry, text, case_sensitive=scan.case_sensitive(entry),
                                              whole_word=scan.match_whole_words(entry)):
            return self._build_active(entry, parsed.content, scan)
        return None

    def feeds_recursion(self, active: Active, recursive_enabled: bool) -> bool:
        return recursive_enabled and not active.entry.ext.prevent_recursion

    def finalize(self, actives: List[Active]) -> Tuple[List[Active], Dict[str, List[str]]]:
        kept: List[Active] = []
        outlets: Dict[str, List[str]] = {}
        for active in actives:
            outlet_name = active.entry.ext.outlet_name
            if active.position == EntryPosition.OUTLET and outlet_name:
                outlets.setdefault(outlet_name, []).append(active.content)
            else:
                kept.append(active)
        return kept, outlets

    def _build_active(self, entry: LoreEntry, content: str, scan: PassScan) -> Active:
        ext = entry.ext
        return Active(
            entry=entry,
            content=content,
            tokens=scan.estimate(content),
            depth=ext.depth,
            position=entry.position or '',
            role=ext.role,
            order=entry.insertion_order,
            priority=entry.insertion_order if entry.priority is None else entry.priority,
            source=entry_source(entry),
            scan_depth=ext.scan_depth,
            full_word_match=scan.match_whole_words(entry),
            case_sensitive=scan.case_sensitive(entry),
            ignore_budget=ext.ignore_budget,
        )


@dataclass
class DirectiveState:
    """Mutable per-entry state the decorator handlers write into."""
    entry: LoreEntry
    scan: PassScan
    activated: bool = True
    position: str = ''
    depth: int = 0
    role: str = MessageRole.SYSTEM
    order: int = 0
    priority: int = 0
    scan_depth: Optional[int] = None
    full_word: bool = True
    force_state: ForceState = ForceState.NONE
    search_queries: List[SearchQuery] = field(default_factory=list)
    dont_search_when_recursive: bool = False
    recursive_override: Optional[bool] = None
    keep_activate_after_match: bool = False
    dont_activate_after_match: bool = False
    inject: Optional[Inject] = None


DirectiveHandler = Callable[[DirectiveState, Directive], bool]


class DecoratedDialect(DirectiveEvaluator):
    """
    Decorator dialect: leading `@@directive` lines tune placement, matching,
    recursion and forced activation of each entry.

    A handler returns False to reject the entry (malformed argument).
    Unknown directive names reject the entry too.
    """
    name = 'decorated'

    def __init__(self, extra_handlers: Optional[Dict[str, DirectiveHandler]] = None):
        self.handlers: Dict[str, DirectiveHandler] = {
            'end': _end,
            'activate_only_after': _activate_only_after,
            'activate_only_every': _activate_only_every,
            'keep_activate_after_match': _keep_activate_after_match,
            'dont_activate_after_match': _dont_activate_after_match,
            'depth': _depth,
            'reverse_depth': _reverse_depth,
            'role': _role,
            'scan_depth': _scan_depth,
            'is_greeting': _is_greeting,
            'position': _position,
            'inject_lore': _inject_lore,
            'inject_at': _inject_at,
            'inject_replace': _inject_replace,
            'inject_prepend': _inject_prepend,
            'ignore_on_max_context': _ignore_on_max_context,
            'additional_keys': _additional_keys,
            'exclude_keys': _exclude_keys,
            'exclude_keys_all': _exclude_keys_all,
            'match_full_word': _match_full_word,
            'match_partial_word': _match_partial_word,
            'activate': _activate,
            'dont_activate': _dont_activate,
            'probability': _probability,
            'priority': _priority,
            'unrecursive': _unrecursive,
            'recursive': _recursive,
            'no_recursive_search': _no_recursive_search,
        }
        self.handlers.update(extra_handlers or {})

    def add_directive(self, name: str, handler: DirectiveHandler) -> None:
        self.handlers[name] = handler

    def evaluate(self, entry: LoreEntry, scan: PassScan) -> Optional[Active]:
        if entry.ext.mode == 'folder':
            return None

        state = DirectiveState(
            entry=entry,
            scan=scan,
            activated=entry.enabled,
            order=entry.insertion_order,
            priority=entry.insertion_order if entry.priority is None else entry.priority,
            full_word=scan.match_whole_words(entry),
        )

        parsed = parse_directives(entry.content)
        for directive in parsed.directives:
            handler = self.handlers.get(directive.name)
            if handler is None:
                directives_log.debug(f"Entry {entry.id}: unknown directive @@{directive.name}, entry rejected")
                return None
            if handler(state, directive) is False:
                directives_log.debug(f"Entry {entry.id}: invalid @@{directive.name} {directive.raw_args}, entry rejected")
                return None

        if not state.activated:
            return None

        if (entry.is_constant or state.force_state != ForceState.NONE
                or scan.scan_input.force_activate(entry.id) or scan.timed_effects.sticky_active(entry.id)):
            matched = True
        else:
            text = scan.text(state.scan_depth, entry.ext, include_recursion=not state.dont_search_when_recursive)
            matched = bool(text) and scan.matcher.matches_entry(
                entry, strip_macro_comments(text),
                case_sensitive=scan.case_sensitive(entry),
                whole_word=state.full_word,
                search_queries=state.search_queries,
            )

        if state.force_state == ForceState.ACTIVATE:
            matched = True
        elif state.force_state == ForceState.DEACTIVATE:
            matched = False
        if not matched:
            return None

        return Active(
            entry=entry,
            content=parsed.content,
            tokens=scan.estimate(parsed.content),
            depth=state.depth,
            position=state.position,
            role=state.role,
            order=state.order,
            priority=state.priority,
            source=entry_source(entry),
            inject=state.inject,
            scan_depth=state.scan_depth,
            full_word_match=state.full_word,
            case_sensitive=scan.case_sensitive(entry),
            dont_search_when_recursive=state.dont_search_when_recursive,
            recursive_override=state.recursive_override,
            force_state=state.force_state,
            keep_activate_after_match=state.keep_activate_after_match,
            dont_activate_after_match=state.dont_activate_after_match,
            search_queries=tuple(state.search_queries),
            ignore_budget=entry.ext.ignore_budget,
        )

    def feeds_recursion(self, active: Active, recursive_enabled: bool) -> bool:
        if active.recursive_override is not None:
            return active.recursive_override
        return recursive_enabled

    def on_activated(self, active: Active, scan: PassScan) -> None:
        if active.keep_activate_after_match:
            scan.chat_variables.set(keep_activate_key(active.entry), 'true')
        if active.dont_activate_after_match:
            scan.chat_variables.set(dont_activate_key(active.entry), 'true')

    def budget_order(self, actives: List[Active]) -> List[Active]:
        return sorted(actives, key=lambda a: -a.priority)

    def finalize(self, actives: List[Active]) -> Tuple[List[Active], Dict[str, List[str]]]:
        ordered = sorted(actives, key=lambda a: -a.order)
        kept: List[Active] = []
        lore_injections: List[Active] = []
        outlets: Dict[str, List[str]] = {}
        for active in ordered:
            inject = active.inject
            if inject is not None and inject.lore:
                lore_injections.append(active)
            elif inject is not None and inject.location:
                outlets.setdefault(inject.location, []).append(active.content)
            else:
                kept.append(active)

        for lore in lore_injections:
            target = next((i for i, a in enumerate(kept) if a.source == lore.inject.location), None)
            if target is None:
                directives_log.debug(f"Entry {lore.id}: no activated entry named '{lore.inject.location}' to inject into")
                continue
            found = kept[target]
            kept[target] = found.with_changes(content=_merge_injection(found.content, lore))
        return kept, outlets


def _merge_injection(content: str, lore: Active) -> str:
    operation = lore.inject.operation
    if operation == InjectOperation.APPEND:
        return f"{content} {lore.content}".strip()
    if operation == InjectOperation.PREPEND:
        return f"{lore.content} {content}".strip()
    if operation == InjectOperation.REPLACE:
        if not lore.inject.param:
            return content
        return content.replace(lore.inject.param, lore.content)
    return content


def _flag_suffix(entry: LoreEntry) -> str:
    if entry.id:
        return entry.id
    return hashlib.md5(entry.content.encode()).hexdigest()[:8]

def keep_activate_key(entry: LoreEntry) -> str:
    return f"{KEEP_ACTIVATE_PREFIX}{_flag_suffix(entry)}"

def dont_activate_key(entry: LoreEntry) -> str:
    return f"{DONT_ACTIVATE_PREFIX}{_flag_suffix(entry)}"


def _first_int(directive: Directive) -> Optional[int]:
    if not directive.args:
        return None
    return safe_int(directive.args[0])

def _end(state: DirectiveState, directive: Directive) -> bool:
    state.position = EntryPosition.DEPTH
    state.depth = 0
    return True

def _activate_only_after(state: DirectiveState, directive: Directive) -> bool:
    value = _first_int(directive)
    if value is None:
        return False
    if state.scan.scan_input.effective_chat_length < value:
        state.activated = False
    return True

def _activate_only_every(state: DirectiveState, directive: Directive) -> bool:
    value = _first_int(directive)
    if value is None:
        return False
    if value > 0 and state.scan.scan_input.effective_chat_length % value != 0:
        state.activated = False
    return True

def _keep_activate_after_match(state: DirectiveState, directive: Directive) -> bool:
    if str(state.scan.chat_variables.get(keep_activate_key(state.entry))) == 'true':
        state.force_state = ForceState.ACTIVATE
    else:
        state.keep_activate_after_match = True
    return True

def _dont_activate_after_match(state: DirectiveState, directive: Directive) -> bool:
    if str(state.scan.chat_variables.get(dont_activate_key(state.entry))) == 'true':
        state.force_state = ForceState.DEACTIVATE
    else:
        state.dont_activate_after_match = True
    return True

def _depth(state: DirectiveState, directive: Directive) -> bool:
    value = _first_int(directive)
    if value is None:
        return False
    state.depth = value
    state.position = EntryPosition.DEPTH
    return True

def _reverse_depth(state: DirectiveState, directive: Directive) -> bool:
    value = _first_int(directive)
    if value is None:
        return False
    state.depth = value
    state.position = EntryPosition.REVERSE_DEPTH
    return True

def _role(state: DirectiveState, directive: Directive) -> bool:
    role = directive.args[0] if directive.args else ''
    if role not in VALID_ROLES:
        return False
    state.role = role
    return True

def _scan_depth(state: DirectiveState, directive: Directive) -> bool:
    value = _first_int(directive)
    if value is None:
        return False
    state.scan_depth = value
    return True

def _is_greeting(state: DirectiveState, directive: Directive) -> bool:
    value = _first_int(directive)
    if value is None:
        return False
    # greeting_index is zero-based, the directive argument is one-based
    greeting_index = state.scan.scan_input.greeting_index
    if greeting_index is None or greeting_index + 1 != value:
        state.activated = False
    return True

def _position(state: DirectiveState, directive: Directive) -> bool:
    position = directive.args[0] if directive.args else ''
    if not (position.startswith('pt_') or position in DECORATED_POSITIONS):
        return False
    state.position = position
    return True

def _inject_lore(state: DirectiveState, directive: Directive) -> bool:
    state.inject = (state.inject or Inject()).with_changes(location=directive.raw_args, lore=True)
    return True

def _inject_at(state: DirectiveState, directive: Directive) -> bool:
    state.inject = (state.inject or Inject()).with_changes(location=directive.raw_args, lore=False)
    return True

def _inject_replace(state: DirectiveState, directive: Directive) -> bool:
    state.inject = (state.inject or Inject()).with_changes(operation=InjectOperation.REPLACE, param=directive.raw_args)
    return True

def _inject_prepend(state: DirectiveState, directive: Directive) -> bool:
    state.inject = (state.inject or Inject()).with_changes(operation=InjectOperation.PREPEND, param=directive.raw_args)
    return True

def _ignore_on_max_context(state: DirectiveState, directive: Directive) -> bool:
    state.priority = IGNORE_ON_MAX_CONTEXT_PRIORITY
    return True

def _additional_keys(state: DirectiveState, directive: Directive) -> bool:
    state.search_queries.append(SearchQuery(keys=directive.args))
    return True

def _exclude_keys(state: DirectiveState, directive: Directive) -> bool:
    state.search_queries.append(SearchQuery(keys=directive.args, negative=True))
    return True

def _exclude_keys_all(state: DirectiveState, directive: Directive) -> bool:
    state.search_queries.append(SearchQuery(keys=directive.args, negative=True, all=True))
    return True

def _match_full_word(state: DirectiveState, directive: Directive) -> bool:
    state.full_word = True
    return True

def _match_partial_word(state: DirectiveState, directive: Directive) -> bool:
    state.full_word = False
    return True

def _activate(state: DirectiveState, directive: Directive) -> bool:
    state.force_state = ForceState.ACTIVATE
    return True

def _dont_activate(state: DirectiveState, directive: Directive) -> bool:
    state.force_state = ForceState.DEACTIVATE
    return True

def _probability(state: DirectiveState, directive: Directive) -> bool:
    value = _first_int(directive)
    if value is None:
        return False
    if state.scan.rng.random() * 100 > value:
        state.activated = False
    return True

def _priority(state: DirectiveState, directive: Directive) -> bool:
    value = _first_int(directive)
    if value is None:
        return False
    state.priority = value
    return True

def _unrecursive(state: DirectiveState, directive: Directive) -> bool:
    state.recursive_override = False
    return True

def _recursive(state: DirectiveState, directive: Directive) -> bool:
    state.recursive_override = True
    return True

def _no_recursive_search(state: DirectiveState, directive: Directive) -> bool:
    state.dont_search_when_recursive = True
    return True
