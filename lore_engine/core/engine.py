import random
from typing import Dict, List, Optional, Sequence

from lore_engine.constants import InsertionStrategy, ScanState
from lore_engine.context import context
from lore_engine.core.budget import compute_budget, effective_budget_cap, trim_to_budget
from lore_engine.core.buffer import ScanBuffer
from lore_engine.core.directives import DirectiveEvaluator, PassScan, PlainDialect
from lore_engine.core.groups import GroupResolver
from lore_engine.core.matcher import LogWarner, Matcher, Warner
from lore_engine.core.recursion import RecursionController
from lore_engine.core.scorer import score
from lore_engine.dto.settings_dto import EngineSettingsDTO
from lore_engine.errors import EngineConfigError
from lore_engine.models.active import Active
from lore_engine.models.chat_variables import InMemoryChatVariables
from lore_engine.models.lorebook import LoreBook, LoreEntry
from lore_engine.models.result import ActivationResult
from lore_engine.models.scan_input import ScanInput
from lore_engine.models.timed_effects import TimedEffects
from lore_engine.utils.regex_cache import JsRegexCache
from lore_engine.utils.tokenizers import CharTokenEstimator, TokenEstimator
from lore_engine.utils.utils import create_logger

engine_log = create_logger(__name__, entity_name='LORE_ENGINE', level=context.log_level)


def sort_entries(global_entries: Sequence[LoreEntry], character_entries: Sequence[LoreEntry],
                 chat_entries: Sequence[LoreEntry], persona_entries: Sequence[LoreEntry],
                 strategy: InsertionStrategy = InsertionStrategy.CHARACTER_LORE_FIRST) -> List[LoreEntry]:
    """
    Orders entries by descending insertion order within each source. Chat
    and persona entries always come first; the strategy decides how
    character and global entries are combined.
    """
    def by_order(entries):
        return sorted(entries, key=lambda e: -e.insertion_order)

    global_sorted = by_order(global_entries)
    character_sorted = by_order(character_entries)

    if strategy == InsertionStrategy.CHARACTER_LORE_FIRST:
        base = character_sorted + global_sorted
    elif strategy == InsertionStrategy.GLOBAL_LORE_FIRST:
        base = global_sorted + character_sorted
    else:
        base = by_order(global_sorted + character_sorted)

    return by_order(chat_entries) + by_order(persona_entries) + base


def namespace_entries(book: LoreBook, index: int) -> List[LoreEntry]:
    """
    Gives every entry of a book an id unique across books, as `world.uid`.
    """
    world = book.world(index)
    entries = []
    for entry_index, entry in enumerate(book.entries):
        uid = (entry.id or '').strip() or str(entry_index)
        if '.' not in uid:
            entry = entry.with_changes(id=f"{world}.{uid}")
        elif uid != entry.id:
            entry = entry.with_changes(id=uid)
        entries.append(entry)
    return entries


class LoreEngine:
    """
    Runs lore activation for one turn: scan passes, inclusion groups,
    probability, recursion and token budget.
    """
    def __init__(self, settings: Optional[EngineSettingsDTO] = None, dialect: Optional[DirectiveEvaluator] = None,
                 token_estimator: Optional[TokenEstimator] = None, rng: Optional[random.Random] = None,
                 regex_cache: Optional[JsRegexCache] = None, warner: Optional[Warner] = None):
        self.settings = settings or EngineSettingsDTO()
        self.dialect = dialect or PlainDialect()
        self.token_estimator = token_estimator or CharTokenEstimator()
        if not callable(getattr(self.token_estimator, 'estimate', None)):
            raise EngineConfigError("token_estimator must provide estimate(text)")
        self.rng = rng or random.Random()
        if not callable(getattr(self.rng, 'random', None)):
            raise EngineConfigError("rng must provide random()")
        self.regex_cache = regex_cache if regex_cache is not None else JsRegexCache()
        self.matcher = Matcher(self.regex_cache, warner or LogWarner())
        self.groups = GroupResolver(self.rng, use_group_scoring=self.settings.use_group_scoring)

    def collect_entries(self, scan_input: ScanInput) -> List[LoreEntry]:
        """
        Enabled-or-not entries of every book, namespaced and in scan order.
        """
        index = 0
        per_source = []
        for books in (scan_input.global_books, scan_input.character_books,
                      scan_input.chat_books, scan_input.persona_books):
            entries = []
            for book in books:
                entries.extend(namespace_entries(book, index))
                index += 1
            per_source.append(entries)
        return sort_entries(*per_source, strategy=self.settings.insertion_strategy)

    def activate(self, scan_input: ScanInput) -> ActivationResult:
        entries = self.collect_entries(scan_input)
        if not entries:
            return ActivationResult()

        books = scan_input.books
        settings = self.settings
        recursive_enabled = settings.recursive_scanning or any(b.recursive_scanning for b in books)

        buffer = ScanBuffer(
            messages=scan_input.messages,
            default_depth=self._default_depth(scan_input, books),
            scan_context=scan_input.scan_context,
            scan_injects=scan_input.scan_injects,
        )
        timed_effects = scan_input.timed_effects
        if timed_effects is None:
            timed_effects = TimedEffects(scan_input.effective_turn_count).check(entries)
        chat_variables = scan_input.chat_variables
        if chat_variables is None:
            chat_variables = InMemoryChatVariables()

        budget = self._budget(scan_input, books)
        controller = RecursionController(
            entries,
            max_recursion_steps=settings.max_recursion_steps,
            recursive_enabled=recursive_enabled,
            min_activations=settings.min_activations,
            min_activations_depth_max=settings.min_activations_depth_max,
        )
        position = {entry.id: i for i, entry in enumerate(entries)}

        activated: Dict[str, Active] = {}
        failed_probability = set()
        used_tokens = 0

        while controller.should_continue():
            scan_pass = controller.begin_pass()
            scan = PassScan(
                buffer=buffer,
                scan_pass=scan_pass,
                matcher=self.matcher,
                settings=settings,
                scan_input=scan_input,
                timed_effects=timed_effects,
                chat_variables=chat_variables,
                token_estimator=self.token_estimator,
                rng=self.rng,
                recursive_enabled=recursive_enabled,
            )

            candidates = []
            for entry in entries:
                if entry.id in activated or entry.id in failed_probability:
                    continue
                if not self._eligible(entry, controller, timed_effects):
                    continue
                active = self.dialect.evaluate(entry, scan)
                if active is not None:
                    candidates.append(active)

            candidates.sort(key=lambda a: (0 if timed_effects.sticky_active(a.id) else 1, position.get(a.id, 0)))
            candidates = self.groups.resolve(
                candidates,
                already_activated=list(activated.values()),
                timed_effects=timed_effects,
                score=lambda a: score(self.matcher, a.entry, self.dialect.scan_text(a, scan),
                                      case_sensitive=a.case_sensitive, whole_word=a.full_word_match),
            )

            ignores_budget_left = sum(1 for a in candidates if a.ignore_budget)
            recursion_feed = []
            for active in candidates:
                if active.ignore_budget:
                    ignores_budget_left -= 1
                if controller.overflowed and not active.ignore_budget:
                    if ignores_budget_left > 0:
                        continue
                    break

                if not self._passes_probability(active, timed_effects):
                    failed_probability.add(active.id)
                    continue

                if (self.dialect.tracks_running_budget and budget is not None and not active.ignore_budget
                        and used_tokens + active.tokens >= budget):
                    controller.overflowed = True
                    engine_log.debug(f"Budget of {budget} tokens reached at entry {active.id}")
                    continue

                activated[active.id] = active
                used_tokens += active.tokens
                self.dialect.on_activated(active, scan)
                if self.dialect.feeds_recursion(active, recursive_enabled):
                    recursion_feed.append(active.content)

            engine_log.debug(f"Pass {controller.pass_count} ({scan_pass.value}): "
                             f"{len(candidates)} candidate(s), {len(activated)} activated")
            controller.finish_pass(buffer, recursion_feed, len(activated))

        ordered = self.dialect.budget_order(list(activated.values()))
        kept = trim_to_budget(ordered, budget)
        total_tokens = sum(a.tokens for a in kept)
        final, outlets = self.dialect.finalize(kept)

        engine_log.info(f"Activated {len(final)} entries ({total_tokens} tokens) in {controller.pass_count} passes")
        return ActivationResult(activated=final, total_tokens=total_tokens, outlets=outlets,
                                passes=controller.pass_count)

    def _eligible(self, entry: LoreEntry, controller: RecursionController, timed_effects) -> bool:
        if timed_effects.delay_active(entry):
            return False
        if timed_effects.sticky_active(entry.id):
            return True
        if timed_effects.cooldown_active(entry.id):
            return False
        state = controller.entry_state(entry)
        if state == ScanState.EXCLUDED and not controller.recursive_enabled:
            return True
        return state == ScanState.ELIGIBLE

    def _passes_probability(self, active: Active, timed_effects) -> bool:
        ext = active.entry.ext
        if not ext.use_probability or ext.probability >= 100:
            return True
        if timed_effects.sticky_active(active.id):
            return True
        return self.rng.random() * 100 <= ext.probability

    def _default_depth(self, scan_input: ScanInput, books: List[LoreBook]) -> int:
        if self.settings.scan_depth is not None:
            return self.settings.scan_depth
        depths = [b.scan_depth for b in books if b.scan_depth is not None]
        if depths:
            return max(depths)
        return len(scan_input.messages)

    def _budget(self, scan_input: ScanInput, books: List[LoreBook]) -> Optional[int]:
        cap = effective_budget_cap(self.settings.budget_cap, [b.token_budget for b in books])
        if scan_input.max_context is None:
            return cap or None
        return compute_budget(scan_input.max_context, self.settings.budget_percent, cap)
