from typing import List, Optional, Sequence

from lore_engine.constants import HARD_MAX_RECURSION_STEPS, ScanPass, ScanState
from lore_engine.context import context
from lore_engine.core.buffer import ScanBuffer
from lore_engine.models.lorebook import LoreEntry
from lore_engine.utils.utils import create_logger

recursion_log = create_logger(__name__, entity_name='LORE_RECURSION', level=context.log_level)


def scan_state(entry: LoreEntry, in_recursive_pass: bool, current_depth: int) -> ScanState:
    """
    Whether an entry takes part in a pass, given its recursion flags.
    `current_depth` is the delay level released so far.
    """
    ext = entry.ext
    if not in_recursive_pass:
        return ScanState.DELAYED if ext.has_delay_until_recursion else ScanState.ELIGIBLE
    if ext.exclude_recursion:
        return ScanState.EXCLUDED
    if ext.has_delay_until_recursion and ext.delay_until_recursion > current_depth:
        return ScanState.DELAYED
    return ScanState.ELIGIBLE


class RecursionController:
    """
    Decides which pass runs next: a recursion pass over freshly activated
    content, a min-activations pass over a deeper window, or a recursion
    pass that releases the next delayed recursion level.
    """
    def __init__(self, entries: Sequence[LoreEntry], max_recursion_steps: int, recursive_enabled: bool,
                 min_activations: int = 0, min_activations_depth_max: int = 0):
        self.max_passes = max_recursion_steps if max_recursion_steps > 0 else HARD_MAX_RECURSION_STEPS
        self.recursive_enabled = recursive_enabled
        self.min_activations = max(min_activations, 0)
        self.min_activations_depth_max = max(min_activations_depth_max, 0)

        self.delay_levels: List[int] = sorted({
            e.ext.delay_until_recursion for e in entries if e.ext.has_delay_until_recursion
        })
        self.current_delay_level = self.delay_levels.pop(0) if self.delay_levels else 0

        self.scan_pass: Optional[ScanPass] = ScanPass.INITIAL
        self.pass_count = 0
        self.overflowed = False

    def should_continue(self) -> bool:
        return self.scan_pass is not None and self.pass_count < self.max_passes

    def begin_pass(self) -> ScanPass:
        self.pass_count += 1
        return self.scan_pass

    def entry_state(self, entry: LoreEntry) -> ScanState:
        return scan_state(entry, self.scan_pass == ScanPass.RECURSION, self.current_delay_level)

    def finish_pass(self, buffer: ScanBuffer, recursion_feed: List[str], activated_count: int) -> Optional[ScanPass]:
        """
        Picks the next pass and feeds this pass's recursive content into the
        buffer when another pass follows.
        """
        current = self.scan_pass
        next_pass = None

        if not self.overflowed and recursion_feed:
            next_pass = ScanPass.RECURSION

        if (next_pass is None and not self.overflowed and self.recursive_enabled
                and current == ScanPass.MIN_ACTIVATIONS and buffer.has_recurse()):
            next_pass = ScanPass.RECURSION

        if (next_pass is None and not self.overflowed and self.min_activations
                and activated_count < self.min_activations):
            over_max = ((self.min_activations_depth_max and buffer.depth > self.min_activations_depth_max)
                        or buffer.depth > buffer.message_count)
            if not over_max:
                next_pass = ScanPass.MIN_ACTIVATIONS
                buffer.advance_scan()

        if next_pass is None and self.delay_levels:
            next_pass = ScanPass.RECURSION
            self.current_delay_level = self.delay_levels.pop(0)

        self.scan_pass = next_pass
        if next_pass is not None:
            text = '\n'.join(t for t in recursion_feed if t)
            if text:
                buffer.add_recurse(text)

        recursion_log.debug(f"Pass {self.pass_count} ({current.value}) done, "
                            f"next: {next_pass.value if next_pass else 'none'}, delay level {self.current_delay_level}")
        return next_pass
