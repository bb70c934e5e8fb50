from typing import List, Optional

from lore_engine.constants import JOINER, MATCHER, MAX_RECURSE_BUFFER_BYTES, MAX_SCAN_DEPTH, ScanPass
from lore_engine.models.entry_extensions import EntryExtensions
from lore_engine.models.scan_input import ScanContext


class ScanBuffer:
    """
    Text window entries are matched against.

    Holds the most recent messages newest-first, the scan context, the
    pending injects and a recursion buffer fed with activated content.
    """
    def __init__(self, messages: List[str], default_depth: int,
                 scan_context: Optional[ScanContext] = None, scan_injects: Optional[List[str]] = None):
        recent = list(messages)[-MAX_SCAN_DEPTH:]
        self.depth_buffer = [str(m).strip() for m in reversed(recent)]
        self.default_depth = int(default_depth)
        self.skew = 0
        self.scan_context = scan_context or ScanContext()
        self.scan_injects = [s.strip() for s in (scan_injects or []) if s and s.strip()]
        self.recurse_buffer = ''

    @property
    def depth(self) -> int:
        return self.default_depth + self.skew

    @property
    def message_count(self) -> int:
        return len(self.depth_buffer)

    def advance_scan(self) -> None:
        self.skew += 1

    def has_recurse(self) -> bool:
        return bool(self.recurse_buffer)

    def add_recurse(self, text: str) -> None:
        if not text or not text.strip():
            return
        self.recurse_buffer = f"{self.recurse_buffer}\n{text}" if self.recurse_buffer else text
        self._truncate_recurse_buffer()

    def get(self, entry_scan_depth: Optional[int], scan_pass: ScanPass,
            ext: Optional[EntryExtensions] = None, include_recursion: bool = True) -> str:
        depth = self.depth if entry_scan_depth is None else int(entry_scan_depth)
        if depth <= 0:
            return ''

        lines = [line for line in self.depth_buffer[:min(depth, len(self.depth_buffer))] if line]
        result = MATCHER + JOINER.join(lines)

        context_parts = self._scan_context_parts(ext)
        if context_parts:
            result = JOINER.join((result, JOINER.join(context_parts)))

        if self.scan_injects:
            result = JOINER.join((result, JOINER.join(self.scan_injects)))

        if include_recursion and scan_pass != ScanPass.MIN_ACTIVATIONS and self.recurse_buffer.strip():
            result = JOINER.join((result, self.recurse_buffer))

        return result

    def _scan_context_parts(self, ext: Optional[EntryExtensions]) -> List[str]:
        if ext is None or not ext.matches_non_chat_data:
            return []
        ctx = self.scan_context
        flagged = (
            (ext.match_persona_description, ctx.persona_description),
            (ext.match_character_description, ctx.character_description),
            (ext.match_character_personality, ctx.character_personality),
            (ext.match_character_depth_prompt, ctx.character_depth_prompt),
            (ext.match_scenario, ctx.scenario),
            (ext.match_creator_notes, ctx.creator_notes),
        )
        return [value.strip() for enabled, value in flagged if enabled and value and value.strip()]

    def _truncate_recurse_buffer(self) -> None:
        encoded = self.recurse_buffer.encode('utf-8')
        if len(encoded) <= MAX_RECURSE_BUFFER_BYTES:
            return
        # keep the tail, dropping a character cut in half
        self.recurse_buffer = encoded[-MAX_RECURSE_BUFFER_BYTES:].decode('utf-8', errors='ignore')
