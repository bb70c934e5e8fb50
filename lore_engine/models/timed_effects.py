from typing import Dict, Iterable, Optional, Protocol, Any

from lore_engine.models.lorebook import LoreEntry
from lore_engine.utils.utils import safe_int

STICKY = 'sticky'
COOLDOWN = 'cooldown'
EFFECT_TYPES = (STICKY, COOLDOWN)


class TimedEffectsStore(Protocol):
    def sticky_active(self, entry_id: str) -> bool:
        ...

    def cooldown_active(self, entry_id: str) -> bool:
        ...

    def delay_active(self, entry: LoreEntry) -> bool:
        ...


class TimedEffects:
    """
    Reference sticky/cooldown/delay store backed by a caller-owned dict.

    State shape::

        state[entry_id] = {
            'sticky':   {'start_turn': int, 'end_turn': int, 'protected': bool},
            'cooldown': {'start_turn': int, 'end_turn': int, 'protected': bool},
        }

    `delay` is not stored: an entry with `delay: N` stays suppressed while
    the turn count is below N. Call `check()` before an activation and
    `set_effects()` with the activated entries afterwards.
    """
    def __init__(self, turn_count: int, state: Optional[Dict[str, Dict[str, Any]]] = None, dry_run: bool = False):
        self.turn_count = int(turn_count)
        self.state = state if state is not None else {}
        self.dry_run = dry_run
        self._active: Dict[str, Dict[str, bool]] = {STICKY: {}, COOLDOWN: {}}

    def check(self, entries: Optional[Iterable[LoreEntry]] = None) -> 'TimedEffects':
        """
        Expires finished effects and records which ones are active this turn.
        When `entries` is given, effects the entry no longer configures are
        dropped, and a finished sticky starts the entry's cooldown.
        """
        self._active = {STICKY: {}, COOLDOWN: {}}
        by_id = None
        if entries is not None:
            by_id = {e.id: e for e in entries if e.id}

        for effect_type in EFFECT_TYPES:
            for entry_id, effects in list(self.state.items()):
                if not isinstance(effects, dict):
                    self.state[entry_id] = {}
                    continue
                effect = effects.get(effect_type)
                if not isinstance(effect, dict):
                    continue

                start_turn = safe_int(effect.get('start_turn')) or 0
                end_turn = safe_int(effect.get('end_turn')) or 0

                # chat has not advanced since the effect was set
                if self.turn_count <= start_turn and not effect.get('protected'):
                    effects.pop(effect_type, None)
                    continue

                entry = by_id.get(entry_id) if by_id is not None else None
                if entry is None:
                    if self.turn_count >= end_turn:
                        effects.pop(effect_type, None)
                    else:
                        self._active[effect_type][entry_id] = True
                    continue

                duration = entry.ext.sticky if effect_type == STICKY else entry.ext.cooldown
                if duration is None:
                    effects.pop(effect_type, None)
                    continue

                if self.turn_count >= end_turn:
                    effects.pop(effect_type, None)
                    if effect_type == STICKY:
                        self._start_cooldown(entry)
                    continue

                self._active[effect_type][entry_id] = True
        return self

    def sticky_active(self, entry_id: str) -> bool:
        return entry_id in self._active[STICKY]

    def cooldown_active(self, entry_id: str) -> bool:
        return entry_id in self._active[COOLDOWN]

    def delay_active(self, entry: LoreEntry) -> bool:
        delay = entry.ext.delay
        return delay is not None and self.turn_count < delay

    def set_effects(self, activated_entries: Iterable[LoreEntry]) -> 'TimedEffects':
        """
        Starts sticky/cooldown effects for activated entries that configure
        them, without overwriting effects already recorded.
        """
        if self.dry_run:
            return self
        for entry in activated_entries:
            if not entry.id:
                continue
            effects = self.state.setdefault(entry.id, {})
            if entry.ext.sticky is not None and STICKY not in effects:
                effects[STICKY] = self._build_effect(entry.ext.sticky, protected=False)
            if entry.ext.cooldown is not None and COOLDOWN not in effects:
                effects[COOLDOWN] = self._build_effect(entry.ext.cooldown, protected=False)
        return self

    def _start_cooldown(self, entry: LoreEntry) -> None:
        if self.dry_run or entry.ext.cooldown is None:
            return
        effects = self.state.setdefault(entry.id, {})
        effects[COOLDOWN] = self._build_effect(entry.ext.cooldown, protected=True)
        self._active[COOLDOWN][entry.id] = True

    def _build_effect(self, duration: int, protected: bool) -> Dict[str, Any]:
        return {
            'start_turn': self.turn_count,
            'end_turn': self.turn_count + int(duration),
            'protected': protected,
        }
