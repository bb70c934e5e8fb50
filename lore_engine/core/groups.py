import random
from typing import Callable, Dict, List, Sequence

from lore_engine.context import context
from lore_engine.models.active import Active
from lore_engine.models.timed_effects import TimedEffectsStore
from lore_engine.utils.utils import create_logger

groups_log = create_logger(__name__, entity_name='LORE_GROUPS', level=context.log_level)

ScoreFn = Callable[[Active], int]


class GroupResolver:
    """
    Resolves inclusion groups: at most one non-sticky member of each group
    survives a pass.
    """
    def __init__(self, rng: random.Random, use_group_scoring: bool = False):
        self.rng = rng
        self.use_group_scoring = use_group_scoring

    def resolve(self, candidates: List[Active], already_activated: Sequence[Active],
                timed_effects: TimedEffectsStore, score: ScoreFn) -> List[Active]:
        """
        Returns the candidates minus every member dropped from one of its
        groups. Input order is kept.
        """
        grouped: Dict[str, List[int]] = {}
        for index, active in enumerate(candidates):
            for name in active.entry.ext.group_names:
                grouped.setdefault(name, []).append(index)
        if not grouped:
            return list(candidates)

        dropped = set()
        sticky_groups = set()

        for name, members in grouped.items():
            sticky = [i for i in members if timed_effects.sticky_active(candidates[i].id)]
            if sticky:
                dropped.update(i for i in members if i not in sticky)
                members[:] = sticky
                sticky_groups.add(name)
            for i in list(members):
                entry = candidates[i].entry
                if timed_effects.cooldown_active(entry.id) or timed_effects.delay_active(entry):
                    dropped.add(i)
                    members.remove(i)

        self._filter_by_scoring(grouped, candidates, dropped, sticky_groups, score)

        for name, members in grouped.items():
            if name in sticky_groups:
                continue
            members[:] = [i for i in members if i not in dropped]

            if any(name in a.entry.ext.group_names for a in already_activated):
                groups_log.debug(f"Group '{name}' already has a winner, dropping {len(members)} candidate(s)")
                dropped.update(members)
                continue

            if len(members) <= 1:
                continue

            overrides = [i for i in members if candidates[i].entry.ext.group_override]
            if overrides:
                winner = min(overrides, key=lambda i: (-candidates[i].order, candidates[i].id))
            else:
                winner = self._weighted_pick(members, candidates)
            groups_log.debug(f"Group '{name}' resolved to {candidates[winner].id}")
            dropped.update(i for i in members if i != winner)

        return [a for i, a in enumerate(candidates) if i not in dropped]

    def _filter_by_scoring(self, grouped: Dict[str, List[int]], candidates: List[Active], dropped: set,
                           sticky_groups: set, score: ScoreFn) -> None:
        for name, members in grouped.items():
            members[:] = [i for i in members if i not in dropped]
            if not members or name in sticky_groups:
                continue

            any_scored = any(candidates[i].entry.ext.use_group_scoring is True for i in members)
            if not (self.use_group_scoring or any_scored):
                continue

            scores = {i: score(candidates[i]) for i in members}
            best = max(scores.values())
            for i in members:
                explicit = candidates[i].entry.ext.use_group_scoring
                scored = self.use_group_scoring if explicit is None else explicit
                if scored and scores[i] < best:
                    dropped.add(i)
            members[:] = [i for i in members if i not in dropped]

    def _weighted_pick(self, members: List[int], candidates: List[Active]) -> int:
        weights = [candidates[i].entry.ext.group_weight for i in members]
        roll = self.rng.random() * sum(weights)
        cumulative = 0
        for i, weight in zip(members, weights):
            cumulative += weight
            if roll <= cumulative:
                return i
        return members[-1]
