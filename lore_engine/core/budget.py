import math
from typing import List, Optional, Sequence

from lore_engine.errors import BudgetConfigError
from lore_engine.models.active import Active


def compute_budget(max_context: int, budget_percent: float, budget_cap: int = 0) -> int:
    """
    Token allowance for activated entries: a percentage of the context
    window, at least 1, capped by `budget_cap` when it is positive.
    """
    if budget_percent <= 0:
        raise BudgetConfigError(f"budget_percent must be positive, got {budget_percent}")
    if budget_cap < 0:
        raise BudgetConfigError(f"budget_cap must not be negative, got {budget_cap}")

    budget = math.floor(budget_percent * int(max_context) / 100 + 0.5)
    if budget <= 0:
        budget = 1
    if budget_cap > 0 and budget > budget_cap:
        budget = budget_cap
    return budget


def trim_to_budget(actives: Sequence[Active], budget: Optional[int]) -> List[Active]:
    """
    Walks entries in priority order and drops those that would reach the
    budget. Ignore-budget entries are always kept and still count as used.
    """
    if budget is None:
        return list(actives)

    used = 0
    kept: List[Active] = []
    for active in actives:
        if active.ignore_budget:
            used += active.tokens
            kept.append(active)
        elif used + active.tokens >= budget:
            continue
        else:
            used += active.tokens
            kept.append(active)
    return kept


def effective_budget_cap(settings_cap: int, book_budgets: Sequence[Optional[int]]) -> int:
    if settings_cap > 0:
        return settings_cap
    positive = [b for b in book_budgets if b is not None and b > 0]
    return min(positive) if positive else 0


def apply_budget(actives: Sequence[Active], max_context: int, budget_percent: float,
                 budget_cap: int = 0) -> List[Active]:
    return trim_to_budget(actives, compute_budget(max_context, budget_percent, budget_cap))
