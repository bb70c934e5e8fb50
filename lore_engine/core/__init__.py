from .buffer import ScanBuffer
from .matcher import LogWarner, Matcher, Warner, match_selective_logic
from .scorer import score
from .directives import (DecoratedDialect, DirectiveEvaluator, PassScan, PlainDialect,
                         parse_directives)
from .recursion import RecursionController, scan_state
from .groups import GroupResolver
from .budget import apply_budget, compute_budget, effective_budget_cap, trim_to_budget
from .engine import LoreEngine, namespace_entries, sort_entries

__all__ = [
    'DecoratedDialect',
    'DirectiveEvaluator',
    'GroupResolver',
    'LogWarner',
    'LoreEngine',
    'Matcher',
    'PassScan',
    'PlainDialect',
    'RecursionController',
    'ScanBuffer',
    'Warner',
    'apply_budget',
    'compute_budget',
    'effective_budget_cap',
    'match_selective_logic',
    'namespace_entries',
    'parse_directives',
    'scan_state',
    'score',
    'sort_entries',
    'trim_to_budget',
]
