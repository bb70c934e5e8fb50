from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from lore_engine.constants import (DEFAULT_ENTRY_DEPTH, DEFAULT_GROUP_WEIGHT, MessageRole,
                                   SELECTIVE_LOGIC_BY_INDEX, SelectiveLogic, VALID_ROLES)
from lore_engine.utils.utils import presence, safe_int, string_list, to_bool, underscore

ROLE_BY_INDEX = {'0': MessageRole.SYSTEM, '1': MessageRole.USER, '2': MessageRole.ASSISTANT}

KNOWN_KEYS = frozenset((
    'group', 'group_weight', 'group_override', 'use_group_scoring',
    'selective_logic', 'scan_depth', 'match_whole_words',
    'match_persona_description', 'match_character_description',
    'match_character_personality', 'match_character_depth_prompt',
    'match_scenario', 'match_creator_notes',
    'exclude_recursion', 'prevent_recursion', 'delay_until_recursion',
    'ignore_budget', 'use_probability', 'probability',
    'sticky', 'cooldown', 'delay', 'triggers',
    'character_filter_names', 'character_filter_tags', 'character_filter_exclude',
    'outlet_name', 'depth', 'role', 'mode',
))


@dataclass(frozen=True)
class EntryExtensions:
    """
    Typed view of the directive payload stored in `LoreEntry.extensions`.

    Unknown keys are kept untouched in `residual`.
    """
    group: Optional[str] = None
    group_names: Tuple[str, ...] = ()
    group_weight: int = DEFAULT_GROUP_WEIGHT
    group_override: bool = False
    use_group_scoring: Optional[bool] = None
    selective_logic: SelectiveLogic = SelectiveLogic.AND_ANY
    scan_depth: Optional[int] = None
    match_whole_words: Optional[bool] = None

    match_persona_description: bool = False
    match_character_description: bool = False
    match_character_personality: bool = False
    match_character_depth_prompt: bool = False
    match_scenario: bool = False
    match_creator_notes: bool = False

    exclude_recursion: bool = False
    prevent_recursion: bool = False
    delay_until_recursion: Optional[int] = None
    ignore_budget: bool = False

    use_probability: bool = True
    probability: int = 100

    sticky: Optional[int] = None
    cooldown: Optional[int] = None
    delay: Optional[int] = None

    triggers: Tuple[str, ...] = ()
    character_filter_names: Tuple[str, ...] = ()
    character_filter_tags: Tuple[str, ...] = ()
    character_filter_exclude: bool = False

    outlet_name: Optional[str] = None
    depth: int = DEFAULT_ENTRY_DEPTH
    role: str = MessageRole.SYSTEM
    mode: Optional[str] = None

    residual: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def wrap(cls, raw: Optional[Mapping[str, Any]]) -> 'EntryExtensions':
        data = {}
        for key, value in (raw or {}).items():
            canonical = underscore(key)
            # snake_case spelling wins over a camelCase duplicate
            if canonical == key or canonical not in data:
                data[canonical] = value

        group = presence(data.get('group'))
        group_names = ()
        if group:
            names = [n.strip() for n in group.split(',')]
            group_names = tuple(dict.fromkeys(n for n in names if n))

        role = str(data.get('role') if data.get('role') is not None else MessageRole.SYSTEM).strip().lower()
        role = ROLE_BY_INDEX.get(role, role)

        return cls(
            group=group,
            group_names=group_names,
            group_weight=_group_weight(data.get('group_weight')),
            group_override=to_bool(data.get('group_override')),
            use_group_scoring=None if data.get('use_group_scoring') is None else to_bool(data.get('use_group_scoring')),
            selective_logic=_selective_logic(data.get('selective_logic')),
            scan_depth=safe_int(data.get('scan_depth')) if presence(data.get('scan_depth')) else None,
            match_whole_words=None if data.get('match_whole_words') is None else to_bool(data.get('match_whole_words')),
            match_persona_description=to_bool(data.get('match_persona_description')),
            match_character_description=to_bool(data.get('match_character_description')),
            match_character_personality=to_bool(data.get('match_character_personality')),
            match_character_depth_prompt=to_bool(data.get('match_character_depth_prompt')),
            match_scenario=to_bool(data.get('match_scenario')),
            match_creator_notes=to_bool(data.get('match_creator_notes')),
            exclude_recursion=to_bool(data.get('exclude_recursion')),
            prevent_recursion=to_bool(data.get('prevent_recursion')),
            delay_until_recursion=_delay_level(data.get('delay_until_recursion')),
            ignore_budget=to_bool(data.get('ignore_budget')),
            use_probability=to_bool(data.get('use_probability'), default=True),
            probability=_probability(data.get('probability')),
            sticky=_positive_int(data.get('sticky')),
            cooldown=_positive_int(data.get('cooldown')),
            delay=_positive_int(data.get('delay')),
            triggers=tuple(t.lower() for t in string_list(data.get('triggers'))),
            character_filter_names=tuple(string_list(data.get('character_filter_names'))),
            character_filter_tags=tuple(string_list(data.get('character_filter_tags'))),
            character_filter_exclude=to_bool(data.get('character_filter_exclude')),
            outlet_name=presence(data.get('outlet_name')),
            depth=safe_int(data.get('depth')) if safe_int(data.get('depth')) is not None else DEFAULT_ENTRY_DEPTH,
            role=role if role in VALID_ROLES else MessageRole.SYSTEM,
            mode=presence(data.get('mode')),
            residual={k: v for k, v in data.items() if k not in KNOWN_KEYS},
        )

    @property
    def has_delay_until_recursion(self) -> bool:
        return self.delay_until_recursion is not None

    @property
    def matches_non_chat_data(self) -> bool:
        return (self.match_persona_description or self.match_character_description
                or self.match_character_personality or self.match_character_depth_prompt
                or self.match_scenario or self.match_creator_notes)

    def triggered_by(self, generation_type: Optional[str]) -> bool:
        if not self.triggers:
            return True
        return str(generation_type or '').lower() in self.triggers

    def matches_character(self, character_name: Optional[str] = None, character_tags=()) -> bool:
        """
        True when the entry has no character filter or the filter accepts
        the given character (inverted for exclude filters).
        """
        if not self.character_filter_names and not self.character_filter_tags:
            return True
        name_matched = bool(character_name) and character_name in self.character_filter_names
        tag_matched = any(str(tag) in self.character_filter_tags for tag in (character_tags or ()))
        matched = name_matched or tag_matched
        return not matched if self.character_filter_exclude else matched


def _selective_logic(raw: Any) -> SelectiveLogic:
    if raw is None:
        return SelectiveLogic.AND_ANY
    if isinstance(raw, SelectiveLogic):
        return raw
    index = safe_int(raw)
    if index is not None:
        return SELECTIVE_LOGIC_BY_INDEX.get(index, SelectiveLogic.AND_ANY)
    try:
        return SelectiveLogic(underscore(str(raw).strip()))
    except ValueError:
        return SelectiveLogic.AND_ANY

def _delay_level(raw: Any) -> Optional[int]:
    if raw is None or raw is False:
        return None
    if raw is True:
        return 1
    if not presence(raw):
        return None
    level = safe_int(raw)
    return level if level and level > 0 else 1

def _probability(raw: Any) -> int:
    value = safe_int(raw)
    if value is None:
        return 100
    return min(max(value, 0), 100)

def _positive_int(raw: Any) -> Optional[int]:
    value = safe_int(raw)
    return value if value is not None and value > 0 else None

def _group_weight(raw: Any) -> int:
    value = safe_int(raw)
    if value is None:
        return DEFAULT_GROUP_WEIGHT
    return max(value, 1)
