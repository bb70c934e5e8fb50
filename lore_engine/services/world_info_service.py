from typing import Any, Dict, List, Optional
from pydantic import ValidationError

from lore_engine.context import context
from lore_engine.dto.world_info_dto import WorldInfoDTO, WorldInfoEntryDTO
from lore_engine.errors import WorldInfoImportError
from lore_engine.models.lorebook import LoreBook, LoreEntry
from lore_engine.utils.utils import create_logger, json_to_obj, load_json

world_info_service_log = create_logger(__name__, entity_name='WORLD_INFO_SERVICE', level=context.log_level)

# --- Helper Functions ---

def _describe_error(e: ValidationError) -> str:
    """Returns the first validation message, which is the useful one for a single entry."""
    errors = e.errors()
    if not errors:
        return str(e)
    return errors[0].get('msg', str(e))

def _map_entry(raw: Any, index: int, strict: bool) -> Optional[LoreEntry]:
    try:
        return WorldInfoEntryDTO.model_validate(raw).to_entry()
    except ValidationError as e:
        message = f"World info entry #{index} is invalid: {_describe_error(e)}"
        if strict:
            raise WorldInfoImportError(message) from e
        world_info_service_log.warning(f"{message}, skipping")
        return None

# --- Service Functions ---

def load_world_info(data: Dict[str, Any], strict: bool = False) -> LoreBook:
    """
    Builds a LoreBook from a decoded SillyTavern world-info object.

    Entries may be given as a list or as a `{uid: entry}` map. Malformed
    entries are skipped with a warning, or raise WorldInfoImportError
    when `strict` is set.
    """
    try:
        dto = WorldInfoDTO.model_validate(data)
    except ValidationError as e:
        raise WorldInfoImportError(f"World info is invalid: {_describe_error(e)}") from e

    entries: List[LoreEntry] = []
    for index, raw in enumerate(dto.entries):
        entry = _map_entry(raw, index, strict)
        if entry is not None:
            entries.append(entry)

    book = dto.to_book(entries)
    world_info_service_log.debug(
        f"Imported world info '{book.name or 'unnamed'}': {len(entries)} of {len(dto.entries)} entries")
    return book

def load_world_info_json(json_str: str, strict: bool = False) -> LoreBook:
    try:
        data = json_to_obj(json_str)
    except ValueError as e:
        raise WorldInfoImportError(f"World info is not valid JSON: {e}") from e
    return load_world_info(data, strict=strict)

def load_world_info_file(file_path: str, strict: bool = False) -> LoreBook:
    """Reads and imports a world-info JSON file."""
    json_str = load_json(file_path)
    if not json_str:
        raise WorldInfoImportError(f"World info file '{file_path}' is empty or unreadable")
    book = load_world_info_json(json_str, strict=strict)
    world_info_service_log.info(f"Loaded world info from {file_path} ({len(book.entries)} entries)")
    return book

def dump_world_info(book: LoreBook) -> Dict[str, Any]:
    """
    Serializes a LoreBook back to the engine's own dict form, which
    load_world_info accepts.
    """
    return book.to_dict()
