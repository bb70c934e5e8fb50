import json
import logging
import re
import coloredlogs
from typing import Any, Iterable, List, Optional

from lore_engine.extensions import log


def load_json(file_path: str) -> str:
    """
    Loads a JSON string from a file.
    """
    try:
        with open(file_path, 'r', encoding='utf-8') as file:
            return file.read()
    except IOError as e:
        log.error(f"Error loading JSON from {file_path}: {e}")
        return ""

def json_to_obj(json_str: str):
    """
    Converts a JSON string to a dict.
    """
    return json.loads(json_str)

def safe_int(value: Any) -> Optional[int]:
    """
    Converts a value to int, returning None if it is not an integer literal.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None

def to_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    s = str(value).strip().lower()
    if s in ('true', '1', 'yes', 'on'):
        return True
    if s in ('false', '0', 'no', 'off', ''):
        return False
    return default

def presence(value: Any) -> Optional[str]:
    """
    Returns the stripped string value, or None when it is empty.
    """
    if value is None:
        return None
    s = str(value).strip()
    return s if s else None

def string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, Iterable):
        value = [value]
    return [str(v).strip() for v in value if v is not None and str(v).strip()]

_camel_boundary = re.compile(r'(?<=[a-z0-9])(?=[A-Z])')

def underscore(value: str) -> str:
    """
    Converts camelCase or kebab-case keys to snake_case.
    """
    s = _camel_boundary.sub('_', str(value))
    return s.replace('-', '_').lower()

def truncate_literal(value: str, max_len: int = 200) -> str:
    s = str(value)
    if len(s) <= max_len:
        return s
    return f"{s[:max_len]}..."

def create_logger(name: str, entity_name: str, level=logging.INFO):
    """Creates and configures a logger with colored output."""
    if level == logging.DEBUG:
        fmt=f'[%(asctime)s.%(msecs)03d][%(levelname)s][{entity_name}]: %(message)s'
    else:
        fmt=f'[%(asctime)s][%(levelname)s][{entity_name}]: %(message)s'
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    if not logger.handlers:
        coloredlogs.install(level=level, logger=logger, fmt=fmt)
    return logger
