import logging
from dataclasses import dataclass


@dataclass
class Context:
    log_level: int = logging.INFO


context = Context()
