import io
import math
from functools import lru_cache
from typing import Optional, Protocol

from tokenizers import Tokenizer
from tiktoken import Encoding, encoding_for_model, get_encoding

from lore_engine.extensions import log
from lore_engine.errors import EngineConfigError
from lore_engine.constants import (CHAR_MODEL_GROUP, CLAUDE3_MODEL_GROUP, DEFAULT_TIKTOKEN_ENCODING,
                                   GPT4_MODEL_GROUP, TOKENIZERS_PATH)


class TokenEstimator(Protocol):
    def estimate(self, text: str) -> int:
        ...


class CharTokenEstimator:
    """
    Cheap estimator: one token per `chars_per_token` characters, rounded up.
    """
    def __init__(self, chars_per_token: float = 4.0):
        if chars_per_token <= 0:
            raise EngineConfigError("chars_per_token must be positive")
        self.chars_per_token = chars_per_token

    def estimate(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)


class TiktokenEstimator:
    def __init__(self, model: Optional[str] = None, encoding_name: str = DEFAULT_TIKTOKEN_ENCODING):
        self.encoding = _tiktoken_encoding(model, encoding_name)

    def estimate(self, text: str) -> int:
        if not text:
            return 0
        return len(self.encoding.encode(text, disallowed_special=()))


class HFTokenizerEstimator:
    def __init__(self, tokenizer: Tokenizer):
        self.tokenizer = tokenizer

    @classmethod
    def from_file(cls, path: str) -> 'HFTokenizerEstimator':
        try:
            with io.open(path, mode="r", encoding="utf-8") as f:
                return cls(Tokenizer.from_str(f.read()))
        except IOError as e:
            log.error(f"Error loading tokenizer from {path}: {e}")
            raise EngineConfigError(f"Tokenizer file '{path}' could not be loaded") from e

    def estimate(self, text: str) -> int:
        if not text:
            return 0
        return len(self.tokenizer.encode(text).ids)


@lru_cache(maxsize=16)
def _tiktoken_encoding(model: Optional[str], encoding_name: str) -> Encoding:
    if model:
        try:
            return encoding_for_model(model)
        except KeyError:
            log.warning(f"No tiktoken encoding registered for model '{model}', using {encoding_name}")
    return get_encoding(encoding_name)


def get_token_estimator(model_group: Optional[str] = None) -> TokenEstimator:
    """
    Retrieves a token estimator for the specified model group.
    Unknown groups fall back to the character estimator.
    """
    if model_group == CLAUDE3_MODEL_GROUP:
        return HFTokenizerEstimator.from_file(f'{TOKENIZERS_PATH}/{model_group}_tokenizer.json')
    elif model_group and GPT4_MODEL_GROUP in model_group:
        return TiktokenEstimator(model=model_group)
    elif model_group is None:
        return TiktokenEstimator()
    elif model_group == CHAR_MODEL_GROUP:
        return CharTokenEstimator()
    else:
        log.warning(f"Unknown model group: {model_group}, using character estimator")
        return CharTokenEstimator()


def count_tokens(model_group: Optional[str], text: str) -> int:
    """
    Counts the number of tokens in a text for the specified model group.
    """
    return get_token_estimator(model_group).estimate(text)
