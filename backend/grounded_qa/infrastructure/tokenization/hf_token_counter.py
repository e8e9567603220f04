"""Token counter backed by a HuggingFace ``tokenizers`` model."""

import logging
import threading

from tokenizers import Tokenizer

from grounded_qa.application.interfaces.token_counter import TokenCounter

logger = logging.getLogger(__name__)

DEFAULT_TOKENIZER = "Xenova/gpt-4"


class HuggingFaceTokenCounter(TokenCounter):
    """Counts tokens with a BPE tokenizer loaded from the HuggingFace Hub.

    The tokenizer is loaded on first use and shared afterwards.
    """

    def __init__(self, model_name: str = DEFAULT_TOKENIZER, tokenizer: Tokenizer | None = None):
        self._model_name = model_name
        self._tokenizer = tokenizer
        self._lock = threading.Lock()

    def _get_tokenizer(self) -> Tokenizer:
        if self._tokenizer is None:
            with self._lock:
                if self._tokenizer is None:
                    logger.info("Loading tokenizer '%s'", self._model_name)
                    self._tokenizer = Tokenizer.from_pretrained(self._model_name)
        return self._tokenizer

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._get_tokenizer().encode(text, add_special_tokens=False).ids)
