"""Abstract interface (port) for subword token counting."""

from abc import ABC, abstractmethod


class TokenCounter(ABC):
    """Port for counting tokens the way the embedding model will see them."""

    @abstractmethod
    def count(self, text: str) -> int:
        """Return the number of tokens in ``text``."""
        ...
