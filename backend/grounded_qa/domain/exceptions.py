"""Domain-specific exceptions — framework-independent."""


class EntityNotFoundError(Exception):
    """Raised when a requested entity does not exist."""

    def __init__(self, entity_type: str, entity_id: int | str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} with id '{entity_id}' not found")


# ── Extraction ───────────────────────────────────────────────────────


class ExtractionError(Exception):
    """Base class for failures that make a document unreadable.

    All subclasses are fatal to the resource being ingested.
    """


class FormatUnsupportedError(ExtractionError):
    """Raised for file extensions the extractor cannot read."""

    def __init__(self, extension: str, hint: str = ""):
        self.extension = extension
        message = f"Unsupported file format: '{extension}'"
        if hint:
            message = f"{message}. {hint}"
        super().__init__(message)


class LikelyScannedDocumentError(ExtractionError):
    """Raised when a PDF has almost no text layer relative to its page count."""

    def __init__(self, filename: str, page_count: int, char_count: int):
        self.filename = filename
        self.page_count = page_count
        self.char_count = char_count
        super().__init__(
            f"'{filename}' appears to be a scanned document "
            f"({char_count} characters across {page_count} pages); OCR is not supported"
        )


class PasswordProtectedError(ExtractionError):
    """Raised when a PDF requires a password to open."""

    def __init__(self, filename: str):
        self.filename = filename
        super().__init__(f"'{filename}' is password-protected")


# ── Embedding provider ───────────────────────────────────────────────


class EmbeddingProviderError(Exception):
    """Raised when the embedding provider fails.

    Non-fatal to a resource: chunks stay persisted and can be backfilled.
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        prefix = f"{status_code}: " if status_code is not None else ""
        super().__init__(f"{prefix}{message}")


class ProviderRateLimitedError(EmbeddingProviderError):
    """Raised when the provider signals a rate limit (HTTP 429)."""

    def __init__(self, message: str = "Rate limit exceeded"):
        super().__init__(message, status_code=429)


class EmbeddingProviderExhaustedError(EmbeddingProviderError):
    """Raised when rate-limit retries are used up."""

    def __init__(self, attempts: int, last_error: Exception | None = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Embedding provider still rate limited after {attempts} attempts",
            status_code=429,
        )


# ── Completion provider ──────────────────────────────────────────────


class CompletionProviderError(Exception):
    """Raised when a chat completion provider returns an error.

    Provider-agnostic — works for OpenRouter, OpenAI-compatible gateways, etc.
    """

    def __init__(self, provider: str, status_code: int, message: str):
        self.provider = provider
        self.status_code = status_code
        self.message = message
        super().__init__(f"[{provider}] {status_code}: {message}")


# ── Query logging ────────────────────────────────────────────────────


class QueryLoggingError(Exception):
    """Raised when a completed query cannot be persisted.

    An answer that was not logged is never returned as a success.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"Failed to log query: {message}")
