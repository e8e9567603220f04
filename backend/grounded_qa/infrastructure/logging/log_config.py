"""Logging setup for the API process and the backfill CLI.

Levels come from Settings, one field per category, so SQL echo and
outbound HTTP chatter can be turned up or down independently of the
ingestion and answering pipeline logs.
"""

import logging
import sys

from grounded_qa.config import get_settings

# Settings field → loggers it controls. Only libraries this service
# actually drives are listed.
_CATEGORY_MAP: dict[str, tuple[str, ...]] = {
    "log_level_sql": ("sqlalchemy.engine",),
    "log_level_http": ("httpx",),
    "log_level_uvicorn": ("uvicorn.access", "uvicorn.error"),
    "log_level_pipeline": (
        # PipelineLogger component names
        "ResourceProcessingService",
        "RagQueryService",
        "HybridRetriever",
        "grounded_qa.application.services",
    ),
    "log_level_openrouter": ("grounded_qa.infrastructure.openrouter",),
}

_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging() -> None:
    """Apply root and per-category levels. Safe to call more than once."""
    settings = get_settings()

    root = logging.getLogger()
    root.setLevel(_parse_level(settings.log_level))
    # uvicorn installs its own handler; the CLI and tests start with none
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)

    applied: dict[str, str] = {"root": settings.log_level}
    for field_name, logger_names in _CATEGORY_MAP.items():
        raw = getattr(settings, field_name, "INFO")
        for name in logger_names:
            logging.getLogger(name).setLevel(_parse_level(raw))
        applied[field_name.removeprefix("log_level_")] = raw

    logging.getLogger(__name__).debug(
        "Log levels: %s", ", ".join(f"{k}={v}" for k, v in applied.items())
    )


def _parse_level(raw: str) -> int:
    """Level name to logging constant; unknown names fall back to INFO."""
    level = logging.getLevelName(raw.upper())
    return level if isinstance(level, int) else logging.INFO
