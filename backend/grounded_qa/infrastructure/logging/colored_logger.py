"""Colored pipeline logger — ANSI-colored console logging for ingestion and answering.

Provides a PipelineLogger with color-coded output per pipeline stage,
so a single resource (or a single question) can be traced through the
terminal output.

Color scheme:
    🟢 Green   — Ingest / Persist / Complete
    🟡 Yellow  — Extraction
    🔵 Blue    — Segmentation / Chunking
    🟣 Magenta — Embedding
    🟠 Cyan    — Retrieval / Generation
    🔴 Red     — Errors
    ⚪ Gray    — Timing / Stats
"""

import logging
import time
from contextlib import contextmanager
from typing import Any


# ── ANSI Color Codes ─────────────────────────────────────────────────

class _Colors:
    """ANSI escape codes for terminal colors."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    MAGENTA = "\033[95m"
    CYAN = "\033[96m"
    WHITE = "\033[97m"
    GRAY = "\033[90m"


# ── Pipeline Stage Definitions ───────────────────────────────────────

class PipelineStage:
    """Predefined pipeline stages with colors and icons."""

    INGEST = ("INGEST", _Colors.GREEN, "📁")
    EXTRACT = ("EXTRACT", _Colors.YELLOW, "📄")
    SEGMENT = ("SEGMENT", _Colors.BLUE, "🧭")
    CHUNK = ("CHUNK", _Colors.BLUE, "✂️")
    EMBED = ("EMBED", _Colors.MAGENTA, "🧮")
    PERSIST = ("PERSIST", _Colors.GREEN, "💾")
    RETRIEVE = ("RETRIEVE", _Colors.CYAN, "🔎")
    GENERATE = ("GENERATE", _Colors.CYAN, "🤖")
    PIPELINE = ("PIPELINE", _Colors.WHITE, "⚙️")
    ERROR = ("ERROR", _Colors.RED, "❌")
    COMPLETE = ("COMPLETE", _Colors.GREEN, "✅")


# ── PipelineLogger ───────────────────────────────────────────────────

class PipelineLogger:
    """Color-coded logger for a multi-stage pipeline.

    Usage:
        log = PipelineLogger("ResourceProcessingService")
        log.step_start(PipelineStage.EXTRACT, "Extracting manual.pdf")
        log.detail("Pages: 12")
        log.step_complete(PipelineStage.EXTRACT, "12 pages extracted")
    """

    def __init__(self, component_name: str):
        self._logger = logging.getLogger(component_name)
        self._component = component_name

    @staticmethod
    def _format_kwargs(kwargs: dict[str, Any], color: str) -> str:
        if not kwargs:
            return ""
        details = " | ".join(f"{k}={v}" for k, v in kwargs.items())
        return f" {color}({details}){_Colors.RESET}"

    def step_start(self, stage: tuple[str, str, str], message: str, **kwargs: Any) -> None:
        """Log the start of a pipeline step with its stage color."""
        label, color, icon = stage
        formatted = (
            f"{color}{_Colors.BOLD}{icon} [{label}]{_Colors.RESET} "
            f"{color}{message}{_Colors.RESET}"
        )
        self._logger.info(formatted + self._format_kwargs(kwargs, _Colors.GRAY))

    def step_complete(self, stage: tuple[str, str, str], message: str, **kwargs: Any) -> None:
        """Log the successful completion of a pipeline step."""
        label, color, icon = stage
        formatted = (
            f"{color}{icon} [{label}]{_Colors.RESET} "
            f"{_Colors.GREEN}✓ {message}{_Colors.RESET}"
        )
        self._logger.info(formatted + self._format_kwargs(kwargs, _Colors.GRAY))

    def step_warning(self, stage: tuple[str, str, str], message: str, **kwargs: Any) -> None:
        """Log a non-fatal problem in yellow."""
        label, _, icon = stage
        formatted = (
            f"{_Colors.YELLOW}{icon} [{label}]{_Colors.RESET} "
            f"{_Colors.YELLOW}⚠ {message}{_Colors.RESET}"
        )
        self._logger.warning(formatted + self._format_kwargs(kwargs, _Colors.GRAY))

    def step_error(
        self,
        stage: tuple[str, str, str],
        message: str,
        error: Exception | None = None,
        **kwargs: Any,
    ) -> None:
        """Log a pipeline step error in red."""
        label, _, _ = stage
        formatted = (
            f"{_Colors.RED}{_Colors.BOLD}❌ [{label}]{_Colors.RESET} "
            f"{_Colors.RED}{message}{_Colors.RESET}"
        )
        formatted += self._format_kwargs(kwargs, _Colors.GRAY)
        if error:
            formatted += f" {_Colors.DIM}→ {type(error).__name__}: {error}{_Colors.RESET}"
        self._logger.error(formatted)

    def detail(self, message: str, **kwargs: Any) -> None:
        """Log additional detail (gray/dimmed)."""
        formatted = f"   {_Colors.GRAY}├─ {message}{_Colors.RESET}"
        self._logger.info(formatted + self._format_kwargs(kwargs, _Colors.DIM))

    def separator(self, title: str = "") -> None:
        """Log a visual separator line."""
        if title:
            self._logger.info(
                f"{_Colors.GRAY}{'─' * 10} {title} {'─' * max(50 - len(title), 4)}{_Colors.RESET}"
            )
        else:
            self._logger.info(f"{_Colors.GRAY}{'─' * 60}{_Colors.RESET}")

    def stats(self, **kwargs: Any) -> None:
        """Log statistics / timing information."""
        parts = [f"{k}: {v}" for k, v in kwargs.items()]
        self._logger.info(f"   {_Colors.GRAY}📈 {' | '.join(parts)}{_Colors.RESET}")

    @contextmanager
    def timed_step(self, stage: tuple[str, str, str], message: str, **kwargs: Any):
        """Context manager that logs start/end with elapsed time.

        Failures are logged with the stage label and the kwargs (e.g. the
        resource id), then re-raised.

        Usage:
            with log.timed_step(PipelineStage.EMBED, "Embedding chunks", resource_id=rid):
                usage = await embedder.embed_chunks(rid, chunks)
        """
        self.step_start(stage, message, **kwargs)
        start = time.perf_counter()
        try:
            yield
        except Exception as e:
            elapsed = time.perf_counter() - start
            self.step_error(stage, f"{message} — failed after {elapsed:.2f}s", error=e, **kwargs)
            raise
        else:
            elapsed = time.perf_counter() - start
            self.step_complete(stage, f"{message} — {elapsed:.2f}s", **kwargs)
