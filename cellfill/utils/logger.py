"""
Run logging for column enrichment.

EnrichmentLogger wraps a stdlib logger and adds:
- key=value suffixes for structured fields ("Row failed [row=3 column=2]")
- a record of every warning and error for the end-of-run report
- provider call counts and cost, broken down by provider
- per-row timing

Library modules keep using logging.getLogger(__name__); only the
orchestrator and the CLI talk to EnrichmentLogger.
"""

import logging
import sys
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

# Per-request chatter from these drowns out the run log
NOISY_LIBRARIES = ["LiteLLM", "litellm", "httpx", "httpcore", "google_genai", "google.genai", "urllib3"]


def _run_formatter(column: Optional[str] = None) -> logging.Formatter:
    # Default asctime already ends in ",mmm"
    label = f" | {column}" if column else ""
    return logging.Formatter(f"%(asctime)s | %(levelname)-8s{label} | %(filename)s:%(lineno)d | %(message)s")


def _with_fields(message: str, fields: Dict[str, Any]) -> str:
    if not fields:
        return message
    return message + " [" + " ".join(f"{key}={value}" for key, value in fields.items()) + "]"


@dataclass
class TrackedEvent:
    """A warning or error kept for the run report."""

    level: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())


class EnrichmentLogger:
    """Structured run logger with warning/error tracking and cost accounting."""

    def __init__(
        self,
        name: str = "cellfill",
        log_level: str = "INFO",
        log_file: Optional[str] = None,
        log_dir: Optional[Path] = None,
        column: Optional[str] = None,
    ):
        """
        Args:
            name: stdlib logger name
            log_level: Console level (DEBUG, INFO, WARNING, ERROR)
            log_file: File name under log_dir; the file always gets DEBUG
            log_dir: Directory for log_file (./logs by default)
            column: Label added to every line, for when several columns log at once
        """
        level = getattr(logging, log_level.upper())
        formatter = _run_formatter(column)

        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if log_file else level)
        self.logger.propagate = False
        self.logger.handlers.clear()

        console = logging.StreamHandler(sys.stdout)
        console.setLevel(level)
        console.setFormatter(formatter)
        self.logger.addHandler(console)

        self.events: List[TrackedEvent] = []
        self.calls = 0
        self.cost_by_provider: Dict[str, float] = defaultdict(float)

        if log_file:
            path = (log_dir or Path.cwd() / "logs") / log_file
            path.parent.mkdir(parents=True, exist_ok=True)
            to_file = logging.FileHandler(path)
            to_file.setLevel(logging.DEBUG)
            to_file.setFormatter(formatter)
            self.logger.addHandler(to_file)
            self.info("Writing log file", path=path)

    @property
    def errors(self) -> List[TrackedEvent]:
        return [e for e in self.events if e.level == "error"]

    @property
    def warnings(self) -> List[TrackedEvent]:
        return [e for e in self.events if e.level == "warning"]

    @property
    def total_cost(self) -> float:
        return sum(self.cost_by_provider.values())

    def debug(self, message: str, **fields):
        self.logger.debug(_with_fields(message, fields), stacklevel=2)

    def info(self, message: str, **fields):
        self.logger.info(_with_fields(message, fields), stacklevel=2)

    def warning(self, message: str, **fields):
        """Log a warning and keep it for the report."""
        text = _with_fields(message, fields)
        self.logger.warning(text, stacklevel=2)
        self.events.append(TrackedEvent("warning", text, fields))

    def error(self, message: str, exception: Optional[Exception] = None, **fields):
        """Log an error (with traceback when exception is given) and keep it for the report."""
        if exception is not None:
            message = f"{message}: {type(exception).__name__}: {exception}"
        text = _with_fields(message, fields)
        self.logger.error(text, exc_info=exception, stacklevel=2)
        self.events.append(TrackedEvent("error", text, fields, str(exception) if exception is not None else None))

    def log_provider_call(self, provider: str, model: str, row: int, column: int, cost_usd: Optional[float]):
        """Count one backend call and add its cost to the provider's total."""
        cost = cost_usd or 0.0
        self.calls += 1
        self.cost_by_provider[provider] += cost
        self.debug("Provider call", provider=provider, model=model, row=row, column=column, cost_usd=f"{cost:.6f}")

    @contextmanager
    def time_row(self, row: int, column: int):
        """Time one row; a failure is logged as an error and re-raised."""
        started = time.perf_counter()
        try:
            yield
        except Exception as e:
            self.error("Row failed", exception=e, row=row, column=column, seconds=f"{time.perf_counter() - started:.2f}")
            raise
        self.debug("Row done", row=row, column=column, seconds=f"{time.perf_counter() - started:.2f}")

    def generate_summary(self) -> Dict[str, Any]:
        """Calls, cost per provider, and every tracked warning and error."""
        return {
            "calls": self.calls,
            "total_cost_usd": round(self.total_cost, 6),
            "cost_by_provider": {provider: round(cost, 6) for provider, cost in self.cost_by_provider.items()},
            "errors": {"total": len(self.errors), "details": [asdict(e) for e in self.errors]},
            "warnings": {"total": len(self.warnings), "details": [asdict(e) for e in self.warnings]},
        }


_default_logger: Optional[EnrichmentLogger] = None


def get_logger() -> EnrichmentLogger:
    """Process-wide EnrichmentLogger for callers that were not handed one."""
    global _default_logger
    if _default_logger is None:
        _default_logger = EnrichmentLogger()
    return _default_logger


class EnrichmentRunContext:
    """
    Brackets one column run with start/finish lines and keeps its tallies.

    Usage:
        with EnrichmentRunContext(logger, column=2, num_rows=10, prompt="CEO of {Company}") as ctx:
            ...
            ctx.increment_success(cost)  # or ctx.increment_failure()
    """

    def __init__(self, logger: EnrichmentLogger, column: int, num_rows: int, prompt: str):
        self.logger = logger
        self.column = column
        self.num_rows = num_rows
        self.prompt = prompt
        self.succeeded = 0
        self.failed = 0
        self.total_cost = 0.0
        self._started = 0.0

    def __enter__(self):
        self._started = time.perf_counter()
        self.logger.info("Enrichment started", column=self.column, rows=self.num_rows, prompt=repr(self.prompt[:60]))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.logger.info(
            "Enrichment finished",
            column=self.column,
            succeeded=self.succeeded,
            failed=self.failed,
            seconds=f"{time.perf_counter() - self._started:.2f}",
            cost_usd=f"{self.total_cost:.4f}",
        )
        return False

    def increment_success(self, cost: float = 0.0):
        self.succeeded += 1
        self.total_cost += cost

    def increment_failure(self):
        self.failed += 1


def configure_global_logging(log_level: str = "INFO", column: Optional[str] = None):
    """
    Route root logging to stdout in the run format and hold noisy libraries at WARNING.

    Call once at startup, before any provider is built.
    """
    level = getattr(logging, log_level.upper())
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(_run_formatter(column))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LIBRARIES:
        noisy = logging.getLogger(name)
        noisy.handlers.clear()
        noisy.propagate = True
        noisy.setLevel(logging.WARNING)
