"""Structured logging for load flow runs.

Every record emitted inside ``calculation_context`` carries the run's
short calculation ID, so interleaved runs (e.g. N-1 worker threads of
different studies) can be told apart in JSON output.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

from loadflow.config import settings

calculation_id_var: ContextVar[str] = ContextVar("calculation_id", default="")

# Attributes passed via ``extra=`` that are copied into JSON output
_EXTRA_FIELDS = ("n_bus", "n_branch", "converged", "iterations", "outage", "duration_ms")

_TEXT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, tagged with the active calculation ID."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = dict(
            timestamp=self.formatTime(record, self.datefmt),
            level=record.levelname,
            logger=record.name,
            message=record.getMessage(),
        )
        if cid := calculation_id_var.get():
            entry["calculation_id"] = cid
        entry.update(
            (name, getattr(record, name))
            for name in _EXTRA_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


@contextmanager
def calculation_context(calculation_id: str | None = None, **fields: Any) -> Iterator[str]:
    """Bind a calculation ID for the duration of the block.

    On exit (normal or not) a summary record with ``duration_ms`` and any
    ``fields`` is logged on ``loadflow.calculation``.
    """
    cid = calculation_id or uuid.uuid4().hex[:8]
    token = calculation_id_var.set(cid)
    started = time.perf_counter()
    try:
        yield cid
    finally:
        elapsed = round((time.perf_counter() - started) * 1000.0, 1)
        logging.getLogger("loadflow.calculation").info(
            "calculation %s finished in %.1f ms", cid, elapsed,
            extra={"duration_ms": elapsed, **fields},
        )
        calculation_id_var.reset(token)


def setup_logging(json_format: bool | None = None, level: str | int | None = None) -> None:
    """Install a single stream handler on the root logger.

    Unset arguments come from ``LOADFLOW_LOG_JSON`` / ``LOADFLOW_LOG_LEVEL``.
    """
    use_json = settings.log_json if json_format is None else json_format
    formatter = JSONFormatter() if use_json else logging.Formatter(_TEXT_FORMAT)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(settings.log_level.upper() if level is None else level)
