"""Run-scoped logging: every record carries the run id and the cluster scope being cleaned."""
import functools
import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

TEXT_FORMAT = "%(asctime)s [%(levelname)s] [%(run_id)s %(scope)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Keys callers may pass through ``extra=`` and that end up in JSON output.
EXTRA_FIELDS = ("resource_type", "resource_id", "action")

_run_context: Dict[str, Optional[str]] = {"run_id": None, "cluster": None, "region": None}


def get_run_id() -> str:
    if _run_context["run_id"] is None:
        _run_context["run_id"] = uuid.uuid4().hex[:8]
    return _run_context["run_id"]


def set_run_context(cluster: Optional[str] = None, region: Optional[str] = None) -> None:
    """Record which cluster scope and region this run is cleaning."""
    _run_context["cluster"] = cluster or None
    _run_context["region"] = region or None


class RunContextFilter(logging.Filter):
    """Stamps run_id, cluster, region and a printable scope onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = get_run_id()
        for key in ("cluster", "region"):
            if getattr(record, key, None) is None:
                setattr(record, key, _run_context[key])
        record.scope = "/".join(v for v in (record.cluster, record.region) if v) or "-"
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "run_id": getattr(record, "run_id", None) or get_run_id(),
            "message": record.getMessage(),
        }
        for key in ("cluster", "region") + EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(verbosity: int = 0, json_format: bool = False, stream=None) -> logging.Handler:
    """Install a single root handler.

    Args:
        verbosity: 0=WARNING, 1=INFO, 2 or more=DEBUG
        json_format: emit one JSON object per line
        stream: defaults to stderr

    Returns:
        the installed handler
    """
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbosity, logging.DEBUG)

    handler = logging.StreamHandler(stream)
    handler.addFilter(RunContextFilter())
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # boto's wire logging drowns everything else at DEBUG
    for noisy in ("botocore", "boto3", "urllib3"):
        logging.getLogger(noisy).setLevel(max(level, logging.INFO))
    return handler


def timed(func):
    """Log how long func ran, whether or not it raised."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.monotonic()
        try:
            return func(*args, **kwargs)
        finally:
            logging.info(f"{func.__qualname__} finished in {time.monotonic() - start:.2f}s")
    return wrapper
