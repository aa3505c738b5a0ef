from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from google.cloud import logging as cloud_logging

SERVICE_NAME = "site-copilot"

# Extras promoted to Cloud Logging labels so one conversation or site can be filtered
LABEL_FIELDS = ("conversation_id", "site_id")

trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)

# Attributes present on every LogRecord; anything else arrived through ``extra=``
_RESERVED = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))) | {"message", "asctime"}


def record_extras(record: logging.LogRecord) -> dict[str, Any]:
    return {key: value for key, value in vars(record).items() if key not in _RESERVED}


class StructuredFormatter(logging.Formatter):
    """One JSON object per line in the shape the Cloud Run log agent parses.

    Turn and tool logs pass ``conversation_id``/``site_id`` through ``extra=``; those
    become labels, everything else is written at the top level of the payload.
    """

    def __init__(self, *, environment: str = "dev", project_id: str | None = None) -> None:
        super().__init__()
        self.environment = environment
        self.project_id = project_id

    def trace_path(self, trace_id: str) -> str:
        if self.project_id:
            return f"projects/{self.project_id}/traces/{trace_id}"
        return trace_id

    def format(self, record: logging.LogRecord) -> str:
        extras = record_extras(record)
        labels = {"service": SERVICE_NAME, "environment": self.environment}
        labels.update({field: str(extras[field]) for field in LABEL_FIELDS if extras.get(field)})

        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "severity": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "logging.googleapis.com/labels": labels,
            "logging.googleapis.com/sourceLocation": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }
        trace_id = trace_id_var.get()
        if trace_id:
            entry["logging.googleapis.com/trace"] = self.trace_path(trace_id)
        entry.update(extras)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(
    *,
    environment: str = "dev",
    project_id: str | None = None,
    use_cloud_logging: bool = True,
) -> None:
    """Route the API's logs to Cloud Logging outside dev, or JSON lines on stdout.

    Args:
        environment: dev, staging or prod; dev also turns on DEBUG
        project_id: GCP project that owns the log and trace ids
        use_cloud_logging: Set False to keep stdout JSON in staging/prod (e.g. Cloud Run agent)
    """
    log_level = logging.DEBUG if environment == "dev" else logging.INFO

    if use_cloud_logging and project_id and environment != "dev":
        client = cloud_logging.Client(project=project_id)
        client.setup_logging(
            log_level=log_level,
            labels={"service": SERVICE_NAME, "environment": environment},
        )
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter(environment=environment, project_id=project_id))
        logging.basicConfig(level=log_level, handlers=[handler], force=True)

    for noisy in ("google", "grpc", "urllib3", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def set_trace_id(trace_id: str | None) -> None:
    trace_id_var.set(trace_id)


def get_trace_id() -> str | None:
    return trace_id_var.get()


__all__ = [
    "LABEL_FIELDS",
    "SERVICE_NAME",
    "StructuredFormatter",
    "get_trace_id",
    "record_extras",
    "set_trace_id",
    "setup_logging",
]
