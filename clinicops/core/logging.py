"""Logging setup and the audit log.

Development runs get a plain human-readable format. Everywhere else log lines
are rendered as ``key=value`` pairs so they can be grepped and shipped as-is.
"""

import logging
import sys
from typing import Any

from clinicops.core.config import settings

AUDIT_LOGGER_NAME = "clinicops.audit"

# Record attributes rendered after the message when a caller passes them via extra=
STRUCTURED_EXTRAS = (
    "request_id",
    "user_id",
    "appointment_id",
    "action",
    "entity_type",
    "entity_id",
    "from_status",
    "to_status",
)

# Chatty third-party loggers clamped to WARNING
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")


class StructuredFormatter(logging.Formatter):
    """Render a record as ``key=value`` pairs on one line."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        fields.update(
            (key, getattr(record, key)) for key in STRUCTURED_EXTRAS if hasattr(record, key)
        )
        if record.exc_info:
            fields["exc"] = self.formatException(record.exc_info)

        return " ".join(f"{key}={value}" for key, value in fields.items())


def setup_logging(level: str | None = None) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        level: Overrides ``settings.log_level`` (used by the cron entry point)
    """
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        if settings.is_dev
        else StructuredFormatter()
    )

    root = logging.getLogger()
    root.setLevel(log_level)
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class AuditLogger:
    """Append-only audit lines for lifecycle transitions and clinical writes.

    Each line names the acting principal and the entity touched. Status
    changes also carry ``from_status``/``to_status`` so a single appointment's
    history can be rebuilt from the log.
    """

    def __init__(self, name: str = AUDIT_LOGGER_NAME) -> None:
        self.logger = logging.getLogger(name)

    def log(
        self,
        action: str,
        actor_type: str,
        actor_id: str,
        entity_type: str,
        entity_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Write one audit line."""
        extra: dict[str, Any] = {
            "action": action,
            "user_id": actor_id,
            "entity_type": entity_type,
            "entity_id": entity_id,
        }
        metadata = dict(metadata or {})
        if "from" in metadata:
            extra["from_status"] = metadata["from"]
        if "to" in metadata:
            extra["to_status"] = metadata["to"]

        self.logger.info(
            "AUDIT %s by %s:%s on %s:%s %s",
            action,
            actor_type,
            actor_id,
            entity_type,
            entity_id,
            metadata,
            extra=extra,
        )


audit_logger = AuditLogger()
