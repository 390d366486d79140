"""Security audit log.

One JSON object per line in ``$SECURITY_LOG_DIR/security.log`` (rotated),
covering the requests this service refuses:
- webhook payloads whose Stripe signature does not verify
- callable requests with a missing, expired or revoked Firebase token
- auth-event deliveries without the shared secret
- rate limit hits
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

LOG_DIR = Path(os.environ.get("SECURITY_LOG_DIR", Path.cwd() / "logs"))
LOG_FILE_NAME = "security.log"
MAX_BYTES = 5 * 1024 * 1024
BACKUPS = 3

LOGGER_NAME = "security"


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "event": record.getMessage(),
            **getattr(record, "audit", {}),
        }
        return json.dumps(entry, default=str)


class SecurityLogger:
    """Writes audit entries; fields that are None are left out."""

    def __init__(self, log_dir: Path = LOG_DIR):
        self.logger = logging.getLogger(LOGGER_NAME)
        if not self.logger.handlers:
            log_dir.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(log_dir / LOG_FILE_NAME, maxBytes=MAX_BYTES, backupCount=BACKUPS)
            handler.setFormatter(JsonLineFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.WARNING)

    def log_event(self, event: str, severity: str, **fields: Any) -> None:
        audit = {key: value for key, value in fields.items() if value is not None}
        audit["severity"] = severity
        self.logger.warning(event, extra={"audit": audit})

    def log_invalid_webhook_signature(self, ip: Optional[str] = None, reason: Optional[str] = None, path: Optional[str] = None) -> None:
        self.log_event("invalid_webhook_signature", "high", ip=ip, reason=reason, path=path)

    def auth_failure(self, ip: str, reason: str, path: str, user_agent: Optional[str] = None, **extra: Any) -> None:
        self.log_event("auth_failure", "medium", ip=ip, reason=reason, path=path, user_agent=user_agent, **extra)

    def rejected_auth_event(self, ip: str, path: str, reason: str) -> None:
        self.log_event("rejected_auth_event", "high", ip=ip, reason=reason, path=path)

    def rate_limit_exceeded(self, ip: str, path: str, limit: str) -> None:
        self.log_event("rate_limit_exceeded", "medium", ip=ip, path=path, limit=limit)


security_logger = SecurityLogger()
