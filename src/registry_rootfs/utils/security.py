"""Security audit log for rejected downloads and unsafe paths."""

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("registry_rootfs.security")

DOWNLOAD_BLOCKED = "DOWNLOAD_BLOCKED"
VALIDATION_FAILURE = "VALIDATION_FAILURE"
PATH_TRAVERSAL_ATTEMPT = "PATH_TRAVERSAL_ATTEMPT"
COMMAND_EXECUTION = "COMMAND_EXECUTION"

MAX_SUBJECT_LENGTH = 100


def sanitize_for_log(value: str | None) -> str:
    """Make a value safe for a single audit line.

    Line breaks and tabs are replaced with spaces and the value is truncated
    to ``MAX_SUBJECT_LENGTH`` characters.
    """
    if not value:
        return "[empty]"

    if len(value) > MAX_SUBJECT_LENGTH:
        value = value[:MAX_SUBJECT_LENGTH] + "..."

    return value.replace("\n", " ").replace("\r", " ").replace("\t", " ")


class SecurityLogger:
    """Append-only JSON lines audit log.

    Events are written to their own file regardless of how the application
    configured :mod:`logging`, and mirrored to the ``registry_rootfs.security``
    logger.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def log_event(
        self,
        event: str,
        message: str,
        subject: str | None = None,
        ok: bool = True,
    ) -> dict[str, Any]:
        """Record a security event.

        Args:
            event: Event type (e.g. ``DOWNLOAD_BLOCKED``)
            message: Human readable description
            subject: Value the event is about (image, path, ...)
            ok: False for failures and rejections

        Returns:
            The recorded event
        """
        entry: dict[str, Any] = {
            "ts": time.time(),
            "event": event,
            "subject": sanitize_for_log(subject),
            "message": message,
            "ok": ok,
        }

        level = logging.INFO if ok else logging.WARNING
        security_logger.log(
            level,
            "%s [%s] %s: %s",
            event,
            "SUCCESS" if ok else "FAILURE",
            entry["subject"],
            message,
        )

        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(json.dumps(entry, sort_keys=True) + "\n")
        except OSError as e:
            logger.warning("Cannot write security log %s: %s", self.path, e)

        return entry

    def log_validation_failure(self, input_type: str, value: str | None, reason: str):
        return self.log_event(
            VALIDATION_FAILURE, f"{input_type}: {reason}", subject=value, ok=False
        )

    def log_path_traversal(self, attempted: str, base: str):
        return self.log_event(
            PATH_TRAVERSAL_ATTEMPT,
            f"Path escapes base directory {sanitize_for_log(base)}",
            subject=attempted,
            ok=False,
        )

    def log_command(self, command: str, subject: str | None = None):
        # Only a preview, arguments may carry sensitive values.
        preview = command if len(command) <= 50 else command[:50] + "..."
        return self.log_event(COMMAND_EXECUTION, preview, subject=subject)

    def read_events(self) -> list[dict[str, Any]]:
        """Return all events recorded in the log file."""
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
