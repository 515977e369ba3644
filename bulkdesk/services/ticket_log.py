"""
Append-only ticket history (ticket-log.json).

Records ``{ticketNumber, email}`` for every ticket the service creates so
that failure alerts, which only carry a ticket number, can be mapped back to
the original recipient. Write failures are logged and never fail the ticket
that triggered them.
"""

import json
import os
import threading
from pathlib import Path

from bulkdesk.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class TicketLogError(Exception):
    """The ticket log could not be read or rewritten."""


class TicketLog:
    """JSON-file ticket history with whole-file atomic rewrites."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> list[dict]:
        """
        Raises:
            TicketLogError: If the file exists but is not a JSON list
        """
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        except (OSError, ValueError) as e:
            raise TicketLogError(f"Could not read ticket log: {e}") from e
        if not isinstance(data, list):
            raise TicketLogError("Ticket log is not a JSON list.")
        return data

    def read(self) -> list[dict]:
        """All entries, oldest first. An unreadable log reads as empty."""
        try:
            return self._load()
        except TicketLogError as e:
            logger.error("Could not read ticket log", path=str(self.path), error=str(e))
            return []

    def _write(self, entries: list[dict]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(entries, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def append(self, ticket_number: str | None, email: str) -> bool:
        """
        Record a created ticket. Returns False (and logs) if the write failed.

        An existing log that cannot be parsed is left untouched.
        """
        with self._lock:
            try:
                entries = self._load()
            except TicketLogError as e:
                logger.error(
                    "Ticket log unreadable, entry not recorded",
                    path=str(self.path),
                    ticket_number=ticket_number,
                    error=str(e),
                )
                return False
            entries.append({"ticketNumber": ticket_number, "email": email})
            try:
                self._write(entries)
            except OSError as e:
                logger.error(
                    "Could not write ticket log",
                    path=str(self.path),
                    ticket_number=ticket_number,
                    error=str(e),
                )
                return False
        return True

    def clear(self) -> None:
        """
        Truncate the log.

        Raises:
            TicketLogError: If the file could not be rewritten
        """
        with self._lock:
            try:
                self._write([])
            except OSError as e:
                logger.error("Could not clear ticket log", path=str(self.path), error=str(e))
                raise TicketLogError("Failed to clear log file on server.") from e
        logger.info("Ticket log cleared", path=str(self.path))

    def emails_by_ticket(self) -> dict[str, str]:
        """Ticket number -> recipient. Later entries win."""
        return {
            str(entry.get("ticketNumber")): entry.get("email")
            for entry in self.read()
            if isinstance(entry, dict)
        }

    def email_for(self, ticket_number: str | int | None) -> str | None:
        """Recipient recorded for a ticket number, most recent entry wins."""
        if ticket_number is None:
            return None
        return self.emails_by_ticket().get(str(ticket_number))
