import logging
from eventpilot.extensions import db
from eventpilot.models import Log

logger = logging.getLogger(__name__)


class LogBuffer:
    """Collects audit log entries during an operation and writes them together.

    Entries are only written when ``flush`` is called, normally right after the
    surrounding transaction has committed. A failed write puts the entries back
    so a later flush can retry them.
    """

    def __init__(self):
        self._entries = []

    def __len__(self):
        return len(self._entries)

    def push(self, type, **fields):
        entry = {"type": type}
        entry.update(fields)
        self._entries.append(entry)

    def stage(self):
        """Add pending entries to the current session without committing."""
        entries, self._entries = self._entries, []
        rows = [Log(**entry) for entry in entries]
        db.session.add_all(rows)
        return entries

    def flush(self):
        if not self._entries:
            return 0
        entries = self.stage()
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            self._entries = entries + self._entries
            logger.error(f"Failed to write {len(entries)} audit log entries")
            raise
        return len(entries)
