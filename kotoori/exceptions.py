"""Application-level exception types.

Convention:
- ``None`` / empty results: for *not found* conditions (unknown snapshot id,
  file id or content hash). Services never raise for these; the API layer
  turns them into 404 responses.
- ``HistoryWriteError``: the history store could not record a change
  (disk full, locked or read-only database). Raised from the unit of work
  that failed after it has been rolled back. Callers that also wrote the
  user's file treat it as "file saved, history not recorded".
"""

from __future__ import annotations


class HistoryError(Exception):
    """Base class for file history failures."""


class HistoryWriteError(HistoryError):
    """Raised when a snapshot, blob or deletion could not be persisted.

    The global exception handler in ``kotoori/main.py`` maps this to HTTP 507
    with a ``"History was not recorded"`` detail.
    """


class BinaryFileError(ValueError):
    """Raised when a file that should hold text looks like binary data."""
