"""
Append-only storage for audit messages.

Both stores take a whole ingest call at once and write it under a single
lock, so a reader never sees half of a batch append. Nothing is updated or
deleted in place.

Stores:
    - InMemoryAuditStore: process-local list (tests, embedded use)
    - JsonlAuditStore: one JSON object per line in a file
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from pathlib import Path
from typing import List, Sequence, Union

from .models import AuditMessage

logger = logging.getLogger(__name__)


class AuditStore(ABC):
    """Interface shared by the audit stores."""

    @abstractmethod
    def append(self, messages: Sequence[AuditMessage]) -> List[AuditMessage]:
        """Persist ``messages`` atomically; return them with sequences assigned."""

    @abstractmethod
    def all(self) -> List[AuditMessage]:
        """Every stored message in append order."""


class InMemoryAuditStore(AuditStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._messages: List[AuditMessage] = []

    def append(self, messages: Sequence[AuditMessage]) -> List[AuditMessage]:
        with self._lock:
            start = len(self._messages)
            stored = [replace(m, sequence=start + i) for i, m in enumerate(messages)]
            self._messages.extend(stored)
        return stored

    def all(self) -> List[AuditMessage]:
        with self._lock:
            return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)


class JsonlAuditStore(AuditStore):
    """
    JSON-lines file store.

    The next sequence number is recovered from the existing file on open, so
    a restarted process keeps appending after the previous records.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._next_sequence = len(self._read())
        logger.info(f"Audit store opened at {self.path} ({self._next_sequence} messages)")

    def _read(self) -> List[AuditMessage]:
        if not self.path.exists():
            return []
        messages = []
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    messages.append(AuditMessage.from_record(json.loads(line)))
        return messages

    def append(self, messages: Sequence[AuditMessage]) -> List[AuditMessage]:
        with self._lock:
            start = self._next_sequence
            stored = [replace(m, sequence=start + i) for i, m in enumerate(messages)]
            payload = "".join(json.dumps(m.to_record(), default=str) + "\n" for m in stored)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(payload)
            self._next_sequence = start + len(stored)
        return stored

    def all(self) -> List[AuditMessage]:
        with self._lock:
            return self._read()


__all__ = ["AuditStore", "InMemoryAuditStore", "JsonlAuditStore"]
