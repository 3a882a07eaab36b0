"""
Audit Trail Service.

Ingests diagnostic messages emitted by reconciliation steps and answers
queries over them, either as a flat most-recent-first list or grouped by
batch with level/tag counts and the first/last timestamps.

Key Functions:
    - coerce_step(): Resolve a step from an explicit value or a ``stepN`` source label
    - group_messages(): Fold messages into per-batch AuditGroup values
    - AuditTrailService.ingest(): Validate and append one batch of items (all or nothing)
    - AuditTrailService.query(): Flat or grouped read with limit and step filter

Usage:
    service = AuditTrailService(JsonlAuditStore("audit.jsonl"))
    result = service.ingest([{"text": "Emp 7 diff=40.00", "source": "step8"}])
    service.query(grouped=True)
"""

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from payrecon.core.errors import AuditValidationError
from .models import (
    DEFAULT_LEVEL,
    DEFAULT_SCOPE,
    DEFAULT_TAG,
    LEVELS,
    MISC_TAG,
    SCOPES,
    AuditGroup,
    AuditMessage,
    parse_timestamp,
)
from .store import AuditStore, InMemoryAuditStore

logger = logging.getLogger(__name__)

MIN_STEP = 2
MAX_STEP = 9
DEFAULT_LIMIT = 500
HARD_LIMIT = 2000

_STEP_SOURCE_RE = re.compile(r"step(\d+)", re.IGNORECASE)


def is_valid_step(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and MIN_STEP <= value <= MAX_STEP


def coerce_step(value: Any = None, source: Optional[str] = None) -> Optional[int]:
    """
    Resolve a pipeline step.

    An integer in range wins; otherwise the first ``stepN`` in ``source``
    counts when N is in range. Returns None when neither resolves.

    Examples:
        >>> coerce_step(8)
        8
        >>> coerce_step(None, "step6")
        6
        >>> coerce_step(12, "Step3-mismatch")
        3
        >>> coerce_step(None, "step10") is None
        True
    """
    if is_valid_step(value):
        return value
    if isinstance(source, str):
        match = _STEP_SOURCE_RE.search(source)
        if match:
            step = int(match.group(1))
            if MIN_STEP <= step <= MAX_STEP:
                return step
    return None


def new_batch_id() -> str:
    return str(uuid.uuid4())


def _resolve_batch_id(batch_id: Any) -> str:
    """Client batch ids are stored as strings; numbers are converted, other types rejected."""
    if batch_id is None or batch_id == "":
        return new_batch_id()
    if isinstance(batch_id, str):
        return batch_id
    if isinstance(batch_id, (int, float)) and not isinstance(batch_id, bool):
        return str(batch_id)
    raise AuditValidationError(f"batchId must be a string, got {type(batch_id).__name__}")


def _recency_key(message: AuditMessage):
    return (message.created_at, message.sequence)


def group_messages(messages: Sequence[AuditMessage]) -> List[AuditGroup]:
    """
    Fold messages into one AuditGroup per batch.

    The result depends only on the set of messages, not their order: counts
    are sums, timestamps are min/max, the group step is the step of the
    earliest message (lowest step on a tie), items are most-recent-first and
    groups are sorted by ``endedAt`` descending then ``batchId`` ascending.
    """
    by_batch: Dict[str, List[AuditMessage]] = {}
    for message in messages:
        by_batch.setdefault(message.batch_id, []).append(message)

    groups = []
    for batch_id, batch in by_batch.items():
        level_counts = {level: 0 for level in LEVELS}
        tag_counts: Dict[str, int] = {}
        for message in batch:
            level_counts[message.level] = level_counts.get(message.level, 0) + 1
            tag = message.tag or MISC_TAG
            tag_counts[tag] = tag_counts.get(tag, 0) + 1

        earliest = min(batch, key=lambda m: (m.created_at, m.step))
        groups.append(
            AuditGroup(
                batch_id=batch_id,
                step=earliest.step,
                started_at=earliest.created_at,
                ended_at=max(m.created_at for m in batch),
                count=len(batch),
                level_counts=level_counts,
                tag_counts=dict(sorted(tag_counts.items())),
                items=tuple(sorted(batch, key=_recency_key, reverse=True)),
            )
        )

    groups.sort(key=lambda g: g.batch_id)
    groups.sort(key=lambda g: g.ended_at, reverse=True)
    return groups


@dataclass(frozen=True)
class IngestResult:
    batch_id: str
    step: int
    inserted: int

    def to_dict(self) -> Dict[str, Any]:
        return {"batchId": self.batch_id, "step": self.step, "inserted": self.inserted}


class AuditTrailService:
    """
    Ingest and query audit messages over an append-only store.

    Args:
        store: Message store (in-memory when omitted)
        clock: Returns the current aware datetime; used for items without createdAt
    """

    def __init__(
        self,
        store: Optional[AuditStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store if store is not None else InMemoryAuditStore()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def ingest(
        self,
        items: Sequence[Mapping[str, Any]],
        step: Any = None,
        batch_id: Any = None,
    ) -> IngestResult:
        """
        Validate every item, then append them all in one store write.

        Args:
            items: Item mappings (``text`` required; ``step``, ``level``,
                   ``tag``, ``scope``, ``source``, ``meta``, ``createdAt`` optional)
            step: Call-level step used when an item resolves none of its own
            batch_id: Existing batch to append to (numbers are stored as
                      strings); a fresh id when omitted

        Returns:
            IngestResult with the batch id, the first item's step and the count

        Raises:
            AuditValidationError: If any item is invalid; nothing is stored
        """
        if not isinstance(items, (list, tuple)) or not items:
            raise AuditValidationError("items required")

        call_step = coerce_step(step)
        batch_id = _resolve_batch_id(batch_id)
        now = self._clock()

        messages = [
            self._build_message(index, item, call_step, batch_id, now)
            for index, item in enumerate(items)
        ]

        stored = self.store.append(messages)
        logger.info(f"Audit batch {batch_id}: inserted {len(stored)} messages (step {messages[0].step})")
        return IngestResult(batch_id=batch_id, step=messages[0].step, inserted=len(stored))

    def _build_message(
        self,
        index: int,
        item: Any,
        call_step: Optional[int],
        batch_id: str,
        now: datetime,
    ) -> AuditMessage:
        if not isinstance(item, Mapping):
            raise AuditValidationError(f"item {index} must be an object")

        source = item.get("source") or None
        if source is not None and not isinstance(source, str):
            raise AuditValidationError(f"item {index}: source must be a string")

        step = coerce_step(item.get("step"), source)
        if step is None:
            step = call_step
        if step is None:
            raise AuditValidationError(f"step ({MIN_STEP}-{MAX_STEP}) required on body or item/source")

        text = item.get("text")
        if not isinstance(text, str) or not text.strip():
            raise AuditValidationError(f"item {index}: text required")

        level = item.get("level") or DEFAULT_LEVEL
        if level not in LEVELS:
            raise AuditValidationError(f"item {index}: level must be one of {list(LEVELS)}, got {level!r}")

        scope = item.get("scope") or DEFAULT_SCOPE
        if scope not in SCOPES:
            raise AuditValidationError(f"item {index}: scope must be one of {list(SCOPES)}, got {scope!r}")

        meta = item.get("meta") or {}
        if not isinstance(meta, Mapping):
            raise AuditValidationError(f"item {index}: meta must be an object")

        created_at = now
        if item.get("createdAt"):
            try:
                created_at = parse_timestamp(item["createdAt"])
            except (TypeError, ValueError) as e:
                raise AuditValidationError(f"item {index}: invalid createdAt: {e}")

        return AuditMessage(
            batch_id=batch_id,
            step=step,
            level=level,
            tag=item.get("tag") or DEFAULT_TAG,
            text=text,
            scope=scope,
            source=source or f"step{step}",
            created_at=created_at,
            meta=dict(meta),
        )

    def list_messages(self, step: Any = None, limit: Any = None) -> List[AuditMessage]:
        """
        Most-recent-first messages, at most ``limit`` (default 500, capped at 2000).

        A ``step`` outside the valid range is ignored rather than rejected.
        """
        limit = self._resolve_limit(limit)
        messages = self.store.all()
        if is_valid_step(step):
            messages = [m for m in messages if m.step == step]
        messages.sort(key=_recency_key, reverse=True)
        return messages[:limit]

    def list_groups(self, step: Any = None, limit: Any = None) -> List[AuditGroup]:
        """Groups over the same messages ``list_messages`` returns."""
        return group_messages(self.list_messages(step=step, limit=limit))

    def query(self, limit: Any = None, step: Any = None, grouped: bool = False) -> Dict[str, Any]:
        """Wire-shaped read: ``{"messages": [...]}`` or ``{"groups": [...]}``."""
        if grouped:
            return {"groups": [g.to_dict() for g in self.list_groups(step=step, limit=limit)]}
        return {"messages": [m.to_dict() for m in self.list_messages(step=step, limit=limit)]}

    @staticmethod
    def _resolve_limit(limit: Any) -> int:
        if limit is None:
            return DEFAULT_LIMIT
        if isinstance(limit, bool) or not isinstance(limit, int):
            raise AuditValidationError(f"limit must be an integer, got {limit!r}")
        if limit <= 0:
            raise AuditValidationError(f"limit must be positive, got {limit}")
        return min(limit, HARD_LIMIT)


__all__ = [
    "MIN_STEP",
    "MAX_STEP",
    "DEFAULT_LIMIT",
    "HARD_LIMIT",
    "is_valid_step",
    "coerce_step",
    "new_batch_id",
    "group_messages",
    "IngestResult",
    "AuditTrailService",
]
