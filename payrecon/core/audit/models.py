"""
Audit trail data models.

AuditMessage is the stored unit: one diagnostic event emitted by a pipeline
step, never mutated after ingest. AuditGroup is derived on read by folding the
messages of one batch; it is never stored.

Serialized forms use the wire field names (``batchId``, ``createdAt``,
``levelCounts`` ...) so the HTTP layer can return ``to_dict()`` unchanged.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Tuple

from payrecon.utils.date_utils import parse_date

LEVELS = ("error", "warning", "info")
SCOPES = ("staff", "worker", "global")

DEFAULT_LEVEL = "error"
DEFAULT_TAG = "mismatch"
DEFAULT_SCOPE = "global"
MISC_TAG = "misc"


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime:
    """Parse a timestamp to an aware UTC datetime; naive inputs are read as UTC."""
    return parse_date(value, tz="UTC").to_pydatetime()


@dataclass(frozen=True)
class AuditMessage:
    """
    One stored audit event.

    ``sequence`` is assigned by the store at append time and orders messages
    that share a ``created_at``.
    """
    batch_id: str
    step: int
    level: str
    tag: str
    text: str
    scope: str
    source: str
    created_at: datetime
    meta: Dict[str, Any] = field(default_factory=dict)
    sequence: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "step": self.step,
            "level": self.level,
            "tag": self.tag,
            "text": self.text,
            "scope": self.scope,
            "source": self.source,
            "meta": self.meta,
            "createdAt": format_timestamp(self.created_at),
        }

    def to_record(self) -> Dict[str, Any]:
        """Storage form: the wire fields plus the append sequence."""
        record = self.to_dict()
        record["seq"] = self.sequence
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "AuditMessage":
        return cls(
            batch_id=record["batchId"],
            step=int(record["step"]),
            level=record["level"],
            tag=record.get("tag") or "",
            text=record["text"],
            scope=record["scope"],
            source=record["source"],
            created_at=parse_timestamp(record["createdAt"]),
            meta=record.get("meta") or {},
            sequence=int(record.get("seq", 0)),
        )


@dataclass(frozen=True)
class AuditGroup:
    """Read-time summary of one batch."""
    batch_id: str
    step: int
    started_at: datetime
    ended_at: datetime
    count: int
    level_counts: Dict[str, int]
    tag_counts: Dict[str, int]
    items: Tuple[AuditMessage, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "step": self.step,
            "startedAt": format_timestamp(self.started_at),
            "endedAt": format_timestamp(self.ended_at),
            "count": self.count,
            "levelCounts": dict(self.level_counts),
            "tagCounts": dict(self.tag_counts),
            "items": [item.to_dict() for item in self.items],
        }


__all__ = [
    "LEVELS",
    "SCOPES",
    "DEFAULT_LEVEL",
    "DEFAULT_TAG",
    "DEFAULT_SCOPE",
    "MISC_TAG",
    "format_timestamp",
    "parse_timestamp",
    "AuditMessage",
    "AuditGroup",
]
