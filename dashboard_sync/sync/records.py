"""
Record and identifier types shared by the sync engine and providers.

Local records are stored as camelCase dictionaries so they remain
compatible with the dashboard's own storage format. A record is linked to
a remote collection when its id is a LinkedId, persisted as
"<provider>-<remote id>".
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

logger = logging.getLogger(__name__)

# Provider tags that may prefix a linked record id
DEFAULT_PROVIDER_TAGS = ("google",)

RECORD_KIND_TASK = "task"
RECORD_KIND_EVENT = "event"


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string with millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a stored timestamp.

    Accepts ISO 8601 strings (with or without a trailing "Z") and epoch
    milliseconds, which older dashboard data uses for createdAt.

    Returns:
        Timezone-aware datetime, or None if the value cannot be parsed
    """
    if value is None or value == "":
        return None

    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)

    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable timestamp: {value!r}")
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# Record identifiers
# =============================================================================


@dataclass(frozen=True)
class LocalId:
    """Identifier of a record that exists only locally."""

    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class LinkedId:
    """Identifier of a record mirrored by a remote record."""

    provider: str
    remote_id: str

    def __str__(self) -> str:
        return f"{self.provider}-{self.remote_id}"


RecordId = Union[LocalId, LinkedId]


def parse_record_id(
    raw: str, providers: tuple[str, ...] = DEFAULT_PROVIDER_TAGS
) -> RecordId:
    """
    Parse a stored record id into its tagged form.

    Only the given provider tags are recognised, so a local id such as
    "local-1" is never mistaken for a linked one.

    Args:
        raw: Stored id string
        providers: Provider tags to recognise

    Returns:
        LinkedId if raw carries a known provider prefix, LocalId otherwise
    """
    for provider in providers:
        prefix = f"{provider}-"
        if raw.startswith(prefix) and len(raw) > len(prefix):
            return LinkedId(provider=provider, remote_id=raw[len(prefix) :])
    return LocalId(raw)


def link_id(provider: str, remote_id: str) -> str:
    """Build the persisted id of a record linked to remote_id."""
    return str(LinkedId(provider=provider, remote_id=remote_id))


def is_linked(raw: str, provider: str) -> bool:
    """Check whether a stored id is linked to the given provider."""
    record_id = parse_record_id(raw, (provider,))
    return isinstance(record_id, LinkedId)


def new_local_id() -> str:
    """Generate a fresh local record id."""
    return str(uuid.uuid4())


# =============================================================================
# Local data
# =============================================================================


@dataclass
class LocalRecord:
    """
    A task or calendar event owned by the local application.

    Task records use completed, priority and deadline; event records use
    date, end_date, time, end_time and color. synced_at is the time the
    record was last reconciled with its remote counterpart.
    """

    id: str
    title: str
    kind: str = RECORD_KIND_TASK
    completed: bool = False
    priority: bool = False
    deadline: str | None = None
    date: str | None = None
    end_date: str | None = None
    time: str | None = None
    end_time: str | None = None
    notes: str = ""
    color: str = ""
    source_collection: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    synced_at: str | None = None

    def record_id(
        self, providers: tuple[str, ...] = DEFAULT_PROVIDER_TAGS
    ) -> RecordId:
        """Get the tagged identifier of this record."""
        return parse_record_id(self.id, providers)

    def is_modified_since_sync(self) -> bool:
        """
        Check whether the record changed locally after its last sync.

        A record that was never synced counts as modified.
        """
        synced = parse_timestamp(self.synced_at)
        if synced is None:
            return True
        updated = parse_timestamp(self.updated_at)
        return updated is not None and updated > synced

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LocalRecord:
        """
        Create a LocalRecord from its stored dictionary form.

        Args:
            data: Stored record (camelCase keys)

        Raises:
            ValueError: If the record has no id
        """
        record_id = data.get("id")
        if not record_id:
            raise ValueError("Record is missing an id")

        created_at = data.get("createdAt")
        if isinstance(created_at, (int, float)):
            parsed = parse_timestamp(created_at)
            created_at = parsed.isoformat() if parsed else None

        return cls(
            id=str(record_id),
            title=data.get("title") or "",
            kind=data.get("kind", RECORD_KIND_TASK),
            completed=bool(data.get("completed", False)),
            priority=bool(data.get("priority", False)),
            deadline=data.get("deadline"),
            date=data.get("date"),
            end_date=data.get("endDate"),
            time=data.get("time"),
            end_time=data.get("endTime"),
            notes=data.get("notes") or data.get("description") or "",
            color=data.get("color") or "",
            source_collection=data.get("sourceCollection"),
            created_at=created_at,
            updated_at=data.get("updatedAt"),
            synced_at=data.get("syncedAt"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the stored dictionary form, omitting unset fields."""
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "kind": self.kind,
            "completed": self.completed,
            "priority": self.priority,
        }
        optional = {
            "deadline": self.deadline,
            "date": self.date,
            "endDate": self.end_date,
            "time": self.time,
            "endTime": self.end_time,
            "notes": self.notes,
            "color": self.color,
            "sourceCollection": self.source_collection,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "syncedAt": self.synced_at,
        }
        data.update({key: value for key, value in optional.items() if value})
        return data


@dataclass
class LocalCollection:
    """A named local list of records."""

    id: str
    name: str
    created_at: str = field(default_factory=utc_now_iso)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LocalCollection:
        created_at = data.get("createdAt")
        if isinstance(created_at, (int, float)):
            parsed = parse_timestamp(created_at)
            created_at = parsed.isoformat() if parsed else None
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            created_at=created_at or utc_now_iso(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "createdAt": self.created_at}


# =============================================================================
# Remote data
# =============================================================================


@dataclass
class RemoteRecord:
    """
    A provider's representation of a record.

    Attributes:
        remote_id: Provider-assigned id, never modified by the engine
        title: Display title
        fields: Raw provider payload
        etag: Provider entity tag, if any
        updated: Provider last-modified timestamp, if any
    """

    remote_id: str
    title: str = ""
    fields: dict[str, Any] = field(default_factory=dict)
    etag: str | None = None
    updated: str | None = None

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> RemoteRecord:
        """Create a RemoteRecord from a provider API resource."""
        return cls(
            remote_id=item["id"],
            title=item.get("title") or item.get("summary") or "",
            fields=dict(item),
            etag=item.get("etag"),
            updated=item.get("updated"),
        )


@dataclass
class RemoteCollection:
    """A remote collection (task list or calendar)."""

    id: str
    title: str
    primary: bool = False

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> RemoteCollection:
        return cls(
            id=item["id"],
            title=item.get("title") or item.get("summary") or "",
            primary=bool(item.get("primary", False)),
        )


__all__ = [
    "DEFAULT_PROVIDER_TAGS",
    "RECORD_KIND_TASK",
    "RECORD_KIND_EVENT",
    "LocalId",
    "LinkedId",
    "RecordId",
    "parse_record_id",
    "link_id",
    "is_linked",
    "new_local_id",
    "utc_now_iso",
    "parse_timestamp",
    "LocalRecord",
    "LocalCollection",
    "RemoteRecord",
    "RemoteCollection",
]
