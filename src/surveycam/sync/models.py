"""Data types for queued survey photos."""

import json
import secrets
import time
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable


class EntryStatus(str, Enum):
    """Upload state of a queue entry."""

    PENDING = "pending"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    FAILED = "failed"


# Status changes an entry may go through; uploaded is terminal.
# Restart recovery (uploading -> pending) happens only on load.
STATUS_TRANSITIONS: dict[EntryStatus, frozenset[EntryStatus]] = {
    EntryStatus.PENDING: frozenset({EntryStatus.UPLOADING}),
    EntryStatus.UPLOADING: frozenset({EntryStatus.UPLOADED, EntryStatus.FAILED}),
    EntryStatus.FAILED: frozenset({EntryStatus.PENDING}),
    EntryStatus.UPLOADED: frozenset(),
}


@dataclass
class GpsCoordinates:
    """Location where a photo was taken."""

    latitude: float
    longitude: float
    accuracy: float | None = None

    def to_dict(self) -> dict[str, float]:
        data = {"latitude": self.latitude, "longitude": self.longitude}
        if self.accuracy is not None:
            data["accuracy"] = self.accuracy
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GpsCoordinates":
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            accuracy=(
                float(data["accuracy"]) if data.get("accuracy") is not None else None
            ),
        )


@dataclass
class PhotoDraft:
    """A captured photo as handed over by the capture flow.

    Everything a queue entry needs except the fields the queue owns
    (id, status, error, retry count).
    """

    source_uri: str
    project_id: str
    project_name: str
    room_id: str | None = None
    room_name: str | None = None
    caption: str | None = None
    notes: str | None = None
    tags: list[str] | None = None
    gps_coordinates: GpsCoordinates | None = None
    trade_category: str | None = None
    custom_area: str | None = None
    taken_at: str | None = None  # ISO 8601, defaults to now


# Persisted key for each QueueEntry attribute; camelCase keeps the blob
# readable by the mobile client.
_FIELD_KEYS = {
    "id": "id",
    "source_uri": "sourceUri",
    "project_id": "projectId",
    "project_name": "projectName",
    "room_id": "roomId",
    "room_name": "roomName",
    "caption": "caption",
    "notes": "notes",
    "tags": "tags",
    "gps_coordinates": "gpsCoordinates",
    "trade_category": "tradeCategory",
    "custom_area": "customArea",
    "taken_at": "takenAt",
    "status": "status",
    "error": "error",
    "retry_count": "retryCount",
    "update_id": "updateId",
}

# Fields callers may change through UploadQueue.update_photo
EDITABLE_FIELDS = frozenset(_FIELD_KEYS) - {"id"}


def generate_entry_id() -> str:
    """Return a time-based id with a random suffix.

    Millisecond epoch plus 8 hex chars, e.g. ``1700000000000-a1b2c3d4``.
    """
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class QueueEntry:
    """One captured photo pending or undergoing upload."""

    id: str
    source_uri: str
    project_id: str
    project_name: str
    taken_at: str
    room_id: str | None = None
    room_name: str | None = None
    caption: str | None = None
    notes: str | None = None
    tags: list[str] | None = None
    gps_coordinates: GpsCoordinates | None = None
    trade_category: str | None = None
    custom_area: str | None = None
    status: EntryStatus = EntryStatus.PENDING
    error: str | None = None
    retry_count: int = 0
    update_id: str | None = None

    @classmethod
    def from_draft(cls, draft: PhotoDraft, entry_id: str) -> "QueueEntry":
        """Build a fresh pending entry from a capture draft."""
        return cls(
            id=entry_id,
            source_uri=draft.source_uri,
            project_id=draft.project_id,
            project_name=draft.project_name,
            taken_at=draft.taken_at or utc_now_iso(),
            room_id=draft.room_id,
            room_name=draft.room_name,
            caption=draft.caption,
            notes=draft.notes,
            tags=list(draft.tags) if draft.tags is not None else None,
            gps_coordinates=(
                replace(draft.gps_coordinates) if draft.gps_coordinates else None
            ),
            trade_category=draft.trade_category,
            custom_area=draft.custom_area,
        )

    @property
    def display_name(self) -> str:
        """Project and room label used in titles and CLI output."""
        if self.room_name:
            return f"{self.project_name} / {self.room_name}"
        return self.project_name

    def copy(self, **changes: Any) -> "QueueEntry":
        """Return a copy with the given attributes replaced."""
        entry = replace(self, **changes)
        if entry.tags is not None:
            entry.tags = list(entry.tags)
        if entry.gps_coordinates is not None:
            entry.gps_coordinates = replace(entry.gps_coordinates)
        return entry

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted (camelCase) form, omitting empty optionals."""
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, EntryStatus):
                value = value.value
            elif isinstance(value, GpsCoordinates):
                value = value.to_dict()
            data[_FIELD_KEYS[f.name]] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueueEntry":
        """Parse the persisted form.

        Raises:
            KeyError: A required attribute is missing
            ValueError: The status or coordinates are invalid
        """
        gps = data.get("gpsCoordinates")
        tags = data.get("tags")
        return cls(
            id=str(data["id"]),
            source_uri=data["sourceUri"],
            project_id=data["projectId"],
            project_name=data.get("projectName", ""),
            taken_at=data.get("takenAt") or utc_now_iso(),
            room_id=data.get("roomId"),
            room_name=data.get("roomName"),
            caption=data.get("caption"),
            notes=data.get("notes"),
            tags=list(tags) if tags is not None else None,
            gps_coordinates=GpsCoordinates.from_dict(gps) if gps else None,
            trade_category=data.get("tradeCategory"),
            custom_area=data.get("customArea"),
            status=EntryStatus(data.get("status", EntryStatus.PENDING.value)),
            error=data.get("error"),
            retry_count=int(data.get("retryCount", 0)),
            update_id=data.get("updateId"),
        )


def entries_to_json(entries: list[QueueEntry]) -> str:
    """Serialize a full queue to a JSON array."""
    return json.dumps([entry.to_dict() for entry in entries])


def entries_from_json(
    raw: str,
    on_invalid: Callable[[int, Any, Exception], None] | None = None,
) -> list[QueueEntry]:
    """Parse a JSON array written by entries_to_json.

    Args:
        raw: Persisted blob
        on_invalid: Called with (index, item, error) for each entry that
            can't be parsed; that entry is then skipped. Without it a bad
            entry fails the whole parse.

    Raises:
        ValueError: The blob is not a JSON array, or an entry is invalid
            and no on_invalid callback was given
    """
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("persisted queue is not a list")

    entries = []
    for index, item in enumerate(data):
        try:
            entries.append(QueueEntry.from_dict(item))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            if on_invalid is None:
                raise ValueError(f"invalid queue entry at {index}: {e}") from e
            on_invalid(index, item, e)
    return entries


@dataclass
class BatchResult:
    """Outcome of one upload_all invocation."""

    uploaded: int = 0
    failed: int = 0
    skipped: int = 0
    entry_ids: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.uploaded + self.failed + self.skipped
