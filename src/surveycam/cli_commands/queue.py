"""Upload queue CLI commands."""

import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

import httpx
import typer
import yaml

from surveycam.config import get_settings
from surveycam.engine.session import UploadSession
from surveycam.sync import ApiError, EntryStatus, GpsCoordinates, PhotoDraft, QueueEntry

queue_app = typer.Typer(
    name="queue",
    help="Upload queue - add, inspect, retry and upload survey photos.",
    no_args_is_help=True,
)

T = TypeVar("T")


def _run(action: Callable[[UploadSession], Awaitable[T]]) -> T:
    """Run action inside an initialized upload session."""

    async def runner() -> T:
        async with UploadSession(get_settings()) as session:
            return await action(session)

    return asyncio.run(runner())


def _output(data: Any, as_json: bool, human_lines: list[str]) -> None:
    """Output data as JSON or human-readable format."""
    if as_json:
        typer.echo(json.dumps(data))
    else:
        for line in human_lines:
            typer.echo(line)


def _describe(entry: QueueEntry) -> str:
    line = f"{entry.id}  {entry.status.value:<9}  {entry.display_name}  {entry.source_uri}"
    if entry.status == EntryStatus.FAILED:
        line += f"  [{entry.retry_count}/3] {entry.error}"
    return line


def _gps(lat: float | None, lon: float | None, accuracy: float | None) -> GpsCoordinates | None:
    if lat is None and lon is None:
        return None
    if lat is None or lon is None:
        typer.echo("Both --lat and --lon are required for coordinates.")
        raise typer.Exit(1)
    return GpsCoordinates(latitude=lat, longitude=lon, accuracy=accuracy)


@queue_app.command()
def add(
    photos: list[Path] = typer.Argument(..., help="Image files to queue"),
    project_id: str = typer.Option(..., "--project", "-p", help="Project id"),
    project_name: str = typer.Option(
        None, "--project-name", help="Project name (looked up on the server if omitted)"
    ),
    room_id: str = typer.Option(None, "--room", "-r", help="Room id"),
    room_name: str = typer.Option(
        None, "--room-name", help="Room name (looked up on the server if omitted)"
    ),
    caption: str = typer.Option(None, "--caption", "-c", help="Photo caption"),
    notes: str = typer.Option(None, "--notes", "-n", help="Photo notes"),
    tags: list[str] = typer.Option(None, "--tag", "-t", help="Tag (repeatable)"),
    trade_category: str = typer.Option(None, "--trade", help="Trade category"),
    custom_area: str = typer.Option(None, "--area", help="Area when no room applies"),
    lat: float = typer.Option(None, "--lat", help="GPS latitude"),
    lon: float = typer.Option(None, "--lon", help="GPS longitude"),
    accuracy: float = typer.Option(None, "--accuracy", help="GPS accuracy in meters"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Queue photos for upload to a project."""
    missing = [str(p) for p in photos if not p.is_file()]
    if missing:
        _output(
            {"status": "error", "missing": missing},
            output_json,
            [f"File not found: {p}" for p in missing],
        )
        raise typer.Exit(1)

    gps = _gps(lat, lon, accuracy)

    async def action(session: UploadSession) -> list[QueueEntry]:
        name = project_name
        if not name:
            project = await session.client.get_project(project_id)
            name = str(project.get("name") or project_id)
        room_label = room_name
        if room_id and not room_label:
            rooms = await session.client.get_project_rooms(project_id)
            room_label = next((r.get("name") for r in rooms if r.get("id") == room_id), None)
            if room_label is None:
                raise ApiError(404, f"Room {room_id} not found in project {project_id}")
        return [
            session.queue.add_photo(
                PhotoDraft(
                    source_uri=str(photo.resolve()),
                    project_id=project_id,
                    project_name=name,
                    room_id=room_id,
                    room_name=room_label,
                    caption=caption,
                    notes=notes,
                    tags=list(tags) if tags else None,
                    gps_coordinates=gps,
                    trade_category=trade_category,
                    custom_area=custom_area,
                )
            )
            for photo in photos
        ]

    try:
        entries = _run(action)
    except ApiError as e:
        _output({"status": "error", "message": e.message}, output_json, [f"Error: {e.message}"])
        raise typer.Exit(1)
    except httpx.HTTPError as e:
        message = f"Server unreachable: {e}"
        _output({"status": "error", "message": message}, output_json, [f"Error: {message}"])
        raise typer.Exit(1)

    _output(
        {"status": "queued", "ids": [e.id for e in entries]},
        output_json,
        [f"Queued {len(entries)} photo(s) for {entries[0].project_name}."]
        + [f"  {e.id}  {e.source_uri}" for e in entries],
    )


@queue_app.command(name="import")
def import_manifest(
    manifest: Path = typer.Argument(..., help="YAML survey manifest"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Queue every photo listed in a YAML survey manifest.

    Top-level project/room/tags/trade_category/custom_area values apply to
    every photo; each photo entry may override them.
    """
    try:
        with open(manifest) as f:
            data = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        _output({"status": "error", "message": str(e)}, output_json, [f"Failed to read manifest: {e}"])
        raise typer.Exit(1)

    try:
        drafts = manifest_drafts(data, base_dir=manifest.parent)
    except ValueError as e:
        _output({"status": "error", "message": str(e)}, output_json, [f"Invalid manifest: {e}"])
        raise typer.Exit(1)

    async def action(session: UploadSession) -> list[QueueEntry]:
        return [session.queue.add_photo(draft) for draft in drafts]

    entries = _run(action)
    _output(
        {"status": "queued", "ids": [e.id for e in entries]},
        output_json,
        [f"Queued {len(entries)} photo(s) from {manifest}."],
    )


def manifest_drafts(data: dict[str, Any], base_dir: Path) -> list[PhotoDraft]:
    """Build photo drafts from a parsed survey manifest.

    Raises:
        ValueError: Missing project or photo path, or a missing file
    """
    if not isinstance(data, dict):
        raise ValueError("manifest must be a mapping")
    project = data.get("project") or {}
    if not project.get("id"):
        raise ValueError("project.id is required")
    room = data.get("room") or {}

    drafts = []
    for item in data.get("photos") or []:
        if isinstance(item, str):
            item = {"path": item}
        if not item.get("path"):
            raise ValueError("every photo needs a path")

        path = Path(item["path"]).expanduser()
        if not path.is_absolute():
            path = base_dir / path
        if not path.is_file():
            raise ValueError(f"file not found: {path}")

        gps = item.get("gps")
        item_room = item.get("room") or room
        drafts.append(
            PhotoDraft(
                source_uri=str(path.resolve()),
                project_id=str(project["id"]),
                project_name=str(project.get("name") or project["id"]),
                room_id=item_room.get("id"),
                room_name=item_room.get("name"),
                caption=item.get("caption"),
                notes=item.get("notes"),
                tags=item.get("tags", data.get("tags")),
                gps_coordinates=GpsCoordinates.from_dict(gps) if gps else None,
                trade_category=item.get("trade_category", data.get("trade_category")),
                custom_area=item.get("custom_area", data.get("custom_area")),
                taken_at=item.get("taken_at"),
            )
        )
    return drafts


@queue_app.command(name="list")
def list_entries(
    status: EntryStatus = typer.Option(None, "--status", "-s", help="Only show this status"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """List queued photos."""

    async def action(session: UploadSession) -> list[QueueEntry]:
        return session.queue.entries

    entries = [e for e in _run(action) if status is None or e.status == status]
    lines = [_describe(e) for e in entries] if entries else ["Queue is empty."]
    _output([e.to_dict() for e in entries], output_json, lines)


@queue_app.command()
def remove(
    entry_id: str = typer.Argument(..., help="Queue entry id"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Remove a photo from the queue."""

    async def action(session: UploadSession) -> bool:
        return session.queue.remove_photo(entry_id)

    if not _run(action):
        _output({"status": "not_found", "id": entry_id}, output_json, [f"No queued photo {entry_id}."])
        raise typer.Exit(1)
    _output({"status": "removed", "id": entry_id}, output_json, [f"Removed {entry_id}."])


@queue_app.command()
def update(
    entry_id: str = typer.Argument(..., help="Queue entry id"),
    caption: str = typer.Option(None, "--caption", "-c", help="Photo caption"),
    notes: str = typer.Option(None, "--notes", "-n", help="Photo notes"),
    tags: list[str] = typer.Option(None, "--tag", "-t", help="Replace tags (repeatable)"),
    trade_category: str = typer.Option(None, "--trade", help="Trade category"),
    custom_area: str = typer.Option(None, "--area", help="Area when no room applies"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Edit the metadata of a queued photo."""
    changes: dict[str, Any] = {
        "caption": caption,
        "notes": notes,
        "tags": list(tags) if tags else None,
        "trade_category": trade_category,
        "custom_area": custom_area,
    }
    changes = {key: value for key, value in changes.items() if value is not None}
    if not changes:
        typer.echo("Nothing to update.")
        raise typer.Exit(1)

    async def action(session: UploadSession) -> QueueEntry | None:
        return session.queue.update_photo(entry_id, **changes)

    entry = _run(action)
    if entry is None:
        _output({"status": "not_found", "id": entry_id}, output_json, [f"No queued photo {entry_id}."])
        raise typer.Exit(1)
    _output(entry.to_dict(), output_json, [f"Updated {entry_id}."])


@queue_app.command()
def clear(
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Remove uploaded photos from the queue."""

    async def action(session: UploadSession) -> int:
        return session.queue.clear_completed()

    removed = _run(action)
    _output({"status": "cleared", "removed": removed}, output_json, [f"Cleared {removed} uploaded photo(s)."])


@queue_app.command()
def upload(
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Upload every pending photo, one at a time."""

    async def action(session: UploadSession) -> dict[str, Any]:
        if not output_json:
            session.queue.on_change(_progress_printer())
        result = await session.uploader.upload_all()
        failed = [
            _describe(e) for e in session.queue.entries
            if e.id in result.entry_ids and e.status == EntryStatus.FAILED
        ]
        return {
            "uploaded": result.uploaded,
            "failed": result.failed,
            "skipped": result.skipped,
            "failures": failed,
        }

    summary = _run(action)
    if summary["uploaded"] + summary["failed"] + summary["skipped"] == 0:
        _output({"status": "empty", **summary}, output_json, ["No pending photos."])
        return

    lines = [f"{summary['uploaded']} uploaded, {summary['failed']} failed."]
    lines += [f"  {line}" for line in summary["failures"]]
    _output({"status": "done", **summary}, output_json, lines)
    if summary["failed"]:
        raise typer.Exit(1)


def _progress_printer() -> Callable[[Any], None]:
    last = {"progress": -1}

    def printer(queue: Any) -> None:
        if queue.is_uploading and queue.progress != last["progress"]:
            last["progress"] = queue.progress
            typer.echo(f"Uploading... {queue.progress}%")

    return printer


@queue_app.command()
def retry(
    entry_id: str = typer.Argument(..., help="Queue entry id"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Retry a failed upload (at most 3 attempts per photo)."""

    async def action(session: UploadSession) -> tuple[bool, QueueEntry | None]:
        ok = await session.uploader.retry_upload(entry_id)
        return ok, session.queue.get(entry_id)

    ok, entry = _run(action)
    if entry is None:
        _output({"status": "not_found", "id": entry_id}, output_json, [f"No queued photo {entry_id}."])
        raise typer.Exit(1)

    data = {"status": entry.status.value, "id": entry_id, "retry_count": entry.retry_count}
    if ok:
        _output(data, output_json, [f"Uploaded {entry_id}."])
        return
    _output({**data, "error": entry.error}, output_json, [_describe(entry)])
    raise typer.Exit(1)
