import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from academy_office.application.errors import ConfigurationError

COLLECTIONS = ("academies", "registrations", "attendance", "progress", "invoices", "payments")


@dataclass(frozen=True)
class LegacyDocument:
    id: str
    data: dict[str, Any]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


@dataclass
class LegacySnapshot:
    """Exported legacy documents grouped by collection name."""

    collections: dict[str, list[LegacyDocument]] = field(default_factory=dict)

    def documents(self, name: str) -> Iterator[LegacyDocument]:
        yield from self.collections.get(name, [])

    def count(self, name: str) -> int:
        return len(self.collections.get(name, []))


def _documents_from_raw(name: str, raw: Any) -> list[LegacyDocument]:
    if raw is None:
        return []
    if isinstance(raw, dict):
        items = [{"id": key, **value} for key, value in raw.items() if isinstance(value, dict)]
    elif isinstance(raw, list):
        items = [item for item in raw if isinstance(item, dict)]
    else:
        raise ConfigurationError(f"Collection {name!r} must be a list or an object of documents")
    documents = []
    for index, item in enumerate(items):
        data = dict(item)
        doc_id = data.pop("id", None) or data.pop("_id", None) or f"{name}-{index}"
        documents.append(LegacyDocument(id=str(doc_id), data=data))
    return documents


def _read_json(path: Path) -> Any:
    try:
        with path.open(encoding="utf-8") as handle:
            return json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Unable to read legacy snapshot {path}: {exc}") from exc


def load_snapshot(path: str | Path) -> LegacySnapshot:
    """Load a snapshot from a directory of ``<collection>.json`` files or one JSON file.

    A single file holds an object keyed by collection name. Each collection is
    either a list of documents carrying an ``id`` or an object keyed by id.
    """
    root = Path(path)
    if not root.exists():
        raise ConfigurationError(f"Legacy snapshot not found: {root}")
    snapshot = LegacySnapshot()
    if root.is_dir():
        for name in COLLECTIONS:
            collection_path = root / f"{name}.json"
            raw = _read_json(collection_path) if collection_path.exists() else None
            snapshot.collections[name] = _documents_from_raw(name, raw)
        return snapshot
    raw = _read_json(root)
    if not isinstance(raw, dict):
        raise ConfigurationError("Legacy snapshot file must contain an object keyed by collection")
    for name in COLLECTIONS:
        snapshot.collections[name] = _documents_from_raw(name, raw.get(name))
    return snapshot


def _from_epoch_seconds(seconds: float) -> datetime | None:
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_legacy_datetime(value: Any) -> datetime | None:
    """Accept exported timestamps (``{"_seconds": ...}``), epoch millis or ISO strings."""
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        seconds = value.get("_seconds", value.get("seconds"))
        if seconds is None:
            return None
        nanos = value.get("_nanoseconds", value.get("nanoseconds", 0)) or 0
        try:
            return _from_epoch_seconds(int(seconds) + int(nanos) / 1_000_000_000)
        except (TypeError, ValueError):
            return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _from_epoch_seconds(value / 1000)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)
    return None


def parse_legacy_date(value: Any) -> date | None:
    if isinstance(value, str) and len(value.strip()) == 10:
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            return None
    parsed = parse_legacy_datetime(value)
    return parsed.date() if parsed is not None else None
