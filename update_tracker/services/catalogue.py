"""Catalogue persistence for tracked titles."""

import json
from datetime import date, datetime
from pathlib import Path
from typing import Any

import structlog

from ..models import (
    DownloadLink,
    PendingRelatedGame,
    PendingUpdate,
    RelationshipType,
    ReleaseTier,
    SequelSource,
    TrackedTitle,
    TrackingPreferences,
    UpdateHistoryEntry,
)
from .errors import StorageError

log = structlog.stdlib.get_logger()


CATALOGUE_FORMAT_VERSION = 1


def _dt(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(str(value))


def _links_to_list(links: tuple[DownloadLink, ...]) -> list[dict[str, str]]:
    return [{"service": link.service, "url": link.url, "type": link.link_type} for link in links]


def _links_from_list(data: Any) -> tuple[DownloadLink, ...]:
    if not isinstance(data, list):
        return ()
    return tuple(
        DownloadLink(service=str(item["service"]), url=str(item["url"]), link_type=str(item.get("type", "direct")))
        for item in data
        if isinstance(item, dict) and item.get("url")
    )


def _title_to_dict(title: TrackedTitle) -> dict[str, Any]:
    """Convert a TrackedTitle to a JSON-serializable dictionary."""
    prefs = title.preferences
    return {
        "id": title.id,
        "title": title.title,
        "original_title": title.original_title,
        "link": title.link,
        "source": title.source,
        "image": title.image,
        "verified_name": title.verified_name,
        "catalogue_id": title.catalogue_id,
        "verified_version": title.verified_version,
        "version_trusted": title.version_trusted,
        "verified_build": title.verified_build,
        "build_trusted": title.build_trusted,
        "release_tier": title.release_tier.name if title.release_tier else None,
        "last_known_version": title.last_known_version,
        "last_checked": _dt(title.last_checked),
        "sort_priority": title.sort_priority,
        "has_new_update": title.has_new_update,
        "new_update_seen": title.new_update_seen,
        "is_active": title.is_active,
        "update_history": [
            {
                "version": entry.version,
                "change_type": entry.change_type,
                "significance": entry.significance,
                "date_found": _dt(entry.date_found),
                "link": entry.link,
                "title": entry.title,
                "previous_version": entry.previous_version,
                "build": entry.build,
                "approved_by": entry.approved_by,
                "approval_reason": entry.approval_reason,
                "detection_method": entry.detection_method,
                "classifier_confidence": entry.classifier_confidence,
                "download_links": _links_to_list(entry.download_links),
            }
            for entry in title.update_history
        ],
        "pending_updates": [
            {
                "new_title": pending.new_title,
                "new_link": pending.new_link,
                "reason": pending.reason,
                "confidence": pending.confidence,
                "similarity": pending.similarity,
                "date_found": _dt(pending.date_found),
                "detected_version": pending.detected_version,
                "build": pending.build,
                "release_type": pending.release_type,
                "update_type": pending.update_type,
                "scene_group": pending.scene_group,
                "new_image": pending.new_image,
                "previous_version": pending.previous_version,
                "suspicious": pending.suspicious,
                "classifier_reason": pending.classifier_reason,
                "classifier_confidence": pending.classifier_confidence,
                "download_links": _links_to_list(pending.download_links),
            }
            for pending in title.pending_updates
        ],
        "pending_relations": [
            {
                "title": related.title,
                "link": related.link,
                "relationship": related.relationship.value,
                "similarity": related.similarity,
                "confidence": related.confidence,
                "date_found": _dt(related.date_found),
                "reason": related.reason,
                "image": related.image,
                "dismissed": related.dismissed,
            }
            for related in title.pending_relations
        ],
        "rejected_links": list(title.rejected_links),
        "preferences": {
            "sequel_detection": prefs.sequel_detection,
            "sequel_sensitivity": prefs.sequel_sensitivity,
            "auto_approval_threshold": prefs.auto_approval_threshold,
            "avoid_repacks": prefs.avoid_repacks,
            "prefer_repacks": prefs.prefer_repacks,
            "preferred_release_group": prefs.preferred_release_group,
        },
        "sequel_source": {
            "original_title_id": title.sequel_source.original_title_id,
            "original_title": title.sequel_source.original_title,
            "detection_method": title.sequel_source.detection_method,
            "similarity": title.sequel_source.similarity,
            "relationship": title.sequel_source.relationship.value,
        } if title.sequel_source else None,
    }


def _dict_to_title(data: dict[str, Any]) -> TrackedTitle:
    """Convert a dictionary back to a TrackedTitle.

    Raises:
        KeyError: If a required field is missing
        ValueError: If a field holds an unparseable value
    """
    prefs_data = data.get("preferences") or {}
    threshold = prefs_data.get("auto_approval_threshold")
    preferences = TrackingPreferences(
        sequel_detection=bool(prefs_data.get("sequel_detection", True)),
        sequel_sensitivity=str(prefs_data.get("sequel_sensitivity", "moderate")),
        auto_approval_threshold=float(threshold) if threshold is not None else None,
        avoid_repacks=bool(prefs_data.get("avoid_repacks", False)),
        prefer_repacks=bool(prefs_data.get("prefer_repacks", False)),
        preferred_release_group=prefs_data.get("preferred_release_group"),
    )

    source_data = data.get("sequel_source")
    sequel_source = SequelSource(
        original_title_id=str(source_data["original_title_id"]),
        original_title=str(source_data["original_title"]),
        detection_method=str(source_data.get("detection_method", "automatic")),
        similarity=float(source_data.get("similarity", 0.0)),
        relationship=RelationshipType(source_data["relationship"]),
    ) if isinstance(source_data, dict) else None

    tier = data.get("release_tier")

    return TrackedTitle(
        id=str(data["id"]),
        title=str(data["title"]),
        original_title=str(data.get("original_title") or data["title"]),
        link=str(data["link"]),
        source=data.get("source"),
        image=data.get("image"),
        verified_name=data.get("verified_name"),
        catalogue_id=str(data["catalogue_id"]) if data.get("catalogue_id") else None,
        verified_version=data.get("verified_version"),
        version_trusted=bool(data.get("version_trusted", False)),
        verified_build=data.get("verified_build"),
        build_trusted=bool(data.get("build_trusted", False)),
        release_tier=ReleaseTier[tier] if tier else None,
        last_known_version=data.get("last_known_version"),
        last_checked=_parse_dt(data.get("last_checked")),
        sort_priority=int(data.get("sort_priority", 0)),
        has_new_update=bool(data.get("has_new_update", False)),
        new_update_seen=bool(data.get("new_update_seen", True)),
        is_active=bool(data.get("is_active", True)),
        update_history=[
            UpdateHistoryEntry(
                version=str(entry["version"]),
                change_type=str(entry.get("change_type", "unknown")),
                significance=int(entry.get("significance", 0)),
                date_found=_parse_dt(entry.get("date_found")) or datetime.min,
                link=str(entry["link"]),
                title=str(entry.get("title", "")),
                previous_version=entry.get("previous_version"),
                build=entry.get("build"),
                approved_by=str(entry.get("approved_by", "auto")),
                approval_reason=entry.get("approval_reason"),
                detection_method=str(entry.get("detection_method", "regex")),
                classifier_confidence=entry.get("classifier_confidence"),
                download_links=_links_from_list(entry.get("download_links")),
            )
            for entry in data.get("update_history", [])
        ],
        pending_updates=[
            PendingUpdate(
                new_title=str(pending["new_title"]),
                new_link=str(pending["new_link"]),
                reason=str(pending.get("reason", "")),
                confidence=float(pending.get("confidence", 0.0)),
                similarity=float(pending.get("similarity", 0.0)),
                date_found=_parse_dt(pending.get("date_found")) or datetime.min,
                detected_version=pending.get("detected_version"),
                build=pending.get("build"),
                release_type=pending.get("release_type"),
                update_type=pending.get("update_type"),
                scene_group=pending.get("scene_group"),
                new_image=pending.get("new_image"),
                previous_version=pending.get("previous_version"),
                suspicious=bool(pending.get("suspicious", False)),
                classifier_reason=pending.get("classifier_reason"),
                classifier_confidence=pending.get("classifier_confidence"),
                download_links=_links_from_list(pending.get("download_links")),
            )
            for pending in data.get("pending_updates", [])
        ],
        pending_relations=[
            PendingRelatedGame(
                title=str(related["title"]),
                link=str(related["link"]),
                relationship=RelationshipType(related["relationship"]),
                similarity=float(related.get("similarity", 0.0)),
                confidence=float(related.get("confidence", 0.0)),
                date_found=_parse_dt(related.get("date_found")) or datetime.min,
                reason=str(related.get("reason", "")),
                image=related.get("image"),
                dismissed=bool(related.get("dismissed", False)),
            )
            for related in data.get("pending_relations", [])
        ],
        rejected_links=[str(link) for link in data.get("rejected_links", [])],
        preferences=preferences,
        sequel_source=sequel_source,
    )


class CatalogueStore:
    """JSON file store for the tracked-title catalogue."""

    def __init__(self, path: Path | None = None) -> None:
        """Initialize the catalogue store.

        Args:
            path: Catalogue file (defaults to ~/.local/share/game-update-tracker/catalogue.json)
        """
        self.path = path or Path.home() / ".local" / "share" / "game-update-tracker" / "catalogue.json"
        log.info("Catalogue store initialized", path=str(self.path))

    def load(self) -> list[TrackedTitle]:
        """Load every tracked title.

        A missing file is an empty catalogue.

        Raises:
            StorageError: If the file cannot be read or does not hold a catalogue
        """
        if not self.path.exists():
            log.info("Catalogue file not found, starting empty", path=str(self.path))
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            log.error("Failed to read catalogue", path=str(self.path), error=str(e))
            raise StorageError("Could not read the catalogue", e, str(self.path), "load") from e
        except json.JSONDecodeError as e:
            log.error("Invalid JSON in catalogue", path=str(self.path), error=str(e))
            raise StorageError("The catalogue file is corrupted", e, str(self.path), "load") from e

        if not isinstance(data, dict) or not isinstance(data.get("titles"), list):
            raise StorageError("The catalogue file has an unexpected layout", path=str(self.path), operation="load")

        try:
            titles = [_dict_to_title(item) for item in data["titles"]]
        except (KeyError, TypeError, ValueError) as e:
            log.error("Invalid tracked title in catalogue", path=str(self.path), error=str(e))
            raise StorageError("The catalogue contains an invalid title", e, str(self.path), "load") from e

        log.info("Catalogue loaded", path=str(self.path), titles=len(titles))
        return titles

    def save(self, titles: list[TrackedTitle]) -> None:
        """Write the catalogue atomically.

        Raises:
            StorageError: If the file cannot be written
        """
        payload = {
            "format_version": CATALOGUE_FORMAT_VERSION,
            "saved_at": datetime.now().isoformat(),
            "titles": [_title_to_dict(title) for title in titles],
        }
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False, default=_json_default)
            temp_path.replace(self.path)
        except OSError as e:
            log.error("Failed to save catalogue", path=str(self.path), error=str(e))
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError:
                    log.warning("Could not remove temporary catalogue file", path=str(temp_path))
            raise StorageError("Could not save the catalogue", e, str(self.path), "save") from e

        log.info("Catalogue saved", path=str(self.path), titles=len(titles))


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
