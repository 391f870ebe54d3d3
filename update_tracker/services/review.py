"""User review of pending updates and related-title suggestions."""

import uuid
from dataclasses import replace
from datetime import datetime

import structlog

from ..models import (
    PendingRelatedGame,
    PendingUpdate,
    SequelSource,
    TrackedTitle,
    UpdateHistoryEntry,
)
from .errors import ValidationError
from .extractor import VersionExtractor
from .normalizer import display_title

log = structlog.stdlib.get_logger()


USER_APPROVAL_SIGNIFICANCE = 2


def pending_version_label(pending: PendingUpdate) -> str:
    """Version text recorded for a confirmed update, e.g. ``v1.2 Build 88 REPACK (HOTFIX)``."""
    parts: list[str] = []
    if pending.detected_version:
        parts.append(f"v{pending.detected_version}")
    if pending.build:
        parts.append(f"Build {pending.build}")
    if pending.release_type:
        parts.append(pending.release_type)
    if pending.update_type:
        parts.append(f"({pending.update_type})")
    return " ".join(parts) or pending.new_title


def _require_pending(title: TrackedTitle, link: str) -> PendingUpdate:
    pending = title.find_pending(link)
    if pending is None:
        raise ValidationError(
            f"No pending update for '{title.title}' with that link",
            field="link",
            value=link,
        )
    return pending


def _require_related(title: TrackedTitle, link: str) -> PendingRelatedGame:
    related = title.find_related(link)
    if related is None:
        raise ValidationError(
            f"No related-title suggestion for '{title.title}' with that link",
            field="link",
            value=link,
        )
    return related


def confirm_pending(title: TrackedTitle, link: str, now: datetime | None = None) -> UpdateHistoryEntry:
    """Promote a pending update into the title's history.

    Args:
        title: Title owning the pending update
        link: Link of the pending update
        now: Approval timestamp

    Returns:
        The new history entry

    Raises:
        ValidationError: If no pending update has this link
    """
    pending = _require_pending(title, link)
    version = pending_version_label(pending)

    entry = UpdateHistoryEntry(
        version=version,
        change_type="user_approved",
        significance=USER_APPROVAL_SIGNIFICANCE,
        date_found=now or datetime.now(),
        link=pending.new_link,
        title=pending.new_title,
        previous_version=pending.previous_version,
        build=pending.build,
        approved_by="user",
        approval_reason=pending.reason,
        detection_method="classifier" if pending.classifier_confidence is not None else "regex",
        classifier_confidence=pending.classifier_confidence,
        download_links=pending.download_links,
    )

    title.update_history.append(entry)
    title.pending_updates = [item for item in title.pending_updates if item.new_link != link]
    if pending.detected_version:
        title.verified_version = pending.detected_version
    if pending.build:
        title.verified_build = pending.build
    title.last_known_version = version
    title.link = pending.new_link
    title.original_title = pending.new_title
    title.image = pending.new_image or title.image
    title.sort_priority += 1
    title.has_new_update = True
    title.new_update_seen = False

    log.info("Pending update confirmed", title=title.title, version=version, link=link)
    return entry


def reject_pending(title: TrackedTitle, link: str) -> PendingUpdate:
    """Discard a pending update; the link is remembered so it is not raised again.

    Raises:
        ValidationError: If no pending update has this link
    """
    pending = _require_pending(title, link)
    title.pending_updates = [item for item in title.pending_updates if item.new_link != link]
    if link not in title.rejected_links:
        title.rejected_links.append(link)

    log.info("Pending update rejected", title=title.title, link=link)
    return pending


def dismiss_related(title: TrackedTitle, link: str) -> PendingRelatedGame:
    """Hide a related-title suggestion.

    Raises:
        ValidationError: If no suggestion has this link
    """
    related = _require_related(title, link)
    related.dismissed = True
    log.info("Related title dismissed", title=title.title, related=related.title)
    return related


def track_related_same(
    title: TrackedTitle,
    link: str,
    now: datetime | None = None,
    extractor: VersionExtractor | None = None,
) -> UpdateHistoryEntry:
    """Treat a suggested related listing as a new version of ``title`` itself.

    Raises:
        ValidationError: If no suggestion has this link
    """
    related = _require_related(title, link)
    info = (extractor or VersionExtractor()).extract(related.title)

    pending = PendingUpdate(
        new_title=related.title,
        new_link=related.link,
        reason=f"user linked {related.relationship.value.replace('_', ' ')} to this title",
        confidence=related.confidence,
        similarity=related.similarity,
        date_found=related.date_found,
        detected_version=info.version,
        build=info.build,
        release_type=info.release_type,
        update_type=info.update_type,
        scene_group=info.scene_group,
        new_image=related.image,
        previous_version=title.last_known_version or title.verified_version,
    )
    title.pending_updates.append(pending)
    title.pending_relations = [item for item in title.pending_relations if item.link != link]

    return confirm_pending(title, link, now)


def track_related_separate(title: TrackedTitle, link: str) -> TrackedTitle:
    """Start tracking a suggested related listing as its own title.

    Args:
        title: Title the suggestion was raised for
        link: Link of the suggestion

    Returns:
        The new TrackedTitle; the caller adds it to the catalogue

    Raises:
        ValidationError: If no suggestion has this link
    """
    related = _require_related(title, link)
    title.pending_relations = [item for item in title.pending_relations if item.link != link]

    new_title = TrackedTitle(
        id=uuid.uuid4().hex,
        title=display_title(related.title),
        original_title=related.title,
        link=related.link,
        source=title.source,
        image=related.image,
        preferences=replace(title.preferences),
        sequel_source=SequelSource(
            original_title_id=title.id,
            original_title=title.title,
            detection_method="manual",
            similarity=related.similarity,
            relationship=related.relationship,
        ),
    )

    log.info("Related title tracked separately", title=title.title, new_title=new_title.title)
    return new_title
