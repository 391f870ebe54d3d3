"""Reconciliation of tracked titles against freshly observed listings.

For every tracked title in a cycle the engine walks the same path::

    NoMatch -> CandidateFound -> AutoApproved | PendingConfirmation | Rejected

Candidates are gathered through tiered match gates, scored, ranked and the
best one is compared against what the title currently tracks. Listings that
are close to a title without matching it are handed to the sequel detector.
The engine mutates the in-memory ``TrackedTitle`` records it is given and
describes what happened; persisting and notifying are left to the caller.
"""

import uuid
from dataclasses import replace
from datetime import datetime
from functools import cmp_to_key

import structlog

from ..models import (
    CandidateListing,
    ComparisonResult,
    CycleContext,
    CycleReport,
    DecisionKind,
    DecisionRecord,
    EngineConfig,
    MatchCandidate,
    NotificationEvent,
    PendingRelatedGame,
    PendingUpdate,
    PROPER_RELEASE_TYPES,
    RelationshipType,
    ReleaseTier,
    SequelSource,
    TrackedTitle,
    UpdateHistoryEntry,
    VersionInfo,
)
from .classifier import BlendedScore, ConfidenceBlender
from .comparator import VersionComparator, compare_build_numbers, compare_version_strings
from .errors import ErrorHandlingService, TitleProcessingError, get_error_service
from .extractor import VersionExtractor, extract_release_group, normalize_version_number
from .normalizer import display_title, normalize
from .resolver import VersionResolver
from .sequel_detector import SequelDetector
from .similarity import EXACT_MATCH, SimilarityScore, score_normalized

log = structlog.stdlib.get_logger()


REPACK_GROUPS: frozenset[str] = frozenset({"FITGIRL", "DODI", "ELAMIGOS", "KAOSKREW", "TINYREPACKS"})


def is_repack(info: VersionInfo) -> bool:
    return info.release_type == "REPACK" or (info.scene_group or "").upper() in REPACK_GROUPS


class DecisionEngine:
    """Decides, per tracked title, what a cycle's listings mean for it."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        blender: ConfidenceBlender | None = None,
        resolver: VersionResolver | None = None,
        extractor: VersionExtractor | None = None,
        comparator: VersionComparator | None = None,
        sequel_detector: SequelDetector | None = None,
        error_service: ErrorHandlingService | None = None,
    ) -> None:
        """Initialize the decision engine.

        Args:
            config: Engine thresholds and behaviour switches
            blender: Confidence blender; None ranks on similarity alone
            resolver: Version/build cross-resolution; None skips resolution
            extractor: Version extractor (defaults to the standard rule table)
            comparator: Version comparator (defaults to the configured grace period)
            sequel_detector: Relationship detector
            error_service: Error handling service for per-title failures
        """
        self.config = config or EngineConfig()
        self.blender = blender
        self.resolver = resolver
        self.extractor = extractor or VersionExtractor()
        self.comparator = comparator or VersionComparator(grace_days=self.config.date_version_grace_days)
        self.sequel_detector = sequel_detector or SequelDetector()
        self.error_service = error_service or get_error_service()

        log.info(
            "Decision engine initialized",
            match_threshold=self.config.match_threshold,
            blender=blender is not None,
            resolver=resolver is not None,
            auto_track_sequels=self.config.auto_track_sequels,
        )

    async def run_cycle(
        self,
        titles: list[TrackedTitle],
        candidates: list[CandidateListing],
        now: datetime | None = None,
    ) -> CycleReport:
        """Run one reconciliation cycle over every active title.

        Titles are processed one after another. A failure in one title is
        recorded and the cycle carries on with the next.

        Args:
            titles: The tracked catalogue; records are updated in place
            candidates: Listings observed since the last cycle
            now: Cycle timestamp

        Returns:
            CycleReport with counts, decisions and notification descriptors
        """
        now = now or datetime.now()
        context = CycleContext(started_at=now)
        report = CycleReport()

        log.info("Reconciliation cycle started", titles=len(titles), candidates=len(candidates))

        for title in titles:
            if not title.is_active:
                continue

            report.checked += 1
            try:
                records = await self.evaluate_title(title, candidates, context, catalogue=titles)
            except Exception as e:
                report.errors += 1
                friendly = self.error_service.handle_error(
                    e,
                    operation="evaluate_title",
                    component="decision_engine",
                    context={"title_id": title.id, "title": title.title},
                    default=TitleProcessingError(
                        f"Failed to check '{title.title}' for updates",
                        title_id=title.id,
                        title=title.title,
                        original_error=e,
                    ),
                )
                report.error_messages.append(f"{title.title}: {friendly.message}")
                continue
            finally:
                title.last_checked = now

            for record in records:
                self._tally(report, record)

        report.new_titles.extend(context.created_titles)

        log.info(
            "Reconciliation cycle finished",
            checked=report.checked,
            updates_found=report.updates_found,
            pending_found=report.pending_found,
            sequels_found=report.sequels_found,
            errors=report.errors,
        )
        return report

    async def evaluate_title(
        self,
        title: TrackedTitle,
        candidates: list[CandidateListing],
        context: CycleContext,
        catalogue: list[TrackedTitle] | None = None,
    ) -> list[DecisionRecord]:
        """Evaluate one tracked title against the cycle's listings.

        Args:
            title: Title to evaluate
            candidates: Listings of the cycle
            context: Cycle-scoped state
            catalogue: Every tracked title, used to route related listings

        Returns:
            The update decision followed by any relationship decisions
        """
        matches, related = self._gather(title, candidates, context)

        records: list[DecisionRecord] = []
        if matches:
            records.append(await self._decide_update(title, matches, context))
        else:
            records.append(DecisionRecord(title.id, DecisionKind.NO_OP, "no listing matched"))

        if related and title.preferences.sequel_detection:
            records.extend(self._detect_relations(title, related, context, catalogue or []))

        return records

    def _normalized(self, listing: CandidateListing, context: CycleContext) -> str:
        cached = context.normalized_titles.get(listing.link)
        if cached is None:
            cached = normalize(listing.title)
            context.normalized_titles[listing.link] = cached
        return cached

    def _gather(
        self,
        title: TrackedTitle,
        candidates: list[CandidateListing],
        context: CycleContext,
    ) -> tuple[list[MatchCandidate], list[tuple[CandidateListing, SimilarityScore]]]:
        """Apply the match gates in order; the first gate with any hit wins.

        Every gate is scored so that a listing matched by any of them is
        never treated as a related title.
        """
        gates = (
            ("cleaned", title.title),
            ("verified", title.verified_name),
            ("original", title.original_title),
        )
        matches: list[MatchCandidate] = []
        matched_links: set[str] = set()
        related: list[tuple[CandidateListing, SimilarityScore]] = []
        tried: set[str] = set()

        for gate, name in gates:
            if not name:
                continue
            normalized_name = normalize(name)
            if not normalized_name or normalized_name in tried:
                continue
            tried.add(normalized_name)

            hits: list[MatchCandidate] = []
            for listing in candidates:
                if listing.link == title.link or context.is_processed(listing.link):
                    continue
                result = score_normalized(normalized_name, self._normalized(listing, context))
                if result.value >= self.config.match_threshold:
                    matched_links.add(listing.link)
                    if not matches:
                        hits.append(MatchCandidate(listing, result.value, self.extractor.extract(listing.title), gate))
                elif gate == "cleaned" and (
                    self.config.sequel_band_low <= result.value < self.config.sequel_band_high
                    or result.sequel_indicated
                ):
                    related.append((listing, result))

            if hits:
                log.debug("Match gate hit", title=title.title, gate=gate, matches=len(hits))
                matches = hits

        related = [(listing, result) for listing, result in related if listing.link not in matched_links]
        return matches, related

    async def _decide_update(
        self,
        title: TrackedTitle,
        matches: list[MatchCandidate],
        context: CycleContext,
    ) -> DecisionRecord:
        known = title.known_links()
        fresh = [match for match in matches if match.listing.link not in known]
        if not fresh:
            return DecisionRecord(title.id, DecisionKind.NO_OP, "matching listings already recorded")

        prefs = title.preferences
        if prefs.avoid_repacks:
            non_repacks = [match for match in fresh if not is_repack(match.info)]
            if not non_repacks:
                return DecisionRecord(title.id, DecisionKind.REJECTED, "only repack listings matched")
            fresh = non_repacks

        if self.resolver is not None:
            fresh = await self.resolver.resolve_candidates(fresh, title)

        scores: list[BlendedScore | None]
        if self.blender is not None:
            scores = list(await self.blender.blend(fresh, title, context))
        else:
            scores = [None] * len(fresh)

        scored = [(match, score) for match, score in zip(fresh, scores) if not (score and score.suppressed)]
        if not scored:
            reasons = "; ".join(score.reason for score in scores if score and score.reason)
            return DecisionRecord(
                title.id,
                DecisionKind.REJECTED,
                f"classifier judged {len(fresh)} matching listing(s) not to be updates"
                + (f": {reasons}" if reasons else ""),
                candidate_link=fresh[0].listing.link,
            )

        scored.sort(key=cmp_to_key(lambda a, b: self._rank(title, a, b)))
        best, blended = scored[0]

        current = self.current_version_info(title)
        comparison = self.comparator.compare(current, best.info, context.started_at)
        link = best.listing.link

        log.debug(
            "Best candidate selected",
            title=title.title,
            candidate=best.listing.title,
            similarity=best.similarity,
            confidence=blended.confidence if blended else None,
            is_newer=comparison.is_newer,
            change_type=comparison.change_type,
        )

        if comparison.skip_due_to_hierarchy or comparison.should_wait_for_regular:
            return DecisionRecord(title.id, DecisionKind.REJECTED, comparison.reason, candidate_link=link)
        if comparison.comparable and not comparison.is_newer and not comparison.suspicious:
            return DecisionRecord(title.id, DecisionKind.REJECTED, comparison.reason, candidate_link=link)

        approval_reason = self._auto_approval_reason(title, best, blended, comparison)
        if approval_reason is not None:
            context.mark_processed(link)
            return self._approve(title, best, blended, comparison, approval_reason, context.started_at)

        if best.info.has_structured_signal or comparison.suspicious:
            context.mark_processed(link)
            return self._enqueue_pending(title, best, blended, comparison, context.started_at)

        return DecisionRecord(
            title.id,
            DecisionKind.REJECTED,
            "listing carries no version, build or release tag",
            candidate_link=link,
        )

    def _rank(
        self,
        title: TrackedTitle,
        a: tuple[MatchCandidate, BlendedScore | None],
        b: tuple[MatchCandidate, BlendedScore | None],
    ) -> int:
        """Sort order: preferred group, confidence, trusted axis, similarity."""
        (match_a, score_a), (match_b, score_b) = a, b
        prefs = title.preferences

        if prefs.preferred_release_group:
            group = prefs.preferred_release_group.upper()
            preferred_a = group in self._release_groups(match_a)
            preferred_b = group in self._release_groups(match_b)
            if preferred_a != preferred_b:
                return -1 if preferred_a else 1

        if prefs.prefer_repacks:
            repack_a, repack_b = is_repack(match_a.info), is_repack(match_b.info)
            if repack_a != repack_b:
                return -1 if repack_a else 1

        confidence_a = score_a.confidence if score_a else match_a.similarity
        confidence_b = score_b.confidence if score_b else match_b.similarity
        if confidence_a != confidence_b:
            return -1 if confidence_a > confidence_b else 1

        if title.version_trusted and match_a.info.version and match_b.info.version:
            order = compare_version_strings(match_a.info.version, match_b.info.version)
            if order:
                return order
        if title.build_trusted and match_a.info.build and match_b.info.build:
            order = compare_build_numbers(match_a.info.build, match_b.info.build)
            if order:
                return order

        if match_a.similarity != match_b.similarity:
            return -1 if match_a.similarity > match_b.similarity else 1
        return 0

    @staticmethod
    def _release_groups(match: MatchCandidate) -> set[str]:
        """Groups a listing names, whether tagged like ``-CODEX`` or free-standing like ``GOG``."""
        return {(match.info.scene_group or "").upper(), extract_release_group(match.listing.title)} - {"", "UNKNOWN"}

    def current_version_info(self, title: TrackedTitle) -> VersionInfo:
        """Version signal of what the title tracks today.

        Trusted fields win. Otherwise the first stored string that carries a
        version or build is used, falling back to the title text itself.
        """
        if (title.version_trusted and title.verified_version) or (title.build_trusted and title.verified_build):
            info = VersionInfo()
            if title.version_trusted and title.verified_version:
                info = self.extractor.extract(title.verified_version)
                if not info.version:
                    info = replace(info, version=normalize_version_number(title.verified_version))
            if title.build_trusted and title.verified_build:
                info = replace(info, build=title.verified_build.strip())
            return self._with_recorded_tier(title, info)

        untrusted = " ".join(
            value for value in (title.verified_version, title.verified_build and f"Build {title.verified_build}") if value
        )
        for source in (title.last_known_version, untrusted, title.original_title, title.title):
            if not source:
                continue
            info = self.extractor.extract(source)
            if info.has_version or info.has_build:
                return self._with_recorded_tier(title, info)

        return self._with_recorded_tier(title, self.extractor.extract(title.original_title or title.title))

    @staticmethod
    def _with_recorded_tier(title: TrackedTitle, info: VersionInfo) -> VersionInfo:
        if title.release_tier == ReleaseTier.PROPER and info.tier < ReleaseTier.PROPER:
            return replace(info, release_type=PROPER_RELEASE_TYPES[0])
        return info

    def _auto_approval_reason(
        self,
        title: TrackedTitle,
        match: MatchCandidate,
        blended: BlendedScore | None,
        comparison: ComparisonResult,
    ) -> str | None:
        if comparison.suspicious:
            return None

        if comparison.is_newer:
            trusted_axis = (
                (comparison.decided_by in ("version", "date") and title.version_trusted)
                or (comparison.decided_by == "build" and title.build_trusted)
            )
            if trusted_axis and match.similarity >= self.config.high_similarity_threshold:
                return f"trusted {comparison.decided_by} is newer: {comparison.reason}"
            if match.similarity >= EXACT_MATCH:
                return f"exact title match: {comparison.reason}"

        threshold = title.preferences.auto_approval_threshold or self.config.auto_approval_threshold
        if (
            blended is not None
            and blended.method == "classifier"
            and blended.confidence >= threshold
            and (comparison.is_newer or not comparison.comparable)
        ):
            return f"classifier confidence {blended.confidence:.0%} >= {threshold:.0%}"

        return None

    def _approve(
        self,
        title: TrackedTitle,
        match: MatchCandidate,
        blended: BlendedScore | None,
        comparison: ComparisonResult,
        reason: str,
        now: datetime,
    ) -> DecisionRecord:
        info = match.info
        listing = match.listing
        version_label = info.display_version or listing.title

        entry = UpdateHistoryEntry(
            version=version_label,
            change_type=comparison.change_type,
            significance=comparison.significance,
            date_found=now,
            link=listing.link,
            title=listing.title,
            previous_version=title.last_known_version or title.verified_version,
            build=info.build,
            approved_by="auto",
            approval_reason=reason,
            detection_method=blended.method if blended else "regex",
            classifier_confidence=blended.classifier_confidence if blended else None,
            download_links=listing.download_links,
        )

        title.update_history.append(entry)
        # An axis the new release does not carry can no longer be vouched for.
        if info.version:
            title.verified_version = info.version
        title.version_trusted = bool(info.version)
        if info.build:
            title.verified_build = info.build
        title.build_trusted = bool(info.build)
        title.last_known_version = version_label
        title.link = listing.link
        title.original_title = listing.title
        title.image = listing.image or title.image
        title.release_tier = info.tier
        title.sort_priority += 1
        title.has_new_update = True
        title.new_update_seen = False

        log.info(
            "Update auto-approved",
            title=title.title,
            version=version_label,
            change_type=comparison.change_type,
            significance=comparison.significance,
            reason=reason,
        )

        return DecisionRecord(
            title.id,
            DecisionKind.AUTO_APPROVED,
            reason,
            candidate_link=listing.link,
            history_entry=entry,
            notification=NotificationEvent(
                title=title.title,
                link=listing.link,
                kind=DecisionKind.AUTO_APPROVED,
                is_pending=False,
                version=version_label,
                image=listing.image or title.image,
                download_links=listing.download_links,
            ),
        )

    def _enqueue_pending(
        self,
        title: TrackedTitle,
        match: MatchCandidate,
        blended: BlendedScore | None,
        comparison: ComparisonResult,
        now: datetime,
    ) -> DecisionRecord:
        info = match.info
        listing = match.listing
        classified = blended is not None and blended.method == "classifier"

        parts = [
            comparison.suspicious_reason if comparison.suspicious and comparison.suspicious_reason else comparison.reason,
            f"Similarity: {match.similarity:.0%}",
        ]
        if classified and blended is not None and blended.classifier_confidence is not None:
            parts.append(f"AI: {blended.classifier_confidence:.0%}")
        reason = " | ".join(parts)

        pending = PendingUpdate(
            new_title=listing.title,
            new_link=listing.link,
            reason=reason,
            confidence=blended.confidence if blended else info.confidence,
            similarity=match.similarity,
            date_found=now,
            detected_version=info.version,
            build=info.build,
            release_type=info.release_type,
            update_type=info.update_type,
            scene_group=info.scene_group,
            new_image=listing.image,
            previous_version=title.last_known_version or title.verified_version,
            suspicious=comparison.suspicious,
            classifier_reason=blended.reason if classified and blended is not None else None,
            classifier_confidence=blended.classifier_confidence if classified and blended is not None else None,
            download_links=listing.download_links,
        )
        title.pending_updates.append(pending)

        log.info("Update queued for confirmation", title=title.title, candidate=listing.title, reason=reason)

        return DecisionRecord(
            title.id,
            DecisionKind.PENDING_CONFIRMATION,
            reason,
            candidate_link=listing.link,
            pending_update=pending,
            notification=NotificationEvent(
                title=title.title,
                link=listing.link,
                kind=DecisionKind.PENDING_CONFIRMATION,
                is_pending=True,
                version=info.display_version,
                image=listing.image or title.image,
                download_links=listing.download_links,
            ),
        )

    def _detect_relations(
        self,
        title: TrackedTitle,
        related: list[tuple[CandidateListing, SimilarityScore]],
        context: CycleContext,
        catalogue: list[TrackedTitle],
    ) -> list[DecisionRecord]:
        records: list[DecisionRecord] = []
        suggested = {normalize(existing.title) for existing in title.pending_relations}

        for listing, result in related:
            if context.is_processed(listing.link) or title.find_related(listing.link) is not None:
                continue
            normalized_listing = self._normalized(listing, context)
            if normalized_listing in suggested:
                continue

            relationship = self.sequel_detector.detect_relationship(title, listing)
            if relationship is None:
                continue
            if not self.sequel_detector.meets_sensitivity(relationship, title.preferences.sequel_sensitivity):
                log.debug(
                    "Relationship below sensitivity",
                    title=title.title,
                    candidate=listing.title,
                    confidence=relationship.confidence,
                    sensitivity=title.preferences.sequel_sensitivity,
                )
                continue

            owner = self.sequel_detector.find_existing_match(
                listing, catalogue + context.created_titles, exclude_id=title.id
            )
            if owner is not None:
                # The owning title picks the listing up through its own match gates.
                log.info(
                    "Related listing belongs to another tracked title",
                    title=title.title,
                    candidate=listing.title,
                    owner=owner.title,
                )
                continue

            context.mark_processed(listing.link)
            suggested.add(normalized_listing)

            if self.config.auto_track_sequels:
                records.append(self._track_sequel(title, listing, result, relationship.relationship, context))
                continue

            related_game = PendingRelatedGame(
                title=listing.title,
                link=listing.link,
                relationship=relationship.relationship,
                similarity=result.value,
                confidence=relationship.confidence,
                date_found=context.started_at,
                reason=relationship.reason,
                image=listing.image,
            )
            title.pending_relations.append(related_game)
            log.info(
                "Related title suggested",
                title=title.title,
                candidate=listing.title,
                relationship=relationship.relationship.value,
            )
            records.append(DecisionRecord(
                title.id,
                DecisionKind.SEQUEL_SUGGESTED,
                relationship.reason,
                candidate_link=listing.link,
                related_game=related_game,
                notification=NotificationEvent(
                    title=listing.title,
                    link=listing.link,
                    kind=DecisionKind.SEQUEL_SUGGESTED,
                    is_pending=True,
                    image=listing.image,
                    download_links=listing.download_links,
                ),
            ))

        return records

    def _track_sequel(
        self,
        title: TrackedTitle,
        listing: CandidateListing,
        result: SimilarityScore,
        relationship: RelationshipType,
        context: CycleContext,
    ) -> DecisionRecord:
        new_title = TrackedTitle(
            id=uuid.uuid4().hex,
            title=display_title(listing.title),
            original_title=listing.title,
            link=listing.link,
            source=listing.source,
            image=listing.image,
            preferences=replace(title.preferences),
            sequel_source=SequelSource(
                original_title_id=title.id,
                original_title=title.title,
                detection_method="automatic",
                similarity=result.value,
                relationship=relationship,
            ),
        )
        context.created_titles.append(new_title)

        log.info(
            "Related title tracked automatically",
            title=title.title,
            new_title=new_title.title,
            relationship=relationship.value,
        )
        return DecisionRecord(
            title.id,
            DecisionKind.SEQUEL_TRACKED,
            f"now tracking {new_title.title} ({relationship.value.replace('_', ' ')})",
            candidate_link=listing.link,
            new_title=new_title,
            notification=NotificationEvent(
                title=new_title.title,
                link=listing.link,
                kind=DecisionKind.SEQUEL_TRACKED,
                is_pending=False,
                image=listing.image,
                download_links=listing.download_links,
            ),
        )

    @staticmethod
    def _tally(report: CycleReport, record: DecisionRecord) -> None:
        if record.kind == DecisionKind.AUTO_APPROVED:
            report.updates_found += 1
        elif record.kind == DecisionKind.PENDING_CONFIRMATION:
            report.pending_found += 1
        elif record.kind in (DecisionKind.SEQUEL_SUGGESTED, DecisionKind.SEQUEL_TRACKED):
            report.sequels_found += 1
        report.decisions.append(record)
        if record.notification is not None:
            report.notifications.append(record.notification)
