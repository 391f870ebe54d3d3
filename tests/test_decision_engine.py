"""Tests for the reconciliation decision engine."""

from dataclasses import replace
from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from update_tracker.models import (
    CandidateListing,
    DecisionKind,
    EngineConfig,
    MatchCandidate,
    RelationshipType,
    ReleaseTier,
    TrackedTitle,
    TrackingPreferences,
)
from update_tracker.services.classifier import ClassifierClient, ClassifierVerdict, ConfidenceBlender
from update_tracker.services.decision_engine import DecisionEngine, is_repack
from update_tracker.services.errors import ClassifierError, ErrorCategory, ErrorHandlingService
from update_tracker.services.extractor import extract
from update_tracker.services.resolver import VersionResolver


NOW = datetime(2024, 3, 1, 12, 0)


def make_title(title: str, title_id: str | None = None, **overrides: object) -> TrackedTitle:
    values: dict = {
        "id": title_id or title.lower().replace(" ", "-"),
        "title": title,
        "original_title": title,
        "link": f"https://example.org/{title.lower().replace(' ', '-')}",
    }
    values.update(overrides)
    return TrackedTitle(**values)


def listing(title: str, slug: str | None = None) -> CandidateListing:
    return CandidateListing(
        title=title,
        link=f"https://example.org/post/{slug or title.lower().replace(' ', '-')}",
        date=datetime(2024, 2, 28),
        image="https://example.org/cover.jpg",
    )


def make_engine(**kwargs: object) -> DecisionEngine:
    kwargs.setdefault("error_service", ErrorHandlingService())
    return DecisionEngine(**kwargs)


def classifier_returning(*verdicts: ClassifierVerdict) -> AsyncMock:
    classifier = AsyncMock(spec=ClassifierClient)
    classifier.classify.return_value = list(verdicts)
    return classifier


class TestAutoApproval:
    @pytest.mark.asyncio
    async def test_trusted_version_bump_is_auto_approved(self) -> None:
        """A newer release of a title with a trusted version is approved without asking."""
        title = make_title("Game Name", verified_version="1.0", version_trusted=True)
        candidate = listing("Game Name v1.1-CODEX")

        report = await make_engine().run_cycle([title], [candidate], NOW)

        assert report.updates_found == 1
        record = report.decisions[0]
        assert record.kind == DecisionKind.AUTO_APPROVED
        assert record.history_entry is not None
        assert record.history_entry.version == "v1.1"
        assert record.history_entry.change_type == "minor"
        assert record.history_entry.previous_version == "1.0"
        assert record.history_entry.approved_by == "auto"
        assert title.update_history == [record.history_entry]
        assert title.verified_version == "1.1"
        assert title.version_trusted
        assert title.last_known_version == "v1.1"
        assert title.link == candidate.link
        assert title.release_tier == ReleaseTier.VERSIONED
        assert title.has_new_update
        assert not title.new_update_seen
        assert report.notifications[0].is_pending is False
        assert report.notifications[0].version == "v1.1"

    @pytest.mark.asyncio
    async def test_proper_release_upgrades_first_release(self) -> None:
        title = make_title("Mythic Quest", original_title="Mythic Quest-RUNE")

        report = await make_engine().run_cycle([title], [listing("Mythic Quest PROPER-RUNE")], NOW)

        record = report.decisions[0]
        assert record.kind == DecisionKind.AUTO_APPROVED
        assert record.history_entry is not None
        assert record.history_entry.change_type == "release_tier"
        assert record.history_entry.significance == 7
        assert record.history_entry.version == "PROPER"
        assert title.release_tier == ReleaseTier.PROPER
        assert not title.version_trusted

    @pytest.mark.asyncio
    async def test_classifier_confidence_approves_inexact_match(self) -> None:
        title = make_title("Hades")
        blender = ConfidenceBlender(classifier_returning(ClassifierVerdict(True, 0.95, "new build")))

        report = await make_engine(blender=blender).run_cycle([title], [listing("Hades Gold v1.38")], NOW)

        record = report.decisions[0]
        assert record.kind == DecisionKind.AUTO_APPROVED
        assert record.reason == "classifier confidence 91% >= 80%"
        assert record.history_entry is not None
        assert record.history_entry.detection_method == "classifier"
        assert record.history_entry.classifier_confidence == 0.95

    @pytest.mark.asyncio
    async def test_trusted_build_with_resolved_candidate(self) -> None:
        title = make_title("Hades", verified_build="100", build_trusted=True, catalogue_id="1145360")

        async def resolve(candidates: list[MatchCandidate], tracked: TrackedTitle) -> list[MatchCandidate]:
            return [replace(candidate, info=replace(candidate.info, build="200")) for candidate in candidates]

        resolver = AsyncMock(spec=VersionResolver)
        resolver.resolve_candidates.side_effect = resolve

        report = await make_engine(resolver=resolver).run_cycle([title], [listing("Hades v1.38")], NOW)

        record = report.decisions[0]
        assert record.kind == DecisionKind.AUTO_APPROVED
        assert record.reason.startswith("trusted build is newer")
        assert title.verified_build == "200"
        assert title.verified_version == "1.38"
        resolver.resolve_candidates.assert_awaited_once()


class TestRanking:
    @pytest.mark.asyncio
    async def test_preferred_release_group_wins(self) -> None:
        title = make_title(
            "Hades",
            verified_version="1.37",
            version_trusted=True,
            preferences=TrackingPreferences(preferred_release_group="rune"),
        )
        candidates = [listing("Hades v1.38-CODEX", "codex"), listing("Hades v1.38-RUNE", "rune")]

        report = await make_engine().run_cycle([title], candidates, NOW)

        assert report.decisions[0].candidate_link == "https://example.org/post/rune"

    @pytest.mark.asyncio
    async def test_preferred_group_named_without_a_dash(self) -> None:
        title = make_title(
            "Hades",
            verified_version="1.37",
            version_trusted=True,
            preferences=TrackingPreferences(preferred_release_group="P2P"),
        )
        candidates = [listing("Hades v1.38-CODEX", "codex"), listing("Hades v1.38 P2P", "p2p")]

        report = await make_engine().run_cycle([title], candidates, NOW)

        assert report.decisions[0].candidate_link == "https://example.org/post/p2p"

    @pytest.mark.asyncio
    async def test_newest_trusted_version_wins_a_tie(self) -> None:
        title = make_title("Hades", verified_version="1.37", version_trusted=True)
        candidates = [listing("Hades v1.38", "a"), listing("Hades v1.40", "b"), listing("Hades v1.39", "c")]

        report = await make_engine().run_cycle([title], candidates, NOW)

        assert report.decisions[0].kind == DecisionKind.AUTO_APPROVED
        assert title.last_known_version == "v1.40"

    @pytest.mark.asyncio
    async def test_avoid_repacks(self) -> None:
        title = make_title(
            "Hades",
            verified_version="1.37",
            version_trusted=True,
            preferences=TrackingPreferences(avoid_repacks=True),
        )

        report = await make_engine().run_cycle([title], [listing("Hades v1.38 [FitGirl Repack]")], NOW)

        assert report.decisions[0].kind == DecisionKind.REJECTED
        assert report.decisions[0].reason == "only repack listings matched"

    def test_is_repack(self) -> None:
        assert is_repack(extract("Hades v1.38 REPACK"))
        assert is_repack(extract("Hades v1.38-DODI"))
        assert not is_repack(extract("Hades v1.38-CODEX"))


class TestPendingConfirmation:
    @pytest.mark.asyncio
    async def test_suspicious_version_goes_to_pending(self) -> None:
        title = make_title("Game", verified_version="6.06", version_trusted=True)

        report = await make_engine().run_cycle([title], [listing("Game v6.6.0.0")], NOW)

        record = report.decisions[0]
        assert record.kind == DecisionKind.PENDING_CONFIRMATION
        assert record.pending_update is not None
        assert record.pending_update.suspicious
        assert record.reason.startswith("version numbering changed padding")
        assert record.reason.endswith("Similarity: 100%")
        assert title.pending_updates == [record.pending_update]
        assert title.update_history == []
        assert report.pending_found == 1
        assert report.notifications[0].is_pending

    @pytest.mark.asyncio
    async def test_inexact_match_without_classifier_goes_to_pending(self) -> None:
        title = make_title("Hades")

        report = await make_engine().run_cycle([title], [listing("Hades Gold v1.38")], NOW)

        record = report.decisions[0]
        assert record.kind == DecisionKind.PENDING_CONFIRMATION
        assert record.reason == "release upgraded from first to versioned | Similarity: 85%"
        assert record.pending_update is not None
        assert record.pending_update.detected_version == "1.38"

    @pytest.mark.asyncio
    async def test_classifier_reason_is_kept_on_pending(self) -> None:
        title = make_title("Game", verified_version="6.06", version_trusted=True)
        blender = ConfidenceBlender(classifier_returning(ClassifierVerdict(True, 0.7, "looks like a patch")))

        report = await make_engine(blender=blender).run_cycle([title], [listing("Game v6.6.0.0")], NOW)

        pending = report.decisions[0].pending_update
        assert pending is not None
        assert pending.classifier_reason == "looks like a patch"
        assert report.decisions[0].reason.endswith("| AI: 70%")


class TestRejection:
    @pytest.mark.asyncio
    async def test_classifier_veto_rejects(self) -> None:
        """A classifier "not an update" verdict keeps the title unchanged."""
        title = make_title("Hades", verified_version="1.37", version_trusted=True)
        blender = ConfidenceBlender(classifier_returning(ClassifierVerdict(False, 0.95, "soundtrack release")))

        report = await make_engine(blender=blender).run_cycle([title], [listing("Hades v1.38")], NOW)

        record = report.decisions[0]
        assert record.kind == DecisionKind.REJECTED
        assert "classifier judged" in record.reason
        assert "soundtrack release" in record.reason
        assert title.update_history == []
        assert title.pending_updates == []
        assert title.verified_version == "1.37"

    @pytest.mark.parametrize(
        "candidate_title",
        ["Hades v1.36", "Hades v1.37 REPACK", "Hades PROPER-CODEX", "Hades 2024.02.29"],
    )
    @pytest.mark.asyncio
    async def test_candidates_that_are_not_newer(self, candidate_title: str) -> None:
        title = make_title("Hades", verified_version="1.37", version_trusted=True)

        report = await make_engine().run_cycle([title], [listing(candidate_title)], NOW)

        assert report.decisions[0].kind == DecisionKind.REJECTED
        assert title.update_history == []
        assert title.pending_updates == []

    @pytest.mark.asyncio
    async def test_rejected_links_are_not_raised_again(self) -> None:
        candidate = listing("Game v6.6.0.0")
        title = make_title(
            "Game", verified_version="6.06", version_trusted=True, rejected_links=[candidate.link]
        )

        report = await make_engine().run_cycle([title], [candidate], NOW)

        assert report.decisions[0].kind == DecisionKind.NO_OP


class TestRelatedTitles:
    @pytest.mark.asyncio
    async def test_sequel_is_suggested(self) -> None:
        title = make_title("Mythic Quest")
        candidate = listing("Mythic Quest II [FitGirl Repack]")

        report = await make_engine().run_cycle([title], [candidate], NOW)

        kinds = [record.kind for record in report.decisions]
        assert kinds == [DecisionKind.NO_OP, DecisionKind.SEQUEL_SUGGESTED]
        related = report.decisions[1].related_game
        assert related is not None
        assert related.relationship == RelationshipType.NUMBERED_SEQUEL
        assert related.link == candidate.link
        assert title.pending_relations == [related]
        assert title.update_history == []
        assert report.sequels_found == 1

    @pytest.mark.asyncio
    async def test_sequel_is_tracked_automatically(self) -> None:
        title = make_title("Mythic Quest", preferences=TrackingPreferences(sequel_sensitivity="loose"))
        engine = make_engine(config=EngineConfig(auto_track_sequels=True))

        report = await engine.run_cycle([title], [listing("Mythic Quest II [FitGirl Repack]")], NOW)

        record = report.decisions[1]
        assert record.kind == DecisionKind.SEQUEL_TRACKED
        assert record.new_title is not None
        assert report.new_titles == [record.new_title]
        assert record.new_title.title == "Mythic Quest II"
        assert record.new_title.preferences == title.preferences
        assert record.new_title.sequel_source is not None
        assert record.new_title.sequel_source.detection_method == "automatic"
        assert record.new_title.sequel_source.original_title_id == title.id
        assert title.pending_relations == []

    @pytest.mark.asyncio
    async def test_listing_owned_by_another_title_is_not_suggested(self) -> None:
        first = make_title("Mythic Quest")
        second = make_title("Mythic Quest II", "mq2")

        report = await make_engine().run_cycle([first, second], [listing("Mythic Quest II v1.1")], NOW)

        assert first.pending_relations == []
        assert report.sequels_found == 0
        assert report.updates_found == 1
        assert second.last_known_version == "v1.1"

    @pytest.mark.asyncio
    async def test_listing_matched_by_a_later_gate_is_not_a_sequel(self) -> None:
        title = make_title(
            "Witcher 3",
            original_title="The Witcher 3 Wild Hunt",
            verified_version="4.04",
            version_trusted=True,
            preferences=TrackingPreferences(sequel_sensitivity="loose"),
        )
        engine = make_engine(config=EngineConfig(auto_track_sequels=True))

        report = await engine.run_cycle([title], [listing("The Witcher 3 Wild Hunt GOTY Edition v4.04")], NOW)

        assert [record.kind for record in report.decisions] == [DecisionKind.REJECTED]
        assert report.new_titles == []
        assert report.sequels_found == 0
        assert title.pending_relations == []

    @pytest.mark.asyncio
    async def test_sequel_detection_can_be_disabled(self) -> None:
        title = make_title("Mythic Quest", preferences=TrackingPreferences(sequel_detection=False))

        report = await make_engine().run_cycle([title], [listing("Mythic Quest II")], NOW)

        assert [record.kind for record in report.decisions] == [DecisionKind.NO_OP]

    @pytest.mark.asyncio
    async def test_strict_sensitivity_drops_named_sequels(self) -> None:
        title = make_title("Risk of Rain", preferences=TrackingPreferences(sequel_sensitivity="strict"))

        report = await make_engine().run_cycle([title], [listing("Risk of Rain Returns")], NOW)

        assert report.sequels_found == 0
        assert title.pending_relations == []


class TestCycle:
    @pytest.mark.asyncio
    async def test_rerunning_a_cycle_changes_nothing(self) -> None:
        """**Feature: game-update-tracker, Property: Cycle idempotence**

        Running the same cycle twice records each outcome only once.
        """
        titles = [
            make_title("Game Name", verified_version="1.0", version_trusted=True),
            make_title("Game", verified_version="6.06", version_trusted=True),
            make_title("Mythic Quest"),
        ]
        candidates = [
            listing("Game Name v1.1-CODEX"),
            listing("Game v6.6.0.0"),
            listing("Mythic Quest II [FitGirl Repack]"),
        ]
        engine = make_engine()

        first = await engine.run_cycle(titles, candidates, NOW)
        second = await engine.run_cycle(titles, candidates, datetime(2024, 3, 1, 13, 0))

        assert (first.updates_found, first.pending_found, first.sequels_found) == (1, 1, 1)
        assert (second.updates_found, second.pending_found, second.sequels_found) == (0, 0, 0)
        assert second.notifications == []
        assert [len(title.update_history) for title in titles] == [1, 0, 0]
        assert [len(title.pending_updates) for title in titles] == [0, 1, 0]
        assert [len(title.pending_relations) for title in titles] == [0, 0, 1]

    @pytest.mark.asyncio
    async def test_failure_in_one_title_does_not_stop_the_cycle(self) -> None:
        broken = make_title("Broken", "broken")
        healthy = make_title("Game Name", verified_version="1.0", version_trusted=True)
        error_service = ErrorHandlingService()
        engine = make_engine(error_service=error_service)
        original = engine.evaluate_title

        async def flaky(title: TrackedTitle, *args: object, **kwargs: object) -> list:
            if title.id == "broken":
                raise RuntimeError("boom")
            return await original(title, *args, **kwargs)

        with patch.object(engine, "evaluate_title", side_effect=flaky):
            report = await engine.run_cycle([broken, healthy], [listing("Game Name v1.1-CODEX")], NOW)

        assert report.checked == 2
        assert report.errors == 1
        assert report.updates_found == 1
        assert report.error_messages[0].startswith("Broken: ")
        assert broken.last_checked == NOW
        assert healthy.last_checked == NOW
        assert error_service.get_error_count_by_category() == {ErrorCategory.PROCESSING: 1}

    @pytest.mark.asyncio
    async def test_known_failures_keep_their_category(self) -> None:
        title = make_title("Hades", "hades")
        error_service = ErrorHandlingService()
        engine = make_engine(error_service=error_service)

        with patch.object(engine, "evaluate_title", side_effect=PermissionError("denied")):
            report = await engine.run_cycle([title], [], NOW)

        assert report.errors == 1
        assert report.error_messages == ["Hades: A file system error occurred: denied"]
        assert error_service.get_error_count_by_category() == {ErrorCategory.STORAGE: 1}

    @pytest.mark.asyncio
    async def test_inactive_titles_are_skipped(self) -> None:
        title = make_title("Game Name", verified_version="1.0", version_trusted=True, is_active=False)

        report = await make_engine().run_cycle([title], [listing("Game Name v1.1-CODEX")], NOW)

        assert report.checked == 0
        assert report.decisions == []
        assert title.last_checked is None

    @pytest.mark.asyncio
    async def test_classifier_outage_falls_back_for_the_rest_of_the_cycle(self) -> None:
        classifier = AsyncMock(spec=ClassifierClient)
        classifier.classify.side_effect = ClassifierError("Classifier request failed")
        titles = [
            make_title("Game Name", verified_version="1.0", version_trusted=True),
            make_title("Hades", verified_version="1.37", version_trusted=True),
        ]
        candidates = [listing("Game Name v1.1-CODEX"), listing("Hades v1.38")]

        report = await make_engine(blender=ConfidenceBlender(classifier)).run_cycle(titles, candidates, NOW)

        assert classifier.classify.await_count == 1
        assert report.errors == 0
        assert report.updates_found == 2
        assert all(record.history_entry.detection_method == "regex" for record in report.decisions if record.history_entry)

    @pytest.mark.asyncio
    async def test_title_link_itself_is_never_a_candidate(self) -> None:
        title = make_title("Hades", verified_version="1.37", version_trusted=True)
        own = CandidateListing(title="Hades v1.38", link=title.link)

        report = await make_engine().run_cycle([title], [own], NOW)

        assert report.decisions[0].kind == DecisionKind.NO_OP


class TestCurrentVersionInfo:
    def test_trusted_fields_win(self) -> None:
        title = make_title(
            "Hades",
            verified_version="v1.37",
            version_trusted=True,
            verified_build="123",
            build_trusted=True,
            last_known_version="v9.9",
        )

        info = make_engine().current_version_info(title)

        assert info.version == "1.37"
        assert info.build == "123"

    def test_untrusted_fields_fall_back_in_order(self) -> None:
        title = make_title("Hades", original_title="Hades v1.20-CODEX", last_known_version="v1.30")

        assert make_engine().current_version_info(title).version == "1.30"

    def test_recorded_proper_tier_is_kept(self) -> None:
        title = make_title("Hades", release_tier=ReleaseTier.PROPER)

        assert make_engine().current_version_info(title).tier == ReleaseTier.PROPER
