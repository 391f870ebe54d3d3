"""Tests for catalogue persistence."""

import json
import tempfile
from datetime import datetime
from pathlib import Path

import pytest
from hypothesis import given, settings, strategies as st

from update_tracker.models import (
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
from update_tracker.services.catalogue import CatalogueStore
from update_tracker.services.errors import StorageError


def populated_title() -> TrackedTitle:
    found = datetime(2024, 2, 1, 8, 15, 30)
    links = (DownloadLink("mirror", "https://mirror.example.org/hades", "torrent"),)
    return TrackedTitle(
        id="hades",
        title="Hades",
        original_title="Hades v1.38-CODEX",
        link="https://example.org/hades-v1-38",
        source="pc",
        image="https://example.org/hades.jpg",
        verified_name="Hades",
        catalogue_id="1145360",
        verified_version="1.38",
        version_trusted=True,
        verified_build="14183208",
        build_trusted=False,
        release_tier=ReleaseTier.VERSIONED,
        last_known_version="v1.38",
        last_checked=datetime(2024, 2, 2, 12, 0),
        sort_priority=3,
        has_new_update=True,
        new_update_seen=False,
        update_history=[
            UpdateHistoryEntry(
                version="v1.38",
                change_type="minor",
                significance=5,
                date_found=found,
                link="https://example.org/hades-v1-38",
                title="Hades v1.38-CODEX",
                previous_version="v1.37",
                approval_reason="trusted version is newer",
                classifier_confidence=0.91,
                detection_method="classifier",
                download_links=links,
            )
        ],
        pending_updates=[
            PendingUpdate(
                new_title="Hades v1.39 REPACK",
                new_link="https://example.org/hades-v1-39",
                reason="Similarity: 100%",
                confidence=0.64,
                similarity=1.0,
                date_found=found,
                detected_version="1.39",
                release_type="REPACK",
                suspicious=True,
                download_links=links,
            )
        ],
        pending_relations=[
            PendingRelatedGame(
                title="Hades II",
                link="https://example.org/hades-2",
                relationship=RelationshipType.NUMBERED_SEQUEL,
                similarity=0.3,
                confidence=0.9,
                date_found=found,
                reason="numbered sequel of hades (2)",
                dismissed=True,
            )
        ],
        rejected_links=["https://example.org/hades-fake"],
        preferences=TrackingPreferences(
            sequel_sensitivity="loose",
            auto_approval_threshold=0.9,
            avoid_repacks=True,
            preferred_release_group="CODEX",
        ),
        sequel_source=SequelSource(
            original_title_id="bastion",
            original_title="Bastion",
            detection_method="manual",
            similarity=0.55,
            relationship=RelationshipType.NAMED_SEQUEL,
        ),
    )


simple_titles = st.builds(
    TrackedTitle,
    id=st.text(alphabet="abcdef0123456789", min_size=1, max_size=12),
    title=st.text(min_size=1, max_size=40),
    original_title=st.text(min_size=1, max_size=60),
    link=st.text(min_size=1, max_size=60).map(lambda path: f"https://example.org/{path}"),
    verified_version=st.one_of(st.none(), st.sampled_from(["1.0", "2.3.1", "2024-01-15"])),
    version_trusted=st.booleans(),
    release_tier=st.one_of(st.none(), st.sampled_from(list(ReleaseTier))),
    sort_priority=st.integers(min_value=0, max_value=1000),
    is_active=st.booleans(),
)


class TestCatalogueStore:
    def test_round_trip_preserves_every_field(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            store = CatalogueStore(Path(temp_dir) / "nested" / "catalogue.json")
            title = populated_title()

            store.save([title])
            loaded = store.load()

        assert loaded == [title]

    @settings(max_examples=30)
    @given(st.lists(simple_titles, max_size=5))
    def test_catalogue_round_trip(self, titles: list[TrackedTitle]) -> None:
        """**Feature: game-update-tracker, Property: Catalogue persistence round-trip**

        Saving then loading a catalogue gives back the same titles in order.
        """
        with tempfile.TemporaryDirectory() as temp_dir:
            store = CatalogueStore(Path(temp_dir) / "catalogue.json")

            store.save(titles)

            assert store.load() == titles

    def test_missing_file_is_empty(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            assert CatalogueStore(Path(temp_dir) / "absent.json").load() == []

    def test_file_layout(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "catalogue.json"
            CatalogueStore(path).save([populated_title()])

            data = json.loads(path.read_text(encoding="utf-8"))

            assert data["format_version"] == 1
            assert "saved_at" in data
            assert data["titles"][0]["release_tier"] == "VERSIONED"
            assert data["titles"][0]["sequel_source"]["relationship"] == "named_sequel"
            assert not (Path(temp_dir) / "catalogue.json.tmp").exists()

    def test_minimal_entries_get_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "catalogue.json"
            path.write_text(
                json.dumps({"titles": [{"id": "1", "title": "Celeste", "link": "https://example.org/c"}]}),
                encoding="utf-8",
            )

            loaded = CatalogueStore(path).load()

        assert loaded[0].original_title == "Celeste"
        assert loaded[0].is_active
        assert loaded[0].preferences == TrackingPreferences()
        assert loaded[0].release_tier is None

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"titles": "none"},
            {"titles": [{"title": "No id", "link": "https://example.org/x"}]},
            {"titles": [{"id": "1", "title": "T", "link": "L", "release_tier": "GOLD"}]},
        ],
    )
    def test_invalid_layout_raises(self, payload: object) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "catalogue.json"
            path.write_text(json.dumps(payload), encoding="utf-8")

            with pytest.raises(StorageError):
                CatalogueStore(path).load()
