"""Tests for the command-line interface."""

import json
import tempfile
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from update_tracker.main import (
    ParsedArgs,
    find_title,
    format_pending,
    format_report,
    main,
    parse_arguments,
)
from update_tracker.models import (
    CycleReport,
    DecisionKind,
    NotificationEvent,
    PendingUpdate,
    TrackedTitle,
)
from update_tracker.services.catalogue import CatalogueStore
from update_tracker.services.errors import ValidationError


PENDING_LINK = "https://example.org/post/hades-v1-38"


@pytest.fixture
def workspace() -> Iterator[Path]:
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture(autouse=True)
def quiet_cli() -> Iterator[None]:
    """Keep the CLI from reconfiguring logging or signal handling for the test session."""
    with patch("update_tracker.main.setup_logging"), patch("update_tracker.main.setup_signal_handlers"):
        yield


def run_main(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return int(exc_info.value.code or 0)


class TestParseArguments:
    def test_check_command(self) -> None:
        args = parse_arguments(["--log-level", "DEBUG", "check", "--listings", "recent.json", "--dry-run"])

        assert isinstance(args, ParsedArgs)
        assert args.command == "check"
        assert args.listings == Path("recent.json")
        assert args.dry_run
        assert args.log_level == "DEBUG"

    def test_track_command(self) -> None:
        args = parse_arguments(["--catalogue", "cat.json", "track", "Hades", "https://x", "--separate"])

        assert args.command == "track"
        assert args.catalogue == Path("cat.json")
        assert args.title == "Hades"
        assert args.link == "https://x"
        assert args.separate

    def test_defaults(self) -> None:
        args = parse_arguments(["pending"])

        assert args.config is None
        assert args.log_level == ""
        assert args.listings is None
        assert not args.dry_run

    def test_command_is_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_arguments([])


class TestFindTitle:
    titles = [
        TrackedTitle(id="a1", title="Hades", original_title="Hades", link="https://example.org/1"),
        TrackedTitle(id="b2", title="Celeste", original_title="Celeste", link="https://example.org/2"),
        TrackedTitle(id="c3", title="Celeste", original_title="Celeste", link="https://example.org/3"),
    ]

    def test_by_id(self) -> None:
        assert find_title(self.titles, "c3").id == "c3"

    def test_by_name_ignoring_case(self) -> None:
        assert find_title(self.titles, "hades").id == "a1"

    def test_ambiguous_name(self) -> None:
        with pytest.raises(ValidationError, match="More than one"):
            find_title(self.titles, "Celeste")

    def test_unknown(self) -> None:
        with pytest.raises(ValidationError, match="No tracked title"):
            find_title(self.titles, "Doom")


class TestFormatting:
    def test_format_report(self) -> None:
        report = CycleReport(checked=2, updates_found=1, errors=1, error_messages=["Broken: Failed to check"])
        report.notifications.append(NotificationEvent(
            title="Hades",
            link="https://example.org/h",
            kind=DecisionKind.AUTO_APPROVED,
            is_pending=False,
            version="v1.38",
        ))

        text = format_report(report)

        assert text.splitlines() == [
            "Checked 2 title(s): 1 update(s), 0 pending, 0 related, 1 error(s)",
            "  [UPDATE] Hades v1.38 -> https://example.org/h",
            "  [ERROR] Broken: Failed to check",
        ]

    def test_format_pending_empty(self) -> None:
        assert format_pending([]) == "Nothing waiting for review."

    def test_format_pending(self) -> None:
        title = TrackedTitle(id="a1", title="Hades", original_title="Hades", link="https://example.org/1")
        title.pending_updates.append(PendingUpdate(
            new_title="Hades v6.6.0.0",
            new_link=PENDING_LINK,
            reason="version numbering changed padding",
            confidence=0.5,
            similarity=1.0,
            date_found=datetime(2024, 3, 1),
            suspicious=True,
        ))

        text = format_pending([title])

        assert "Hades (a1)" in text
        assert "update [suspicious]: Hades v6.6.0.0" in text
        assert PENDING_LINK in text


class TestMain:
    def test_check_with_listings_file(self, workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
        catalogue_path = workspace / "catalogue.json"
        CatalogueStore(catalogue_path).save([
            TrackedTitle(
                id="game",
                title="Game Name",
                original_title="Game Name v1.0-CODEX",
                link="https://example.org/post/game-name-v1-0",
                verified_version="1.0",
                version_trusted=True,
            )
        ])
        listings_path = workspace / "listings.json"
        listings_path.write_text(
            json.dumps([{"title": "Game Name v1.1-CODEX", "link": "https://example.org/post/game-name-v1-1"}]),
            encoding="utf-8",
        )

        exit_code = run_main([
            "--config", str(workspace / "config.json"),
            "--catalogue", str(catalogue_path),
            "check", "--listings", str(listings_path),
        ])

        assert exit_code == 0
        assert "[UPDATE] Game Name v1.1" in capsys.readouterr().out
        saved = CatalogueStore(catalogue_path).load()
        assert saved[0].verified_version == "1.1"
        assert len(saved[0].update_history) == 1

    def test_dry_run_leaves_catalogue_untouched(self, workspace: Path) -> None:
        catalogue_path = workspace / "catalogue.json"
        CatalogueStore(catalogue_path).save([
            TrackedTitle(
                id="game",
                title="Game Name",
                original_title="Game Name",
                link="https://example.org/post/game-name",
                verified_version="1.0",
                version_trusted=True,
            )
        ])
        before = catalogue_path.read_text(encoding="utf-8")
        listings_path = workspace / "listings.json"
        listings_path.write_text(
            json.dumps({"games": [{"title": "Game Name v1.1", "link": "https://example.org/post/v1-1"}]}),
            encoding="utf-8",
        )

        exit_code = run_main([
            "--config", str(workspace / "config.json"),
            "--catalogue", str(catalogue_path),
            "check", "--listings", str(listings_path), "--dry-run",
        ])

        assert exit_code == 0
        assert catalogue_path.read_text(encoding="utf-8") == before

    def test_approve_pending_update(self, workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
        catalogue_path = workspace / "catalogue.json"
        title = TrackedTitle(id="hades", title="Hades", original_title="Hades", link="https://example.org/hades")
        title.pending_updates.append(PendingUpdate(
            new_title="Hades v1.38",
            new_link=PENDING_LINK,
            reason="Similarity: 85%",
            confidence=0.6,
            similarity=0.85,
            date_found=datetime(2024, 3, 1),
            detected_version="1.38",
        ))
        CatalogueStore(catalogue_path).save([title])

        exit_code = run_main([
            "--config", str(workspace / "config.json"),
            "--catalogue", str(catalogue_path),
            "approve", "Hades", PENDING_LINK,
        ])

        assert exit_code == 0
        assert "Approved Hades v1.38" in capsys.readouterr().out
        saved = CatalogueStore(catalogue_path).load()[0]
        assert saved.pending_updates == []
        assert saved.update_history[0].approved_by == "user"

    def test_unknown_title_reports_error(self, workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
        catalogue_path = workspace / "catalogue.json"
        CatalogueStore(catalogue_path).save([])

        exit_code = run_main([
            "--config", str(workspace / "config.json"),
            "--catalogue", str(catalogue_path),
            "reject", "Doom", "https://example.org/x",
        ])

        assert exit_code == 1
        err = capsys.readouterr().err
        assert "Error: No tracked title matches 'Doom'" in err
        assert "Suggested actions:" in err
        assert "  • Review the input requirements" in err

    def test_check_without_feed_url(self, workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
        catalogue_path = workspace / "catalogue.json"
        CatalogueStore(catalogue_path).save([
            TrackedTitle(id="h", title="Hades", original_title="Hades", link="https://example.org/h")
        ])

        exit_code = run_main([
            "--config", str(workspace / "config.json"),
            "--catalogue", str(catalogue_path),
            "check",
        ])

        assert exit_code == 1
        assert "No listings feed configured" in capsys.readouterr().err

    def test_unexpected_failure_is_reported_with_suggestions(self, workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
        with patch("update_tracker.main.run_command", side_effect=PermissionError("denied")):
            exit_code = run_main(["--config", str(workspace / "config.json"), "pending"])

        assert exit_code == 1
        err = capsys.readouterr().err
        assert "Error: A file system error occurred: denied" in err
        assert "  • Check file permissions on the catalogue" in err
