"""Property-based tests for configuration service."""

import json
import tempfile
from dataclasses import replace
from pathlib import Path

import pytest
from hypothesis import given, strategies as st

from update_tracker.models import EngineConfig
from update_tracker.services import ConfigurationError, ConfigurationService


unit_floats = st.floats(min_value=0.0, max_value=1.0, allow_nan=False, allow_infinity=False)
valid_log_levels = st.sampled_from(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
valid_urls = st.one_of(st.none(), st.sampled_from(["http://localhost:3000", "https://api.example.org/v1"]))


@st.composite
def valid_config_strategy(draw: st.DrawFn) -> EngineConfig:
    match_threshold = draw(st.floats(min_value=0.5, max_value=1.0, allow_nan=False))
    band_high = draw(st.floats(min_value=0.2, max_value=match_threshold, allow_nan=False))
    band_low = draw(st.floats(min_value=0.0, max_value=band_high, allow_nan=False, exclude_max=True))
    return EngineConfig(
        match_threshold=match_threshold,
        high_similarity_threshold=draw(unit_floats),
        sequel_band_low=band_low,
        sequel_band_high=band_high,
        auto_approval_threshold=draw(unit_floats),
        classifier_enabled=draw(st.booleans()),
        classifier_url=draw(valid_urls),
        classifier_timeout=draw(st.floats(min_value=0.5, max_value=120.0, allow_nan=False)),
        resolver_url=draw(valid_urls),
        resolver_concurrency=draw(st.integers(min_value=1, max_value=20)),
        feed_url=draw(valid_urls),
        feed_limit=draw(st.integers(min_value=1, max_value=500)),
        date_version_grace_days=draw(st.integers(min_value=0, max_value=30)),
        auto_track_sequels=draw(st.booleans()),
        request_delay=draw(st.floats(min_value=0.0, max_value=60.0, allow_nan=False)),
        log_level=draw(valid_log_levels),
    )


@given(valid_config_strategy())
def test_configuration_round_trip(config: EngineConfig) -> None:
    """
    **Feature: game-update-tracker, Property: Configuration persistence round-trip**

    For any valid configuration, saving it and then reloading should preserve all values.
    """
    with tempfile.TemporaryDirectory() as temp_dir:
        config_path = Path(temp_dir) / "test_config.json"
        service = ConfigurationService(config_path)

        service.save_config(config)
        loaded_config = service.load_config()

        assert loaded_config == config


def test_configuration_round_trip_example() -> None:
    """Unit test example for configuration round-trip."""
    config = EngineConfig(
        match_threshold=0.9,
        classifier_url="http://localhost:3000",
        feed_url="https://api.example.org/recent",
        auto_track_sequels=True,
        log_level="DEBUG",
    )

    with tempfile.TemporaryDirectory() as temp_dir:
        config_path = Path(temp_dir) / "nested" / "test_config.json"
        service = ConfigurationService(config_path)

        service.save_config(config)
        loaded_config = service.load_config()

        assert loaded_config.match_threshold == 0.9
        assert loaded_config.classifier_url == "http://localhost:3000"
        assert loaded_config.feed_url == "https://api.example.org/recent"
        assert loaded_config.auto_track_sequels is True
        assert loaded_config.log_level == "DEBUG"
        assert loaded_config.resolver_concurrency == 5


def create_invalid_config_strategy() -> st.SearchStrategy[EngineConfig]:
    """Create strategy for invalid but constructible configs."""
    base = EngineConfig()
    return st.one_of(
        st.builds(lambda v: replace(base, match_threshold=v), st.floats(min_value=1.01, max_value=5.0)),
        st.builds(lambda v: replace(base, auto_approval_threshold=v), st.floats(max_value=-0.01, min_value=-5.0)),
        st.builds(
            lambda v: replace(base, sequel_band_low=v, sequel_band_high=v),
            st.floats(min_value=0.0, max_value=0.8),
        ),
        st.builds(lambda v: replace(base, resolver_concurrency=v), st.integers(max_value=0, min_value=-10)),
        st.builds(lambda v: replace(base, resolver_concurrency=v), st.integers(min_value=21, max_value=100)),
        st.builds(lambda v: replace(base, feed_limit=v), st.integers(max_value=0, min_value=-10)),
        st.builds(lambda v: replace(base, request_delay=v), st.floats(min_value=61.0, max_value=120.0)),
        st.builds(lambda v: replace(base, date_version_grace_days=v), st.integers(max_value=-1, min_value=-30)),
        st.builds(
            lambda v: replace(base, log_level=v),
            st.text(min_size=1).filter(lambda x: x not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
        ),
        st.builds(lambda v: replace(base, classifier_url=v), st.sampled_from(["localhost:3000", "ftp://host", ""])),
    )


@given(create_invalid_config_strategy())
def test_configuration_validation_rejects_invalid(config: EngineConfig) -> None:
    """
    **Feature: game-update-tracker, Property: Configuration validation**

    For any invalid configuration, validation fails with readable error messages.
    """
    service = ConfigurationService()
    result = service.validate_config(config)

    assert not result.is_valid
    assert len(result.errors) > 0
    assert all(isinstance(error, str) for error in result.errors)


@given(valid_config_strategy())
def test_configuration_validation_accepts_valid(config: EngineConfig) -> None:
    """
    **Feature: game-update-tracker, Property: Configuration validation**

    For any valid configuration, validation succeeds without error messages.
    """
    service = ConfigurationService()
    result = service.validate_config(config)

    assert result.is_valid
    assert len(result.errors) == 0


def test_default_configuration_is_valid() -> None:
    service = ConfigurationService()
    assert service.validate_config(EngineConfig()).is_valid


def test_sequel_band_must_sit_below_match_threshold() -> None:
    service = ConfigurationService()
    config = EngineConfig(match_threshold=0.7, sequel_band_high=0.8)

    result = service.validate_config(config)

    assert not result.is_valid
    assert any("sequel_band_high" in error for error in result.errors)


def test_missing_file_loads_defaults() -> None:
    with tempfile.TemporaryDirectory() as temp_dir:
        service = ConfigurationService(Path(temp_dir) / "absent.json")
        assert service.load_config() == EngineConfig()


def test_corrupted_file_loads_defaults() -> None:
    with tempfile.TemporaryDirectory() as temp_dir:
        config_path = Path(temp_dir) / "config.json"
        config_path.write_text("{not json", encoding="utf-8")

        service = ConfigurationService(config_path)
        assert service.load_config() == EngineConfig()


def test_invalid_values_in_file_load_defaults() -> None:
    with tempfile.TemporaryDirectory() as temp_dir:
        config_path = Path(temp_dir) / "config.json"
        config_path.write_text(json.dumps({"match_threshold": 3.5}), encoding="utf-8")

        service = ConfigurationService(config_path)
        assert service.load_config() == EngineConfig()


def test_partial_file_keeps_defaults_for_missing_keys() -> None:
    with tempfile.TemporaryDirectory() as temp_dir:
        config_path = Path(temp_dir) / "config.json"
        config_path.write_text(
            json.dumps({"feed_limit": 25, "log_level": "debug", "unknown_key": True}),
            encoding="utf-8",
        )

        service = ConfigurationService(config_path)
        config = service.load_config()

        assert config.feed_limit == 25
        assert config.log_level == "DEBUG"
        assert config.match_threshold == EngineConfig().match_threshold


def test_save_rejects_invalid_configuration() -> None:
    with tempfile.TemporaryDirectory() as temp_dir:
        config_path = Path(temp_dir) / "config.json"
        service = ConfigurationService(config_path)

        with pytest.raises(ConfigurationError):
            service.save_config(EngineConfig(feed_limit=0))

        assert not config_path.exists()
