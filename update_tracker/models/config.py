"""Engine configuration data models."""

from dataclasses import dataclass


@dataclass(frozen=True)
class EngineConfig:
    """Reconciliation engine settings."""
    match_threshold: float = 0.8
    high_similarity_threshold: float = 0.85
    sequel_band_low: float = 0.5
    sequel_band_high: float = 0.8
    auto_approval_threshold: float = 0.8
    classifier_enabled: bool = True
    classifier_url: str | None = None
    classifier_timeout: float = 10.0
    resolver_url: str | None = None
    resolver_concurrency: int = 5  # Outbound lookups in flight per title
    feed_url: str | None = None
    feed_limit: int = 100
    date_version_grace_days: int = 2
    auto_track_sequels: bool = False
    request_delay: float = 1.0
    log_level: str = "INFO"
