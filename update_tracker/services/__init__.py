"""Service layer: title matching, version reasoning and external integrations."""

from .catalogue import CatalogueStore
from .classifier import BlendedScore, ClassifierClient, ClassifierVerdict, ConfidenceBlender
from .comparator import VersionComparator, compare, compare_build_numbers, compare_version_strings
from .config import ConfigurationService, ValidationResult
from .decision_engine import DecisionEngine
from .errors import (
    AppError,
    ClassifierError,
    ConfigurationError,
    ErrorCategory,
    ErrorHandlingService,
    ErrorSeverity,
    NetworkError,
    ResolutionError,
    StorageError,
    TitleProcessingError,
    UserFriendlyError,
    ValidationError,
    get_error_service,
    handle_error,
)
from .extractor import VersionExtractor, extract, extract_release_group
from .feed import CandidateFeedService, dedupe_listings, load_candidates
from .http_client import HttpClientService
from .normalizer import decode_title, display_title, normalize
from .resolver import VersionResolver
from .review import (
    confirm_pending,
    dismiss_related,
    reject_pending,
    track_related_same,
    track_related_separate,
)
from .sequel_detector import Relationship, SequelDetector
from .similarity import SimilarityScore, similarity

__all__ = [
    "AppError",
    "BlendedScore",
    "CandidateFeedService",
    "CatalogueStore",
    "ClassifierClient",
    "ClassifierError",
    "ClassifierVerdict",
    "ConfidenceBlender",
    "ConfigurationError",
    "ConfigurationService",
    "DecisionEngine",
    "ErrorCategory",
    "ErrorHandlingService",
    "ErrorSeverity",
    "HttpClientService",
    "NetworkError",
    "Relationship",
    "ResolutionError",
    "SequelDetector",
    "SimilarityScore",
    "StorageError",
    "TitleProcessingError",
    "UserFriendlyError",
    "ValidationError",
    "ValidationResult",
    "VersionComparator",
    "VersionExtractor",
    "VersionResolver",
    "compare",
    "compare_build_numbers",
    "compare_version_strings",
    "confirm_pending",
    "decode_title",
    "dedupe_listings",
    "dismiss_related",
    "display_title",
    "extract",
    "extract_release_group",
    "get_error_service",
    "handle_error",
    "load_candidates",
    "normalize",
    "reject_pending",
    "similarity",
    "track_related_same",
    "track_related_separate",
]
