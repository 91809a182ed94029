"""
Pattern Detector Service
Clusters incoming helpdesk tickets, raises threshold alerts, flags spam and
escalates clusters to incidents

Components:
- detector.py: PatternDetector entry points (analysis, analytics, admin actions)
- clusterer.py: OnlineClusterer for department-scoped centroid clustering
- alerts.py: ThresholdPolicy for one-time cluster size alerts
- spam.py: SpamDetector for rapid-submission and duplicate-content checks
- incidents.py: IncidentEscalator for cluster -> incident promotion
- storage.py: PatternStore contract and in-memory backend
- arango_store.py: ArangoDB backend
"""

from .alerts import ThresholdPolicy
from .clusterer import ClusterOutcome, OnlineClusterer
from .detector import AnalysisResult, AnalysisStatus, PatternDetector, create_detector
from .errors import (
    AlertNotFoundError,
    ClusterNotFoundError,
    IncidentNotFoundError,
    NotFoundError,
    PatternDetectorError,
    SpamDetectionNotFoundError,
    StoreConflictError,
)
from .incidents import IncidentEscalator
from .spam import SpamDetector
from .storage import InMemoryPatternStore, PatternStore, get_store

__all__ = [
    "PatternDetector",
    "AnalysisResult",
    "AnalysisStatus",
    "create_detector",
    "OnlineClusterer",
    "ClusterOutcome",
    "ThresholdPolicy",
    "SpamDetector",
    "IncidentEscalator",
    "PatternStore",
    "InMemoryPatternStore",
    "get_store",
    "PatternDetectorError",
    "NotFoundError",
    "ClusterNotFoundError",
    "AlertNotFoundError",
    "SpamDetectionNotFoundError",
    "IncidentNotFoundError",
    "StoreConflictError",
]
