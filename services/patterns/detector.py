"""
Pattern Detector
Entry points used by ticket ingestion, dashboards and administrators

Automatic analysis (spam check + clustering) is best-effort: failures are
logged and reported in the returned AnalysisResult, never raised. Explicit
administrative actions raise so the caller can report the failure.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

import structlog

from services.embed_cluster.embedder import EmbeddingProvider, get_embedder
from services.normalize.normalizer import TextNormalizer
from shared.schemas import (
    Cluster,
    HelpdeskTicket,
    IncidentStatus,
    IncidentTicket,
    PatternAlert,
    PatternAnalytics,
    RecurringIssue,
    SpamDetection,
    SpamStatus,
    utcnow,
)

from . import config
from .alerts import ThresholdPolicy
from .clusterer import ClusterOutcome, OnlineClusterer
from .errors import SpamCheckError
from .incidents import IncidentEscalator
from .spam import SpamDetector
from .storage import PatternStore, get_store

logger = structlog.get_logger()

INCIDENT_EDITABLE_FIELDS = frozenset({
    "status",
    "assigned_to",
    "estimated_resolution",
    "public_statement",
})


class AnalysisStatus(str, Enum):
    CLUSTERED = "clustered"
    SKIPPED = "skipped"


@dataclass
class AnalysisResult:
    """What happened to one ticket during pattern analysis"""
    ticket_id: int
    status: AnalysisStatus = AnalysisStatus.SKIPPED
    cluster: Optional[ClusterOutcome] = None
    spam: list[SpamDetection] = field(default_factory=list)
    error: Optional[str] = None


class PatternDetector:
    """Ties normalizer, embedder, spam detector, clusterer and escalator together."""

    def __init__(
        self,
        store: PatternStore,
        embedder: EmbeddingProvider,
        normalizer: Optional[TextNormalizer] = None,
        policy: Optional[ThresholdPolicy] = None,
        similarity_threshold: float = config.SIMILARITY_THRESHOLD,
        alert_lookback_hours: int = config.ALERT_LOOKBACK_HOURS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.embedder = embedder
        self.normalizer = normalizer or TextNormalizer()
        self.alert_lookback_hours = alert_lookback_hours
        self.clusterer = OnlineClusterer(
            store,
            policy=policy,
            similarity_threshold=similarity_threshold,
            clock=clock,
        )
        self.spam_detector = SpamDetector(store, embedder, normalizer=self.normalizer)
        self.escalator = IncidentEscalator(store)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def record_ticket(self, ticket: HelpdeskTicket) -> None:
        """Remember a created ticket so later spam checks can see it"""
        await self.store.save_ticket(ticket)

    async def ingest(self, ticket: HelpdeskTicket) -> AnalysisResult:
        """Record a ticket and analyze it right away"""
        await self.record_ticket(ticket)
        return await self.analyze_ticket_pattern(ticket)

    async def analyze_ticket_pattern(self, ticket: HelpdeskTicket) -> AnalysisResult:
        """
        Spam-check and cluster a newly created ticket.

        Never raises; failures are logged and returned as a skipped result.
        The ticket is embedded once and the vector is shared by both steps.
        """
        result = AnalysisResult(ticket_id=ticket.id)

        embedding = None
        try:
            embedding = await self.embedder.embed(self.normalizer.normalize(ticket.fulltext))
        except Exception as e:
            result.error = str(e)

        try:
            result.spam = await self.spam_detector.check(
                ticket, embedding, check_duplicates=embedding is not None,
            )
        except SpamCheckError as e:
            result.spam = e.detections
            logger.error("Spam check failed", ticket_id=ticket.id, error=str(e.__cause__))
        except Exception as e:
            logger.error("Spam check failed", ticket_id=ticket.id, error=str(e))

        if embedding is None:
            logger.error(
                "Pattern analysis skipped",
                ticket_id=ticket.id,
                department=ticket.department,
                error=result.error,
            )
            return result

        try:
            keywords = self.normalizer.extract_keywords(ticket.fulltext)
            result.cluster = await self.clusterer.assign(ticket, embedding, keywords)
            result.status = AnalysisStatus.CLUSTERED
        except Exception as e:
            result.error = str(e)
            logger.error(
                "Pattern analysis skipped",
                ticket_id=ticket.id,
                department=ticket.department,
                error=str(e),
            )

        return result

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    async def get_pattern_analytics(self, department: Optional[str] = None) -> PatternAnalytics:
        """Active clusters, last-day alerts, top recurring issues and pending spam"""
        active_clusters, recent_alerts, spam_detections = await asyncio.gather(
            self.store.get_active_clusters(department),
            self.store.get_recent_pattern_alerts(department, self.alert_lookback_hours),
            self.store.get_pending_spam_detections(department),
        )

        ranked = sorted(active_clusters, key=lambda c: c.member_count, reverse=True)
        top_recurring_issues = [
            RecurringIssue(
                cluster_id=c.id,
                keywords=c.keywords,
                ticket_count=c.member_count,
                department=c.department,
                last_seen=c.last_seen,
            )
            for c in ranked[:config.TOP_RECURRING_LIMIT]
        ]

        return PatternAnalytics(
            active_clusters=active_clusters,
            recent_alerts=recent_alerts,
            top_recurring_issues=top_recurring_issues,
            spam_detections=spam_detections,
        )

    async def list_clusters(self, department: Optional[str] = None) -> list[Cluster]:
        return await self.store.get_active_clusters(department)

    async def list_alerts(self, department: Optional[str] = None, hours: Optional[int] = None) -> list[PatternAlert]:
        return await self.store.get_recent_pattern_alerts(department, hours or self.alert_lookback_hours)

    async def list_spam(self, department: Optional[str] = None) -> list[SpamDetection]:
        return await self.store.get_pending_spam_detections(department)

    async def list_incidents(self, department: Optional[str] = None) -> list[IncidentTicket]:
        return await self.store.get_incidents(department)

    # ------------------------------------------------------------------
    # Administrative actions
    # ------------------------------------------------------------------

    async def create_incident_ticket(self, cluster_id: int, user_id: str) -> IncidentTicket:
        """Escalate a cluster (idempotent per cluster). Raises ClusterNotFoundError."""
        return await self.escalator.escalate(cluster_id, user_id)

    async def acknowledge_alert(self, alert_id: int, user_id: str) -> PatternAlert:
        alert = await self.store.acknowledge_pattern_alert(alert_id, user_id)
        logger.info("Pattern alert acknowledged", alert_id=alert_id, user_id=user_id)
        return alert

    async def review_spam(self, detection_id: int, status: SpamStatus, user_id: str) -> SpamDetection:
        status = SpamStatus(status)
        if status == SpamStatus.PENDING:
            raise ValueError("A review must confirm or dismiss the detection")
        spam = await self.store.update_spam_detection(detection_id, status, user_id)
        logger.info("Spam detection reviewed", detection_id=detection_id, status=status.value, user_id=user_id)
        return spam

    async def deactivate_cluster(self, cluster_id: int) -> Cluster:
        cluster = await self.store.update_cluster(
            cluster_id,
            lambda c: c.model_copy(update={"is_active": False}),
        )
        logger.info("Cluster deactivated", cluster_id=cluster_id, department=cluster.department)
        return cluster

    async def update_incident(self, incident_id: int, **changes: Any) -> IncidentTicket:
        unknown = set(changes) - INCIDENT_EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Incident fields not editable: {', '.join(sorted(unknown))}")
        if "status" in changes:
            changes["status"] = IncidentStatus(changes["status"]).value
        incident = await self.store.update_incident(incident_id, changes)
        logger.info("Incident updated", incident_id=incident_id, fields=sorted(changes))
        return incident


def create_detector(
    store: Optional[PatternStore] = None,
    embedder: Optional[EmbeddingProvider] = None,
) -> PatternDetector:
    """Build a detector from environment configuration"""
    if store is None:
        store = get_store(
            config.PATTERN_STORE,
            host=config.ARANGODB_HOST,
            port=config.ARANGODB_PORT,
            database=config.ARANGODB_DB,
            username=config.ARANGODB_USER,
            password=config.ARANGODB_PASSWORD,
        )
    if embedder is None:
        embedder = get_embedder(
            ollama_url=config.OLLAMA_URL,
            model=config.EMBED_MODEL,
            use_local=config.EMBED_USE_LOCAL,
            dimension=config.EMBED_DIMENSION,
        )
    return PatternDetector(store, embedder)
