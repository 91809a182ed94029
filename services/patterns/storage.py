"""
Pattern Detector Storage
Storage contract for clusters, alerts, spam detections and incidents, plus an
in-process backend used for single-node deployments, replays and tests.

Read-modify-write on a cluster goes through update_cluster(), which every
backend must apply atomically per cluster so concurrent merges never lose a
member.
"""

import asyncio
import itertools
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import structlog

from shared.schemas import (
    Cluster,
    HelpdeskTicket,
    IncidentTicket,
    PatternAlert,
    SpamDetection,
    SpamStatus,
    utcnow,
)

from . import config
from .errors import (
    AlertNotFoundError,
    ClusterNotFoundError,
    IncidentNotFoundError,
    SpamDetectionNotFoundError,
)

logger = structlog.get_logger()

ClusterMutation = Callable[[Cluster], Cluster]
IncidentBuilder = Callable[[Cluster], IncidentTicket]


class PatternStore(ABC):
    """Storage used by the pattern detector"""

    # ---- tickets ----

    @abstractmethod
    async def save_ticket(self, ticket: HelpdeskTicket) -> None:
        """Record an ingested ticket (needed for per-user recent lookups)"""

    @abstractmethod
    async def get_recent_tickets_by_user(self, user_id: str, since: datetime) -> list[HelpdeskTicket]:
        """Tickets of a user created strictly after since, newest first"""

    # ---- clusters ----

    @abstractmethod
    async def create_cluster(self, cluster: Cluster) -> Cluster:
        ...

    @abstractmethod
    async def get_cluster(self, cluster_id: int) -> Optional[Cluster]:
        ...

    @abstractmethod
    async def get_active_clusters(self, department: Optional[str] = None) -> list[Cluster]:
        """Active clusters, optionally for one department, most recently seen first"""

    @abstractmethod
    async def update_cluster(self, cluster_id: int, mutate: ClusterMutation) -> Cluster:
        """
        Atomically apply mutate to the latest stored version of a cluster.

        mutate may be called more than once if the backend retries; it must
        be a pure function of its argument. Raises ClusterNotFoundError.
        """

    # ---- incidents ----

    @abstractmethod
    async def create_incident_for_cluster(
        self,
        cluster_id: int,
        build: IncidentBuilder,
    ) -> tuple[IncidentTicket, bool]:
        """
        Create and link the incident for a cluster unless one already exists.

        Returns (incident, created). Raises ClusterNotFoundError.
        """

    @abstractmethod
    async def get_incident(self, incident_id: int) -> Optional[IncidentTicket]:
        ...

    @abstractmethod
    async def get_incidents(self, department: Optional[str] = None) -> list[IncidentTicket]:
        ...

    @abstractmethod
    async def update_incident(self, incident_id: int, changes: dict[str, Any]) -> IncidentTicket:
        ...

    # ---- alerts ----

    @abstractmethod
    async def create_pattern_alert(self, alert: PatternAlert) -> PatternAlert:
        ...

    @abstractmethod
    async def get_recent_pattern_alerts(
        self,
        department: Optional[str] = None,
        hours: int = 24,
    ) -> list[PatternAlert]:
        ...

    @abstractmethod
    async def acknowledge_pattern_alert(self, alert_id: int, user_id: str) -> PatternAlert:
        ...

    # ---- spam ----

    @abstractmethod
    async def create_spam_detection(self, spam: SpamDetection) -> SpamDetection:
        ...

    @abstractmethod
    async def get_pending_spam_detections(self, department: Optional[str] = None) -> list[SpamDetection]:
        ...

    @abstractmethod
    async def update_spam_detection(
        self,
        detection_id: int,
        status: SpamStatus,
        reviewed_by: str,
    ) -> SpamDetection:
        ...

    def check_health(self) -> bool:
        return True


class InMemoryPatternStore(PatternStore):
    """
    Process-local store.

    Cluster updates are serialized with one asyncio.Lock per cluster id.
    Records are copied on the way in and out so callers never share state
    with the store. Tickets are only needed for per-user spam lookups, so
    tickets older than the retention window (measured from the newest
    created_at seen) are dropped as newer ones arrive.
    """

    def __init__(self, ticket_retention: timedelta = timedelta(minutes=config.SPAM_TIME_WINDOW_MINUTES)):
        self._tickets: dict[int, HelpdeskTicket] = {}
        self._ticket_retention = ticket_retention
        self._newest_ticket_at: Optional[datetime] = None
        self._clusters: dict[int, Cluster] = {}
        self._incidents: dict[int, IncidentTicket] = {}
        self._alerts: dict[int, PatternAlert] = {}
        self._spam: dict[int, SpamDetection] = {}
        self._cluster_locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._ids = {
            name: itertools.count(1)
            for name in ("clusters", "incidents", "alerts", "spam")
        }

    def _next_id(self, name: str) -> int:
        return next(self._ids[name])

    # ---- tickets ----

    async def save_ticket(self, ticket: HelpdeskTicket) -> None:
        self._tickets[ticket.id] = ticket.model_copy(deep=True)
        if self._newest_ticket_at is None or ticket.created_at > self._newest_ticket_at:
            self._newest_ticket_at = ticket.created_at
            self._prune_tickets(ticket.created_at - self._ticket_retention)

    def _prune_tickets(self, cutoff: datetime) -> None:
        stale = [tid for tid, t in self._tickets.items() if t.created_at <= cutoff]
        for tid in stale:
            del self._tickets[tid]
        if stale:
            logger.debug("Pruned stale tickets", count=len(stale), cutoff=cutoff.isoformat())

    async def get_recent_tickets_by_user(self, user_id: str, since: datetime) -> list[HelpdeskTicket]:
        recent = [
            t for t in self._tickets.values()
            if t.user_id == user_id and t.created_at > since
        ]
        recent.sort(key=lambda t: t.created_at, reverse=True)
        return [t.model_copy(deep=True) for t in recent]

    # ---- clusters ----

    async def create_cluster(self, cluster: Cluster) -> Cluster:
        stored = cluster.model_copy(deep=True, update={"id": self._next_id("clusters")})
        self._clusters[stored.id] = stored
        return stored.model_copy(deep=True)

    async def get_cluster(self, cluster_id: int) -> Optional[Cluster]:
        cluster = self._clusters.get(cluster_id)
        return cluster.model_copy(deep=True) if cluster else None

    async def get_active_clusters(self, department: Optional[str] = None) -> list[Cluster]:
        clusters = [
            c for c in self._clusters.values()
            if c.is_active and (department is None or c.department == department)
        ]
        clusters.sort(key=lambda c: c.last_seen, reverse=True)
        return [c.model_copy(deep=True) for c in clusters]

    async def update_cluster(self, cluster_id: int, mutate: ClusterMutation) -> Cluster:
        async with self._cluster_locks[cluster_id]:
            current = self._clusters.get(cluster_id)
            if current is None:
                raise ClusterNotFoundError(cluster_id)
            updated = mutate(current.model_copy(deep=True))
            self._clusters[cluster_id] = updated.model_copy(deep=True, update={"id": cluster_id})
            return self._clusters[cluster_id].model_copy(deep=True)

    # ---- incidents ----

    async def create_incident_for_cluster(
        self,
        cluster_id: int,
        build: IncidentBuilder,
    ) -> tuple[IncidentTicket, bool]:
        async with self._cluster_locks[cluster_id]:
            cluster = self._clusters.get(cluster_id)
            if cluster is None:
                raise ClusterNotFoundError(cluster_id)

            if cluster.incident_ticket_id is not None:
                existing = self._incidents.get(cluster.incident_ticket_id)
                if existing is not None:
                    return existing.model_copy(deep=True), False

            incident = build(cluster.model_copy(deep=True))
            incident = incident.model_copy(deep=True, update={"id": self._next_id("incidents")})
            self._incidents[incident.id] = incident
            self._clusters[cluster_id] = cluster.model_copy(update={"incident_ticket_id": incident.id})
            return incident.model_copy(deep=True), True

    async def get_incident(self, incident_id: int) -> Optional[IncidentTicket]:
        incident = self._incidents.get(incident_id)
        return incident.model_copy(deep=True) if incident else None

    async def get_incidents(self, department: Optional[str] = None) -> list[IncidentTicket]:
        incidents = [
            i for i in self._incidents.values()
            if department is None or i.department == department
        ]
        incidents.sort(key=lambda i: i.created_at, reverse=True)
        return [i.model_copy(deep=True) for i in incidents]

    async def update_incident(self, incident_id: int, changes: dict[str, Any]) -> IncidentTicket:
        incident = self._incidents.get(incident_id)
        if incident is None:
            raise IncidentNotFoundError(incident_id)
        updated = IncidentTicket.model_validate({
            **incident.model_dump(),
            **changes,
            "id": incident_id,
            "updated_at": utcnow(),
        })
        self._incidents[incident_id] = updated
        return updated.model_copy(deep=True)

    # ---- alerts ----

    async def create_pattern_alert(self, alert: PatternAlert) -> PatternAlert:
        stored = alert.model_copy(deep=True, update={"id": self._next_id("alerts")})
        self._alerts[stored.id] = stored
        return stored.model_copy(deep=True)

    async def get_recent_pattern_alerts(
        self,
        department: Optional[str] = None,
        hours: int = 24,
    ) -> list[PatternAlert]:
        since = utcnow() - timedelta(hours=hours)
        alerts = [
            a for a in self._alerts.values()
            if a.created_at > since and (department is None or a.department == department)
        ]
        alerts.sort(key=lambda a: a.created_at, reverse=True)
        return [a.model_copy(deep=True) for a in alerts]

    async def acknowledge_pattern_alert(self, alert_id: int, user_id: str) -> PatternAlert:
        alert = self._alerts.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        alert = alert.model_copy(update={
            "acknowledged": True,
            "acknowledged_by": user_id,
            "acknowledged_at": utcnow(),
        })
        self._alerts[alert_id] = alert
        return alert.model_copy(deep=True)

    # ---- spam ----

    async def create_spam_detection(self, spam: SpamDetection) -> SpamDetection:
        stored = spam.model_copy(deep=True, update={"id": self._next_id("spam")})
        self._spam[stored.id] = stored
        return stored.model_copy(deep=True)

    async def get_pending_spam_detections(self, department: Optional[str] = None) -> list[SpamDetection]:
        pending = [
            s for s in self._spam.values()
            if s.status == SpamStatus.PENDING and (department is None or s.department == department)
        ]
        pending.sort(key=lambda s: s.created_at, reverse=True)
        return [s.model_copy(deep=True) for s in pending]

    async def update_spam_detection(
        self,
        detection_id: int,
        status: SpamStatus,
        reviewed_by: str,
    ) -> SpamDetection:
        spam = self._spam.get(detection_id)
        if spam is None:
            raise SpamDetectionNotFoundError(detection_id)
        spam = spam.model_copy(update={
            "status": SpamStatus(status).value,
            "reviewed_by": reviewed_by,
            "reviewed_at": utcnow(),
        })
        self._spam[detection_id] = spam
        return spam.model_copy(deep=True)


def get_store(backend: str = "memory", **kwargs) -> PatternStore:
    """
    Create the configured store backend.

    Args:
        backend: "memory" or "arango"
        kwargs: Connection settings passed to the ArangoDB backend
    """
    if backend == "memory":
        logger.info("Using in-memory pattern store")
        return InMemoryPatternStore()
    if backend == "arango":
        from .arango_store import ArangoPatternStore
        return ArangoPatternStore(**kwargs)
    raise ValueError(f"Unknown pattern store backend: {backend}")
