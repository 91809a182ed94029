"""
Online Ticket Clustering
Assigns each incoming ticket to the most similar active cluster of its
department, or opens a new cluster when nothing is similar enough
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import structlog

from services.embed_cluster.similarity import cosine_similarity, running_mean
from shared.schemas import Cluster, HelpdeskTicket, PatternAlert, utcnow

from . import config
from .alerts import ThresholdPolicy
from .storage import PatternStore

logger = structlog.get_logger()


@dataclass
class ClusterOutcome:
    """Result of assigning one ticket"""
    cluster_id: int
    merged: bool
    member_count: int
    similarity: Optional[float] = None
    alert: Optional[PatternAlert] = None


class OnlineClusterer:
    """Incremental centroid clustering scoped by department."""

    def __init__(
        self,
        store: PatternStore,
        policy: Optional[ThresholdPolicy] = None,
        similarity_threshold: float = config.SIMILARITY_THRESHOLD,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.policy = policy or ThresholdPolicy()
        self.similarity_threshold = similarity_threshold
        self.clock = clock

    async def find_best_match(
        self,
        department: str,
        embedding: list[float],
    ) -> tuple[Optional[Cluster], float]:
        """
        Most similar active cluster of the department at or above the threshold.

        On equal similarity the first candidate seen wins.
        """
        best: Optional[Cluster] = None
        best_similarity = 0.0
        for cluster in await self.store.get_active_clusters(department):
            if cluster.department != department:
                continue
            similarity = cosine_similarity(embedding, cluster.centroid_embedding)
            if similarity < self.similarity_threshold:
                continue
            if best is None or similarity > best_similarity:
                best = cluster
                best_similarity = similarity
        return best, best_similarity

    async def assign(
        self,
        ticket: HelpdeskTicket,
        embedding: list[float],
        keywords: list[str],
    ) -> ClusterOutcome:
        """Merge the ticket into its best-matching cluster or open a new one"""
        match, similarity = await self.find_best_match(ticket.department, embedding)
        if match is None:
            return await self._open_cluster(ticket, embedding, keywords)
        return await self._merge(match, ticket, embedding, similarity)

    async def _open_cluster(
        self,
        ticket: HelpdeskTicket,
        embedding: list[float],
        keywords: list[str],
    ) -> ClusterOutcome:
        now = self.clock()
        cluster = await self.store.create_cluster(Cluster(
            department=ticket.department,
            keywords=keywords,
            centroid_embedding=list(embedding),
            member_ticket_ids=[ticket.id],
            first_seen=now,
            last_seen=now,
            created_at=now,
        ))
        logger.info(
            "Cluster created",
            cluster_id=cluster.id,
            department=cluster.department,
            ticket_id=ticket.id,
            keywords=keywords[:3],
        )
        return ClusterOutcome(cluster_id=cluster.id, merged=False, member_count=1)

    async def _merge(
        self,
        match: Cluster,
        ticket: HelpdeskTicket,
        embedding: list[float],
        similarity: float,
    ) -> ClusterOutcome:
        now = self.clock()
        decision = {"alert": False}

        def apply(current: Cluster) -> Cluster:
            if ticket.id in current.member_ticket_ids:
                decision["alert"] = False
                return current
            merged = current.model_copy(update={
                "member_ticket_ids": [*current.member_ticket_ids, ticket.id],
                "centroid_embedding": running_mean(
                    current.centroid_embedding, embedding, current.member_count
                ),
                "last_seen": now,
            })
            decision["alert"] = self.policy.should_alert(merged)
            if decision["alert"]:
                merged = merged.model_copy(update={"alert_sent": True})
            return merged

        updated = await self.store.update_cluster(match.id, apply)
        logger.info(
            "Ticket merged into cluster",
            cluster_id=updated.id,
            ticket_id=ticket.id,
            similarity=round(similarity, 4),
            members=updated.member_count,
        )

        alert = None
        if decision["alert"]:
            try:
                alert = await self.store.create_pattern_alert(self.policy.build_alert(updated))
            except Exception as e:
                # alert_sent is already set, so no later merge will retry
                logger.error(
                    "Pattern alert lost",
                    cluster_id=updated.id,
                    department=updated.department,
                    members=updated.member_count,
                    error=str(e),
                )
                raise
            logger.warning(
                "Pattern alert raised",
                cluster_id=updated.id,
                department=updated.department,
                severity=alert.severity,
                members=updated.member_count,
            )

        return ClusterOutcome(
            cluster_id=updated.id,
            merged=True,
            member_count=updated.member_count,
            similarity=similarity,
            alert=alert,
        )
