"""
Incident Escalation
Promotes a cluster into an aggregate incident ticket
"""

import structlog

from shared.schemas import Cluster, IncidentPriority, IncidentTicket

from .storage import PatternStore

logger = structlog.get_logger()

URGENT_MEMBER_COUNT = 10


def build_incident(cluster: Cluster, requested_by: str) -> IncidentTicket:
    """Synthesize the incident for a cluster from its keywords and size"""
    count = cluster.member_count
    topics = " and ".join(cluster.keywords[:2])
    return IncidentTicket(
        cluster_id=cluster.id,
        title=f"Incident: Multiple reports of {topics} issues",
        description=(
            f"This incident encompasses {count} related tickets reporting similar issues. "
            f"Keywords: {', '.join(cluster.keywords)}"
        ),
        priority=IncidentPriority.URGENT if count >= URGENT_MEMBER_COUNT else IncidentPriority.HIGH,
        department=cluster.department,
        impacted_users=count,
        created_by=requested_by,
    )


class IncidentEscalator:
    """
    Creates at most one incident per cluster.

    Escalating an already-escalated cluster returns the linked incident
    instead of creating another one.
    """

    def __init__(self, store: PatternStore):
        self.store = store

    async def escalate(self, cluster_id: int, user_id: str) -> IncidentTicket:
        """
        Escalate a cluster.

        Raises:
            ClusterNotFoundError: cluster_id does not exist
        """
        incident, created = await self.store.create_incident_for_cluster(
            cluster_id,
            lambda cluster: build_incident(cluster, user_id),
        )
        if created:
            logger.info(
                "Incident created",
                incident_id=incident.id,
                cluster_id=cluster_id,
                priority=incident.priority,
                impacted_users=incident.impacted_users,
                requested_by=user_id,
            )
        else:
            logger.info(
                "Cluster already escalated",
                incident_id=incident.id,
                cluster_id=cluster_id,
                requested_by=user_id,
            )
        return incident
