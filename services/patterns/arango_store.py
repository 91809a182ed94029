"""
ArangoDB Storage for the Pattern Detector
Persists tickets, clusters, incidents, alerts and spam detections

Cluster updates use optimistic concurrency on the document revision (_rev):
the mutation is re-applied to a fresh read until the write lands or retries
run out. One incident per cluster is enforced by a unique index on cluster_id.
"""

from datetime import datetime, timedelta
from typing import Any, Optional, Type, TypeVar

import structlog
from arango import ArangoClient
from arango.database import StandardDatabase
from arango.exceptions import DocumentInsertError, DocumentRevisionError
from pydantic import BaseModel

from shared.schemas import (
    Cluster,
    HelpdeskTicket,
    IncidentTicket,
    PatternAlert,
    SpamDetection,
    SpamStatus,
    utcnow,
)

from .errors import (
    AlertNotFoundError,
    ClusterNotFoundError,
    IncidentNotFoundError,
    SpamDetectionNotFoundError,
    StoreConflictError,
)
from .storage import ClusterMutation, IncidentBuilder, PatternStore

logger = structlog.get_logger()

# Collection names
TICKETS = "helpdesk_tickets"
CLUSTERS = "pattern_clusters"
INCIDENTS = "incident_tickets"
ALERTS = "pattern_alerts"
SPAM = "spam_detections"

# ArangoDB error code for unique index violations
UNIQUE_CONSTRAINT_VIOLATED = 1210

ModelT = TypeVar("ModelT", bound=BaseModel)


class ArangoPatternStore(PatternStore):
    """ArangoDB storage for pattern detection records"""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8529,
        database: str = "helpdesk",
        username: str = "root",
        password: str = "",
        max_retries: int = 5,
    ):
        self.host = host
        self.port = port
        self.database_name = database
        self.username = username
        self.password = password
        self.max_retries = max_retries
        self._client: Optional[ArangoClient] = None
        self._db: Optional[StandardDatabase] = None
        self._connect()
        self._ensure_collections()

    def _connect(self):
        """Establish connection to ArangoDB"""
        try:
            self._client = ArangoClient(hosts=f"http://{self.host}:{self.port}")
            if self.password:
                self._db = self._client.db(
                    self.database_name, username=self.username, password=self.password
                )
            else:
                self._db = self._client.db(self.database_name)
            logger.info("Connected to ArangoDB", host=self.host, database=self.database_name)
        except Exception as e:
            logger.error("Failed to connect to ArangoDB", error=str(e))
            raise

    def _ensure_collections(self):
        """Create collections and indexes if missing"""
        if not self._db.has_collection(TICKETS):
            self._db.create_collection(TICKETS)
        for name in (CLUSTERS, INCIDENTS, ALERTS, SPAM):
            if not self._db.has_collection(name):
                self._db.create_collection(name, key_generator="autoincrement")
                logger.info("Created collection", name=name)

        self._db.collection(TICKETS).add_index(
            {"type": "persistent", "fields": ["user_id", "created_at"]}
        )
        self._db.collection(CLUSTERS).add_index(
            {"type": "persistent", "fields": ["department", "is_active"]}
        )
        self._db.collection(INCIDENTS).add_index(
            {"type": "persistent", "fields": ["cluster_id"], "unique": True}
        )

    def check_health(self) -> bool:
        """Check database connectivity"""
        try:
            if self._db:
                self._db.version()
                return True
        except Exception as e:
            logger.warning("ArangoDB health check failed", error=str(e))
        return False

    # ---- document mapping ----

    @staticmethod
    def _to_doc(model: BaseModel) -> dict:
        return model.model_dump(mode="json", exclude={"id"})

    @staticmethod
    def _from_doc(model_cls: Type[ModelT], doc: dict) -> ModelT:
        data = {k: v for k, v in doc.items() if not k.startswith("_")}
        data["id"] = int(doc["_key"])
        return model_cls.model_validate(data)

    def _insert(self, collection: str, model: ModelT) -> ModelT:
        meta = self._db.collection(collection).insert(self._to_doc(model), return_new=True)
        return self._from_doc(type(model), meta["new"])

    def _get(self, collection: str, model_cls: Type[ModelT], record_id: int) -> Optional[ModelT]:
        doc = self._db.collection(collection).get(str(record_id))
        return self._from_doc(model_cls, doc) if doc else None

    def _patch(self, collection: str, model_cls: Type[ModelT], record_id: int, changes: dict) -> Optional[ModelT]:
        col = self._db.collection(collection)
        if not col.has(str(record_id)):
            return None
        meta = col.update({"_key": str(record_id), **changes}, return_new=True)
        return self._from_doc(model_cls, meta["new"])

    def _query(self, model_cls: Type[ModelT], aql: str, **bind_vars) -> list[ModelT]:
        cursor = self._db.aql.execute(aql, bind_vars=bind_vars)
        return [self._from_doc(model_cls, doc) for doc in cursor]

    # ---- tickets ----

    async def save_ticket(self, ticket: HelpdeskTicket) -> None:
        doc = {"_key": str(ticket.id), **ticket.model_dump(mode="json")}
        self._db.collection(TICKETS).insert(doc, overwrite=True)

    async def get_recent_tickets_by_user(self, user_id: str, since: datetime) -> list[HelpdeskTicket]:
        cursor = self._db.aql.execute(
            f"""
            FOR t IN {TICKETS}
                FILTER t.user_id == @user_id
                FILTER DATE_TIMESTAMP(t.created_at) > DATE_TIMESTAMP(@since)
                SORT t.created_at DESC
                RETURN UNSET(t, "_key", "_id", "_rev")
            """,
            bind_vars={"user_id": user_id, "since": since.isoformat()},
        )
        return [HelpdeskTicket.model_validate(doc) for doc in cursor]

    # ---- clusters ----

    async def create_cluster(self, cluster: Cluster) -> Cluster:
        stored = self._insert(CLUSTERS, cluster)
        logger.debug("Stored cluster", cluster_id=stored.id, department=stored.department)
        return stored

    async def get_cluster(self, cluster_id: int) -> Optional[Cluster]:
        return self._get(CLUSTERS, Cluster, cluster_id)

    async def get_active_clusters(self, department: Optional[str] = None) -> list[Cluster]:
        return self._query(
            Cluster,
            f"""
            FOR c IN {CLUSTERS}
                FILTER c.is_active == true
                FILTER @department == null OR c.department == @department
                SORT c.last_seen DESC
                RETURN c
            """,
            department=department,
        )

    async def update_cluster(self, cluster_id: int, mutate: ClusterMutation) -> Cluster:
        col = self._db.collection(CLUSTERS)
        for attempt in range(self.max_retries):
            doc = col.get(str(cluster_id))
            if doc is None:
                raise ClusterNotFoundError(cluster_id)

            updated = mutate(self._from_doc(Cluster, doc))
            body = {"_key": doc["_key"], "_rev": doc["_rev"], **self._to_doc(updated)}
            try:
                col.replace(body, check_rev=True)
                return updated.model_copy(update={"id": cluster_id})
            except DocumentRevisionError:
                logger.debug("Cluster revision conflict, retrying", cluster_id=cluster_id, attempt=attempt + 1)

        logger.error("Cluster update kept conflicting", cluster_id=cluster_id, retries=self.max_retries)
        raise StoreConflictError(f"Cluster {cluster_id} update conflicted {self.max_retries} times")

    # ---- incidents ----

    async def create_incident_for_cluster(
        self,
        cluster_id: int,
        build: IncidentBuilder,
    ) -> tuple[IncidentTicket, bool]:
        cluster = await self.get_cluster(cluster_id)
        if cluster is None:
            raise ClusterNotFoundError(cluster_id)

        if cluster.incident_ticket_id is not None:
            existing = await self.get_incident(cluster.incident_ticket_id)
            if existing is not None:
                return existing, False

        created = True
        try:
            incident = self._insert(INCIDENTS, build(cluster))
        except DocumentInsertError as e:
            if e.error_code != UNIQUE_CONSTRAINT_VIOLATED:
                raise
            # Another request escalated this cluster first
            created = False
            incident = self._query(
                IncidentTicket,
                f"FOR i IN {INCIDENTS} FILTER i.cluster_id == @cluster_id LIMIT 1 RETURN i",
                cluster_id=cluster_id,
            )[0]

        await self.update_cluster(
            cluster_id,
            lambda c: c.model_copy(update={"incident_ticket_id": incident.id}),
        )
        return incident, created

    async def get_incident(self, incident_id: int) -> Optional[IncidentTicket]:
        return self._get(INCIDENTS, IncidentTicket, incident_id)

    async def get_incidents(self, department: Optional[str] = None) -> list[IncidentTicket]:
        return self._query(
            IncidentTicket,
            f"""
            FOR i IN {INCIDENTS}
                FILTER @department == null OR i.department == @department
                SORT i.created_at DESC
                RETURN i
            """,
            department=department,
        )

    async def update_incident(self, incident_id: int, changes: dict[str, Any]) -> IncidentTicket:
        current = await self.get_incident(incident_id)
        if current is None:
            raise IncidentNotFoundError(incident_id)
        merged = IncidentTicket.model_validate({
            **current.model_dump(),
            **changes,
            "updated_at": utcnow(),
        })
        return self._patch(INCIDENTS, IncidentTicket, incident_id, self._to_doc(merged))

    # ---- alerts ----

    async def create_pattern_alert(self, alert: PatternAlert) -> PatternAlert:
        return self._insert(ALERTS, alert)

    async def get_recent_pattern_alerts(
        self,
        department: Optional[str] = None,
        hours: int = 24,
    ) -> list[PatternAlert]:
        since = utcnow() - timedelta(hours=hours)
        return self._query(
            PatternAlert,
            f"""
            FOR a IN {ALERTS}
                FILTER DATE_TIMESTAMP(a.created_at) > DATE_TIMESTAMP(@since)
                FILTER @department == null OR a.department == @department
                SORT a.created_at DESC
                RETURN a
            """,
            since=since.isoformat(),
            department=department,
        )

    async def acknowledge_pattern_alert(self, alert_id: int, user_id: str) -> PatternAlert:
        alert = self._patch(ALERTS, PatternAlert, alert_id, {
            "acknowledged": True,
            "acknowledged_by": user_id,
            "acknowledged_at": utcnow().isoformat(),
        })
        if alert is None:
            raise AlertNotFoundError(alert_id)
        return alert

    # ---- spam ----

    async def create_spam_detection(self, spam: SpamDetection) -> SpamDetection:
        return self._insert(SPAM, spam)

    async def get_pending_spam_detections(self, department: Optional[str] = None) -> list[SpamDetection]:
        return self._query(
            SpamDetection,
            f"""
            FOR s IN {SPAM}
                FILTER s.status == @status
                FILTER @department == null OR s.department == @department
                SORT s.created_at DESC
                RETURN s
            """,
            status=SpamStatus.PENDING.value,
            department=department,
        )

    async def update_spam_detection(
        self,
        detection_id: int,
        status: SpamStatus,
        reviewed_by: str,
    ) -> SpamDetection:
        spam = self._patch(SPAM, SpamDetection, detection_id, {
            "status": SpamStatus(status).value,
            "reviewed_by": reviewed_by,
            "reviewed_at": utcnow().isoformat(),
        })
        if spam is None:
            raise SpamDetectionNotFoundError(detection_id)
        return spam
