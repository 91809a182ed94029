"""
Spam Detection
Flags rapid-fire submissions and near-duplicate tickets from the same user
"""

from datetime import timedelta
from typing import Optional

import structlog

from services.embed_cluster.embedder import EmbeddingProvider
from services.embed_cluster.similarity import cosine_similarity
from services.normalize.normalizer import TextNormalizer
from shared.schemas import HelpdeskTicket, SpamDetection, SpamReason

from . import config
from .errors import SpamCheckError
from .storage import PatternStore

logger = structlog.get_logger()


class SpamDetector:
    """
    Checks a newly created ticket against the same user's recent tickets.

    The look-back window ends at the ticket's own created_at, and the ticket
    counts toward its own rapid-submission total.
    """

    def __init__(
        self,
        store: PatternStore,
        embedder: EmbeddingProvider,
        normalizer: Optional[TextNormalizer] = None,
        rapid_threshold: int = config.SPAM_RAPID_SUBMISSION_THRESHOLD,
        window_minutes: int = config.SPAM_TIME_WINDOW_MINUTES,
        duplicate_threshold: float = config.SPAM_DUPLICATE_THRESHOLD,
    ):
        self.store = store
        self.embedder = embedder
        self.normalizer = normalizer or TextNormalizer()
        self.rapid_threshold = rapid_threshold
        self.window_minutes = window_minutes
        self.duplicate_threshold = duplicate_threshold

    async def check(
        self,
        ticket: HelpdeskTicket,
        embedding: Optional[list[float]] = None,
        check_duplicates: bool = True,
    ) -> list[SpamDetection]:
        """
        Run both spam checks and persist what they find.

        Args:
            ticket: The newly created ticket
            embedding: Embedding of the ticket's normalized text, if already computed
            check_duplicates: False skips the duplicate-content check (no usable embedding)

        Returns:
            Stored spam detections (0, 1 or 2)

        Raises:
            SpamCheckError: the duplicate check failed; carries the detections
                stored before the failure
        """
        since = ticket.created_at - timedelta(minutes=self.window_minutes)
        recent = [
            t for t in await self.store.get_recent_tickets_by_user(ticket.user_id, since)
            if t.id != ticket.id and t.created_at <= ticket.created_at
        ]

        detections = []
        rapid = self.check_rapid_submission(ticket, recent)
        if rapid is not None:
            detections.append(await self._record(ticket, rapid))

        if not check_duplicates:
            return detections

        try:
            duplicate = await self.check_duplicate_content(ticket, recent, embedding)
        except Exception as e:
            raise SpamCheckError(ticket.id, detections) from e
        if duplicate is not None:
            detections.append(await self._record(ticket, duplicate))
        return detections

    async def _record(self, ticket: HelpdeskTicket, detection: SpamDetection) -> SpamDetection:
        stored = await self.store.create_spam_detection(detection)
        logger.warning(
            "Spam detected",
            ticket_id=ticket.id,
            user_id=ticket.user_id,
            reason=stored.reason,
            confidence=stored.confidence,
        )
        return stored

    def check_rapid_submission(
        self,
        ticket: HelpdeskTicket,
        recent: list[HelpdeskTicket],
    ) -> Optional[SpamDetection]:
        """Flag the ticket when the user reached the submission limit inside the window"""
        count = len(recent) + 1
        if count < self.rapid_threshold:
            return None
        return SpamDetection(
            ticket_id=ticket.id,
            user_id=ticket.user_id,
            department=ticket.department,
            reason=SpamReason.RAPID_SUBMISSION,
            confidence=min(100, 60 + (count - self.rapid_threshold) * 20),
        )

    async def check_duplicate_content(
        self,
        ticket: HelpdeskTicket,
        recent: list[HelpdeskTicket],
        embedding: Optional[list[float]] = None,
    ) -> Optional[SpamDetection]:
        """Flag the ticket on the first recent ticket with near-identical text"""
        if not recent:
            return None

        if embedding is None:
            embedding = await self.embedder.embed(self.normalizer.normalize(ticket.fulltext))

        for other in recent:
            other_embedding = await self.embedder.embed(self.normalizer.normalize(other.fulltext))
            similarity = cosine_similarity(embedding, other_embedding)
            if similarity >= self.duplicate_threshold:
                logger.debug(
                    "Duplicate content match",
                    ticket_id=ticket.id,
                    duplicate_of=other.id,
                    similarity=round(similarity, 4),
                )
                return SpamDetection(
                    ticket_id=ticket.id,
                    user_id=ticket.user_id,
                    department=ticket.department,
                    reason=SpamReason.DUPLICATE_CONTENT,
                    confidence=round(similarity * 100),
                )
        return None
