"""Unit tests for rapid-submission and duplicate-content spam checks."""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from services.patterns.errors import SpamCheckError
from services.patterns.spam import SpamDetector
from services.patterns.storage import InMemoryPatternStore
from shared.schemas import HelpdeskTicket, SpamReason

BASE_TIME = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)

DISTINCT_TITLES = [
    "Printer jammed paper",
    "Payroll salary missing",
    "Wifi drops constantly",
    "Badge reader broken",
    "Expense report rejected",
    "Meeting room double booked",
    "Laptop battery swelling",
]


@pytest.fixture
def spam_detector(store: InMemoryPatternStore, embedder: Any) -> SpamDetector:
    return SpamDetector(store, embedder)


async def _submit_burst(
    store: InMemoryPatternStore,
    make_ticket: Callable[..., HelpdeskTicket],
    titles: list[str],
    user_id: str = "u-mallory",
    spacing: timedelta = timedelta(minutes=1),
) -> list[HelpdeskTicket]:
    tickets = []
    for i, title in enumerate(titles):
        ticket = make_ticket(title=title, user_id=user_id, created_at=BASE_TIME + spacing * i)
        await store.save_ticket(ticket)
        tickets.append(ticket)
    return tickets


class TestRapidSubmission:
    async def test_third_ticket_in_window_flagged(
        self, spam_detector: SpamDetector, store: InMemoryPatternStore, make_ticket: Callable[..., HelpdeskTicket]
    ) -> None:
        tickets = await _submit_burst(store, make_ticket, DISTINCT_TITLES[:3])

        detections = await spam_detector.check(tickets[2])

        assert [d.reason for d in detections] == [SpamReason.RAPID_SUBMISSION.value]
        spam = detections[0]
        assert spam.id is not None
        assert spam.ticket_id == tickets[2].id
        assert spam.user_id == "u-mallory"
        assert spam.department == "IT"
        assert spam.confidence == 60
        assert spam.status == "pending"

    async def test_second_ticket_not_flagged(
        self, spam_detector: SpamDetector, store: InMemoryPatternStore, make_ticket: Callable[..., HelpdeskTicket]
    ) -> None:
        tickets = await _submit_burst(store, make_ticket, DISTINCT_TITLES[:2])
        assert await spam_detector.check(tickets[1]) == []

    @pytest.mark.parametrize(("count", "confidence"), [(4, 80), (5, 100), (7, 100)])
    async def test_confidence_grows_and_caps(
        self,
        spam_detector: SpamDetector,
        store: InMemoryPatternStore,
        make_ticket: Callable[..., HelpdeskTicket],
        count: int,
        confidence: int,
    ) -> None:
        tickets = await _submit_burst(
            store, make_ticket, DISTINCT_TITLES[:count], spacing=timedelta(seconds=30)
        )
        detections = await spam_detector.check(tickets[-1])
        assert detections[0].reason == SpamReason.RAPID_SUBMISSION.value
        assert detections[0].confidence == confidence

    async def test_tickets_outside_window_ignored(
        self, spam_detector: SpamDetector, store: InMemoryPatternStore, make_ticket: Callable[..., HelpdeskTicket]
    ) -> None:
        tickets = await _submit_burst(
            store, make_ticket, DISTINCT_TITLES[:3], spacing=timedelta(minutes=3)
        )
        # only the ticket 3 minutes earlier is inside the 5 minute window
        assert await spam_detector.check(tickets[2]) == []

    async def test_later_tickets_ignored_on_replay(
        self, spam_detector: SpamDetector, store: InMemoryPatternStore, make_ticket: Callable[..., HelpdeskTicket]
    ) -> None:
        tickets = await _submit_burst(store, make_ticket, DISTINCT_TITLES[:3])
        assert await spam_detector.check(tickets[0]) == []

    async def test_other_users_not_counted(
        self, spam_detector: SpamDetector, store: InMemoryPatternStore, make_ticket: Callable[..., HelpdeskTicket]
    ) -> None:
        await _submit_burst(store, make_ticket, DISTINCT_TITLES[:2], user_id="u-alice")
        tickets = await _submit_burst(store, make_ticket, DISTINCT_TITLES[2:3], user_id="u-bob")
        assert await spam_detector.check(tickets[0]) == []


class TestDuplicateContent:
    async def test_identical_text_flagged(
        self, spam_detector: SpamDetector, store: InMemoryPatternStore, make_ticket: Callable[..., HelpdeskTicket]
    ) -> None:
        tickets = await _submit_burst(store, make_ticket, ["Outlook crashes on start"] * 2)

        detections = await spam_detector.check(tickets[1])

        assert [d.reason for d in detections] == [SpamReason.DUPLICATE_CONTENT.value]
        assert detections[0].confidence == 100

    async def test_ticket_never_compared_with_itself(
        self, spam_detector: SpamDetector, store: InMemoryPatternStore,
        embedder: Any, make_ticket: Callable[..., HelpdeskTicket],
    ) -> None:
        tickets = await _submit_burst(store, make_ticket, ["Outlook crashes on start"])

        assert await spam_detector.check(tickets[0]) == []
        assert embedder.calls == []

    async def test_dissimilar_text_not_flagged(
        self, spam_detector: SpamDetector, store: InMemoryPatternStore, make_ticket: Callable[..., HelpdeskTicket]
    ) -> None:
        tickets = await _submit_burst(store, make_ticket, DISTINCT_TITLES[:2])
        assert await spam_detector.check(tickets[1]) == []

    async def test_stops_at_first_duplicate(
        self, spam_detector: SpamDetector, store: InMemoryPatternStore,
        embedder: Any, make_ticket: Callable[..., HelpdeskTicket],
    ) -> None:
        tickets = await _submit_burst(store, make_ticket, ["VPN keeps disconnecting"] * 3)

        detections = await spam_detector.check(tickets[2])

        reasons = sorted(d.reason for d in detections)
        assert reasons == [SpamReason.DUPLICATE_CONTENT.value, SpamReason.RAPID_SUBMISSION.value]
        # the new ticket plus the newest earlier ticket; the oldest is never embedded
        assert len(embedder.calls) == 2

    async def test_precomputed_embedding_reused(
        self, spam_detector: SpamDetector, store: InMemoryPatternStore,
        embedder: Any, make_ticket: Callable[..., HelpdeskTicket],
    ) -> None:
        tickets = await _submit_burst(store, make_ticket, ["Outlook crashes on start"] * 2)
        embedding = await embedder.embed("outlook crashes start")
        embedder.calls.clear()

        detections = await spam_detector.check(tickets[1], embedding=embedding)

        assert detections[0].reason == SpamReason.DUPLICATE_CONTENT.value
        assert embedder.calls == ["outlook crashes start"]


class TestPersistence:
    async def test_detections_listed_as_pending(
        self, spam_detector: SpamDetector, store: InMemoryPatternStore, make_ticket: Callable[..., HelpdeskTicket]
    ) -> None:
        tickets = await _submit_burst(store, make_ticket, ["VPN keeps disconnecting"] * 3)
        await spam_detector.check(tickets[2])

        pending = await store.get_pending_spam_detections("IT")
        assert len(pending) == 2
        assert await store.get_pending_spam_detections("HR") == []

    async def test_duplicate_failure_reports_stored_detections(
        self, spam_detector: SpamDetector, store: InMemoryPatternStore,
        embedder: Any, make_ticket: Callable[..., HelpdeskTicket],
    ) -> None:
        tickets = await _submit_burst(store, make_ticket, DISTINCT_TITLES[:3])
        embedder.fail = True

        with pytest.raises(SpamCheckError) as exc_info:
            await spam_detector.check(tickets[2], embedding=[1.0] + [0.0] * 255)

        stored = await store.get_pending_spam_detections()
        assert [d.reason for d in exc_info.value.detections] == [SpamReason.RAPID_SUBMISSION.value]
        assert [d.id for d in exc_info.value.detections] == [d.id for d in stored]

    async def test_duplicate_check_can_be_skipped(
        self, spam_detector: SpamDetector, store: InMemoryPatternStore,
        embedder: Any, make_ticket: Callable[..., HelpdeskTicket],
    ) -> None:
        tickets = await _submit_burst(store, make_ticket, ["VPN keeps disconnecting"] * 3)

        detections = await spam_detector.check(tickets[2], check_duplicates=False)

        assert [d.reason for d in detections] == [SpamReason.RAPID_SUBMISSION.value]
        assert embedder.calls == []
