"""Shared pytest configuration and fixtures."""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from services.embed_cluster.embedder import EmbeddingError
from services.patterns.detector import PatternDetector
from services.patterns.storage import InMemoryPatternStore
from shared.schemas import HelpdeskTicket

BASE_TIME = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)


class FakeEmbedder:
    """Deterministic bag-of-words embedder.

    Each distinct token gets its own axis, so texts with no shared tokens are
    orthogonal and identical texts have similarity 1.0.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension
        self.vocabulary: dict[str, int] = {}
        self.calls: list[str] = []
        self.fail = False
        self.fail_on: set[str] = set()

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail or text in self.fail_on:
            raise EmbeddingError("embedding backend unavailable")
        vector = [0.0] * self.dimension
        for token in text.split():
            if token not in self.vocabulary:
                if len(self.vocabulary) >= self.dimension:
                    raise AssertionError("FakeEmbedder vocabulary exhausted")
                self.vocabulary[token] = len(self.vocabulary)
            vector[self.vocabulary[token]] += 1.0
        return vector


@pytest.fixture
def store() -> InMemoryPatternStore:
    return InMemoryPatternStore()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def detector(store: InMemoryPatternStore, embedder: FakeEmbedder) -> PatternDetector:
    return PatternDetector(store, embedder)


@pytest.fixture
def make_ticket() -> Callable[..., HelpdeskTicket]:
    """Factory for tickets with sequential ids and spaced-out creation times.

    Tickets default to distinct users an hour apart so spam checks stay quiet
    unless a test asks for the same user within minutes.
    """
    counter = {"next": 1}

    def _make(
        title: str = "VPN keeps disconnecting",
        description: str = "",
        department: str = "IT",
        user_id: str | None = None,
        created_at: datetime | None = None,
        **overrides: Any,
    ) -> HelpdeskTicket:
        ticket_id = overrides.pop("id", counter["next"])
        counter["next"] = max(counter["next"], ticket_id) + 1
        return HelpdeskTicket(
            id=ticket_id,
            department=department,
            user_id=user_id or f"user-{ticket_id}",
            title=title,
            description=description,
            created_at=created_at or BASE_TIME + timedelta(hours=ticket_id),
            **overrides,
        )

    return _make
