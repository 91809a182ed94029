#!/usr/bin/env python3
"""
Pattern Replay Runner - Replays a ticket export through the pattern detector
(spam check -> normalize -> embed -> cluster -> alert) and prints the
resulting dashboard analytics as JSON.
"""

import asyncio
import json
import sys

import click
import structlog

from services.patterns import config
from services.patterns.detector import AnalysisStatus, create_detector
from services.patterns.storage import get_store
from services.embed_cluster.embedder import get_embedder
from shared.schemas import HelpdeskTicket

log = structlog.get_logger()


def load_tickets(input_file: str) -> list[HelpdeskTicket]:
    """Load tickets from a JSON list (or {"tickets": [...]}) sorted by creation time"""
    with open(input_file) as f:
        raw = json.load(f)
    if isinstance(raw, dict):
        raw = raw.get("tickets", [])

    tickets = []
    for item in raw:
        try:
            tickets.append(HelpdeskTicket.model_validate(item))
        except ValueError as e:
            log.warning("Skipping invalid ticket", ticket_id=item.get("id"), error=str(e))
    tickets.sort(key=lambda t: t.created_at)
    return tickets


async def replay(tickets: list[HelpdeskTicket], detector, department: str = None) -> dict:
    """Feed tickets through the detector in creation order"""
    clustered = skipped = spam_flags = 0
    for ticket in tickets:
        result = await detector.ingest(ticket)
        spam_flags += len(result.spam)
        if result.status == AnalysisStatus.CLUSTERED:
            clustered += 1
        else:
            skipped += 1

    log.info("Replay complete", tickets=len(tickets), clustered=clustered,
             skipped=skipped, spam_flags=spam_flags)

    analytics = await detector.get_pattern_analytics(department)
    return analytics.model_dump(mode="json", exclude={"active_clusters": {"__all__": {"centroid_embedding"}}})


@click.command()
@click.option("--input", "-i", "input_file", required=True, help="Input JSON file with tickets")
@click.option("--output", "-o", "output_file", default=None, help="Write analytics JSON here instead of stdout")
@click.option("--department", "-d", default=None, help="Only report analytics for this department")
@click.option("--store", type=click.Choice(["memory", "arango"]), default=None,
              help="Store backend (default: from PATTERN_STORE env or memory)")
@click.option("--ollama-url", default=None, help="Ollama URL (default: from OLLAMA_URL env or http://ollama:11434)")
@click.option("--model", default=None, help="Embedding model (default: from EMBED_MODEL env)")
@click.option("--use-local", is_flag=True, help="Use a local sentence-transformers model instead of Ollama")
def main(input_file: str, output_file: str, department: str, store: str,
         ollama_url: str, model: str, use_local: bool):
    """Replay tickets through the pattern detector."""
    backend = store or config.PATTERN_STORE
    ollama_url_resolved = ollama_url or config.OLLAMA_URL
    log.info("Replay config", store=backend, ollama_url=ollama_url_resolved, use_local=use_local)

    detector = create_detector(
        store=get_store(
            backend,
            host=config.ARANGODB_HOST,
            port=config.ARANGODB_PORT,
            database=config.ARANGODB_DB,
            username=config.ARANGODB_USER,
            password=config.ARANGODB_PASSWORD,
        ) if backend == "arango" else get_store(backend),
        embedder=get_embedder(
            ollama_url=ollama_url_resolved,
            model=model or config.EMBED_MODEL,
            use_local=use_local or config.EMBED_USE_LOCAL,
            dimension=config.EMBED_DIMENSION,
        ),
    )

    log.info("Loading input tickets", file=input_file)
    tickets = load_tickets(input_file)
    log.info("Loaded tickets", count=len(tickets))

    analytics = asyncio.run(replay(tickets, detector, department))

    payload = json.dumps(analytics, indent=2)
    if output_file:
        with open(output_file, "w") as f:
            f.write(payload)
        log.info("Analytics written", output=output_file)
    else:
        click.echo(payload)


if __name__ == "__main__":
    sys.exit(main())
