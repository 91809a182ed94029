"""
Ticket Embedding Service
Generates embeddings for normalized ticket text using Ollama or sentence-transformers
"""

import asyncio
from typing import Optional, Protocol

import httpx
import structlog

logger = structlog.get_logger()


class EmbeddingError(RuntimeError):
    """The embedding backend failed to produce a vector"""


class EmbeddingProvider(Protocol):
    """Anything that turns text into a fixed-length vector"""

    async def embed(self, text: str) -> list[float]:
        ...


class TicketEmbedder:
    """
    Generates embeddings for ticket text.

    Supports two backends:
    1. Ollama (default, GPU-accelerated on server)
    2. Sentence-transformers (local, runs in a worker thread)

    Backend failures raise EmbeddingError; no vector is ever guessed.
    """

    # Max characters to send to embedding model
    MAX_TEXT_LENGTH = 60000

    def __init__(
        self,
        ollama_url: str = "http://localhost:11434",
        model: str = "qwen3-embedding:8b",
        use_local: bool = False,
        max_length: int = None,
        dimension: int = 4096,
        timeout: float = 120.0,
    ):
        """
        Args:
            ollama_url: URL of Ollama server
            model: Embedding model to use
            use_local: If True, use sentence-transformers locally
            max_length: Max text length (default: MAX_TEXT_LENGTH)
            dimension: Expected vector size, used for blank input until a real vector is seen
            timeout: HTTP timeout in seconds
        """
        self.ollama_url = ollama_url.rstrip("/")
        self.model = model
        self.use_local = use_local
        self.max_length = max_length or self.MAX_TEXT_LENGTH
        self.timeout = timeout
        self._local_model = None
        self._default_dimension = dimension
        self._dimension: Optional[int] = None

    async def embed(self, text: str) -> list[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Normalized text to embed

        Returns:
            List of floats (embedding vector)
        """
        if not text or not text.strip():
            # Degenerate input: zero vector never matches anything
            return [0.0] * (self._dimension or self._default_dimension)

        if len(text) > self.max_length:
            logger.debug("Truncated text", original=len(text), max=self.max_length)
            text = text[:self.max_length]

        if self.use_local:
            embedding = await self._embed_local(text)
        else:
            embedding = await self._embed_ollama(text)

        self._check_dimension(embedding)
        return embedding

    async def _embed_ollama(self, text: str) -> list[float]:
        """Generate embedding using Ollama API"""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.ollama_url}/api/embed",
                    json={"model": self.model, "input": text},
                )
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPStatusError as e:
            error_text = e.response.text if e.response is not None else str(e)
            logger.error("Ollama HTTP error", status=e.response.status_code, error=error_text[:200])
            raise EmbeddingError(f"Ollama returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("Ollama embedding failed", error=str(e), model=self.model)
            raise EmbeddingError(f"Ollama request failed: {e}") from e

        embeddings = result.get("embeddings") or []
        if not embeddings or not embeddings[0]:
            raise EmbeddingError("Empty embedding returned")
        return embeddings[0]

    async def _embed_local(self, text: str) -> list[float]:
        """Generate embedding using sentence-transformers"""
        if self._local_model is None:
            self._init_local_model()

        embedding = await asyncio.to_thread(self._local_model.encode, text, convert_to_numpy=True)
        return embedding.tolist()

    def _init_local_model(self):
        """Initialize local sentence-transformer model"""
        try:
            from sentence_transformers import SentenceTransformer
            self._local_model = SentenceTransformer("all-MiniLM-L6-v2")
            self._dimension = self._local_model.get_sentence_embedding_dimension()
            logger.info("Initialized local embedding model", dim=self._dimension)
        except ImportError as e:
            raise EmbeddingError(
                "sentence-transformers not installed. "
                "Run: pip install 'helpdesk-pattern-detector[local]'"
            ) from e

    def _check_dimension(self, embedding: list[float]):
        """Pin the dimension on first use and reject vectors of any other size"""
        if self._dimension is None:
            self._dimension = len(embedding)
        elif len(embedding) != self._dimension:
            raise EmbeddingError(
                f"Embedding dimension changed from {self._dimension} to {len(embedding)}"
            )


def get_embedder(
    ollama_url: str = "http://localhost:11434",
    model: str = "qwen3-embedding:8b",
    use_local: bool = False,
    dimension: int = 4096,
) -> TicketEmbedder:
    """Create an embedder from service settings"""
    logger.info("Creating embedder", backend="local" if use_local else "ollama", model=model)
    return TicketEmbedder(
        ollama_url=ollama_url,
        model=model,
        use_local=use_local,
        dimension=dimension,
    )
