"""
Pattern Detector Embed Service
Turns normalized ticket text into vectors and compares them

Components:
- embedder.py: TicketEmbedder for generating embeddings via Ollama or sentence-transformers
- similarity.py: cosine similarity and running-mean centroid helpers
"""

from .embedder import EmbeddingError, EmbeddingProvider, TicketEmbedder, get_embedder
from .similarity import cosine_similarity, running_mean

__all__ = [
    "EmbeddingError",
    "EmbeddingProvider",
    "TicketEmbedder",
    "get_embedder",
    "cosine_similarity",
    "running_mean",
]
