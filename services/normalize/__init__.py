"""
Pattern Detector Normalize Service
Prepares ticket text for embedding and keyword extraction

Components:
- normalizer.py: TextNormalizer for lowercasing, punctuation/stop-word removal and keywords
"""

from .normalizer import TextNormalizer, extract_keywords, normalize_text

__all__ = ["TextNormalizer", "normalize_text", "extract_keywords"]
