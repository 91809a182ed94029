"""
Ticket Text Normalizer
Deterministic preprocessing of ticket text before embedding and keyword extraction
"""

import re
from collections import Counter


class TextNormalizer:
    """
    Normalizes free ticket text and extracts ranked keywords.

    Features:
    - Lowercases and strips punctuation
    - Drops short tokens and English stop words
    - Ranks keywords by frequency, keeping short domain terms (vpn, bug, ...)
    """

    STOP_WORDS = frozenset({
        "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with",
        "by", "from", "up", "about", "into", "through", "during", "before",
        "after", "above", "below", "between", "among", "is", "was", "are",
        "were", "be", "been", "being", "have", "has", "had", "do", "does",
        "did", "will", "would", "could", "should", "may", "might", "must",
        "a", "an", "this", "that", "these", "those", "i", "you", "he", "she",
        "it", "we", "they", "my", "your", "his", "her", "its", "our", "their",
    })

    # IT / HR / finance / facilities vocabulary kept even when short
    DOMAIN_TERMS = frozenset({
        "vpn", "printer", "computer", "laptop", "password", "email", "wifi",
        "internet", "software", "hardware", "network", "server", "database",
        "login", "access", "permission", "account", "system", "application",
        "error", "bug", "crash", "freeze", "slow", "install", "update",
        "payroll", "salary", "expense", "invoice", "budget", "leave", "vacation",
        "policy", "procedure", "meeting", "room", "booking", "schedule",
    })

    PUNCTUATION_PATTERN = re.compile(r"[^\w\s]")

    MIN_TOKEN_LENGTH = 3
    MIN_KEYWORD_LENGTH = 4
    MAX_KEYWORDS = 10

    def normalize(self, text: str) -> str:
        """
        Normalize raw ticket text.

        Args:
            text: Raw title/description text

        Returns:
            Lowercased, punctuation-free text of meaningful tokens joined by single spaces
        """
        if not text:
            return ""
        cleaned = self.PUNCTUATION_PATTERN.sub(" ", text.lower())
        tokens = [
            token for token in cleaned.split()
            if len(token) >= self.MIN_TOKEN_LENGTH and token not in self.STOP_WORDS
        ]
        return " ".join(tokens)

    def extract_keywords(self, text: str, top_k: int = None) -> list[str]:
        """
        Extract the most frequent keywords from raw ticket text.

        Ties keep first-encountered order.
        """
        top_k = top_k or self.MAX_KEYWORDS
        words = self.normalize(text).split()
        keywords = [
            w for w in words
            if len(w) >= self.MIN_KEYWORD_LENGTH or w in self.DOMAIN_TERMS
        ]
        counter = Counter(keywords)
        return [word for word, _ in counter.most_common(top_k)]


# Default normalizer instance
default_normalizer = TextNormalizer()


def normalize_text(text: str) -> str:
    """Convenience function to normalize ticket text"""
    return default_normalizer.normalize(text)


def extract_keywords(text: str) -> list[str]:
    """Convenience function to extract ticket keywords"""
    return default_normalizer.extract_keywords(text)
