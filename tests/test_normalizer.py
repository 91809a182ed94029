"""Unit tests for ticket text normalization and keyword extraction."""

from services.normalize import TextNormalizer, extract_keywords, normalize_text


class TestNormalize:
    def test_lowercases_and_strips_punctuation(self) -> None:
        assert normalize_text("VPN, keeps DISCONNECTING!!!") == "vpn keeps disconnecting"

    def test_drops_stop_words_and_short_tokens(self) -> None:
        result = normalize_text("The printer on my floor is not working at all")
        assert result == "printer floor not working all"

    def test_collapses_whitespace(self) -> None:
        assert normalize_text("  wifi\n\n  drops\tagain  ") == "wifi drops again"

    def test_punctuation_splits_tokens(self) -> None:
        assert normalize_text("e-mail/outlook") == "mail outlook"

    def test_empty_text(self) -> None:
        assert normalize_text("") == ""

    def test_only_noise(self) -> None:
        assert normalize_text("?? !! a an it") == ""

    def test_idempotent(self) -> None:
        once = normalize_text("Outlook CRASHES when opening attachments!")
        assert normalize_text(once) == once


class TestExtractKeywords:
    def test_ranks_by_frequency(self) -> None:
        text = "printer jammed. printer offline. printer again, jammed"
        assert extract_keywords(text)[:2] == ["printer", "jammed"]

    def test_ties_keep_first_seen_order(self) -> None:
        assert extract_keywords("VPN keeps disconnecting") == ["vpn", "keeps", "disconnecting"]

    def test_short_domain_terms_kept(self) -> None:
        keywords = extract_keywords("bug in app fix")
        assert "bug" in keywords
        assert "fix" not in keywords
        assert "app" not in keywords

    def test_limited_to_ten_by_default(self) -> None:
        text = " ".join(f"keyword{i}" for i in range(20))
        assert len(extract_keywords(text)) == TextNormalizer.MAX_KEYWORDS

    def test_top_k(self) -> None:
        normalizer = TextNormalizer()
        keywords = normalizer.extract_keywords("payroll salary expense invoice budget", top_k=2)
        assert keywords == ["payroll", "salary"]

    def test_empty_text(self) -> None:
        assert extract_keywords("") == []
