"""Tests for cns/services/fallback_scorer.py"""
from cns.services.fallback_scorer import FallbackScorer


class TestFallbackScorer:

    def test_keyword_substring_is_relevant(self):
        assert FallbackScorer.is_relevant("I love my dog", ["dog"]) is True

    def test_unrelated_text_is_not_relevant(self):
        assert FallbackScorer.is_relevant("what is the weather", ["train", "locomotive"]) is False

    def test_substring_match_ignores_case(self):
        assert FallbackScorer.is_relevant("LOCOMOTIVES are loud", ["locomotive"]) is True

    def test_shared_long_token_from_multiword_keyword(self):
        """Verify 'engine' from 'steam engine' is enough on its own."""
        assert FallbackScorer.is_relevant("which engine is fastest", ["steam engine"]) is True

    def test_short_shared_tokens_do_not_count(self):
        """CONTRACT: Only tokens longer than three characters count."""
        assert FallbackScorer.is_relevant("the car", ["the bus", "red car line"]) is False

    def test_tokens_split_on_punctuation(self):
        assert FallbackScorer.is_relevant("Railway-network maps?", ["freight network"]) is True

    def test_empty_keywords_are_not_relevant(self):
        assert FallbackScorer.is_relevant("anything at all", []) is False

    def test_blank_keyword_does_not_match_everything(self):
        assert FallbackScorer.is_relevant("anything at all", [""]) is False
