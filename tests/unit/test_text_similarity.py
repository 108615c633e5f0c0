"""Tests for anti-repetition text comparison."""

from src.services.text_similarity import (
    is_duplicate,
    is_near_duplicate,
    jaccard_similarity,
    normalize_for_compare,
    tokenize,
)


class TestNormalization:
    def test_lowercases_and_collapses_whitespace(self):
        assert normalize_for_compare("  What   Happened\nNext? ") == "what happened next?"

    def test_none_safe(self):
        assert normalize_for_compare(None) == ""
        assert tokenize(None) == set()

    def test_tokenize_drops_punctuation(self):
        assert tokenize("I'm fine, really!") == {"i'm", "fine", "really"}


class TestSimilarity:
    def test_identical_text(self):
        assert jaccard_similarity("what did she say", "What did she say?") == 1.0

    def test_disjoint_text(self):
        assert jaccard_similarity("red apple", "blue ocean") == 0.0

    def test_empty_side(self):
        assert jaccard_similarity("", "anything") == 0.0

    def test_duplicate_ignores_case_and_spacing(self):
        assert is_duplicate("What  did she SAY?", ["what did she say?"])
        assert not is_duplicate("What did he say?", ["what did she say?"])

    def test_near_duplicate_threshold(self):
        previous = ["What did your manager say after the meeting?"]
        assert is_near_duplicate("What did your manager say after that meeting?", previous)
        assert not is_near_duplicate("How did you sleep last night?", previous)

    def test_explicit_threshold(self):
        assert is_near_duplicate("a b c d", ["a b x y"], threshold=0.3)
        assert not is_near_duplicate("a b c d", ["a b x y"], threshold=0.5)
