"""Tests for string normalization utility."""

from dashboard_sync.utils.normalization import names_match, normalize_name


class TestNormalizeNameBasic:
    """Test basic normalization functionality."""

    def test_empty_values_return_empty(self):
        """Empty string and None should return empty string."""
        assert normalize_name("") == ""
        assert normalize_name(None) == ""

    def test_lowercase_conversion(self):
        """Names should be case-folded."""
        assert normalize_name("MY TASKS") == "my tasks"

    def test_unicode_normalization(self):
        """Composed and decomposed accents should normalize the same way."""
        assert normalize_name("Tâches") == "taches"
        assert normalize_name("Ta\u0302ches") == "taches"

    def test_whitespace_collapsed(self):
        """Runs of whitespace should collapse and ends be trimmed."""
        assert normalize_name("  My \t  Tasks \n") == "my tasks"


class TestNormalizeNamePunctuation:
    """Test punctuation handling."""

    def test_punctuation_kept_by_default(self):
        """Punctuation should survive unless stripping is requested."""
        assert normalize_name("Work: Q1!") == "work: q1!"

    def test_strip_punctuation(self):
        """Punctuation should be removed when requested."""
        assert normalize_name("Work: Q1!", strip_punctuation=True) == "work q1"


class TestNamesMatch:
    """Test collection name matching."""

    def test_localized_default_list(self):
        """Accent and case differences should still match."""
        assert names_match("Mes Tâches", " mes  taches ")

    def test_different_names(self):
        """Different names should not match."""
        assert not names_match("My Tasks", "Groceries")

    def test_empty_names_never_match(self):
        """Blank names should not match each other."""
        assert not names_match("", "")
        assert not names_match("   ", None)
