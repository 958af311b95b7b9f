"""
Unit tests for `core/classifier.py` – FallbackClassifier behavior in isolation.

The fallback classifier performs no I/O, so no collaborators need mocking. The tests pin
down the ordering contract (hashtags first, in order of appearance, then category names in
table order), de-duplication, truncation and the empty-content case.
"""

import unittest

from core.classifier import FallbackClassifier


class TestFallbackClassifier(unittest.TestCase):
    """
    Unit tests for the `FallbackClassifier` class.

    These tests validate how free-form content is turned into tags. The classifier is the
    last line of defense when the remote assistant is unavailable, so its output must be
    deterministic: the same content always yields the same tags in the same order.
    """

    def setUp(self):
        self.classifier = FallbackClassifier(max_tags=5)

    def test_hashtag_then_category(self):
        """
        "buy milk #errands" carries one explicit hashtag and one shopping keyword ("buy").
        The hashtag comes first, the category second.
        """
        self.assertEqual(self.classifier.classify_content("buy milk #errands"), ["errands", "shopping"])

    def test_hashtags_are_lowercased_and_deduplicated(self):
        tags = self.classifier.classify_content("#Groceries #groceries #TODO")
        self.assertEqual(tags, ["groceries", "todo"])

    def test_bare_hash_is_ignored(self):
        self.assertEqual(self.classifier.classify_content("# nothing here"), [])

    def test_categories_follow_table_order(self):
        """
        Content matching travel, work and education keywords yields the categories in the
        fixed table order (work, personal, shopping, education, travel), not text order.
        """
        tags = self.classifier.classify_content("Book a flight after the project meeting")
        self.assertEqual(tags, ["work", "education", "travel"])

    def test_keyword_matches_substrings(self):
        """Keywords match anywhere in the lower-cased text, e.g. "shopping" contains "shop"."""
        self.assertEqual(self.classifier.classify_content("SHOPPING list"), ["shopping"])

    def test_hashtag_equal_to_category_is_not_repeated(self):
        self.assertEqual(self.classifier.classify_content("#work on the report"), ["work"])

    def test_truncates_to_max_tags(self):
        classifier = FallbackClassifier(max_tags=2)
        tags = classifier.classify_content("#a #b #c project")
        self.assertEqual(tags, ["a", "b"])

    def test_per_call_override(self):
        tags = self.classifier.classify_content("#a #b #c project", max_tags=1)
        self.assertEqual(tags, ["a"])

    def test_empty_content(self):
        self.assertEqual(self.classifier.classify_content(""), [])
        self.assertEqual(self.classifier.classify_content("   "), [])

    def test_no_match(self):
        self.assertEqual(self.classifier.classify_content("hello there"), [])

    def test_invalid_max_tags(self):
        with self.assertRaises(ValueError):
            FallbackClassifier(max_tags=0)


if __name__ == "__main__":
    unittest.main()
