"""
core/classifier.py

Local keyword classifier used when the remote assistant cannot answer.

The classifier is deterministic and performs no I/O. It produces tags in two passes:
1. Hashtags written by the user, in order of first appearance
2. Category names whose keywords occur anywhere in the lower-cased content,
   in the order of the category table

Duplicates are dropped and the result is truncated to `max_tags`.
"""

import logging
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Ordered: categories are emitted in this order when several match.
DEFAULT_CATEGORIES: Dict[str, Tuple[str, ...]] = {
    "work": ("project", "meeting", "deadline", "task", "report"),
    "personal": ("family", "friend", "home", "birthday", "holiday"),
    "shopping": ("buy", "purchase", "store", "shop", "price"),
    "education": ("study", "learn", "course", "book", "homework"),
    "travel": ("trip", "flight", "hotel", "vacation", "booking"),
}


class FallbackClassifier:
    """
    Deterministic hashtag and keyword classifier.

    Args:
        max_tags (int): Upper bound on the number of tags returned.
        categories (Optional[Dict[str, Tuple[str, ...]]]): Category name to keyword table.
            Defaults to `DEFAULT_CATEGORIES`.
    """

    def __init__(self, max_tags: int = 5, categories: Optional[Dict[str, Tuple[str, ...]]] = None):
        if max_tags < 1:
            raise ValueError("max_tags must be at least 1")
        self.max_tags = max_tags
        self.categories = dict(categories if categories is not None else DEFAULT_CATEGORIES)

    def classify_content(self, content: str, max_tags: Optional[int] = None) -> List[str]:
        """
        Extract tags from free-form content.

        Args:
            content (str): The user's message text or media caption.
            max_tags (Optional[int]): Per-call override of the configured bound.

        Returns:
            List[str]: Tags without the leading "#", at most `max_tags` long. Empty for
            empty content.
        """
        limit = self.max_tags if max_tags is None else max_tags
        tags: List[str] = []

        for token in content.split():
            if token.startswith("#"):
                tag = token[1:].lower()
                if tag and tag not in tags:
                    tags.append(tag)

        lowered = content.lower()
        for category, keywords in self.categories.items():
            if category in tags:
                continue
            if any(keyword in lowered for keyword in keywords):
                tags.append(category)

        logger.debug("Fallback tags: %s", tags)
        return tags[:limit]
