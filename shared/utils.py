"""
shared/utils.py

Reply formatting helpers shared by the HTTP layer and any chat transport adapter.

Tags are rendered as hashtags: lower-cased, with spaces replaced by underscores so
that a multi-word keyword such as "Project Plan" stays a single clickable tag.
"""

from typing import List

from shared.models import ClassificationResult


def format_tag(text: str) -> str:
    """Render a category or keyword as a hashtag, e.g. "Project Plan" -> "#project_plan"."""
    return "#" + text.strip().lower().replace(" ", "_")


def format_user_response(result: ClassificationResult) -> str:
    """
    Build the plain-text reply shown to the user for one classification.

    Layout:
        <summary>

        Category: #<category>
        Tags: #<kw1> #<kw2>          (omitted when there are no keywords)

        Links found:                 (omitted when there are no links)
        • <url>

    Args:
        result (ClassificationResult): The classification to render.

    Returns:
        str: The formatted reply text.
    """
    lines: List[str] = [result.summary, "", f"Category: {format_tag(result.category)}"]

    if result.keywords:
        lines.append("Tags: " + " ".join(format_tag(keyword) for keyword in result.keywords))

    if result.links:
        lines.append("")
        lines.append("Links found:")
        lines.extend(f"• {link}" for link in result.links)

    return "\n".join(lines) + "\n"
