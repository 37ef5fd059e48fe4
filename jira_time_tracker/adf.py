"""Conversion between plain text and Atlassian Document Format (ADF)."""

from typing import Any, Optional

_BLOCK_TYPES = ("paragraph", "heading", "bulletList", "orderedList", "listItem",
                "blockquote", "codeBlock")


def adf_to_text(adf: Optional[Any]) -> str:
    """Extract plain text from Atlassian Document Format (ADF) JSON.

    Jira sometimes returns worklog comments as plain strings; those are
    passed through unchanged.
    """
    if isinstance(adf, str):
        return adf
    if not adf or not isinstance(adf, (dict, list)):
        return ""
    parts = []

    def walk(node):
        if isinstance(node, dict):
            if node.get("type") == "text":
                parts.append(node.get("text", ""))
            elif node.get("type") == "hardBreak":
                parts.append("\n")
            elif node.get("type") == "mention":
                parts.append(node.get("attrs", {}).get("text", ""))
            for child in node.get("content", []):
                walk(child)
            # Add newline after block-level elements
            if node.get("type") in _BLOCK_TYPES:
                parts.append("\n")
        elif isinstance(node, list):
            for child in node:
                walk(child)

    walk(adf)
    # Collapse multiple newlines and strip
    text = "".join(parts).strip()
    while "\n\n" in text:
        text = text.replace("\n\n", "\n")
    return text


def text_to_adf(text: str) -> dict:
    """Wrap plain text into an ADF document, one paragraph per line."""
    content = []
    for line in (text or "").splitlines():
        if line.strip():
            content.append({
                "type": "paragraph",
                "content": [{"type": "text", "text": line}],
            })
    return {"type": "doc", "version": 1, "content": content}
