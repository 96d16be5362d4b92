"""
Text Sanitizer for Article Narration.

Rendered article text still carries traces of the authoring markup: image
and link syntax, fenced code, list bullets, emphasis punctuation and
trailing "source: <url>" citations. None of it should reach the speech
synthesizer, so it is stripped before segmentation.

Rules are applied in a fixed order:

1. image markup ``![label](url)`` is removed
2. link markup ``[label](url)`` collapses to ``label``
3. fenced code blocks are removed together with their content
4. list bullets at the start of a line are removed, item text is kept
5. the characters ``* _ ` ~ # >`` are removed
6. citation lines ``<label> : http(s)://...`` are removed

Removing characters in a later rule can expose markup for an earlier one
(``!*[a](b)`` becomes an image once ``*`` is gone), so the rule chain is
repeated until the text stops changing. Every rule only ever deletes
characters, which bounds the number of passes.

Usage:
    sanitizer = TextSanitizer(citation_labels=["source"])
    clean = sanitizer.sanitize(raw_text)
"""

import re
from typing import Iterable, Optional

_IMAGE_PATTERN = re.compile(r"!\[([^\]]+?)\]\([^)]+?\)")
_LINK_PATTERN = re.compile(r"\[([^\]]+?)\]\([^)]+?\)")
_CODE_FENCE_PATTERN = re.compile(r"```[^\n]*\n[\s\S]*?```")
_BULLET_PATTERN = re.compile(r"^([ \t]*)(?:-[ \t]+)+", re.MULTILINE)
_EMPHASIS_PATTERN = re.compile(r"[*_`~#>]")

DEFAULT_CITATION_LABELS = ("출처", "source")


class TextSanitizer:
    """
    Strip authoring markup from rendered article text.

    Attributes:
        citation_labels: Labels that introduce a citation URL to drop
    """

    def __init__(self, citation_labels: Optional[Iterable[str]] = None):
        labels = [label.strip() for label in (citation_labels or DEFAULT_CITATION_LABELS)]
        self.citation_labels = [label for label in labels if label]
        self._citation_pattern = self._compile_citation_pattern(self.citation_labels)

    @staticmethod
    def _compile_citation_pattern(labels: list[str]) -> Optional[re.Pattern]:
        """Compile the citation matcher, or None when no labels are configured."""
        if not labels:
            return None
        # Longest first so that overlapping labels prefer the fuller match
        escaped = [re.escape(label) for label in sorted(labels, key=len, reverse=True)]
        return re.compile(
            r"(?:" + "|".join(escaped) + r")\s*:\s*https?://\S+",
            re.IGNORECASE,
        )

    def _apply_rules(self, text: str) -> str:
        text = _IMAGE_PATTERN.sub("", text)
        text = _LINK_PATTERN.sub(r"\1", text)
        text = _CODE_FENCE_PATTERN.sub("", text)
        text = _BULLET_PATTERN.sub(r"\1", text)
        text = _EMPHASIS_PATTERN.sub("", text)
        if self._citation_pattern is not None:
            text = self._citation_pattern.sub("", text)
        return text.strip()

    def sanitize(self, text: Optional[str]) -> str:
        """
        Return ``text`` with markup removed.

        The result is a fixed point of the rule chain, so sanitizing an
        already sanitized string returns it unchanged.
        """
        if not text:
            return ""

        current = text
        while True:
            cleaned = self._apply_rules(current)
            if cleaned == current:
                return cleaned
            current = cleaned


def sanitize_text(text: Optional[str], citation_labels: Optional[Iterable[str]] = None) -> str:
    """Sanitize ``text`` with a one-off :class:`TextSanitizer`."""
    return TextSanitizer(citation_labels).sanitize(text)
