"""
Paragraph Segmenter for the Narration Pipeline.

Splits sanitized article text into the paragraphs that are synthesized one
request at a time.

Architecture:
    sanitized text → ParagraphSegmenter.segment() → [paragraph, ...]

Unlike a streaming segmenter, the whole article is available up front, so
the result is a fully materialized list that the playback controller can
walk from the start as often as it needs to.
"""

from typing import Iterator, List


class ParagraphSegmenter:
    """
    Split text on line boundaries and drop trivial lines.

    A line is trivial when it is empty after stripping, or when it is
    shorter than ``min_chars`` and holds no letter or digit (a lone bullet
    glyph, a stray separator). One-letter prose such as "A" is kept.

    Attributes:
        min_chars: Stripped length from which any line is kept (default: 2)
    """

    def __init__(self, min_chars: int = 2):
        if min_chars < 1:
            raise ValueError("min_chars must be at least 1")
        self.min_chars = min_chars

    def _is_trivial(self, paragraph: str) -> bool:
        if not paragraph:
            return True
        if len(paragraph) >= self.min_chars:
            return False
        return not any(char.isalnum() for char in paragraph)

    def iter_paragraphs(self, text: str) -> Iterator[str]:
        """Yield stripped paragraphs in document order."""
        if not text:
            return

        for line in text.splitlines():
            paragraph = line.strip()
            if not self._is_trivial(paragraph):
                yield paragraph

    def segment(self, text: str) -> List[str]:
        """Return the ordered list of narratable paragraphs."""
        return list(self.iter_paragraphs(text))
