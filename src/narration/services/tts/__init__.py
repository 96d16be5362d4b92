"""
TTS (Text-to-Speech) Narration Package.

This package contains the article narration pipeline:

- text_sanitizer: Strips authoring markup from rendered article text
- text_segmenter: Splits sanitized text into narratable paragraphs
- reading_time: Estimates reading time from the word count
- audio_resource: Downloaded audio for one paragraph, explicitly released
- cancellation: Per-session cancellation token
- pipeline_controller: Paragraph-by-paragraph playback state machine

Architecture Overview:

    ┌─────────────┐     ┌───────────────┐     ┌──────────────────┐
    │ Article text│────▶│ TextSanitizer │────▶│ParagraphSegmenter│
    └─────────────┘     └───────────────┘     └──────────────────┘
                               │                       │
                               ▼                       ▼
                        ┌─────────────┐     ┌─────────────────────┐     ┌─────────────┐
                        │ ReadingTime │     │ NarrationController │────▶│ AudioPlayer │
                        └─────────────┘     └─────────────────────┘     └─────────────┘
                                                       │
                                                       ▼
                                            ┌─────────────────────┐
                                            │SpeechSynthesisClient│
                                            └─────────────────────┘

The controller keeps exactly one paragraph of look-ahead:
1. Paragraph 0 is synthesized before anything plays (state: loading)
2. While paragraph i plays, paragraph i+1 is synthesized into the `next` slot
3. When paragraph i ends, `next` is promoted and plays immediately
4. Stopping cancels the session token, pauses audio and releases both slots
"""

from .audio_resource import AudioResource
from .cancellation import CancellationToken
from .pipeline_controller import BufferSlots, NarrationController
from .reading_time import ReadingTime, estimate_reading_time
from .text_sanitizer import TextSanitizer, sanitize_text
from .text_segmenter import ParagraphSegmenter

__all__ = [
    "AudioResource",
    "BufferSlots",
    "CancellationToken",
    "NarrationController",
    "ParagraphSegmenter",
    "ReadingTime",
    "TextSanitizer",
    "estimate_reading_time",
    "sanitize_text",
]
