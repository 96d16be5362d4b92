"""Reading-time estimate shown next to the article header."""

from __future__ import annotations

import math
from dataclasses import dataclass

DEFAULT_WORDS_PER_MINUTE = 200


@dataclass(frozen=True)
class ReadingTime:
    minutes: int
    seconds: int
    words: int

    @property
    def total_seconds(self) -> int:
        return self.minutes * 60 + self.seconds

    def label(self, template: str = "{minutes} min read") -> str:
        return template.format(minutes=self.minutes, seconds=self.seconds, words=self.words)

    def __str__(self) -> str:
        return f"{self.minutes}m {self.seconds}s"


def estimate_reading_time(
    text: str, words_per_minute: int = DEFAULT_WORDS_PER_MINUTE
) -> ReadingTime:
    """Estimate how long ``text`` takes to read.

    Seconds are rounded half-up to the nearest ten; a result of 60 seconds
    rolls over into the next minute.
    """

    if words_per_minute <= 0:
        raise ValueError("words_per_minute must be positive")

    words = len(text.split()) if text else 0
    exact_minutes = words / words_per_minute
    minutes = int(exact_minutes)
    seconds = math.floor((exact_minutes - minutes) * 60 / 10 + 0.5) * 10
    if seconds == 60:
        minutes += 1
        seconds = 0

    return ReadingTime(minutes=minutes, seconds=seconds, words=words)


__all__ = ["DEFAULT_WORDS_PER_MINUTE", "ReadingTime", "estimate_reading_time"]
