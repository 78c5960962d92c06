"""Voice command interpreter - turns speech/DTMF transcripts into snooze durations."""

import re


# Checked in this order; the first entry with a matching token wins.
SNOOZE_VOCABULARY = [
    (5, ("5", "five")),
    (10, ("10", "ten")),
    (15, ("15", "fifteen")),
]

SUPPORTED_DURATIONS = [minutes for minutes, _ in SNOOZE_VOCABULARY]

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


def tokenize(transcript: str) -> set[str]:
    """Lower-cased alphanumeric tokens of a transcript."""
    return set(_TOKEN_PATTERN.findall(transcript.lower()))


def parse_snooze_duration(transcript: str | None) -> int | None:
    """Return the requested snooze length in minutes, or None if unrecognized.

    Matching is on whole tokens, not substrings: "15" and "fifteen" map to
    15 minutes even though they contain "5"/"five" as substrings. When a
    transcript names several durations ("five or ten") the lowest one in
    SNOOZE_VOCABULARY order wins.
    """
    if not transcript:
        return None
    tokens = tokenize(transcript)
    for minutes, words in SNOOZE_VOCABULARY:
        if any(word in tokens for word in words):
            return minutes
    return None
