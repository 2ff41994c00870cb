"""
Result Parser - Normalize raw backend generations into candidates
"""

from __future__ import annotations

import unicodedata

from models.generation import Candidate

BLANK = "____"
D0 = "{"
D1 = "}"

SPECIAL_CHARACTERS = (D0, D1, BLANK)
ALLOWED_CONTROL_CHARACTERS = {"\n", "\t", "\r"}


def get_text_between_delimiters(text: str, d0: str = D0, d1: str = D1) -> str | None:
    """Text between the first opening and the last closing delimiter, or None"""
    start = text.find(d0)
    end = text.rfind(d1)
    if start < 0 or end < 0 or end < start + len(d0):
        return None
    return text[start + len(d0):end]


def text_contains_special_characters(text: str) -> bool:
    """Delimiters or control characters left in a generation mean it is malformed"""
    if any(special in text for special in SPECIAL_CHARACTERS):
        return True
    return any(
        unicodedata.category(char) == "Cc" and char not in ALLOWED_CONTROL_CHARACTERS
        for char in text
    )


def starts_with_punctuation(text: str) -> bool:
    return bool(text) and unicodedata.category(text[0]).startswith("P")


def dedupe_results(results: list[Candidate]) -> list[Candidate]:
    """Drop candidates whose text was already seen, keeping first-seen order"""
    seen: set[str] = set()
    deduped = []
    for result in results:
        if result.text in seen:
            continue
        seen.add(result.text)
        deduped.append(result)
    return deduped


def create_candidates(texts: list[str], finish_reasons: list[str | None] | None = None) -> list[Candidate]:
    reasons = finish_reasons or [None] * len(texts)
    return [
        Candidate(text=text, raw_index=index, finish_reason=reason)
        for index, (text, reason) in enumerate(zip(texts, reasons))
    ]


def parse_results(
    results: list[Candidate],
    input_prompt: str = "",
    use_delimiters: bool = True,
) -> list[Candidate]:
    """Extract, filter and dedupe candidate texts"""
    parsed = []
    for result in results:
        text = result.text
        if input_prompt:
            text = text.replace(input_prompt, "", 1)

        if use_delimiters:
            text = get_text_between_delimiters(text) or text
        else:
            # First, trim any excess spaces, then remove a leading punctuation mark
            text = text.strip()
            if starts_with_punctuation(text):
                text = text[1:]

        # Text must be present and free of special delimiters
        if not text or text_contains_special_characters(text):
            continue
        parsed.append(result.model_copy(update={"text": text}))

    return dedupe_results(parsed)
