"""Recommended-attachment parsing and fuzzy filename matching.

The assistant is asked to list the solicitation files a reply should carry
inside a marker block::

    RECOMMENDED_ATTACHMENTS_START
    - filename: Spec_Sheet.pdf | reason: pricing table
    RECOMMENDED_ATTACHMENTS_END

Everything here is pure and synchronous: the same reply and candidate
listing always produce the same records, one per declared recommendation.
"""

from __future__ import annotations

from collections.abc import Sequence
import logging
import math
import re

from .models import FileRef, Recommendation, RecommendedAttachment

LOGGER = logging.getLogger(__name__)

START_MARKER = "RECOMMENDED_ATTACHMENTS_START"
END_MARKER = "RECOMMENDED_ATTACHMENTS_END"
NONE_SENTINEL = "none"

# Fraction of significant declared-name tokens a candidate must contain.
KEYWORD_OVERLAP_RATIO = 0.5
MIN_TOKEN_LENGTH = 3

_BLOCK_PATTERN = re.compile(
    rf"{START_MARKER}[\s\S]*?{END_MARKER}",
)
_STRUCTURED_LINE = re.compile(r"filename:\s*(.+?)\s*\|\s*reason:\s*(.+)", re.IGNORECASE)
_DASH_SPLIT = re.compile(r"\s[—–-]\s")
_LABEL_PREFIX = re.compile(r"^(?:filename|file|reason)\s*:\s*", re.IGNORECASE)
_NON_NAME_CHARS = re.compile(r"[^a-z0-9.]")
_TOKEN_SPLIT = re.compile(r"[\s_\-.]+")
_HTML_FENCE = re.compile(r"```html\s*\n?([\s\S]*?)\n?```", re.IGNORECASE)

_DECORATION = "`*\"' "


def _clean_name(value: str) -> str:
    return _LABEL_PREFIX.sub("", value.strip()).strip(_DECORATION)


def _clean_reason(value: str) -> str:
    return _LABEL_PREFIX.sub("", value.strip()).strip()


def _extract_block(text: str) -> str | None:
    start = text.find(START_MARKER)
    if start == -1:
        return None
    end = text.find(END_MARKER, start + len(START_MARKER))
    if end == -1:
        return None
    return text[start + len(START_MARKER) : end].strip()


def parse_line(line: str) -> Recommendation:
    """Parse one ``- filename: X | reason: Y`` line, degrading gracefully."""
    cleaned = re.sub(r"^-\s*", "", line.strip())

    match = _STRUCTURED_LINE.search(cleaned)
    if match:
        return Recommendation(_clean_name(match.group(1)), match.group(2).strip())

    if "|" in cleaned:
        name, _, reason = cleaned.partition("|")
        if name.strip():
            return Recommendation(_clean_name(name), _clean_reason(reason))

    parts = _DASH_SPLIT.split(cleaned)
    if len(parts) >= 2:
        return Recommendation(_clean_name(parts[0]), " — ".join(parts[1:]).strip())

    return Recommendation(_clean_name(cleaned), "")


def parse_recommendations(text: str) -> list[Recommendation]:
    """Return the recommendations declared in ``text``.

    A missing block yields an empty list, as does a block whose whole content
    is the ``none`` sentinel (bare or as a single bullet).  A ``- none`` bullet
    next to other lines is an ordinary recommendation.
    """
    block = _extract_block(text or "")
    if block is None or block.lstrip("-").strip().lower() == NONE_SENTINEL:
        return []

    recommendations: list[Recommendation] = []
    for line in block.splitlines():
        if not line.strip().startswith("-"):
            continue
        rec = parse_line(line)
        if not rec.declared_filename:
            continue
        recommendations.append(rec)
    return recommendations


def _normalize(name: str) -> str:
    return _NON_NAME_CHARS.sub("", name.lower())


def _significant_tokens(name: str) -> list[str]:
    return [
        token
        for token in _TOKEN_SPLIT.split(name.lower())
        if len(token) >= MIN_TOKEN_LENGTH
    ]


def exact_match(declared: str, candidates: Sequence[FileRef]) -> FileRef | None:
    """Case-insensitive filename equality."""
    wanted = declared.lower()
    for candidate in candidates:
        if candidate.name.lower() == wanted:
            return candidate
    return None


def normalized_substring_match(
    declared: str, candidates: Sequence[FileRef]
) -> FileRef | None:
    """Substring match in either direction after keeping only letters, digits and dots."""
    wanted = _normalize(declared)
    if not wanted:
        return None
    for candidate in candidates:
        have = _normalize(candidate.name)
        if not have:
            continue
        if wanted in have or have in wanted:
            return candidate
    return None


def keyword_match(declared: str, candidates: Sequence[FileRef]) -> FileRef | None:
    """Accept the first candidate containing at least half of the declared tokens."""
    tokens = _significant_tokens(declared)
    if not tokens:
        return None
    required = math.ceil(len(tokens) * KEYWORD_OVERLAP_RATIO)
    for candidate in candidates:
        lowered = candidate.name.lower()
        hits = sum(1 for token in tokens if token in lowered)
        if hits >= required:
            return candidate
    return None


_STAGES = (
    ("exact", exact_match),
    ("normalized", normalized_substring_match),
    ("keyword", keyword_match),
)


def match_file(declared: str, candidates: Sequence[FileRef]) -> FileRef | None:
    """Resolve a declared filename against the listing, first stage wins."""
    for stage, matcher in _STAGES:
        found = matcher(declared, candidates)
        if found is not None:
            LOGGER.debug(
                "matcher.file.matched",
                extra={
                    "event": "matcher.file.matched",
                    "stage": stage,
                    "declared": declared,
                    "file_id": found.id,
                },
            )
            return found
    return None


def match_recommendations(
    recommendations: Sequence[Recommendation], candidates: Sequence[FileRef]
) -> list[RecommendedAttachment]:
    """Map every recommendation to exactly one record, matched or not."""
    return [
        RecommendedAttachment(
            declared_filename=rec.declared_filename,
            reason=rec.reason,
            matched_file=match_file(rec.declared_filename, candidates),
        )
        for rec in recommendations
    ]


def recommend_attachments(
    reply: str, candidates: Sequence[FileRef]
) -> list[RecommendedAttachment]:
    """Parse ``reply`` and resolve its recommendations against ``candidates``."""
    return match_recommendations(parse_recommendations(reply), candidates)


def strip_recommendation_block(text: str) -> str:
    """Remove recommendation blocks from text meant for display."""
    return _BLOCK_PATTERN.sub("", text or "").strip()


def extract_html_block(text: str) -> str | None:
    """Return the body of the first fenced ``html`` block, if any."""
    match = _HTML_FENCE.search(text or "")
    if match is None:
        return None
    html = match.group(1).strip()
    return html or None
