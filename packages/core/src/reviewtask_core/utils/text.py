"""Text helpers for turning review comment bodies into task descriptions."""

from __future__ import annotations

import re

_HTML_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_DETAILS_RE = re.compile(r"<details\b.*?</details>", re.DOTALL | re.IGNORECASE)
_FENCE_RE = re.compile(r"^[ \t]*(```|~~~).*?(^[ \t]*\1[ \t]*$|\Z)", re.DOTALL | re.MULTILINE)
_SUGGESTION_RE = re.compile(r"^[ \t]*```suggestion\b", re.MULTILINE)
_TAG_RE = re.compile(r"</?[a-zA-Z][^>\n]*>")
_LIST_MARKER_RE = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(?:\[[ xX]\]\s+)?")
_HEADING_RE = re.compile(r"^\s*#{1,6}\s+", re.MULTILINE)
_EMPHASIS_RE = re.compile(r"(\*\*|__|~~)")

# Phrases that, on their own, acknowledge a change rather than ask for one.
# Longest first so "looks good to me" wins over "looks good".
_ACK_PHRASES = sorted(
    [
        "lgtm",
        "sgtm",
        "looks good to me",
        "looks good",
        "looks great",
        "ship it",
        "thanks",
        "thank you",
        "thx",
        "nice",
        "great",
        "great work",
        "awesome",
        "approved",
        "ok",
        "okay",
        "done",
        "fixed",
        "+1",
    ],
    key=len,
    reverse=True,
)
_ACK_RE = re.compile(r"(?<![\w+])(" + "|".join(re.escape(p) for p in _ACK_PHRASES) + r")(?![\w+])")
_ACK_MAX_WORDS = 8

# Checked in order; the first matching level wins.
PRIORITY_PATTERNS = {
    "critical": [
        r"\bsecurity\b",
        r"\bvulnerab",
        r"\bmust\s+fix\b",
        r"\bblock(?:er|ing)\b",
        r"\bcritical\b",
        r"\bdata\s+loss\b",
        r"\bcrash",
    ],
    "high": [
        r"\bbug\b",
        r"\bbroken\b",
        r"\bincorrect\b",
        r"\bwrong\b",
        r"\bshould\b",
        r"\bneeds?\s+to\b",
        r"\bplease\s+fix\b",
        r"\brace\s+condition\b",
    ],
    "low": [
        r"\bnit\b",
        r"\bnitpick\b",
        r"\bminor\b",
        r"\boptional\b",
        r"\bconsider\b",
        r"\bmaybe\b",
        r"\btypo\b",
        r"\bstyle\b",
    ],
}


def strip_code(text: str) -> str:
    """Remove fenced code blocks (including suggestion blocks)."""
    return _FENCE_RE.sub("", text)


def strip_markup(text: str) -> str:
    """Remove HTML comments, collapsed <details> blocks and bare HTML tags."""
    text = _HTML_COMMENT_RE.sub("", text or "")
    text = _DETAILS_RE.sub("", text)
    return _TAG_RE.sub("", text)


def has_suggestion(text: str) -> bool:
    return bool(_SUGGESTION_RE.search(text or ""))


def is_acknowledgement(text: str) -> bool:
    """Return True when a comment only acknowledges, approves or thanks.

    Empty and emoji-only bodies count as acknowledgements too. Anything with
    a suggestion block is never an acknowledgement.
    """
    if has_suggestion(text):
        return False
    plain = strip_code(strip_markup(text)).lower()
    words = re.sub(r"[^\w\s+']", " ", plain).split()
    if not words:
        return True
    if len(words) > _ACK_MAX_WORDS:
        return False
    leftover = _ACK_RE.sub(" ", " ".join(words)).split()
    # Fillers that commonly decorate an acknowledgement.
    leftover = [w for w in leftover if w not in {"to", "me", "all", "so", "far", "now", "very", "much", "lot", "a"}]
    return not leftover


def clean_description(text: str, max_chars: int = 120) -> str:
    """Collapse a comment body into a single-line task description."""
    text = strip_code(strip_markup(text))
    text = _HEADING_RE.sub("", text)
    lines = [_LIST_MARKER_RE.sub("", line) for line in text.splitlines()]
    text = " ".join(line.strip() for line in lines if line.strip())
    text = _EMPHASIS_RE.sub("", text)
    text = re.sub(r"\s+", " ", text).strip()
    if max_chars and len(text) > max_chars:
        text = text[: max_chars - 1].rstrip() + "…"
    return text


def classify_priority(text: str) -> str:
    """Pick a priority level from keywords in the comment text."""
    lowered = (text or "").lower()
    for level, patterns in PRIORITY_PATTERNS.items():
        for pattern in patterns:
            if re.search(pattern, lowered):
                return level
    return "medium"
