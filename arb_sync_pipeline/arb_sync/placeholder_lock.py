# arb_sync/placeholder_lock.py
from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Pattern, Tuple
from xml.sax.saxutils import escape, unescape

from .errors import PlaceholderMismatch

# {name}, {count}, {userName} ... as used by Flutter gen_l10n
DEFAULT_PLACEHOLDER_PATTERN = r"\{[A-Za-z_][A-Za-z0-9_]*\}"

# The translator is told to pass <ph> elements through untouched
# (DeepL: tag_handling=xml, ignore_tags=ph).
PH_TAG = "ph"
_TAG_RE = re.compile(r"<ph>(.*?)</ph>", re.DOTALL)
_EXTRA_ENTITIES = {"&quot;": '"', "&apos;": "'"}


@dataclass(frozen=True)
class PlaceholderSpan:
    index: int
    text: str
    start: int
    end: int


def compile_patterns(pattern: Optional[str] = None, names: Optional[Iterable[str]] = None) -> List[Pattern]:
    """
    Build the ordered pattern list used for locking: declared ARB placeholder
    names first (exact `{name}`), then the generic pattern.
    """
    patterns: List[Pattern] = []
    for n in names or []:
        patterns.append(re.compile(re.escape("{" + n + "}")))
    patterns.append(re.compile(pattern or DEFAULT_PLACEHOLDER_PATTERN))
    return patterns


def _collect_non_overlapping_matches(s: str, patterns: List[Pattern]) -> List[Tuple[int, int, str]]:
    selected: List[Tuple[int, int, str]] = []
    def overlaps(a_start, a_end, b_start, b_end): return not (a_end <= b_start or b_end <= a_start)
    for pat in patterns:
        for m in pat.finditer(s):
            st, en = m.span()
            if st == en:
                continue
            if any(overlaps(st, en, x[0], x[1]) for x in selected):
                continue
            selected.append((st, en, m.group(0)))
    selected.sort(key=lambda t: t[0])
    return selected


def lock_placeholders(s: str, patterns: Optional[List[Pattern]] = None) -> Tuple[str, List[PlaceholderSpan]]:
    """
    Wrap every placeholder match in a <ph> element and XML-escape the literal
    text around it. Returns (tagged_text, spans).
    """
    if patterns is None:
        patterns = compile_patterns()
    matches = _collect_non_overlapping_matches(s, patterns)
    out_parts: List[str] = []
    spans: List[PlaceholderSpan] = []
    cursor = 0
    for st, en, txt in matches:
        out_parts.append(escape(s[cursor:st]))
        out_parts.append(f"<{PH_TAG}>{escape(txt)}</{PH_TAG}>")
        spans.append(PlaceholderSpan(index=len(spans), text=txt, start=st, end=en))
        cursor = en
    out_parts.append(escape(s[cursor:]))
    return "".join(out_parts), spans


def unlock_placeholders(s: str, spans: List[PlaceholderSpan]) -> str:
    """
    Inverse of lock_placeholders. The <ph> elements must come back in the
    same order with the same content, otherwise PlaceholderMismatch.
    """
    found: List[str] = []
    literals: List[str] = []
    cursor = 0
    for m in _TAG_RE.finditer(s):
        literals.append(unescape(s[cursor:m.start()], _EXTRA_ENTITIES))
        found.append(unescape(m.group(1), _EXTRA_ENTITIES))
        cursor = m.end()
    literals.append(unescape(s[cursor:], _EXTRA_ENTITIES))

    expected = [sp.text for sp in spans]
    if found != expected:
        raise PlaceholderMismatch(expected, found)

    out_parts: List[str] = [literals[0]]
    for sp, lit in zip(spans, literals[1:]):
        out_parts.append(sp.text)
        out_parts.append(lit)
    return "".join(out_parts)
