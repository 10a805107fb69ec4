from __future__ import annotations
from typing import List
from dataclasses import dataclass

@dataclass
class ValidationIssue:
    kind: str
    detail: str
    key: str
    source: str
    target: str
    locale: str

    def __str__(self) -> str:
        return f"{self.key}: {self.detail}"

def check_length_ratio(key: str, src: str, tgt: str, locale: str, lo: float, hi: float) -> List[ValidationIssue]:
    issues = []
    # very short strings (OK, No, ...) swing wildly, skip them
    if len(src) < 8:
        return issues
    ratio = len(tgt) / max(len(src), 1)
    if ratio < lo or ratio > hi:
        issues.append(ValidationIssue("length_ratio", f"Length ratio {ratio:.2f} not in [{lo},{hi}]", key, src, tgt, locale))
    return issues

def check_untranslated(key: str, src: str, tgt: str, locale: str) -> List[ValidationIssue]:
    # identical output usually means the engine gave up; brand names are legit though
    if src.strip() and src.strip() == tgt.strip() and any(c.isalpha() for c in src):
        return [ValidationIssue("untranslated", "Translation is identical to the source", key, src, tgt, locale)]
    return []
