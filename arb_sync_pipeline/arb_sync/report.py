from __future__ import annotations
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

from .validators import ValidationIssue


@dataclass
class KeyFailure:
    key: str
    kind: str       # TranslationErrorKind value or "placeholder_mismatch"
    message: str


@dataclass
class LocaleReport:
    locale: str
    added: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    overridden: List[str] = field(default_factory=list)
    failed: List[KeyFailure] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def translated_count(self) -> int:
        failed = {f.key for f in self.failed}
        return len([k for k in self.added + self.updated if k not in failed])

    def has_changes(self) -> bool:
        return bool(self.added or self.updated or self.removed or self.overridden)


@dataclass
class SyncReport:
    dry_run: bool
    locales: Dict[str, LocaleReport] = field(default_factory=dict)
    state: str = "loading"

    @property
    def failures(self) -> int:
        return sum(len(r.failed) for r in self.locales.values())

    @property
    def translated(self) -> int:
        return sum(r.translated_count for r in self.locales.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "state": self.state,
            "translated": self.translated,
            "failures": self.failures,
            "locales": {k: asdict(v) for k, v in self.locales.items()},
        }


def _keys_line(mark: str, title: str, keys: List[str], limit: int) -> List[str]:
    if not keys:
        return []
    lines = [f"  {title} ({len(keys)}):"]
    for k in keys[:limit]:
        lines.append(f"    {mark} {k}")
    if len(keys) > limit:
        lines.append(f"    ... and {len(keys) - limit} more")
    return lines


def render_plan(report: SyncReport, limit: int = 20) -> str:
    """Human readable summary; for a dry run this is the plan of what --apply would do."""
    head = "Dry run, nothing written. Planned changes:" if report.dry_run else "Sync summary:"
    lines = [head]
    for locale, r in report.locales.items():
        lines.append(f"[{locale}]")
        if not r.has_changes() and not r.failed:
            lines.append("  up to date")
        lines += _keys_line("+", "add", r.added, limit)
        lines += _keys_line("~", "update", r.updated, limit)
        lines += _keys_line("-", "delete", r.removed, limit)
        lines += _keys_line("=", "override", r.overridden, limit)
        if r.failed:
            lines.append(f"  errors ({len(r.failed)}):")
            for f in r.failed[:limit]:
                lines.append(f"    ! {f.key}: {f.kind}: {f.message}")
            if len(r.failed) > limit:
                lines.append(f"    ... and {len(r.failed) - limit} more")
        if r.warnings:
            lines.append(f"  warnings ({len(r.warnings)}):")
            for w in r.warnings[:limit]:
                lines.append(f"    ? {w}")
    return "\n".join(lines)
