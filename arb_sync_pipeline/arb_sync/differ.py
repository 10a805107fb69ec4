from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from .cache import CacheEntry, source_hash
from .utils import unique_preserve_order


@dataclass
class LocaleDiff:
    """
    Per-locale work list. Every list keeps template order (removals keep
    target-bundle order, then cache order) so reports are stable between runs.
    """
    locale: str
    added: List[str] = field(default_factory=list)      # never translated for this locale
    updated: List[str] = field(default_factory=list)    # source changed or invalidated
    unchanged: List[str] = field(default_factory=list)  # cached translation is reused
    to_remove: List[str] = field(default_factory=list)  # gone from the template
    template_order: List[str] = field(default_factory=list, repr=False)

    @property
    def to_translate(self) -> List[str]:
        wanted = set(self.added) | set(self.updated)
        return [k for k in self.template_order if k in wanted]

    def is_empty(self) -> bool:
        return not (self.added or self.updated or self.to_remove)


def compute_diff(
    template: Mapping[str, str],
    cached: Mapping[str, CacheEntry],
    target: Optional[Mapping[str, str]] = None,
    *,
    locale: str = "",
    force: bool = False,
    invalidate: Optional[Iterable[str]] = None,
) -> LocaleDiff:
    """
    template: key -> source text (translatable entries only)
    cached:   key -> CacheEntry for this locale
    target:   key -> current translated text for this locale

    A key is unchanged only while its cache entry hash equals the hash of the
    current source text; anything else (no entry, stale entry, forced or
    explicitly invalidated) is translated again.
    """
    target = target or {}
    invalid = set(invalidate or [])
    diff = LocaleDiff(locale=locale, template_order=list(template.keys()))

    for key, text in template.items():
        entry = cached.get(key)
        if entry is None:
            diff.added.append(key)
        elif force or key in invalid or entry.source_hash != source_hash(text):
            diff.updated.append(key)
        else:
            diff.unchanged.append(key)

    stale = [k for k in target if k not in template]
    stale += [k for k in sorted(cached) if k not in template]
    diff.to_remove = unique_preserve_order(stale)
    return diff


def cached_translations(diff: LocaleDiff, cached: Mapping[str, CacheEntry]) -> Dict[str, str]:
    """Translations reused verbatim for unchanged keys."""
    return {k: cached[k].translated for k in diff.unchanged}
