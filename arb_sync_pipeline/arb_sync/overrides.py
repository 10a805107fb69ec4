from __future__ import annotations
import os
from typing import Dict, Iterable, List, Mapping, Optional

import yaml

from .arb import list_bundles, load_bundle
from .differ import LocaleDiff
from .errors import LoadError
from .lang import try_parse_lang
from .utils import load_text

Overrides = Dict[str, Dict[str, str]]  # lang -> key -> human translation


def load_overrides(path: str, name_prefix: str = "app", languages: Optional[Iterable[str]] = None) -> Overrides:
    """
    Human corrections, read-only. `path` is either a directory of
    `{prefix}_{lang}.arb` files or one YAML/JSON file shaped
    {lang: {key: text}}. When `languages` is given only those are kept.
    """
    wanted = set(languages) if languages is not None else None
    if os.path.isdir(path):
        out: Overrides = {}
        for lang, file_path in list_bundles(path, name_prefix).items():
            if wanted is not None and lang not in wanted:
                continue
            out[lang] = load_bundle(file_path).translatable()
        return out
    if os.path.isfile(path):
        return _load_overrides_file(path, wanted)
    raise LoadError(f"overrides path does not exist: {path}")


def _load_overrides_file(path: str, wanted) -> Overrides:
    try:
        data = yaml.safe_load(load_text(path)) or {}
    except (OSError, yaml.YAMLError) as e:
        raise LoadError(f"cannot read overrides {path}: {e}") from e
    if not isinstance(data, dict):
        raise LoadError(f"overrides {path}: expected a mapping of language -> entries")
    out: Overrides = {}
    for raw_lang, entries in data.items():
        lang = try_parse_lang(str(raw_lang))
        if lang is None:
            raise LoadError(f"overrides {path}: unknown language '{raw_lang}'")
        if not isinstance(entries, dict) or not all(isinstance(v, str) for v in entries.values()):
            raise LoadError(f"overrides {path}: entries for '{raw_lang}' must map keys to strings")
        if wanted is not None and lang not in wanted:
            continue
        out[lang] = {str(k): v for k, v in entries.items()}
    return out


def exclude_overridden(diff: LocaleDiff, overrides: Mapping[str, str]) -> List[str]:
    """
    Drop overridden keys from the translate lists so no API call is spent on
    text that would be thrown away. Returns the keys that were dropped.
    """
    dropped = [k for k in diff.to_translate if k in overrides]
    if dropped:
        diff.added = [k for k in diff.added if k not in overrides]
        diff.updated = [k for k in diff.updated if k not in overrides]
    return dropped


def apply_overrides(
    entries: Mapping[str, str],
    overrides: Mapping[str, str],
    order: Optional[Iterable[str]] = None,
) -> Dict[str, str]:
    """
    Final bundle assembly: an override always wins over cached, freshly
    translated or pre-existing text. Keys follow `order` when given (keys in
    `order` with neither a value nor an override are left out), otherwise the
    entries' order followed by override-only keys.
    """
    if order is None:
        order = list(entries) + [k for k in overrides if k not in entries]
    final: Dict[str, str] = {}
    for k in order:
        if k in overrides:
            final[k] = overrides[k]
        elif k in entries:
            final[k] = entries[k]
    return final
