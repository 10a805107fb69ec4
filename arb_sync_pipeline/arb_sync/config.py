# arb_sync/config.py
from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import yaml

from .arb import bundle_file_name, list_bundles
from .cache import CACHE_FILE
from .errors import LoadError
from .lang import try_parse_lang
from .utils import load_text

ARB_DIR = "arb-dir"
TEMPLATE_ARB_FILE = "template-arb-file"
NAME_PREFIX = "name-prefix"
OVERRIDES_DIR = "overrides-dir"
PLACEHOLDER_PATTERN = "placeholder-pattern"

DEFAULT_NAME_PREFIX = "app"
API_KEY_ENV = "DEEPL_API_KEY"


@dataclass
class SyncConfig:
    index_path: str
    locales: List[str] = field(default_factory=list)   # empty: every bundle in arb-dir

    api_key: Optional[str] = None
    dry_run: bool = True
    overrides_path: Optional[str] = None
    name_prefix: Optional[str] = None
    force: bool = False
    invalidate_keys: List[str] = field(default_factory=list)
    concurrency: int = 4
    timeout: float = 30.0
    qps: float = 0.0                                   # 0 disables throttling
    max_retries: int = 0
    backoff_base: float = 1.5
    drop_failed: bool = False
    fail_on_error: bool = False
    length_ratio_min: float = 0.2
    length_ratio_max: float = 4.0
    log_level: str = "INFO"
    report_path: Optional[str] = None

    def resolved_api_key(self) -> str:
        return self.api_key or os.getenv(API_KEY_ENV, "")


@dataclass
class IntlIndex:
    """
    The l10n.yaml style index file. Bundles live in `arb_dir` (relative to the
    index file) and are named `{name_prefix}_{lang}.arb`, e.g. app_en_us.arb
    for EN-US. The template language is read from the template file name.
    """
    file_path: str
    arb_dir: str
    template_arb_file: str
    template_language: str
    name_prefix: str = DEFAULT_NAME_PREFIX
    overrides_dir: Optional[str] = None
    placeholder_pattern: Optional[str] = None

    @classmethod
    def load(cls, path: str, name_prefix: Optional[str] = None) -> "IntlIndex":
        if not os.path.exists(path):
            raise LoadError(f"index file not found: {path}")
        if not os.path.isfile(path):
            raise LoadError(f"index path is not a file: {path}")
        try:
            doc = yaml.safe_load(load_text(path))
        except (OSError, yaml.YAMLError) as e:
            raise LoadError(f"cannot parse index file {path}: {e}") from e
        if doc is None:
            raise LoadError(f"no YAML documents in index file {path}")
        if not isinstance(doc, dict):
            raise LoadError(f"index file {path} must be a mapping")

        arb_dir = doc.get(ARB_DIR)
        if not isinstance(arb_dir, str) or not arb_dir:
            raise LoadError(f"{ARB_DIR} is not defined in {path}")
        template_arb_file = doc.get(TEMPLATE_ARB_FILE)
        if not isinstance(template_arb_file, str) or not template_arb_file:
            raise LoadError(f"{TEMPLATE_ARB_FILE} is not defined in {path}")

        # command line wins over the index file
        prefix = name_prefix or doc.get(NAME_PREFIX) or DEFAULT_NAME_PREFIX
        stem = template_arb_file[:-4] if template_arb_file.endswith(".arb") else template_arb_file
        code = stem[len(prefix) + 1:] if stem.startswith(f"{prefix}_") else stem
        lang = try_parse_lang(code)
        if lang is None:
            raise LoadError(f"cannot determine template language from '{template_arb_file}'")

        return cls(
            file_path=path,
            arb_dir=arb_dir,
            template_arb_file=template_arb_file,
            template_language=lang,
            name_prefix=str(prefix),
            overrides_dir=doc.get(OVERRIDES_DIR),
            placeholder_pattern=doc.get(PLACEHOLDER_PATTERN),
        )

    @property
    def parent_path(self) -> str:
        return os.path.dirname(os.path.abspath(self.file_path))

    def _resolve(self, p: str) -> str:
        return p if os.path.isabs(p) else os.path.join(self.parent_path, p)

    def arb_directory(self) -> str:
        d = self._resolve(self.arb_dir)
        if not os.path.isdir(d):
            raise LoadError(f"{ARB_DIR} is not a directory: {d}")
        return d

    def template_path(self) -> str:
        return os.path.join(self.arb_directory(), self.template_arb_file)

    def file_path_for(self, lang: str) -> str:
        return os.path.join(self.arb_directory(), bundle_file_name(self.name_prefix, lang))

    def cache_path(self) -> str:
        return os.path.join(self.arb_directory(), CACHE_FILE)

    def list_translated(self) -> Dict[str, str]:
        return list_bundles(self.arb_directory(), self.name_prefix)

    def target_languages(self) -> List[str]:
        return [lang for lang in self.list_translated() if lang != self.template_language]

    def overrides_path(self, explicit: Optional[str] = None) -> Optional[str]:
        if explicit:
            return explicit
        return self._resolve(self.overrides_dir) if self.overrides_dir else None
