from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from arb_sync.config import SyncConfig
from arb_sync.translator_base import Translator


class FakeTranslator(Translator):
    """
    Deterministic stand-in for DeepL: prefixes the target language, leaves
    <ph> tags alone. `responses` maps a tagged source text to a fixed output
    or to an exception to raise.
    """

    def __init__(self, responses: Optional[Dict[str, object]] = None) -> None:
        self.responses = responses or {}
        self.calls: List[Tuple[str, str, str]] = []
        self._lock = threading.Lock()

    def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        with self._lock:
            self.calls.append((text, source_lang, target_lang))
        out = self.responses.get(text)
        if isinstance(out, BaseException):
            raise out
        if isinstance(out, str):
            return out
        return f"[{target_lang}] {text}"

    def texts(self) -> List[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def translator() -> FakeTranslator:
    return FakeTranslator()


def write_json(path: Path, data: dict) -> None:
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")


def read_json(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def project(tmp_path: Path) -> Callable[..., Path]:
    """
    Build an l10n project on disk:
        tmp/l10n.yaml
        tmp/lib/l10n/app_en.arb + app_<lang>.arb
    Returns the index file path.
    """

    def _make(template: dict, targets: Optional[Dict[str, dict]] = None, extra_index: str = "") -> Path:
        arb_dir = tmp_path / "lib" / "l10n"
        arb_dir.mkdir(parents=True, exist_ok=True)
        write_json(arb_dir / "app_en.arb", template)
        for suffix, contents in (targets or {}).items():
            write_json(arb_dir / f"app_{suffix}.arb", contents)
        index = tmp_path / "l10n.yaml"
        index.write_text("arb-dir: lib/l10n\ntemplate-arb-file: app_en.arb\n" + extra_index, encoding="utf-8")
        return index

    return _make


@pytest.fixture
def arb_dir(tmp_path: Path) -> Path:
    return tmp_path / "lib" / "l10n"


@pytest.fixture
def make_config() -> Callable[..., SyncConfig]:
    def _make(index: Path, **kwargs) -> SyncConfig:
        kwargs.setdefault("dry_run", False)
        kwargs.setdefault("concurrency", 2)
        return SyncConfig(index_path=str(index), **kwargs)

    return _make
