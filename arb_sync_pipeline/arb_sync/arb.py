from __future__ import annotations
import json
import os
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import LoadError
from .lang import file_suffix, try_parse_lang
from .utils import atomic_write_text, load_text

PLACEHOLDERS = "placeholders"
LOCALE_KEY = "@@locale"


def is_meta_key(key: str) -> bool:
    # @key holds metadata (description, placeholders), @@locale the bundle locale
    return key.startswith("@")


class ArbFile:
    """
    Application resource bundle: an ordered JSON object of key -> value.
    Only non-@ keys with string values are translatable.
    """

    def __init__(self, contents: Optional[Dict[str, Any]] = None) -> None:
        self.contents: Dict[str, Any] = dict(contents or {})

    def __len__(self) -> int:
        return len(self.contents)

    def __contains__(self, key: str) -> bool:
        return key in self.contents

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ArbFile) and list(self.contents.items()) == list(other.contents.items())

    def __repr__(self) -> str:
        return f"ArbFile({self.contents!r})"

    def get(self, key: str, default: Any = None) -> Any:
        return self.contents.get(key, default)

    def insert(self, key: str, value: Any) -> None:
        self.contents[key] = value

    def remove(self, key: str) -> Optional[Any]:
        return self.contents.pop(key, None)

    def entries(self) -> Iterator[Tuple[str, Any]]:
        return iter(self.contents.items())

    def translatable(self) -> Dict[str, str]:
        return {k: v for k, v in self.contents.items() if not is_meta_key(k) and isinstance(v, str)}

    @property
    def locale(self) -> Optional[str]:
        v = self.contents.get(LOCALE_KEY)
        return v if isinstance(v, str) else None

    def placeholders(self, key: str) -> Optional[List[str]]:
        """Placeholder names declared in the @key metadata, if any."""
        if is_meta_key(key):
            raise ValueError(f"key '{key}' is already prefixed with an @ symbol")
        meta = self.contents.get(f"@{key}")
        if not isinstance(meta, dict):
            return None
        declared = meta.get(PLACEHOLDERS)
        if not isinstance(declared, dict):
            return None
        return list(declared.keys())

    def verify_placeholders(self, source_name: str = "template") -> None:
        # a declared placeholder missing from its source text means a broken template
        for key, text in self.translatable().items():
            for name in self.placeholders(key) or []:
                if "{" + name + "}" not in text:
                    raise LoadError(
                        f"{source_name}: placeholder '{name}' is declared but does not exist in source '{text}'"
                    )


def render_bundle(bundle: ArbFile) -> str:
    return json.dumps(bundle.contents, ensure_ascii=False, indent=2) + "\n"


def parse_bundle(text: str, source_name: str = "<string>") -> ArbFile:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise LoadError(f"{source_name}: invalid JSON ({e})") from e
    if not isinstance(data, dict):
        raise LoadError(f"{source_name}: expected a JSON object, got {type(data).__name__}")
    return ArbFile(data)


def load_bundle(path: str) -> ArbFile:
    try:
        text = load_text(path)
    except OSError as e:
        raise LoadError(f"cannot read {path}: {e}") from e
    return parse_bundle(text, path)


def load_bundle_or_empty(path: str) -> ArbFile:
    if not os.path.exists(path):
        return ArbFile()
    return load_bundle(path)


def save_bundle(path: str, bundle: ArbFile) -> None:
    atomic_write_text(path, render_bundle(bundle))


def bundle_file_name(name_prefix: str, lang: str) -> str:
    return f"{name_prefix}_{file_suffix(lang)}.arb"


def parse_bundle_file_name(name_prefix: str, file_name: str) -> Optional[str]:
    """app_pt_br.arb -> PT-BR; None when the name does not follow the convention."""
    stem, ext = os.path.splitext(os.path.basename(file_name))
    pat = f"{name_prefix}_"
    if ext != ".arb" or not stem.startswith(pat):
        return None
    return try_parse_lang(stem[len(pat):])


def list_bundles(directory: str, name_prefix: str) -> Dict[str, str]:
    """Language -> path for every bundle in `directory`, sorted by language."""
    if not os.path.isdir(directory):
        raise LoadError(f"not a directory: {directory}")
    found: Dict[str, str] = {}
    for name in sorted(os.listdir(directory)):
        path = os.path.join(directory, name)
        lang = parse_bundle_file_name(name_prefix, name)
        if lang and os.path.isfile(path):
            found[lang] = path
    return dict(sorted(found.items()))
