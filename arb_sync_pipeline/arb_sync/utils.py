from __future__ import annotations
import os
from typing import Iterable, List, Optional

def load_text(path: str) -> str:
    # utf-8-sig drops a leading BOM, arb files from some editors carry one
    with open(path, "r", encoding="utf-8-sig") as f:
        return f.read()

def temp_path_for(path: str) -> str:
    d, name = os.path.split(path)
    return os.path.join(d, f".{name}.tmp.{os.getpid()}")

def stage_text(path: str, text: str) -> str:
    """
    Write text next to path under a temporary name and return that name.
    The caller renames it into place with os.replace (see commit_staged).
    """
    tmp = temp_path_for(path)
    try:
        with open(tmp, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
    except BaseException:
        discard(tmp)
        raise
    return tmp

def commit_staged(tmp: str, path: str) -> None:
    os.replace(tmp, path)

def discard(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass

def atomic_write_text(path: str, text: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    commit_staged(stage_text(path, text), path)

def unique_preserve_order(seq: Iterable[str]) -> List[str]:
    seen, out = set(), []
    for s in seq:
        if s not in seen:
            seen.add(s)
            out.append(s)
    return out

def read_bytes_or_none(path: str) -> Optional[bytes]:
    try:
        with open(path, "rb") as f:
            return f.read()
    except FileNotFoundError:
        return None

def restore_bytes(path: str, data: Optional[bytes]) -> None:
    """Put back what read_bytes_or_none returned; None means the file did not exist."""
    if data is None:
        discard(path)
        return
    tmp = temp_path_for(path)
    try:
        with open(tmp, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
    except BaseException:
        discard(tmp)
        raise
    os.replace(tmp, path)
