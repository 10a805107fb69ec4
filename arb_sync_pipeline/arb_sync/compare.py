from __future__ import annotations
import csv
from dataclasses import dataclass
from typing import IO, List

from .arb import ArbFile


@dataclass
class CompareRow:
    id: str
    source: str
    target: str
    correction: str = ""


def compare_rows(template: ArbFile, target: ArbFile) -> List[CompareRow]:
    """One row per template key that already has a translation, in template order."""
    translated = target.translatable()
    return [
        CompareRow(key, text, translated[key])
        for key, text in template.translatable().items()
        if key in translated
    ]


def write_csv(rows: List[CompareRow], out: IO[str], source_lang: str, target_lang: str) -> None:
    # reviewers fill in the Correction column; it can be turned into an overrides file
    w = csv.writer(out)
    w.writerow(["Identifier", f"Source ({source_lang})", f"Target ({target_lang})", "Correction"])
    for r in rows:
        w.writerow([r.id, r.source, r.target, r.correction])
