# arb_sync/sync.py
from __future__ import annotations
import json
import logging
import os
import re
import sqlite3
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Pattern, Tuple

from .arb import LOCALE_KEY, ArbFile, load_bundle, load_bundle_or_empty, render_bundle
from .cache import CacheStore, source_hash
from .config import IntlIndex, SyncConfig
from .differ import LocaleDiff, cached_translations, compute_diff
from .errors import LoadError, PlaceholderMismatch, TranslationError, WriteError
from .lang import arb_locale, label, try_parse_lang
from .overrides import Overrides, apply_overrides, exclude_overridden, load_overrides
from .placeholder_lock import compile_patterns, lock_placeholders, unlock_placeholders
from .report import KeyFailure, LocaleReport, SyncReport, render_plan
from .translator_base import Translator
from .translator_deepl import DeepLTranslator
from .utils import (
    atomic_write_text, commit_staged, discard, load_text, read_bytes_or_none, restore_bytes, stage_text,
)
from .validators import check_length_ratio, check_untranslated


class SyncState(str, Enum):
    LOADING = "loading"
    DIFFING = "diffing"
    TRANSLATING = "translating"
    MERGING = "merging"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class LocaleWork:
    """Everything one locale owns during a run; no two locales share one."""
    lang: str
    path: str
    target: ArbFile
    overrides: Dict[str, str] = field(default_factory=dict)
    diff: Optional[LocaleDiff] = None
    overridden: List[str] = field(default_factory=list)
    results: Dict[str, str] = field(default_factory=dict)
    failures: Dict[str, KeyFailure] = field(default_factory=dict)
    final: Optional[ArbFile] = None


class SyncEngine:
    """
    Loading -> Diffing -> Translating -> Merging -> Writing -> Done.

    Any LoadError ends the run in Failed before anything is written. Per-key
    translation problems are collected and reported, never raised. Writing
    stages every bundle and the cache as temp files first and only then
    renames them into place; if a rename fails or the run is interrupted, the
    files already replaced get their previous bytes back.
    """

    def __init__(self, config: SyncConfig, translator: Optional[Translator] = None,
                 logger: logging.Logger | None = None) -> None:
        self.config = config
        self.translator = translator
        self.logger = logger or logging.getLogger("arb-sync")
        self.state = SyncState.LOADING
        self.report = SyncReport(dry_run=config.dry_run)

        self.index: Optional[IntlIndex] = None
        self.template: ArbFile = ArbFile()
        self.template_entries: Dict[str, str] = {}
        self.patterns: Dict[str, List[Pattern]] = {}
        self.cache: CacheStore = CacheStore()
        self.work: Dict[str, LocaleWork] = {}

    # ---------- state machine ----------

    def _enter(self, state: SyncState) -> None:
        self.state = state
        self.report.state = state.value
        self.logger.debug(f"state -> {state.value}")

    def run(self) -> SyncReport:
        try:
            self._load()
            self._enter(SyncState.DIFFING)
            self._diff()
            if not self.config.dry_run:
                self._enter(SyncState.TRANSLATING)
                self._translate()
            self._enter(SyncState.MERGING)
            self._merge()
            self._enter(SyncState.WRITING)
            self._write()
        except BaseException:
            self._enter(SyncState.FAILED)
            raise
        self._enter(SyncState.DONE)
        self._write_report()
        return self.report

    # ---------- loading ----------

    def _load(self) -> None:
        cfg = self.config
        self.index = index = IntlIndex.load(cfg.index_path, cfg.name_prefix)
        self.logger.info(f"Loading template {index.template_arb_file} ({label(index.template_language)})")
        self.template = load_bundle(index.template_path())
        self.template.verify_placeholders(index.template_arb_file)
        self.template_entries = self.template.translatable()

        try:
            for key in self.template_entries:
                self.patterns[key] = compile_patterns(index.placeholder_pattern, self.template.placeholders(key))
        except re.error as e:
            raise LoadError(f"invalid placeholder-pattern '{index.placeholder_pattern}': {e}") from e

        languages = self._languages(index)
        self.cache = CacheStore.load_or_empty(index.cache_path(), self.logger)

        overrides: Overrides = {}
        ov_path = index.overrides_path(cfg.overrides_path)
        if ov_path:
            overrides = load_overrides(ov_path, index.name_prefix, languages)
            self.logger.info(f"Loaded overrides for {len(overrides)} language(s) from {ov_path}")

        for lang in languages:
            path = index.file_path_for(lang)
            work = LocaleWork(lang=lang, path=path, target=load_bundle_or_empty(path))
            for key, value in overrides.get(lang, {}).items():
                if key in self.template_entries:
                    work.overrides[key] = value
                else:
                    self.logger.warning(f"[{lang}] override for unknown key '{key}' ignored")
            self.work[lang] = work

        if not cfg.dry_run and self.translator is None:
            self.translator = DeepLTranslator(
                cfg.resolved_api_key(),
                timeout=cfg.timeout,
                qps=cfg.qps,
                max_retries=cfg.max_retries,
                backoff_base=cfg.backoff_base,
                logger=self.logger,
            )
        self.logger.info(f"Template keys: {len(self.template_entries)}, languages: {', '.join(languages) or '-'}")

    def _languages(self, index: IntlIndex) -> List[str]:
        if not self.config.locales:
            return index.target_languages()
        out: List[str] = []
        for code in self.config.locales:
            lang = try_parse_lang(code)
            if lang is None:
                raise LoadError(f"unsupported language '{code}'")
            if lang == index.template_language:
                self.logger.warning(f"{lang} is the template language, skipped")
                continue
            if lang not in out:
                out.append(lang)
        return out

    # ---------- diffing ----------

    def _diff(self) -> None:
        cfg = self.config
        for lang, work in self.work.items():
            diff = compute_diff(
                self.template_entries,
                self.cache.entries_for(lang),
                work.target.translatable(),
                locale=lang,
                force=cfg.force,
                invalidate=cfg.invalidate_keys,
            )
            work.overridden = exclude_overridden(diff, work.overrides)
            work.diff = diff
            self.logger.info(
                f"[{lang}] add={len(diff.added)} update={len(diff.updated)} "
                f"delete={len(diff.to_remove)} unchanged={len(diff.unchanged)} overridden={len(work.overridden)}"
            )

    # ---------- translating ----------

    def _translate_one(self, lang: str, key: str) -> str:
        text = self.template_entries[key]
        tagged, spans = lock_placeholders(text, self.patterns[key])
        out = self.translator.translate(tagged, self.index.template_language, lang)
        return unlock_placeholders(out, spans)

    def _translate(self) -> None:
        jobs: List[Tuple[str, str]] = [
            (lang, key) for lang, work in self.work.items() for key in work.diff.to_translate
        ]
        if not jobs:
            self.logger.info("Nothing to translate")
            return
        self.logger.info(f"Translating {len(jobs)} string(s) with {self.config.concurrency} worker(s)")

        executor = ThreadPoolExecutor(max_workers=max(1, self.config.concurrency))
        try:
            futures: Dict[Future, Tuple[str, str]] = {
                executor.submit(self._translate_one, lang, key): (lang, key) for lang, key in jobs
            }
            for fut in as_completed(futures):
                lang, key = futures[fut]
                work = self.work[lang]
                try:
                    work.results[key] = fut.result()
                except PlaceholderMismatch as e:
                    work.failures[key] = KeyFailure(key, "placeholder_mismatch", str(e))
                    self.logger.warning(f"[{lang}] {key}: {e}")
                except TranslationError as e:
                    work.failures[key] = KeyFailure(key, e.kind.value, e.message)
                    self.logger.warning(f"[{lang}] {key}: translation failed ({e})")
        except BaseException:
            # interrupted: drop queued calls, nothing has been written yet
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown(wait=True)

    # ---------- merging ----------

    def _merge(self) -> None:
        cfg = self.config
        order = list(self.template_entries)
        for lang, work in self.work.items():
            diff = work.diff
            reused = cached_translations(diff, self.cache.entries_for(lang))
            previous = work.target.translatable()
            report = LocaleReport(locale=lang, unchanged=list(diff.unchanged), removed=list(diff.to_remove))

            entries: Dict[str, str] = {}
            for key in order:
                if key in work.results:
                    entries[key] = work.results[key]
                    if not cfg.dry_run:
                        self.cache.put(lang, key, source_hash(self.template_entries[key]), work.results[key])
                    report.warnings += check_length_ratio(
                        key, self.template_entries[key], work.results[key], lang,
                        cfg.length_ratio_min, cfg.length_ratio_max,
                    )
                    report.warnings += check_untranslated(key, self.template_entries[key], work.results[key], lang)
                elif key in reused:
                    entries[key] = reused[key]
                elif key in previous and not (cfg.drop_failed and key in work.failures):
                    # failed, overridden or dry run: keep what the bundle already had
                    entries[key] = previous[key]

            if not cfg.dry_run:
                for key in diff.to_remove:
                    self.cache.remove(lang, key)

            final_entries = apply_overrides(entries, work.overrides, order)
            work.final = self._assemble(lang, work.target, final_entries, order)

            report.added = list(diff.added)
            report.updated = list(diff.updated)
            report.overridden = [k for k in work.overrides if previous.get(k) != work.overrides[k]]
            report.failed = [work.failures[k] for k in order if k in work.failures]
            for w in report.warnings:
                self.logger.warning(f"[{lang}] {w}")
            self.report.locales[lang] = report

        if not cfg.dry_run:
            # locales not part of this run still lose entries for deleted template keys
            for lang in self.cache.locales():
                if lang in self.work:
                    continue
                for key in self.cache.entries_for(lang):
                    if key not in self.template_entries:
                        self.cache.remove(lang, key)

    @staticmethod
    def _assemble(lang: str, target: ArbFile, entries: Dict[str, str], order: List[str]) -> ArbFile:
        """
        @@locale first, then the target's other @@ attributes, then each
        template key followed by the @key metadata the target already had.
        Metadata of keys that left the template goes with them.
        """
        final = ArbFile({LOCALE_KEY: target.locale or arb_locale(lang)})
        for key, value in target.entries():
            if key.startswith("@@") and key != LOCALE_KEY:
                final.insert(key, value)
        for key in order:
            if key in entries:
                final.insert(key, entries[key])
            meta = target.get(f"@{key}")
            if meta is not None:
                final.insert(f"@{key}", meta)
        return final

    # ---------- writing ----------

    def _write(self) -> None:
        if self.config.dry_run:
            self.logger.info(render_plan(self.report))
            self.logger.warning("dry run, use --apply to translate and write")
            return

        writes: List[Tuple[str, str]] = []  # (temp, final path)
        try:
            for lang, work in self.work.items():
                text = render_bundle(work.final)
                if os.path.exists(work.path) and load_text(work.path) == text:
                    continue
                writes.append((stage_text(work.path, text), work.path))
            cache_path = self.index.cache_path()
            writes.append((self.cache.stage(cache_path), cache_path))
            previous = [read_bytes_or_none(path) for _, path in writes]
        except BaseException as e:
            for tmp, _ in writes:
                discard(tmp)
            if isinstance(e, (OSError, sqlite3.Error)):
                raise WriteError(f"cannot stage output files: {e}") from e
            raise

        committed = 0
        try:
            for tmp, path in writes:
                commit_staged(tmp, path)
                committed += 1
                self.logger.info(f"Wrote {path}")
        except BaseException as e:
            for tmp, _ in writes[committed:]:
                discard(tmp)
            self._roll_back([path for _, path in writes[:committed]], previous)
            if isinstance(e, OSError):
                raise WriteError(f"cannot replace {writes[committed][1]}: {e}; earlier files restored") from e
            raise
        self.logger.info(render_plan(self.report))

    def _roll_back(self, paths: List[str], previous: List[Optional[bytes]]) -> None:
        for path, data in reversed(list(zip(paths, previous))):
            try:
                restore_bytes(path, data)
            except OSError as e:
                self.logger.error(f"cannot restore {path}: {e}")
            else:
                self.logger.warning(f"Restored {path}")

    def _write_report(self) -> None:
        if self.config.dry_run or not self.config.report_path:
            return
        atomic_write_text(self.config.report_path, json.dumps(self.report.to_dict(), ensure_ascii=False, indent=2) + "\n")
        self.logger.info(f"Report written to {self.config.report_path}")


def sync(config: SyncConfig, translator: Optional[Translator] = None,
         logger: logging.Logger | None = None) -> SyncReport:
    return SyncEngine(config, translator=translator, logger=logger).run()
