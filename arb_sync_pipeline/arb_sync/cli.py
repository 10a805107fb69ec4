# arb_sync/cli.py
from __future__ import annotations
import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from .arb import load_bundle, load_bundle_or_empty
from .cache import CacheStore
from .compare import compare_rows, write_csv
from .config import API_KEY_ENV, IntlIndex, SyncConfig
from .differ import compute_diff
from .errors import ArbSyncError, LoadError
from .lang import parse_lang
from .logger import LOGGER_NAME, setup_logger
from .sync import sync
from .translator_deepl import DeepLTranslator

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_KEY_FAILURES = 2
EXIT_INTERRUPTED = 130


def _print_json(data) -> None:
    json.dump(data, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")


def _lang_arg(value: str) -> str:
    try:
        return parse_lang(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def _config_from_args(args, locales: List[str]) -> SyncConfig:
    return SyncConfig(
        index_path=args.index,
        locales=locales,
        api_key=args.api_key,
        dry_run=not args.apply,
        overrides_path=args.overrides,
        name_prefix=args.name_prefix,
        force=args.force,
        invalidate_keys=args.invalidate or [],
        concurrency=args.concurrency,
        timeout=args.timeout,
        qps=args.qps,
        max_retries=args.max_retries,
        drop_failed=args.drop_failed,
        fail_on_error=args.fail_on_error,
        log_level=args.log_level,
        report_path=args.report,
    )


def cmd_sync(args, locales: List[str]) -> int:
    cfg = _config_from_args(args, locales)
    report = sync(cfg)
    if report.failures:
        logging.getLogger(LOGGER_NAME).warning(f"{report.failures} key(s) failed to translate, see the errors above")
        if cfg.fail_on_error:
            return EXIT_KEY_FAILURES
    return EXIT_OK


def cmd_diff(args) -> int:
    index = IntlIndex.load(args.index, args.name_prefix)
    template = load_bundle(index.template_path()).translatable()
    cache = CacheStore.load_or_empty(index.cache_path())
    out = {}
    for lang in args.lang or index.target_languages():
        target = load_bundle_or_empty(index.file_path_for(lang)).translatable()
        d = compute_diff(template, cache.entries_for(lang), target, locale=lang)
        out[lang] = {"create": d.added, "update": d.updated, "delete": d.to_remove}
    _print_json(out)
    return EXIT_OK


def cmd_list(args) -> int:
    index = IntlIndex.load(args.index, args.name_prefix)
    _print_json(index.list_translated())
    return EXIT_OK


def cmd_compare(args) -> int:
    index = IntlIndex.load(args.index, args.name_prefix)
    path = index.list_translated().get(args.lang)
    if path is None:
        raise LoadError(f"no bundle for {args.lang} in {index.arb_directory()}")
    rows = compare_rows(load_bundle(index.template_path()), load_bundle(path))
    if args.output:
        with open(args.output, "w", encoding="utf-8", newline="") as f:
            write_csv(rows, f, index.template_language, args.lang)
    else:
        write_csv(rows, sys.stdout, index.template_language, args.lang)
    return EXIT_OK


def _api(args) -> DeepLTranslator:
    return DeepLTranslator(args.api_key or os.getenv(API_KEY_ENV, ""), timeout=args.timeout)


def cmd_usage(args) -> int:
    _print_json(_api(args).usage())
    return EXIT_OK


def cmd_languages(args) -> int:
    _print_json(_api(args).languages(args.language_type))
    return EXIT_OK


def _add_index_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("index", help="Localization YAML index file (arb-dir, template-arb-file)")
    p.add_argument("--name-prefix", default=None, help="Bundle file name prefix (default: app)")


def _add_api_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--api-key", default=None, help=f"DeepL API key (default: ${API_KEY_ENV})")
    p.add_argument("--timeout", type=float, default=30.0, help="Per-request timeout in seconds")


def _add_sync_args(p: argparse.ArgumentParser) -> None:
    _add_index_args(p)
    _add_api_args(p)
    p.add_argument("--apply", action="store_true", help="Translate and write to disk (default is a dry run)")
    p.add_argument("--overrides", default=None, help="Directory or YAML/JSON file of human translations")
    p.add_argument("-f", "--force", action="store_true", help="Invalidate all keys")
    p.add_argument("-i", "--invalidate", action="append", metavar="KEY", help="Invalidate a key (repeatable)")
    p.add_argument("--concurrency", type=int, default=4)
    p.add_argument("--qps", type=float, default=0.0, help="Max requests per second, 0 for no limit")
    p.add_argument("--max-retries", type=int, default=0)
    p.add_argument("--drop-failed", action="store_true",
                   help="Remove keys whose translation failed instead of keeping the old value")
    p.add_argument("--fail-on-error", action="store_true", help="Exit with status 2 when any key failed")
    p.add_argument("--report", default=None, help="Write a JSON run report to this path")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="arb-sync", description="Keep Flutter ARB bundles in sync with DeepL")
    ap.add_argument("--log-level", default="INFO")
    sub = ap.add_subparsers(dest="cmd", required=True)

    t = sub.add_parser("translate", aliases=["tl"], help="Translate the template to one language")
    _add_sync_args(t)
    t.add_argument("-l", "--lang", required=True, type=_lang_arg, help="Target language")

    u = sub.add_parser("update", aliases=["up"], help="Update every existing translation")
    _add_sync_args(u)

    d = sub.add_parser("diff", help="Show keys to create/update/delete per language")
    _add_index_args(d)
    d.add_argument("-l", "--lang", action="append", type=_lang_arg, help="Language (repeatable, default: all)")

    ls = sub.add_parser("list", aliases=["ls"], help="List translated bundles")
    _add_index_args(ls)

    c = sub.add_parser("compare", help="CSV of template vs. one language for review")
    _add_index_args(c)
    c.add_argument("-l", "--lang", required=True, type=_lang_arg)
    c.add_argument("-o", "--output", default=None, help="CSV file (default: stdout)")

    us = sub.add_parser("usage", help="Print DeepL account usage")
    _add_api_args(us)

    lg = sub.add_parser("languages", help="Print languages supported by DeepL")
    _add_api_args(lg)
    lg.add_argument("-t", "--type", dest="language_type", choices=["source", "target"], default="source")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logger = setup_logger(args.log_level)
    try:
        if args.cmd in ("translate", "tl"):
            return cmd_sync(args, [args.lang])
        if args.cmd in ("update", "up"):
            return cmd_sync(args, [])
        if args.cmd == "diff":
            return cmd_diff(args)
        if args.cmd in ("list", "ls"):
            return cmd_list(args)
        if args.cmd == "compare":
            return cmd_compare(args)
        if args.cmd == "usage":
            return cmd_usage(args)
        if args.cmd == "languages":
            return cmd_languages(args)
    except ArbSyncError as e:
        logger.error(str(e))
        return EXIT_FATAL
    except KeyboardInterrupt:
        logger.error("interrupted")
        return EXIT_INTERRUPTED
    return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
