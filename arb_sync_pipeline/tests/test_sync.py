from __future__ import annotations

import json
import os

import pytest

from arb_sync import sync as sync_module
from arb_sync.cache import CACHE_FILE, CacheStore, source_hash
from arb_sync.errors import LoadError, TranslationError, TranslationErrorKind, WriteError
from arb_sync.sync import SyncEngine, SyncState, sync

from conftest import FakeTranslator, read_json, write_json


TEMPLATE = {
    "@@locale": "en",
    "hello": "Hello {name}",
    "@hello": {"placeholders": {"name": {"type": "String"}}},
    "bye": "Goodbye",
    "items": "{count} items",
}


def _cache(arb_dir) -> CacheStore:
    return CacheStore.load(str(arb_dir / CACHE_FILE))


def test_first_run_translates_and_writes(project, arb_dir, make_config, translator):
    index = project(TEMPLATE, {"fr": {}})

    report = sync(make_config(index), translator=translator)

    assert read_json(arb_dir / "app_fr.arb") == {
        "@@locale": "fr",
        "hello": "[FR] Hello {name}",
        "bye": "[FR] Goodbye",
        "items": "[FR] {count} items",
    }
    assert sorted(translator.texts()) == sorted(["Hello <ph>{name}</ph>", "Goodbye", "<ph>{count}</ph> items"])
    assert all(c[1] == "EN" and c[2] == "FR" for c in translator.calls)
    assert report.state == "done"
    assert report.locales["FR"].added == ["hello", "bye", "items"]
    assert report.failures == 0


def test_second_run_is_a_no_op(project, arb_dir, make_config):
    index = project(TEMPLATE, {"fr": {}, "de": {}})
    sync(make_config(index), translator=FakeTranslator())
    bundles = {p: (arb_dir / p).read_bytes() for p in ("app_fr.arb", "app_de.arb")}
    cache_before = _cache(arb_dir)
    cache_bytes = (arb_dir / CACHE_FILE).read_bytes()

    second = FakeTranslator()
    report = sync(make_config(index), translator=second)

    assert second.calls == []
    assert {p: (arb_dir / p).read_bytes() for p in bundles} == bundles
    assert _cache(arb_dir) == cache_before
    assert (arb_dir / CACHE_FILE).read_bytes() == cache_bytes
    assert report.locales["FR"].unchanged == ["hello", "bye", "items"]


def test_changed_source_is_retranslated_alone(project, arb_dir, make_config):
    index = project(TEMPLATE, {"fr": {}})
    sync(make_config(index), translator=FakeTranslator())

    write_json(arb_dir / "app_en.arb", dict(TEMPLATE, bye="See you"))
    second = FakeTranslator()
    report = sync(make_config(index), translator=second)

    assert second.texts() == ["See you"]
    assert report.locales["FR"].updated == ["bye"]
    assert read_json(arb_dir / "app_fr.arb")["bye"] == "[FR] See you"
    assert _cache(arb_dir).lookup("FR", "bye").source_hash == source_hash("See you")


def test_removed_key_leaves_bundle_and_cache(project, arb_dir, make_config):
    index = project(TEMPLATE, {"fr": {}})
    sync(make_config(index), translator=FakeTranslator())

    template = dict(TEMPLATE)
    del template["bye"]
    write_json(arb_dir / "app_en.arb", template)
    report = sync(make_config(index), translator=FakeTranslator())

    assert "bye" not in read_json(arb_dir / "app_fr.arb")
    assert _cache(arb_dir).lookup("FR", "bye") is None
    assert report.locales["FR"].removed == ["bye"]


def test_removed_key_is_pruned_from_locales_outside_the_run(project, arb_dir, make_config):
    index = project(TEMPLATE, {"fr": {}, "de": {}})
    sync(make_config(index), translator=FakeTranslator())

    template = dict(TEMPLATE)
    del template["bye"]
    write_json(arb_dir / "app_en.arb", template)
    sync(make_config(index, locales=["fr"]), translator=FakeTranslator())

    assert _cache(arb_dir).lookup("DE", "bye") is None
    assert _cache(arb_dir).lookup("DE", "hello") is not None


def test_override_takes_precedence_without_api_call(project, arb_dir, make_config, tmp_path):
    index = project(TEMPLATE, {"fr": {}})
    overrides = tmp_path / "overrides"
    overrides.mkdir()
    write_json(overrides / "app_fr.arb", {"bye": "Salut", "unknown": "ignored"})

    translator = FakeTranslator()
    report = sync(make_config(index, overrides_path=str(overrides)), translator=translator)

    bundle = read_json(arb_dir / "app_fr.arb")
    assert bundle["bye"] == "Salut"
    assert "unknown" not in bundle
    assert "Goodbye" not in translator.texts()
    assert _cache(arb_dir).lookup("FR", "bye") is None
    assert report.locales["FR"].overridden == ["bye"]


def test_removing_override_brings_back_machine_translation(project, arb_dir, make_config, tmp_path):
    index = project(TEMPLATE, {"fr": {}})
    overrides = tmp_path / "overrides.yaml"
    overrides.write_text("fr:\n  bye: Salut\n", encoding="utf-8")
    sync(make_config(index, overrides_path=str(overrides)), translator=FakeTranslator())

    translator = FakeTranslator()
    sync(make_config(index), translator=translator)

    assert translator.texts() == ["Goodbye"]
    assert read_json(arb_dir / "app_fr.arb")["bye"] == "[FR] Goodbye"


def test_override_over_cached_translation(project, arb_dir, make_config, tmp_path):
    index = project(TEMPLATE, {"fr": {}})
    sync(make_config(index), translator=FakeTranslator())
    overrides = tmp_path / "overrides.yaml"
    overrides.write_text("fr:\n  hello: \"Coucou {name}\"\n", encoding="utf-8")

    translator = FakeTranslator()
    sync(make_config(index, overrides_path=str(overrides)), translator=translator)

    assert translator.calls == []
    assert read_json(arb_dir / "app_fr.arb")["hello"] == "Coucou {name}"
    # the cache still describes the machine translation
    assert _cache(arb_dir).lookup("FR", "hello").translated == "[FR] Hello {name}"


def test_partial_failure_keeps_previous_value(project, arb_dir, make_config):
    index = project({"x": "X", "y": "Y"}, {"fr": {}})
    sync(make_config(index), translator=FakeTranslator())

    write_json(arb_dir / "app_en.arb", {"x": "X2", "y": "Y2", "z": "Z"})
    failing = FakeTranslator({
        "X2": TranslationError(TranslationErrorKind.NETWORK, "boom"),
        "Z": TranslationError(TranslationErrorKind.TIMEOUT, "slow"),
    })
    report = sync(make_config(index), translator=failing)

    bundle = read_json(arb_dir / "app_fr.arb")
    assert bundle["x"] == "[FR] X"
    assert bundle["y"] == "[FR] Y2"
    assert "z" not in bundle
    failed = {f.key: f.kind for f in report.locales["FR"].failed}
    assert failed == {"x": "network", "z": "timeout"}
    # stale hash stays so the next run retries x
    assert _cache(arb_dir).lookup("FR", "x").source_hash == source_hash("X")

    retry = FakeTranslator()
    sync(make_config(index), translator=retry)
    assert sorted(retry.texts()) == ["X2", "Z"]


def test_drop_failed_removes_stale_value(project, arb_dir, make_config):
    index = project({"x": "X"}, {"fr": {}})
    sync(make_config(index), translator=FakeTranslator())

    write_json(arb_dir / "app_en.arb", {"x": "X2"})
    failing = FakeTranslator({"X2": TranslationError(TranslationErrorKind.RATE_LIMITED)})
    sync(make_config(index, drop_failed=True), translator=failing)

    assert "x" not in read_json(arb_dir / "app_fr.arb")


def test_placeholder_mismatch_is_a_key_failure(project, arb_dir, make_config):
    index = project({"hello": "Hello {name}", "bye": "Bye"}, {"fr": {}})
    broken = FakeTranslator({"Hello <ph>{name}</ph>": "Bonjour"})

    report = sync(make_config(index), translator=broken)

    assert [f.kind for f in report.locales["FR"].failed] == ["placeholder_mismatch"]
    bundle = read_json(arb_dir / "app_fr.arb")
    assert "hello" not in bundle
    assert bundle["bye"] == "[FR] Bye"


def test_dry_run_touches_nothing(project, arb_dir, make_config):
    index = project(TEMPLATE, {"fr": {"bye": "Au revoir"}})
    fr = arb_dir / "app_fr.arb"
    before = (fr.read_bytes(), os.stat(fr).st_mtime_ns)

    translator = FakeTranslator()
    report = sync(make_config(index, dry_run=True), translator=translator)

    assert translator.calls == []
    assert (fr.read_bytes(), os.stat(fr).st_mtime_ns) == before
    assert not (arb_dir / CACHE_FILE).exists()
    assert report.dry_run
    assert report.locales["FR"].added == ["hello", "bye", "items"]


def test_dry_run_keeps_existing_cache_untouched(project, arb_dir, make_config):
    index = project(TEMPLATE, {"fr": {}})
    sync(make_config(index), translator=FakeTranslator())
    cache_file = arb_dir / CACHE_FILE
    before = (cache_file.read_bytes(), os.stat(cache_file).st_mtime_ns)

    write_json(arb_dir / "app_en.arb", {"only": "Only"})
    report = sync(make_config(index, dry_run=True), translator=FakeTranslator())

    assert (cache_file.read_bytes(), os.stat(cache_file).st_mtime_ns) == before
    assert report.locales["FR"].removed == ["hello", "bye", "items"]


def test_cache_matches_template_after_sync(project, arb_dir, make_config):
    index = project(TEMPLATE, {"fr": {}, "pt_br": {}})
    sync(make_config(index), translator=FakeTranslator())

    cache = _cache(arb_dir)
    for lang in ("FR", "PT-BR"):
        for key, text in (("hello", "Hello {name}"), ("bye", "Goodbye"), ("items", "{count} items")):
            assert cache.lookup(lang, key).source_hash == source_hash(text)
    assert read_json(arb_dir / "app_pt_br.arb")["@@locale"] == "pt_BR"


def test_translate_single_new_language_creates_bundle(project, arb_dir, make_config):
    index = project(TEMPLATE, {"fr": {}})

    sync(make_config(index, locales=["de"]), translator=FakeTranslator())

    assert read_json(arb_dir / "app_de.arb")["bye"] == "[DE] Goodbye"
    assert read_json(arb_dir / "app_fr.arb") == {}


def test_unchanged_key_missing_from_bundle_is_restored_from_cache(project, arb_dir, make_config):
    index = project(TEMPLATE, {"fr": {}})
    sync(make_config(index), translator=FakeTranslator())
    write_json(arb_dir / "app_fr.arb", {"@@locale": "fr"})

    translator = FakeTranslator()
    sync(make_config(index), translator=translator)

    assert translator.calls == []
    assert read_json(arb_dir / "app_fr.arb")["bye"] == "[FR] Goodbye"


def test_force_retranslates_everything(project, arb_dir, make_config):
    index = project(TEMPLATE, {"fr": {}})
    sync(make_config(index), translator=FakeTranslator())

    translator = FakeTranslator()
    sync(make_config(index, force=True), translator=translator)

    assert len(translator.calls) == 3


def test_bundle_order_follows_template_with_many_workers(project, arb_dir, make_config):
    template = {f"k{i:02d}": f"Text {i}" for i in range(40)}
    index = project(template, {"fr": {}})

    sync(make_config(index, concurrency=8), translator=FakeTranslator())

    assert list(read_json(arb_dir / "app_fr.arb"))[1:] == list(template)


def test_malformed_template_fails_before_writing(project, arb_dir, make_config):
    index = project(TEMPLATE, {"fr": {"bye": "Au revoir"}})
    (arb_dir / "app_en.arb").write_text("{broken", encoding="utf-8")
    before = (arb_dir / "app_fr.arb").read_bytes()

    engine = SyncEngine(make_config(index), translator=FakeTranslator())
    with pytest.raises(LoadError):
        engine.run()

    assert engine.state == SyncState.FAILED
    assert (arb_dir / "app_fr.arb").read_bytes() == before
    assert not (arb_dir / CACHE_FILE).exists()


def test_malformed_target_bundle_is_fatal(project, arb_dir, make_config):
    index = project(TEMPLATE, {"fr": {}})
    (arb_dir / "app_fr.arb").write_text("[]", encoding="utf-8")

    with pytest.raises(LoadError):
        sync(make_config(index), translator=FakeTranslator())


def test_corrupt_cache_is_rebuilt(project, arb_dir, make_config):
    index = project(TEMPLATE, {"fr": {}})
    (arb_dir / CACHE_FILE).write_text("not sqlite at all " * 50)

    translator = FakeTranslator()
    sync(make_config(index), translator=translator)

    assert len(translator.calls) == 3
    assert len(_cache(arb_dir)) == 3


def test_write_failure_leaves_previous_files(project, arb_dir, make_config, monkeypatch):
    index = project(TEMPLATE, {"fr": {"bye": "Au revoir"}})
    before = (arb_dir / "app_fr.arb").read_bytes()

    def fail(path, text):
        raise OSError("disk full")

    monkeypatch.setattr(sync_module, "stage_text", fail)
    with pytest.raises(WriteError):
        sync(make_config(index), translator=FakeTranslator())

    assert (arb_dir / "app_fr.arb").read_bytes() == before
    assert sorted(os.listdir(arb_dir)) == ["app_en.arb", "app_fr.arb"]


def _snapshot(arb_dir):
    return {name: (arb_dir / name).read_bytes() for name in sorted(os.listdir(arb_dir))}


def _synced_then_changed(project, arb_dir, make_config):
    index = project(TEMPLATE, {"fr": {}, "de": {}})
    sync(make_config(index), translator=FakeTranslator())
    write_json(arb_dir / "app_en.arb", dict(TEMPLATE, bye="See you"))
    return index


def test_cache_rename_failure_restores_bundles(project, arb_dir, make_config, monkeypatch):
    index = _synced_then_changed(project, arb_dir, make_config)
    before = _snapshot(arb_dir)
    real_commit = sync_module.commit_staged

    def fail_on_cache(tmp, path):
        if path.endswith(CACHE_FILE):
            raise OSError("read-only file system")
        real_commit(tmp, path)

    monkeypatch.setattr(sync_module, "commit_staged", fail_on_cache)
    with pytest.raises(WriteError):
        sync(make_config(index), translator=FakeTranslator())

    assert _snapshot(arb_dir) == before


def test_cache_rename_failure_on_first_run_removes_new_bundles(project, arb_dir, make_config, monkeypatch):
    index = project(TEMPLATE, {"fr": {}})
    real_commit = sync_module.commit_staged

    def fail_on_cache(tmp, path):
        if path.endswith(CACHE_FILE):
            raise OSError("read-only file system")
        real_commit(tmp, path)

    monkeypatch.setattr(sync_module, "commit_staged", fail_on_cache)
    with pytest.raises(WriteError):
        sync(make_config(index, locales=["fr", "de"]), translator=FakeTranslator())

    assert read_json(arb_dir / "app_fr.arb") == {}
    assert sorted(os.listdir(arb_dir)) == ["app_en.arb", "app_fr.arb"]


def test_interrupt_between_renames_restores_everything(project, arb_dir, make_config, monkeypatch):
    index = _synced_then_changed(project, arb_dir, make_config)
    before = _snapshot(arb_dir)
    real_commit = sync_module.commit_staged
    commits = []

    def interrupt_second(tmp, path):
        commits.append(path)
        if len(commits) == 2:
            raise KeyboardInterrupt
        real_commit(tmp, path)

    monkeypatch.setattr(sync_module, "commit_staged", interrupt_second)
    engine = SyncEngine(make_config(index), translator=FakeTranslator())
    with pytest.raises(KeyboardInterrupt):
        engine.run()

    assert engine.state == SyncState.FAILED
    assert len(commits) == 2
    assert _snapshot(arb_dir) == before


def test_target_metadata_survives_sync(project, arb_dir, make_config):
    index = project(TEMPLATE, {"fr": {
        "@@locale": "fr",
        "@@last_modified": "2024-05-01",
        "bye": "Au revoir",
        "@bye": {"description": "farewell"},
        "gone": "vieux",
        "@gone": {"description": "no longer in the template"},
    }})

    sync(make_config(index), translator=FakeTranslator())

    bundle = read_json(arb_dir / "app_fr.arb")
    assert list(bundle.items()) == [
        ("@@locale", "fr"),
        ("@@last_modified", "2024-05-01"),
        ("hello", "[FR] Hello {name}"),
        ("bye", "[FR] Goodbye"),
        ("@bye", {"description": "farewell"}),
        ("items", "[FR] {count} items"),
    ]

    written = (arb_dir / "app_fr.arb").read_bytes()
    sync(make_config(index), translator=FakeTranslator())
    assert (arb_dir / "app_fr.arb").read_bytes() == written


def test_interrupt_during_translation_writes_nothing(project, arb_dir, make_config):
    index = project(TEMPLATE, {"fr": {}})
    before = (arb_dir / "app_fr.arb").read_bytes()
    interrupted = FakeTranslator({"Goodbye": KeyboardInterrupt()})

    with pytest.raises(KeyboardInterrupt):
        sync(make_config(index, concurrency=1), translator=interrupted)

    assert (arb_dir / "app_fr.arb").read_bytes() == before
    assert not (arb_dir / CACHE_FILE).exists()


def test_template_language_in_locales_is_skipped(project, make_config):
    index = project(TEMPLATE, {"fr": {}})

    report = sync(make_config(index, locales=["en", "fr"]), translator=FakeTranslator())

    assert list(report.locales) == ["FR"]


def test_unknown_language_is_a_load_error(project, make_config):
    index = project(TEMPLATE)

    with pytest.raises(LoadError):
        sync(make_config(index, locales=["xx"]), translator=FakeTranslator())


def test_report_file(project, make_config, tmp_path):
    index = project(TEMPLATE, {"fr": {}})
    report_path = tmp_path / "out" / "report.json"

    sync(make_config(index, report_path=str(report_path)), translator=FakeTranslator())

    data = json.loads(report_path.read_text(encoding="utf-8"))
    assert data["state"] == "done"
    assert data["translated"] == 3
    assert data["locales"]["FR"]["added"] == ["hello", "bye", "items"]


def test_dry_run_writes_no_report(project, make_config, tmp_path):
    index = project(TEMPLATE, {"fr": {}})
    report_path = tmp_path / "report.json"

    report = sync(make_config(index, dry_run=True, report_path=str(report_path)), translator=FakeTranslator())

    assert report.state == "done"
    assert not report_path.exists()
