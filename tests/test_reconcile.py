from __future__ import annotations

import pytest

from lorevault.errors import (
    EditError,
    NoValidSource,
    PathConflict,
    SourceHashMismatch,
    SyncAborted,
    SyncError,
    Unavailable,
)
from lorevault.manifest.reconcile import (
    SyncMode,
    build_sync_plan,
    clean_target,
    resolve_entry,
    sync_manifest,
)
from lorevault.manifest.types import Manifest, ManifestEntry
from lorevault.recipe.types import Insert, LocalFile, Text
from lorevault.utils import compute_hash


class _DictSnapshot:
    def __init__(self, files=None):
        self.files = dict(files or {})

    def read(self, path):
        return self.files.get(path)


class _CountingFetch:
    def __init__(self, data=None):
        self.data = dict(data or {})
        self.calls = []

    def __call__(self, ref):
        self.calls.append(ref)
        if isinstance(ref, Text):
            return ref.content.encode("utf-8")
        if ref.path in self.data:
            return self.data[ref.path]
        raise Unavailable(f"missing {ref.path}", locator=ref.path)


def _manifest(*entries: ManifestEntry) -> Manifest:
    return Manifest({entry.path: entry for entry in entries})


def test_matching_file_is_reused_without_fetching() -> None:
    entry = ManifestEntry("a.txt", (LocalFile("/a"),), hash=compute_hash(b"A"))
    fetch = _CountingFetch()
    planned = resolve_entry(entry, _DictSnapshot({"a.txt": b"A"}), fetch)
    assert planned.reused
    assert planned.data == b"A"
    assert fetch.calls == []


def test_edits_disable_reuse() -> None:
    entry = ManifestEntry(
        "a.txt",
        (LocalFile("/a"),),
        hash=compute_hash(b"A\n"),
        edits=(Insert("top", "start"),),
    )
    fetch = _CountingFetch({"/a": b"A\n"})
    planned = resolve_entry(entry, _DictSnapshot({"a.txt": b"A\n"}), fetch)
    assert not planned.reused
    assert planned.data == b"top\nA\n"
    assert len(fetch.calls) == 1


def test_sources_are_tried_in_order() -> None:
    entry = ManifestEntry("a.txt", (LocalFile("/gone"), LocalFile("/b")))
    planned = resolve_entry(entry, _DictSnapshot(), _CountingFetch({"/b": b"B"}))
    assert planned.data == b"B"
    assert planned.source == "/b"


def test_wrong_hash_falls_through_to_next_source() -> None:
    entry = ManifestEntry(
        "a.txt", (LocalFile("/bad"), LocalFile("/good")), hash=compute_hash(b"ok")
    )
    fetch = _CountingFetch({"/bad": b"nope", "/good": b"ok"})
    assert resolve_entry(entry, _DictSnapshot(), fetch).data == b"ok"


def test_hash_failure_is_reported_as_hash_mismatch() -> None:
    entry = ManifestEntry(
        "a.txt", (LocalFile("/gone"), LocalFile("/bad")), hash=compute_hash(b"ok")
    )
    fetch = _CountingFetch({"/bad": b"nope"})
    with pytest.raises(SourceHashMismatch) as excinfo:
        resolve_entry(entry, _DictSnapshot(), fetch)
    assert excinfo.value.path == "a.txt"
    assert len(excinfo.value.failures) == 2


def test_no_valid_source() -> None:
    entry = ManifestEntry("a.txt", (LocalFile("/gone"),))
    with pytest.raises(NoValidSource) as excinfo:
        resolve_entry(entry, _DictSnapshot(), _CountingFetch())
    assert not isinstance(excinfo.value, SourceHashMismatch)


def test_plan_follows_manifest_order_with_parallel_jobs() -> None:
    names = [f"d{i % 3}/f{i:02d}.txt" for i in range(20)]
    manifest = _manifest(*(ManifestEntry(n, (Text(n),)) for n in names))
    plan = build_sync_plan(manifest, _DictSnapshot(), _CountingFetch(), jobs=4)
    assert [f.path for f in plan.files] == manifest.paths()
    assert [f.data for f in plan.files] == [p.encode() for p in manifest.paths()]
    assert plan.deletions == (".",)


def test_skip_first_level_plan_deletes_controlled_segments() -> None:
    manifest = _manifest(
        ManifestEntry("nvim/init.lua", (Text("x"),)),
        ManifestEntry("git/config", (Text("y"),)),
        ManifestEntry("nvim/lua/a.lua", (Text("z"),)),
    )
    plan = build_sync_plan(
        manifest, _DictSnapshot(), _CountingFetch(), mode=SyncMode.SKIP_FIRST_LEVEL
    )
    assert plan.deletions == ("git", "nvim")


def test_full_sync_replaces_target_contents(tmp_path) -> None:
    target = tmp_path / "out"
    (target / "stale").mkdir(parents=True)
    (target / "stale" / "old.txt").write_text("old")
    manifest = _manifest(
        ManifestEntry("a.txt", (Text("A"),)),
        ManifestEntry("sub/b.txt", (Text("B"),)),
    )
    asked = []
    result = sync_manifest(
        manifest,
        target,
        resolver=_CountingFetch(),
        confirm=lambda plan: asked.append(plan) or True,
    )
    assert result.changed
    assert result.file_count == 2
    assert len(asked) == 1
    assert sorted(p.relative_to(target).as_posix() for p in target.rglob("*")) == [
        "a.txt",
        "sub",
        "sub/b.txt",
    ]
    assert (target / "sub" / "b.txt").read_text() == "B"


def test_second_sync_is_a_no_op(tmp_path) -> None:
    target = tmp_path / "out"
    manifest = _manifest(
        ManifestEntry("a.txt", (LocalFile("/a"),), hash=compute_hash(b"A")),
    )
    first = sync_manifest(manifest, target, resolver=_CountingFetch({"/a": b"A"}))
    assert first.changed
    assert first.fetched == 1

    fetch = _CountingFetch({"/a": b"A"})
    second = sync_manifest(
        manifest, target, resolver=fetch, confirm=lambda plan: pytest.fail("asked")
    )
    assert not second.changed
    assert second.reused == 1
    assert fetch.calls == []


def test_skip_first_level_leaves_other_entries_alone(tmp_path) -> None:
    target = tmp_path / "config"
    (target / "keep").mkdir(parents=True)
    (target / "keep" / "x").write_text("mine")
    (target / "own").mkdir()
    (target / "own" / "old").write_text("old")
    manifest = _manifest(ManifestEntry("own/new", (Text("new"),)))

    result = sync_manifest(
        manifest, target, SyncMode.SKIP_FIRST_LEVEL, resolver=_CountingFetch()
    )
    assert result.deleted == ("own",)
    assert (target / "keep" / "x").read_text() == "mine"
    assert not (target / "own" / "old").exists()
    assert (target / "own" / "new").read_text() == "new"

    again = sync_manifest(
        manifest, target, SyncMode.SKIP_FIRST_LEVEL, resolver=_CountingFetch()
    )
    assert not again.changed


def test_failure_leaves_target_untouched(tmp_path) -> None:
    target = tmp_path / "out"
    target.mkdir()
    (target / "old.txt").write_text("old")
    manifest = _manifest(
        ManifestEntry("a.txt", (Text("A"),)),
        ManifestEntry("b.txt", (LocalFile("/gone"),)),
    )
    with pytest.raises(NoValidSource):
        sync_manifest(manifest, target, resolver=_CountingFetch())
    assert [p.name for p in target.iterdir()] == ["old.txt"]


def test_edit_failure_leaves_target_untouched(tmp_path) -> None:
    target = tmp_path / "out"
    target.mkdir()
    (target / "old.txt").write_text("old")
    manifest = _manifest(
        ManifestEntry("a.txt", (Text("A\n"),), edits=(Insert("x", 9),)),
    )
    with pytest.raises(EditError):
        sync_manifest(manifest, target, resolver=_CountingFetch())
    assert (target / "old.txt").read_text() == "old"


def test_declined_confirmation_aborts(tmp_path) -> None:
    target = tmp_path / "out"
    target.mkdir()
    (target / "old.txt").write_text("old")
    manifest = _manifest(ManifestEntry("a.txt", (Text("A"),)))
    with pytest.raises(SyncAborted):
        sync_manifest(
            manifest, target, resolver=_CountingFetch(), confirm=lambda plan: False
        )
    assert (target / "old.txt").read_text() == "old"
    assert not (target / "a.txt").exists()


def test_full_sync_refuses_current_directory(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    manifest = _manifest(ManifestEntry("a.txt", (Text("A"),)))
    with pytest.raises(SyncError, match="current working directory"):
        sync_manifest(manifest, ".", resolver=_CountingFetch())


def test_target_must_be_a_directory(tmp_path) -> None:
    target = tmp_path / "file"
    target.write_text("x")
    manifest = _manifest(ManifestEntry("a.txt", (Text("A"),)))
    with pytest.raises(SyncError, match="not a directory"):
        sync_manifest(manifest, target, resolver=_CountingFetch())


def test_clean_target(tmp_path) -> None:
    target = tmp_path / "config"
    (target / "keep").mkdir(parents=True)
    (target / "own").mkdir()
    (target / "own" / "f").write_text("f")
    manifest = _manifest(
        ManifestEntry("own/f", (Text("f"),)),
        ManifestEntry("missing/g", (Text("g"),)),
    )
    removed = clean_target(target, SyncMode.SKIP_FIRST_LEVEL, manifest)
    assert removed == [target / "own"]
    assert (target / "keep").is_dir()

    with pytest.raises(SyncAborted):
        clean_target(target, SyncMode.FULL, confirm=lambda paths: False)
    assert clean_target(target, SyncMode.FULL) == [target]
    assert not target.exists()


def test_file_nested_under_another_file_is_rejected_before_writing(tmp_path) -> None:
    target = tmp_path / "out"
    target.mkdir()
    (target / "keep.txt").write_text("keep")
    manifest = _manifest(
        ManifestEntry("a", (Text("file"),)),
        ManifestEntry("a/b", (Text("nested"),)),
    )
    fetch = _CountingFetch()
    with pytest.raises(PathConflict, match="needs it to be a directory"):
        sync_manifest(manifest, target, resolver=fetch, confirm=lambda plan: True)
    assert fetch.calls == []
    assert [p.name for p in target.iterdir()] == ["keep.txt"]
