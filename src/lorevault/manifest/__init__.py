from .build import MAX_INCLUDE_DEPTH, assemble, check_tags
from .directories import expand_directory
from .reconcile import (
    DirectorySnapshot,
    FilesystemSnapshot,
    PlannedFile,
    SyncMode,
    SyncPlan,
    SyncResult,
    apply_sync_plan,
    build_sync_plan,
    clean_target,
    plan_matches_existing,
    resolve_entry,
    sync_manifest,
)
from .types import Manifest, ManifestEntry, check_nested_paths, controlled_segments

__all__ = [
    "MAX_INCLUDE_DEPTH",
    "DirectorySnapshot",
    "FilesystemSnapshot",
    "Manifest",
    "ManifestEntry",
    "PlannedFile",
    "SyncMode",
    "SyncPlan",
    "SyncResult",
    "apply_sync_plan",
    "assemble",
    "build_sync_plan",
    "check_nested_paths",
    "check_tags",
    "clean_target",
    "controlled_segments",
    "expand_directory",
    "plan_matches_existing",
    "resolve_entry",
    "sync_manifest",
]
