from .cache import MirrorCache, TreeEntry
from .target import (
    GitTarget,
    format_git_target,
    is_remote_repo,
    normalize_repo,
    parse_git_target,
)

__all__ = [
    "GitTarget",
    "MirrorCache",
    "TreeEntry",
    "format_git_target",
    "is_remote_repo",
    "normalize_repo",
    "parse_git_target",
]
