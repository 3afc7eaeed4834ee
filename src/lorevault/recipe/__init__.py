from .load import load_recipe, recipe_origin, self_variables
from .locators import parse_locator
from .parse import parse_recipe
from .types import (
    Archive,
    Auto,
    Delete,
    DirectoryEntry,
    FileEntry,
    GitBlob,
    IncludeSpec,
    Insert,
    LocalFile,
    Recipe,
    RemoteHost,
    Replace,
    Text,
    Url,
    describe_source,
    is_active,
    recipe_tags,
)
from .variables import resolve_recipe, resolve_variables

__all__ = [
    "Archive",
    "Auto",
    "Delete",
    "DirectoryEntry",
    "FileEntry",
    "GitBlob",
    "IncludeSpec",
    "Insert",
    "LocalFile",
    "Recipe",
    "RemoteHost",
    "Replace",
    "Text",
    "Url",
    "describe_source",
    "is_active",
    "load_recipe",
    "parse_locator",
    "parse_recipe",
    "recipe_origin",
    "recipe_tags",
    "resolve_recipe",
    "resolve_variables",
    "self_variables",
]
