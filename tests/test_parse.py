from __future__ import annotations

import pytest

from lorevault.errors import ParseError
from lorevault.recipe.parse import parse_recipe
from lorevault.recipe.types import (
    Archive,
    Auto,
    Delete,
    GitBlob,
    Insert,
    LocalFile,
    RemoteHost,
    Replace,
    Text,
    Url,
    recipe_tags,
)

HASH = "ab" * 32

RECIPE = f"""
variables:
  repo: https://example.com/r.git
file:
  - path: a.txt
    hash: {HASH}
    tags: [extra]
    sources:
      - /abs/a.txt
      - "{{{{repo}}}}#main:a.txt"
      - type: text
        content: "hello {{{{repo}}}}"
        ignore_variables: true
      - {{type: git, repo: /r, id: v1, path: /docs/a.txt}}
      - {{type: archive, archive: /x.zip, path: member.txt}}
      - {{type: archive, archive: {{type: http, url: "https://e.com/x.tgz"}}, path: m}}
      - {{type: http, url: "https://e.com/a.txt"}}
      - {{type: sftp, user: me, host: h.example, port: 2222, path: /etc/a}}
    edit:
      - {{type: insert, content: "# top", position: start}}
      - {{type: insert, content: "mid", position: 2}}
      - {{type: replace, from: foo, to: bar, optional: true, tags: [x]}}
      - {{type: delete, start: 3, end: 4}}
directory:
  - path: docs
    count: 2
    ignore_hidden: true
    tags: dirs
    source: /abs/docs
include:
  - config: "/abs/child.yaml"
    path: sub
    tags: [inc]
    with_tags: [extra]
"""


def test_parse_full_recipe() -> None:
    recipe = parse_recipe(RECIPE)
    assert recipe.variables == {"repo": "https://example.com/r.git"}
    assert not recipe.resolved

    entry = recipe.files[0]
    assert entry.path == "a.txt"
    assert entry.hash == HASH.upper()
    assert entry.tags == frozenset({"extra"})
    assert entry.sources == (
        Auto("/abs/a.txt"),
        Auto("{{repo}}#main:a.txt"),
        Text("hello {{repo}}", substitute=False),
        GitBlob("/r", "v1", "docs/a.txt"),
        Archive(Auto("/x.zip"), "member.txt"),
        Archive(Url("https://e.com/x.tgz"), "m"),
        Url("https://e.com/a.txt"),
        RemoteHost("me", "h.example", "/etc/a", 2222),
    )
    assert entry.edits == (
        Insert("# top", "start"),
        Insert("mid", 2),
        Replace("foo", "bar", True, frozenset({"x"})),
        Delete(3, 4),
    )

    directory = recipe.directories[0]
    assert directory.count == 2
    assert directory.ignore_hidden
    assert directory.tags == frozenset({"dirs"})
    assert directory.sources == (Auto("/abs/docs"),)

    inc = recipe.includes[0]
    assert inc.config == "/abs/child.yaml"
    assert inc.path == "sub"
    assert inc.tags == frozenset({"inc"})
    assert inc.with_tags == frozenset({"extra"})


def test_recipe_tags_lists_every_declared_tag() -> None:
    assert recipe_tags(parse_recipe(RECIPE)) == ["dirs", "extra", "inc", "x"]


def test_empty_recipe() -> None:
    recipe = parse_recipe("")
    assert recipe.files == ()
    assert recipe.directories == ()
    assert recipe.includes == ()


def test_edit_type_is_inferred() -> None:
    recipe = parse_recipe(
        """
file:
  - path: a
    source: /a
    edit:
      - {replace_from: a, to: b}
      - {start: 2}
      - {content: x, after: 1}
"""
    )
    assert recipe.files[0].edits == (Replace("a", "b"), Delete(2, 2), Insert("x", 1))


def test_var_alias_and_local_type() -> None:
    recipe = parse_recipe(
        """
var:
  x: "1"
file:
  - path: a
    sources:
      - {type: local, path: /a}
"""
    )
    assert recipe.variables == {"x": "1"}
    assert recipe.files[0].sources == (LocalFile("/a"),)


@pytest.mark.parametrize(
    "text",
    [
        "files: []",
        "file:\n  - {path: a, source: /a, colour: red}",
        "file:\n  - {path: a}",
        "file:\n  - {path: a, source: /a, hash: nothex}",
        "file:\n  - {path: a, source: {type: ftp, url: x}}",
        "file:\n  - {path: a, source: /a, edit: [{type: delete, start: 0}]}",
        "file:\n  - {path: a, source: /a, edit: [{type: insert, content: x, position: middle}]}",
        "directory:\n  - {path: d, source: {type: text, content: x}}",
        "include:\n  - {path: d}",
        "variables: [a, b]",
        "- just\n- a list",
        "file: [",
    ],
)
def test_invalid_recipes(text) -> None:
    with pytest.raises(ParseError):
        parse_recipe(text)


def test_parse_error_names_the_recipe() -> None:
    with pytest.raises(ParseError) as excinfo:
        parse_recipe("bogus: 1", origin=LocalFile("/etc/recipe.yaml"))
    assert excinfo.value.locator == "/etc/recipe.yaml"
    assert "/etc/recipe.yaml" in str(excinfo.value)
