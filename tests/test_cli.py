from __future__ import annotations

import pytest
from click.testing import CliRunner

from lorevault.cli import EXAMPLE_NAME, cli
from lorevault.utils import compute_hash

RECIPE = """
file:
  - path: a.txt
    source: {type: text, content: "A"}
  - path: sub/b.txt
    tags: [extra]
    source: "{{SELF_ROOT}}/b.txt"
"""


@pytest.fixture
def recipe(tmp_path):
    (tmp_path / "b.txt").write_text("B")
    path = tmp_path / "recipe.yaml"
    path.write_text(RECIPE)
    return str(path)


def test_hash_command(tmp_path) -> None:
    path = tmp_path / "f.bin"
    path.write_bytes(b"data")
    result = CliRunner().invoke(cli, ["hash", str(path)])
    assert result.exit_code == 0
    assert result.output == f'hash = "{compute_hash(b"data")}"\n'


def test_list_and_tags(recipe) -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["list", recipe])
    assert result.exit_code == 0
    assert result.output == "- a.txt\n"

    result = runner.invoke(cli, ["list", recipe, "-t", "extra"])
    assert result.output == "- a.txt\n- sub/b.txt\n"

    result = runner.invoke(cli, ["tags", recipe])
    assert result.output == "- extra\n"


def test_sync_then_up_to_date(recipe, tmp_path) -> None:
    target = tmp_path / "out"
    runner = CliRunner()
    result = runner.invoke(cli, ["sync", recipe, str(target), "-t", "extra"])
    assert result.exit_code == 0, result.output
    assert "Synced 2 files" in result.output
    assert (target / "sub" / "b.txt").read_text() == "B"

    result = runner.invoke(cli, ["sync", recipe, str(target), "-t", "extra"])
    assert result.exit_code == 0
    assert "already up to date" in result.output


def test_sync_asks_before_replacing(recipe, tmp_path) -> None:
    target = tmp_path / "out"
    target.mkdir()
    (target / "old.txt").write_text("old")
    result = CliRunner().invoke(cli, ["sync", recipe, str(target)], input="n\n")
    assert result.exit_code != 0
    assert (target / "old.txt").exists()

    result = CliRunner().invoke(cli, ["sync", recipe, str(target), "--no-confirm"])
    assert result.exit_code == 0
    assert not (target / "old.txt").exists()


def test_unknown_tag_is_an_error(recipe, tmp_path) -> None:
    result = CliRunner().invoke(cli, ["sync", recipe, str(tmp_path / "out"), "-t", "nope"])
    assert result.exit_code == 1
    assert "The tag nope is not defined" in result.output
    assert not (tmp_path / "out").exists()


def test_check_command(recipe, tmp_path) -> None:
    result = CliRunner().invoke(cli, ["check", recipe, "-t", "extra"])
    assert result.exit_code == 0, result.output
    assert "All 2 files have a valid source" in result.output

    broken = tmp_path / "broken.yaml"
    broken.write_text("file:\n  - {path: x, source: /does/not/exist}\n")
    result = CliRunner().invoke(cli, ["check", str(broken)])
    assert result.exit_code == 1
    assert "1 of 1 files have no valid source" in result.output


def test_show_command(tmp_path) -> None:
    (tmp_path / "a.txt").write_text("hello\n")
    result = CliRunner().invoke(cli, ["show", str(tmp_path / "a.txt")])
    assert result.exit_code == 0
    assert result.output == "hello\n"

    out = tmp_path / "copy.txt"
    result = CliRunner().invoke(cli, ["show", str(tmp_path / "a.txt"), "-o", str(out)])
    assert out.read_text() == "hello\n"


def test_clean_skip_first_level(recipe, tmp_path) -> None:
    target = tmp_path / "config"
    (target / "sub").mkdir(parents=True)
    (target / "keep").mkdir()
    result = CliRunner().invoke(
        cli,
        ["clean", recipe, str(target), "-t", "extra", "--skip-first-level", "--no-confirm"],
    )
    assert result.exit_code == 0, result.output
    assert "Deleted 1 paths" in result.output
    assert not (target / "sub").exists()
    assert (target / "keep").is_dir()


def test_example_command() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["example"])
        assert result.exit_code == 0
        with open(EXAMPLE_NAME, encoding="utf-8") as fh:
            assert "file:" in fh.read()
        result = runner.invoke(cli, ["example"])
        assert result.exit_code == 1
        assert "already exists" in result.output


def test_help_groups_commands() -> None:
    result = CliRunner().invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert result.output.index("RECIPES") < result.output.index("INSPECT")
