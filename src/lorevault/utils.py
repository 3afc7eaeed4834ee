import hashlib
import os
from pathlib import Path, PurePosixPath

HASH_HEX_LENGTH = 64


def get_config_path(custom_path=None):
    if custom_path:
        return custom_path
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return os.path.join(xdg_config_home, "lorevault", "config.yaml")


def read_config(custom_path=None):
    import yaml

    config_path = get_config_path(custom_path)
    try:
        with open(config_path, "r", encoding="utf-8") as file:
            data = yaml.safe_load(file)
    except FileNotFoundError:
        return {}
    except yaml.YAMLError:
        return {}
    return data if isinstance(data, dict) else {}


def compute_hash(data: bytes) -> str:
    """SHA3-256 of ``data`` as upper-case hex."""
    return hashlib.sha3_256(data).hexdigest().upper()


def hash_file(path: str | Path) -> str:
    digest = hashlib.sha3_256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest().upper()


def normalize_hash(value: str) -> str:
    """
    Canonicalize a declared hash. Hashes are accepted in any case and are
    always compared and printed upper-case.
    """
    cleaned = value.strip().upper()
    if len(cleaned) != HASH_HEX_LENGTH or any(
        c not in "0123456789ABCDEF" for c in cleaned
    ):
        raise ValueError(f"Invalid hash (expected 64 hex digits): {value!r}")
    return cleaned


def normalize_subpath(value: str) -> str:
    """
    Normalize a target path to a relative POSIX path.

    Leading slashes and ``.`` segments are dropped; ``..`` is rejected.
    """
    parts = []
    for part in str(value).replace("\\", "/").split("/"):
        if part in {"", "."}:
            continue
        if part == "..":
            raise ValueError(f"Escaping the target directory (..) is not allowed: {value}")
        parts.append(part)
    if not parts:
        raise ValueError(f"Empty target path: {value!r}")
    return "/".join(parts)


def join_subpath(prefix: str, path: str) -> str:
    if not prefix or not prefix.strip("/."):
        return normalize_subpath(path)
    return normalize_subpath(f"{prefix}/{path}")


def first_segment(path: str) -> str:
    return PurePosixPath(path).parts[0]


def path_sort_key(path: str) -> tuple[str, ...]:
    return PurePosixPath(path).parts


def is_hidden(subpath: str) -> bool:
    return any(part.startswith(".") for part in PurePosixPath(subpath).parts)
