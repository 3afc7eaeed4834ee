"""Member extraction from zip and tar archives held in memory."""

from __future__ import annotations

import io
import tarfile
import zipfile

from ..errors import Unavailable


def _normalize_member(name: str) -> str:
    return "/".join(p for p in name.replace("\\", "/").split("/") if p not in {"", "."})


def _strip_first_level(name: str) -> str:
    parts = name.split("/")
    if len(parts) > 1:
        return "/".join(parts[1:])
    return name


def _pick(names: list[str], member: str) -> str | None:
    wanted = _normalize_member(member)
    normalized = {_normalize_member(n): n for n in names}
    if wanted in normalized:
        return normalized[wanted]
    # Archives built from a folder usually wrap everything in one top-level
    # directory; allow addressing members without it.
    for norm, original in normalized.items():
        if _strip_first_level(norm) == wanted:
            return original
    return None


def extract_member(data: bytes, member: str, *, label: str = "archive") -> bytes:
    """Return the bytes of ``member`` from a zip or tar archive."""
    buffer = io.BytesIO(data)
    if zipfile.is_zipfile(buffer):
        buffer.seek(0)
        try:
            with zipfile.ZipFile(buffer) as zf:
                names = [info.filename for info in zf.infolist() if not info.is_dir()]
                found = _pick(names, member)
                if found is None:
                    raise Unavailable(f"File {member} not found in {label}", locator=label)
                return zf.read(found)
        except (zipfile.BadZipFile, OSError) as exc:
            raise Unavailable(f"Could not read zip archive {label}: {exc}", locator=label) from exc

    buffer.seek(0)
    try:
        with tarfile.open(fileobj=buffer, mode="r:*") as tf:
            members = {m.name: m for m in tf.getmembers() if m.isfile()}
            found = _pick(list(members), member)
            if found is None:
                raise Unavailable(f"File {member} not found in {label}", locator=label)
            extracted = tf.extractfile(members[found])
            if extracted is None:
                raise Unavailable(f"File {member} not readable in {label}", locator=label)
            with extracted:
                return extracted.read()
    except (tarfile.TarError, EOFError, OSError) as exc:
        raise Unavailable(f"Unsupported or corrupt archive {label}: {exc}", locator=label) from exc
