from __future__ import annotations

import shlex
import subprocess

import requests

from ..errors import Unavailable

USER_AGENT = "lorevault"


def fetch_url(url: str, *, timeout: int = 30) -> bytes:
    try:
        response = requests.get(url, timeout=timeout, headers={"User-Agent": USER_AGENT})
        response.raise_for_status()
    except requests.RequestException as exc:
        raise Unavailable(f"Could not download {url}: {exc}", locator=url) from exc
    return response.content


def fetch_remote_file(
    user: str, host: str, path: str, *, port: int = 22, timeout: int = 60
) -> bytes:
    """Read a file from ``user@host`` over ssh, without prompting."""
    target = f"{user}@{host}"
    cmd = [
        "ssh",
        "-p",
        str(port),
        "-o",
        "BatchMode=yes",
        "-o",
        f"ConnectTimeout={timeout}",
        target,
        f"cat -- {shlex.quote(path)}",
    ]
    label = f"{target}:{path}"
    try:
        result = subprocess.run(cmd, capture_output=True, check=True, timeout=timeout)
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or b"").decode("utf-8", errors="replace").strip()
        raise Unavailable(
            f"Could not read {label}: {stderr or f'ssh exited with {exc.returncode}'}",
            locator=label,
        ) from exc
    except subprocess.TimeoutExpired as exc:
        raise Unavailable(f"Timed out reading {label}", locator=label) from exc
    except OSError as exc:
        raise Unavailable(f"Could not run ssh for {label}: {exc}", locator=label) from exc
    return result.stdout
