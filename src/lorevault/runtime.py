from __future__ import annotations

from contextvars import ContextVar, Token
from functools import lru_cache
import os

from .utils import get_config_path, read_config

_VERBOSE_LOGGING: ContextVar[bool] = ContextVar(
    "lorevault_verbose_logging", default=False
)
_SYNC_JOBS: ContextVar[int | None] = ContextVar("lorevault_sync_jobs", default=None)

_DEFAULT_SYNC_JOBS = 4
_MAX_SYNC_JOBS = 64
_DEFAULT_GIT_TIMEOUT = 600
_DEFAULT_HTTP_TIMEOUT = 30
_DEFAULT_REMOTE_TIMEOUT = 60


def _read_positive_int_env(name: str, default: int, maximum: int | None = None) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value <= 0:
        return default
    if maximum is not None:
        return min(value, maximum)
    return value


@lru_cache(maxsize=8)
def _user_config(path: str) -> dict:
    return read_config(path)


def _config_default(key: str, default: int) -> int:
    value = _user_config(get_config_path()).get(key)
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    return default


def get_verbose_logging() -> bool:
    return _VERBOSE_LOGGING.get()


def set_verbose_logging(enabled: bool) -> Token[bool]:
    return _VERBOSE_LOGGING.set(bool(enabled))


def reset_verbose_logging(token: Token[bool]) -> None:
    _VERBOSE_LOGGING.reset(token)


def get_sync_jobs() -> int:
    override = _SYNC_JOBS.get()
    if override:
        return min(override, _MAX_SYNC_JOBS)
    return _read_positive_int_env(
        "LOREVAULT_JOBS",
        min(_config_default("jobs", _DEFAULT_SYNC_JOBS), _MAX_SYNC_JOBS),
        _MAX_SYNC_JOBS,
    )


def set_sync_jobs(jobs: int | None) -> Token[int | None]:
    return _SYNC_JOBS.set(jobs)


def reset_sync_jobs(token: Token[int | None]) -> None:
    _SYNC_JOBS.reset(token)


def get_git_timeout() -> int:
    return _read_positive_int_env(
        "LOREVAULT_GIT_TIMEOUT", _config_default("git_timeout", _DEFAULT_GIT_TIMEOUT)
    )


def get_http_timeout() -> int:
    return _read_positive_int_env(
        "LOREVAULT_HTTP_TIMEOUT",
        _config_default("http_timeout", _DEFAULT_HTTP_TIMEOUT),
    )


def get_remote_timeout() -> int:
    return _read_positive_int_env(
        "LOREVAULT_REMOTE_TIMEOUT",
        _config_default("remote_timeout", _DEFAULT_REMOTE_TIMEOUT),
    )
