from __future__ import annotations


class LorevaultError(Exception):
    """Base class for every fatal error raised while building or syncing."""

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        locator: str | None = None,
    ):
        self.path = path
        self.locator = locator
        super().__init__(message)


class ParseError(LorevaultError, ValueError):
    pass


class UndefinedVariable(ParseError):
    def __init__(self, name: str, *, locator: str | None = None):
        self.name = name
        message = f"Variable {{{{{name}}}}} is not defined"
        if locator:
            message = f"{message} in {locator}"
        super().__init__(message, locator=locator)


class CyclicVariable(ParseError):
    def __init__(self, cycle: list[str], *, locator: str | None = None):
        self.cycle = cycle
        message = "Variables reference each other in a cycle: " + " -> ".join(cycle)
        if locator:
            message = f"{message} ({locator})"
        super().__init__(message, locator=locator)


class RelativePathNotAllowed(LorevaultError):
    def __init__(self, path: str):
        super().__init__(
            f"Relative paths are not allowed as sources: {path}", path=path
        )


class UnsupportedDirectoryMember(LorevaultError):
    def __init__(self, member: str, reason: str, *, path: str | None = None):
        self.member = member
        self.reason = reason
        super().__init__(
            f"Unsupported directory member {member} ({reason})", path=path or member
        )


class FileCountMismatch(LorevaultError):
    def __init__(self, path: str, expected: int | None, found: int):
        self.expected = expected
        self.found = found
        if expected is None:
            message = f"No files found for directory {path}"
        else:
            message = f"Expected {expected} files for directory {path}, found {found}"
        super().__init__(message, path=path)


class ConflictError(LorevaultError):
    pass


class PathConflict(ConflictError):
    def __init__(self, path: str, *, nested: str | None = None):
        self.nested = nested
        if nested is None:
            message = f"There are two files for path {path}"
        else:
            message = f"Path {path} is a file, but {nested} needs it to be a directory"
        super().__init__(message, path=path)


class IncludeOverrideConflict(ConflictError):
    def __init__(self, path: str, locator: str | None = None):
        message = (
            f"There are two files for path {path}: "
            "an included file may not override a local one"
        )
        if locator:
            message = f"{message} (included from {locator})"
        super().__init__(message, path=path, locator=locator)


class IncludeError(LorevaultError):
    pass


class UnknownTag(LorevaultError):
    def __init__(self, tag: str, *, locator: str | None = None):
        self.tag = tag
        super().__init__(
            f"The tag {tag} is not defined in the recipe", locator=locator
        )


class HashMismatch(LorevaultError):
    def __init__(
        self,
        expected: str,
        actual: str,
        *,
        path: str | None = None,
        locator: str | None = None,
    ):
        self.expected = expected
        self.actual = actual
        subject = path or locator or "content"
        super().__init__(
            f"Hash did not match for {subject}: expected {expected}, got {actual}",
            path=path,
            locator=locator,
        )


class NoValidSource(LorevaultError):
    def __init__(self, path: str, failures: list[str] | None = None):
        self.failures = list(failures or [])
        message = f"No valid source for {path}"
        if self.failures:
            message = message + "\n" + "\n".join(f"  - {f}" for f in self.failures)
        LorevaultError.__init__(self, message, path=path)


class SourceHashMismatch(HashMismatch, NoValidSource):
    """Every source failed and at least one returned content with the wrong hash."""

    def __init__(self, path: str, expected: str, failures: list[str]):
        self.expected = expected
        self.actual = ""
        self.failures = list(failures)
        message = f"Hash did not match for {path} (expected {expected}); no valid source"
        message = message + "\n" + "\n".join(f"  - {f}" for f in self.failures)
        LorevaultError.__init__(self, message, path=path)


class EditError(LorevaultError):
    pass


class Unavailable(LorevaultError):
    """A single source could not be read. Recovered by trying the next source."""


class SyncError(LorevaultError):
    pass


class SyncAborted(SyncError):
    pass
