"""Exceptions raised while publishing the generated site."""

from __future__ import annotations

from typing import Sequence


class PublishError(RuntimeError):
    """Base class for failures that abort a publish run."""

    def __init__(self, message: str, *, returncode: int = 1, output: str = "") -> None:
        super().__init__(message)
        if returncode < 0:
            # Killed by a signal; report it the way a shell would.
            returncode = 128 - returncode
        self.returncode = returncode or 1
        self.output = output


class DirtyWorkingTree(PublishError):
    """The authoring checkout has uncommitted changes to tracked files."""

    def __init__(self, paths: Sequence[str]) -> None:
        self.paths = list(paths)
        listing = "\n".join(self.paths)
        super().__init__(
            "Working tree has uncommitted changes; commit or stash them before publishing",
            returncode=1,
            output=listing,
        )


class GenerationFailed(PublishError):
    """The external site generator exited with a non-zero status."""

    def __init__(self, command: Sequence[str], *, returncode: int, output: str = "") -> None:
        self.command = list(command)
        super().__init__(
            f"Site generator '{' '.join(self.command)}' failed with exit code {returncode}",
            returncode=returncode,
            output=output,
        )


class VersionControlFailed(PublishError):
    """A git command exited with a non-zero status."""

    def __init__(self, command: str, *, returncode: int, output: str = "") -> None:
        self.command = command
        detail = output.strip()
        message = f"{command} failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, returncode=returncode, output=output)


class ConfigurationError(ValueError):
    """Settings could not be loaded or contain invalid values."""


__all__ = [
    "ConfigurationError",
    "DirtyWorkingTree",
    "GenerationFailed",
    "PublishError",
    "VersionControlFailed",
]
