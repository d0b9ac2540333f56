"""Invoke the external static-site generator that renders the blog."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
import subprocess
from typing import Sequence

from blogdeploy.services.errors import GenerationFailed


logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class GeneratorRun:
    """Details of a completed generator invocation."""

    command: tuple[str, ...]
    returncode: int
    output: str


@dataclass(slots=True)
class SiteGenerator:
    """Run a generator command (Hugo by default) from the authoring checkout.

    The generator receives no arguments beyond the optional theme flag and, when
    the site is published from a non-default directory, a Hugo-style
    ``-d DESTINATION`` flag. Otherwise it writes into its own default output
    directory relative to ``cwd``.
    """

    command: Sequence[str] = field(default_factory=lambda: ("hugo",))
    cwd: Path = field(default_factory=Path.cwd)
    theme: str | None = None
    destination: Path | None = None

    def build_command(self) -> tuple[str, ...]:
        command = tuple(self.command)
        if not command:
            raise GenerationFailed((), returncode=1, output="No generator command configured")
        if self.theme:
            command = (*command, "-t", self.theme)
        if self.destination is not None:
            command = (*command, "-d", str(self.destination))
        return command

    def run(self) -> GeneratorRun:
        """Execute the generator, raising :class:`GenerationFailed` on any non-zero exit."""

        command = self.build_command()
        logger.info("Running site generator: %s", " ".join(command))
        try:
            result = subprocess.run(
                list(command),
                cwd=self.cwd,
                text=True,
                check=False,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except FileNotFoundError as exc:
            raise GenerationFailed(command, returncode=127, output=str(exc)) from exc
        except OSError as exc:
            raise GenerationFailed(command, returncode=126, output=str(exc)) from exc

        output = result.stdout or ""
        if result.returncode != 0:
            raise GenerationFailed(command, returncode=result.returncode, output=output)

        for line in output.splitlines():
            if line.strip():
                logger.info("generator: %s", line.rstrip())
        return GeneratorRun(command=command, returncode=result.returncode, output=output)


__all__ = ["GeneratorRun", "SiteGenerator"]
