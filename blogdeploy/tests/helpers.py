"""Git helpers shared by tests that work with real repositories."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import subprocess


def git(*args: str, cwd: Path, check: bool = True) -> subprocess.CompletedProcess[str]:
    """Run git for test setup and assertions."""

    return subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=check,
        text=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )


def init_repo(path: Path) -> None:
    git("init", cwd=path)
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=path)
    git("config", "user.name", "Blog Author", cwd=path)
    git("config", "user.email", "author@example.com", cwd=path)
    git("config", "commit.gpgsign", "false", cwd=path)


def commit_all(repo: Path, message: str) -> None:
    git("add", "--all", cwd=repo)
    git("commit", "-m", message, cwd=repo)


def branch_files(repo: Path, branch: str) -> set[str]:
    """Return the file names tracked on ``branch`` (works for bare repositories too)."""

    result = git("ls-tree", "-r", "--name-only", f"refs/heads/{branch}", cwd=repo)
    return {line for line in result.stdout.splitlines() if line}


def branch_exists(repo: Path, branch: str) -> bool:
    return git("show-ref", "--verify", "--quiet", f"refs/heads/{branch}", cwd=repo, check=False).returncode == 0


def rev_parse(repo: Path, ref: str) -> str:
    return git("rev-parse", ref, cwd=repo).stdout.strip()


@dataclass(slots=True)
class BlogCheckout:
    """Paths of an authoring checkout wired to a bare remote."""

    source: Path
    remote: Path
    generator_script: Path
