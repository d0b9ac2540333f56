"""Thin wrapper around the ``git`` executable used by the publisher."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
import os
from pathlib import Path
import subprocess

from blogdeploy.models.publisher import CommitIdentity
from blogdeploy.services.errors import VersionControlFailed
from blogdeploy.utils.text import redact_credentials


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GitRepository:
    """Run Git commands inside a checkout, raising :class:`VersionControlFailed` on error."""

    path: Path
    git_executable: str = "git"
    secrets: tuple[str, ...] = field(default_factory=tuple)

    def at(self, path: Path) -> "GitRepository":
        """Return a repository handle for another checkout (e.g. a linked worktree)."""

        return replace(self, path=path)

    # ------------------------------------------------------------------
    # Working tree inspection
    # ------------------------------------------------------------------
    def status_porcelain(self, *, untracked: bool = False) -> list[str]:
        """Return ``git status --porcelain`` entries, ignoring untracked files unless asked."""

        mode = "all" if untracked else "no"
        result = self._run_git("status", "--porcelain", f"--untracked-files={mode}")
        return [line for line in result.stdout.splitlines() if line.strip()]

    def current_branch(self) -> str:
        return self._run_git("rev-parse", "--abbrev-ref", "HEAD").stdout.strip()

    def rev_parse(self, ref: str) -> str:
        return self._run_git("rev-parse", ref).stdout.strip()

    def last_commit_message(self) -> str:
        return self._run_git("log", "-1", "--pretty=%B").stdout.strip()

    def has_commits(self) -> bool:
        """Return ``True`` when ``HEAD`` points at a commit (the branch is not unborn)."""

        result = self._run_git("rev-parse", "--verify", "--quiet", "HEAD", check=False)
        return result.returncode == 0

    def branch_exists(self, branch: str) -> bool:
        result = self._run_git("show-ref", "--verify", "--quiet", f"refs/heads/{branch}", check=False)
        return result.returncode == 0

    def remote_branch_exists(self, destination: str, branch: str) -> bool:
        """Return whether ``branch`` exists on ``destination`` (a remote name or URL)."""

        result = self._run_git(
            "ls-remote", "--exit-code", "--heads", destination, f"refs/heads/{branch}", check=False
        )
        if result.returncode == 0:
            return True
        # ls-remote --exit-code reports "no matching refs" as 2.
        if result.returncode == 2:
            return False
        output = (result.stderr or "").strip() or (result.stdout or "").strip()
        raise VersionControlFailed(
            self._redact(f"git ls-remote --exit-code --heads {destination} refs/heads/{branch}"),
            returncode=result.returncode,
            output=self._redact(output),
        )

    def fetch_branch(self, destination: str, branch: str) -> None:
        """Create or overwrite the local ``branch`` from its tip on ``destination``."""

        self._run_git("fetch", "--no-tags", destination, f"+refs/heads/{branch}:refs/heads/{branch}")

    def has_submodules(self) -> bool:
        return (self.path / ".gitmodules").is_file()

    # ------------------------------------------------------------------
    # Worktrees
    # ------------------------------------------------------------------
    def worktree_prune(self) -> None:
        self._run_git("worktree", "prune")

    def worktree_add(self, path: Path, branch: str) -> None:
        """Check out the existing local ``branch`` into a new worktree at ``path``."""

        self._run_git("worktree", "add", str(path), branch)

    def worktree_add_orphan(self, path: Path, branch: str) -> None:
        """Create a worktree at ``path`` on a new branch with no history and an empty index."""

        self._run_git("worktree", "add", "--detach", "--no-checkout", str(path))
        worktree = self.at(path)
        worktree._run_git("checkout", "--orphan", branch)
        worktree._run_git("read-tree", "--empty")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def update_submodules(self) -> None:
        self._run_git("submodule", "update", "--init", "--recursive")

    def add_all(self) -> None:
        """Stage additions, modifications and deletions for the whole checkout."""

        self._run_git("add", "--all", ".")

    def commit(self, message: str, identity: CommitIdentity, *, allow_empty: bool = False) -> str:
        """Commit the index as ``identity`` without touching any git config file."""

        args = [
            "-c",
            f"user.name={identity.name}",
            "-c",
            f"user.email={identity.email}",
            "-c",
            "commit.gpgsign=false",
            "commit",
            "--no-verify",
            "-m",
            message,
        ]
        if allow_empty:
            args.append("--allow-empty")
        self._run_git(*args)
        return self.rev_parse("HEAD")

    def push_force(self, destination: str, branch: str) -> None:
        """Overwrite ``branch`` on ``destination`` (a remote name or URL) with the local branch."""

        refspec = f"refs/heads/{branch}:refs/heads/{branch}"
        self._run_git("push", "--force", destination, refspec)

    def fast_forward(self, remote: str, branch: str) -> None:
        """Bring the checkout up to date with ``remote/branch`` without creating merges."""

        self._run_git("pull", "--ff-only", remote, branch)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _redact(self, text: str) -> str:
        return redact_credentials(text, self.secrets)

    def _run_git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        """Execute a Git command within the checkout and raise on error when ``check`` is set."""

        command = self._redact(" ".join(["git", *args]))
        logger.debug("Running %s (cwd=%s)", command, self.path)

        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"
        try:
            result = subprocess.run(
                [self.git_executable, *args],
                cwd=self.path,
                text=True,
                check=False,
                capture_output=True,
                env=env,
            )
        except OSError as exc:
            raise VersionControlFailed(command, returncode=127, output=self._redact(str(exc))) from exc

        if check and result.returncode != 0:
            output = (result.stderr or "").strip() or (result.stdout or "").strip()
            raise VersionControlFailed(command, returncode=result.returncode, output=self._redact(output))
        return result


__all__ = ["GitRepository"]
