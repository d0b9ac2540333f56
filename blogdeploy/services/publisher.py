"""Publisher that deploys the generated site to a hosting branch through a git worktree."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from pathlib import Path
import shutil
from typing import Callable, Protocol

from blogdeploy.models.publisher import PublicationResult
from blogdeploy.services.errors import DirtyWorkingTree
from blogdeploy.services.generator import GeneratorRun, SiteGenerator
from blogdeploy.services.git import GitRepository
from blogdeploy.services.settings import DEFAULT_OUTPUT_DIR, PublisherSettings


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_commit_message(now: datetime) -> str:
    """Return the timestamped message used when the caller does not supply one."""

    stamp = now.astimezone(timezone.utc).strftime("%a %b %d %H:%M:%S %Z %Y")
    return f"publishing site {stamp}"


class SupportsGeneration(Protocol):
    """Protocol describing the site generator interface."""

    def run(self) -> GeneratorRun:
        """Render the site into the output directory, raising on failure."""


@dataclass(slots=True)
class WorktreePublisher:
    """Regenerate the site into a worktree bound to the target branch and force-push it.

    Every run starts by discarding the output directory, so re-running after a
    partial failure converges on the same end state.
    """

    settings: PublisherSettings
    repository: GitRepository | None = None
    generator: SupportsGeneration | None = None
    clock: Callable[[], datetime] = field(default=_utcnow)

    def publish(self, commit_message: str | None = None) -> PublicationResult:
        """Build and push the site, returning details of the pushed commit."""

        settings = self.settings
        repo = self._repository()
        output = settings.output_path
        branch = settings.target_branch

        logger.info("Deploying updates to %s (branch %s)", settings.display_destination, branch)

        dirty = repo.status_porcelain()
        if dirty:
            raise DirtyWorkingTree(dirty)
        logger.info("Publishing from branch %s", repo.current_branch())

        if settings.sync_submodules and repo.has_submodules():
            logger.info("Updating submodules")
            repo.update_submodules()

        self._reset_output_directory(repo, output)
        self._attach_worktree(repo, output, branch)
        self._clear_output_directory(output)

        self._generator().run()

        worktree = repo.at(output)
        worktree.add_all()
        changes = worktree.status_porcelain(untracked=True)
        logger.info("On branch %s with %d staged change(s)", branch, len(changes))
        for entry in changes:
            logger.debug("  %s", entry)

        message = commit_message if commit_message and commit_message.strip() else default_commit_message(self.clock())
        if changes:
            commit_hash = worktree.commit(message, settings.identity)
            committed = True
        elif not worktree.has_commits():
            # An unborn branch has no ref to push until something is committed.
            commit_hash = worktree.commit(message, settings.identity, allow_empty=True)
            committed = True
        else:
            logger.info("Generated site is unchanged; nothing to commit")
            commit_hash = worktree.rev_parse("HEAD")
            committed = False

        logger.info("Pushing %s to %s", branch, settings.display_destination)
        worktree.push_force(settings.push_destination, branch)

        result = PublicationResult(
            target_branch=branch,
            output_directory=output,
            commit_message=message if committed else worktree.last_commit_message(),
            commit_hash=commit_hash,
            committed=committed,
            destination=settings.display_destination,
            published_at=self.clock(),
        )
        logger.info("Published %s at %s (%s)", branch, commit_hash[:12], result.outcome)
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def _reset_output_directory(self, repo: GitRepository, output: Path) -> None:
        """Delete the output directory and drop its worktree registration."""

        if output.is_symlink() or output.is_file():
            output.unlink()
        elif output.exists():
            logger.info("Removing previous output directory %s", output)
            shutil.rmtree(output)
        # Missing directories are unregistered by prune, freeing the branch for the next add.
        repo.worktree_prune()
        output.parent.mkdir(parents=True, exist_ok=True)

    def _attach_worktree(self, repo: GitRepository, output: Path, branch: str) -> None:
        destination = self.settings.push_destination
        if not repo.branch_exists(branch) and repo.remote_branch_exists(destination, branch):
            # Fresh CI checkouts only carry the source branch.
            logger.info("Fetching %s from %s", branch, self.settings.display_destination)
            repo.fetch_branch(destination, branch)

        if repo.branch_exists(branch):
            logger.info("Checking out %s into %s", branch, output)
            repo.worktree_add(output, branch)
        else:
            logger.info("Creating orphan branch %s in %s", branch, output)
            repo.worktree_add_orphan(output, branch)

    @staticmethod
    def _clear_output_directory(output: Path) -> None:
        """Remove everything the branch checkout left behind except the worktree link."""

        for entry in output.iterdir():
            if entry.name == ".git":
                continue
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _repository(self) -> GitRepository:
        if self.repository is None:
            self.repository = GitRepository(
                path=self.settings.repo_path,
                git_executable=self.settings.git_executable,
                secrets=self.settings.secrets,
            )
        return self.repository

    def _generator(self) -> SupportsGeneration:
        if self.generator is None:
            output_dir = self.settings.output_dir
            self.generator = SiteGenerator(
                command=self.settings.generator,
                cwd=self.settings.repo_path,
                theme=self.settings.theme,
                destination=None if output_dir == DEFAULT_OUTPUT_DIR else output_dir,
            )
        return self.generator


__all__ = ["SupportsGeneration", "WorktreePublisher", "default_commit_message"]
