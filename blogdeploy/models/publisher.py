"""Data structures describing publish runs and their outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any


@dataclass(slots=True, frozen=True)
class CommitIdentity:
    """Author and committer identity applied to the publish commit only."""

    name: str
    email: str

    @classmethod
    def from_actor(cls, actor: str) -> "CommitIdentity":
        """Build the identity GitHub Actions uses for ``GITHUB_ACTOR``."""

        actor = actor.strip()
        return cls(name=actor, email=f"{actor}@users.noreply.github.com")


@dataclass(slots=True)
class PublicationResult:
    """Outcome returned by the publisher after pushing the target branch."""

    target_branch: str
    output_directory: Path
    commit_message: str
    commit_hash: str
    committed: bool
    destination: str
    published_at: datetime

    @property
    def outcome(self) -> str:
        """Return ``published`` when a new commit was pushed, ``unchanged`` otherwise."""

        return "published" if self.committed else "unchanged"

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome,
            "target_branch": self.target_branch,
            "output_directory": str(self.output_directory),
            "commit_message": self.commit_message,
            "commit_hash": self.commit_hash,
            "committed": self.committed,
            "destination": self.destination,
            "published_at": self.published_at.isoformat(),
        }


@dataclass(slots=True)
class PublishRecord:
    """Row stored in the publish history ledger."""

    id: int | None
    started_at: datetime
    finished_at: datetime
    outcome: str
    commit_message: str | None = None
    commit_hash: str | None = None
    error_type: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "outcome": self.outcome,
            "commit_message": self.commit_message,
            "commit_hash": self.commit_hash,
            "error_type": self.error_type,
            "error": self.error,
        }
