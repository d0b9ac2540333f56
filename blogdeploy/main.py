"""FastAPI webhook application that publishes the blog when the main branch changes"""

from __future__ import annotations

from datetime import datetime, timezone
import hashlib
import hmac
import logging
import os
from pathlib import Path
import threading
from typing import Iterator

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError, field_validator

from blogdeploy.models.publisher import PublicationResult
from blogdeploy.services.errors import ConfigurationError, DirtyWorkingTree, PublishError
from blogdeploy.services.git import GitRepository
from blogdeploy.services.history import LocalSQLitePublishLog
from blogdeploy.services.publisher import WorktreePublisher
from blogdeploy.services.settings import PublisherSettings, load_settings
from blogdeploy.utils.text import redact_credentials

app = FastAPI(title="blogdeploy")

logger = logging.getLogger(__name__)

_SIGNATURE_HEADER = "X-Hub-Signature-256"
_EVENT_HEADER = "X-GitHub-Event"
_publish_lock = threading.Lock()


class PushCommit(BaseModel):
    """Subset of the commit object included in push events."""

    id: str | None = None
    message: str | None = None


class PushEvent(BaseModel):
    """Push event payload as delivered by GitHub and compatible CI systems."""

    ref: str = Field(..., description="Fully qualified ref that was pushed, e.g. refs/heads/main.")
    after: str | None = Field(default=None, description="Commit the ref now points at.")
    head_commit: PushCommit | None = None

    @field_validator("ref")
    @classmethod
    def _ensure_ref_not_empty(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("ref must not be empty.")
        return cleaned

    @property
    def branch(self) -> str | None:
        """Return the branch name for ``refs/heads/*`` refs and ``None`` for tags."""

        prefix = "refs/heads/"
        if self.ref.startswith(prefix):
            return self.ref[len(prefix) :]
        return None


def _build_debug_detail(exc: Exception, settings: PublisherSettings) -> dict[str, object]:
    """Return a serialisable mapping describing ``exc`` with credentials masked."""

    message = redact_credentials(str(exc).strip(), settings.secrets)
    detail: dict[str, object] = {
        "error": type(exc).__name__,
        "message": message or "No exception message provided.",
    }
    if isinstance(exc, PublishError):
        detail["returncode"] = exc.returncode
    return detail


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Check an ``X-Hub-Signature-256`` header against the HMAC of ``body``."""

    if not signature or not signature.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature[len("sha256=") :])


def get_settings() -> PublisherSettings:
    """Resolve publisher settings for the checkout named by ``BLOGDEPLOY_REPO``."""

    try:
        return load_settings(Path(os.getenv("BLOGDEPLOY_REPO", ".")))
    except ConfigurationError as exc:
        logger.exception("Publisher settings are invalid")
        raise HTTPException(status_code=500, detail={"error": "ConfigurationError", "message": str(exc)}) from exc


def get_repository(settings: PublisherSettings = Depends(get_settings)) -> GitRepository:
    return GitRepository(path=settings.repo_path, git_executable=settings.git_executable, secrets=settings.secrets)


def get_publisher(
    settings: PublisherSettings = Depends(get_settings),
    repository: GitRepository = Depends(get_repository),
) -> WorktreePublisher:
    return WorktreePublisher(settings=settings, repository=repository)


def get_history(
    settings: PublisherSettings = Depends(get_settings),
) -> Iterator[LocalSQLitePublishLog | None]:
    """Open the publish history for one request when ``history_db`` is configured."""

    if settings.history_db is None:
        yield None
        return
    history = LocalSQLitePublishLog(settings.history_db)
    try:
        yield history
    finally:
        history.close()


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.get("/publications", response_class=JSONResponse)
async def list_publications(
    limit: int = Query(default=10, ge=1, le=100),
    history: LocalSQLitePublishLog | None = Depends(get_history),
) -> JSONResponse:
    """Return the most recent publish runs, newest first."""

    records = history.latest(limit=limit) if history is not None else []
    return JSONResponse({"publications": [record.to_dict() for record in records]})


def _sync_and_publish(
    repository: GitRepository,
    publisher: WorktreePublisher,
    settings: PublisherSettings,
) -> PublicationResult:
    """Fast-forward the authoring checkout, then run the publisher."""

    # Pulling into a dirty checkout would move HEAD before the publisher refuses to run.
    dirty = repository.status_porcelain()
    if dirty:
        raise DirtyWorkingTree(dirty)
    repository.fast_forward(settings.push_destination, settings.source_branch)
    return publisher.publish()


@app.post("/hooks/push")
async def receive_push(
    request: Request,
    settings: PublisherSettings = Depends(get_settings),
    repository: GitRepository = Depends(get_repository),
    publisher: WorktreePublisher = Depends(get_publisher),
    history: LocalSQLitePublishLog | None = Depends(get_history),
) -> JSONResponse:
    """Publish the site when the source branch receives a push."""

    body = await request.body()
    if settings.webhook_secret and not verify_signature(
        settings.webhook_secret, body, request.headers.get(_SIGNATURE_HEADER)
    ):
        logger.warning("Rejected push event with an invalid signature")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    if request.headers.get(_EVENT_HEADER) == "ping":
        return JSONResponse({"status": "pong"})

    try:
        event = PushEvent.model_validate_json(body or b"{}")
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False, include_input=False)
        raise HTTPException(status_code=422, detail=errors) from exc

    if event.branch != settings.source_branch:
        logger.info("Ignoring push to %s", event.ref)
        return JSONResponse({"status": "ignored", "ref": event.ref}, status_code=202)

    if not _publish_lock.acquire(blocking=False):
        raise HTTPException(status_code=409, detail="A publish is already in progress")

    started_at = datetime.now(timezone.utc)
    logger.info("Push to %s at %s; publishing", event.ref, event.after or "unknown commit")
    try:
        result = await run_in_threadpool(_sync_and_publish, repository, publisher, settings)
    except PublishError as exc:
        logger.error("Publish failed: %s", redact_credentials(str(exc), settings.secrets))
        if history is not None:
            history.record_failure(exc, started_at=started_at)
        status_code = 409 if isinstance(exc, DirtyWorkingTree) else 500
        raise HTTPException(status_code=status_code, detail=_build_debug_detail(exc, settings)) from exc
    finally:
        _publish_lock.release()

    if history is not None:
        history.record_success(result, started_at=started_at)
    return JSONResponse({"status": result.outcome, "publication": result.to_dict()})
