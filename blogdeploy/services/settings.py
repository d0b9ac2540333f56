"""Layered configuration for the publisher.

Settings are resolved in this order, later sources winning:

1. built-in defaults (Hugo writing into ``public`` pushed to ``gh-pages``)
2. an optional YAML file, ``.blogdeploy.yml`` in the repository root or the
   path named by ``BLOGDEPLOY_CONFIG``
3. environment variables, including the ``GITHUB_ACTOR`` and ``REPOSITORY``
   values provided by the CI workflow
4. explicit overrides, usually command-line flags

Remote URLs carrying credentials are accepted from the environment only; the
YAML file is committed alongside the blog and must not contain them.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
import os
from pathlib import Path, PurePosixPath
import shlex
from typing import Any, Final, Mapping

import yaml

from blogdeploy.models.publisher import CommitIdentity
from blogdeploy.services.errors import ConfigurationError
from blogdeploy.utils.text import redact_credentials, url_secrets


DEFAULT_CONFIG_FILENAME: Final[str] = ".blogdeploy.yml"
DEFAULT_ACTOR: Final[str] = "blogdeploy"
DEFAULT_OUTPUT_DIR: Final[Path] = Path("public")
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

_YAML_KEYS = {
    "output_dir",
    "target_branch",
    "source_branch",
    "remote",
    "remote_url",
    "generator",
    "theme",
    "sync_submodules",
    "author_name",
    "author_email",
    "history_db",
    "git_executable",
}

_ENV_KEYS: Mapping[str, str] = {
    "BLOGDEPLOY_OUTPUT_DIR": "output_dir",
    "BLOGDEPLOY_TARGET_BRANCH": "target_branch",
    "BLOGDEPLOY_SOURCE_BRANCH": "source_branch",
    "BLOGDEPLOY_REMOTE": "remote",
    "BLOGDEPLOY_GENERATOR": "generator",
    "BLOGDEPLOY_THEME": "theme",
    "BLOGDEPLOY_SYNC_SUBMODULES": "sync_submodules",
    "BLOGDEPLOY_HISTORY_DB": "history_db",
    "BLOGDEPLOY_WEBHOOK_SECRET": "webhook_secret",
    "BLOGDEPLOY_GIT": "git_executable",
}


@dataclass(slots=True)
class PublisherSettings:
    """Resolved configuration for a publish run."""

    repo_path: Path
    output_dir: Path = field(default_factory=lambda: DEFAULT_OUTPUT_DIR)
    target_branch: str = "gh-pages"
    source_branch: str = "main"
    remote: str = "origin"
    remote_url: str | None = None
    generator: tuple[str, ...] = ("hugo",)
    theme: str | None = None
    sync_submodules: bool = True
    author_name: str = DEFAULT_ACTOR
    author_email: str | None = None
    history_db: Path | None = None
    webhook_secret: str | None = None
    git_executable: str = "git"

    @property
    def output_path(self) -> Path:
        return self.repo_path / self.output_dir

    @property
    def identity(self) -> CommitIdentity:
        if self.author_email:
            return CommitIdentity(name=self.author_name, email=self.author_email)
        return CommitIdentity.from_actor(self.author_name)

    @property
    def push_destination(self) -> str:
        """Remote URL override when configured, otherwise the remote name."""

        return self.remote_url or self.remote

    @property
    def display_destination(self) -> str:
        return redact_credentials(self.push_destination)

    @property
    def secrets(self) -> tuple[str, ...]:
        """Credential fragments that must never appear in logs."""

        values = list(url_secrets(self.remote_url))
        if self.webhook_secret:
            values.append(self.webhook_secret)
        return tuple(values)

    def with_overrides(self, **overrides: Any) -> "PublisherSettings":
        """Return a copy with every non-``None`` override applied and validated."""

        known = {item.name for item in fields(self)}
        values: dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in known:
                raise ConfigurationError(f"Unknown setting '{key}'")
            if value is not None:
                values[key] = _coerce(key, value)
        updated = replace(self, **values)
        updated.validate()
        return updated

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` when the settings cannot drive a publish."""

        for name in ("target_branch", "source_branch", "remote", "author_name"):
            if not str(getattr(self, name)).strip():
                raise ConfigurationError(f"Setting '{name}' must not be empty")
        if not self.generator:
            raise ConfigurationError("Setting 'generator' must name a command")

        # The output directory is deleted on every run, so it must stay inside the repo.
        text = str(self.output_dir).strip()
        if "\\" in text:
            raise ConfigurationError("Setting 'output_dir' must use forward slashes")
        parts = PurePosixPath(text).parts
        if not parts or PurePosixPath(text).is_absolute():
            raise ConfigurationError(f"Setting 'output_dir' must be a relative path, got {text!r}")
        for segment in parts:
            if segment in (".", "..", ".git"):
                raise ConfigurationError(f"Setting 'output_dir' contains forbidden segment {segment!r}")


def _parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Setting '{key}' expects a boolean, got {value!r}")


def _parse_command(key: str, value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        try:
            return tuple(shlex.split(value))
        except ValueError as exc:
            raise ConfigurationError(f"Setting '{key}' is not a valid command line: {exc}") from exc
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return tuple(value)
    raise ConfigurationError(f"Setting '{key}' expects a string or a list of strings")


def _coerce(key: str, value: Any) -> Any:
    """Convert raw YAML, environment or CLI values to the type of ``key``."""

    if key == "sync_submodules":
        return _parse_bool(key, value)
    if key == "generator":
        return _parse_command(key, value)
    if key in {"output_dir", "history_db", "repo_path"}:
        return Path(str(value))
    if isinstance(value, (dict, list)):
        raise ConfigurationError(f"Setting '{key}' expects a scalar value")
    text = str(value).strip()
    if key in {"theme", "remote_url", "author_email", "webhook_secret"}:
        return text or None
    return text


def load_config_file(path: Path) -> dict[str, Any]:
    """Read the YAML settings file at ``path`` and return validated raw values."""

    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"Could not read configuration file '{path}': {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Configuration file '{path}' is not valid YAML: {exc}") from exc

    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Configuration file '{path}' must contain a mapping")

    unknown = sorted(str(key) for key in payload if key not in _YAML_KEYS)
    if unknown:
        raise ConfigurationError(f"Unknown keys in '{path}': {', '.join(unknown)}")

    remote_url = payload.get("remote_url")
    if isinstance(remote_url, str) and url_secrets(remote_url):
        raise ConfigurationError(
            f"'{path}' must not embed credentials in remote_url; use the REPOSITORY environment variable"
        )
    return {key: _coerce(key, value) for key, value in payload.items() if value is not None}


def load_settings(
    repo_path: Path,
    *,
    environ: Mapping[str, str] | None = None,
    config_path: Path | None = None,
    **overrides: Any,
) -> PublisherSettings:
    """Resolve settings for ``repo_path`` from the YAML file, environment and overrides."""

    env = os.environ if environ is None else environ
    repo_path = Path(repo_path).expanduser().resolve()
    values: dict[str, Any] = {}

    explicit = config_path or (Path(env["BLOGDEPLOY_CONFIG"]) if env.get("BLOGDEPLOY_CONFIG") else None)
    if explicit is not None:
        values.update(load_config_file(Path(explicit)))
    elif (repo_path / DEFAULT_CONFIG_FILENAME).is_file():
        values.update(load_config_file(repo_path / DEFAULT_CONFIG_FILENAME))

    for env_key, setting in _ENV_KEYS.items():
        raw = env.get(env_key)
        if raw is not None and raw.strip():
            values[setting] = _coerce(setting, raw)

    remote_url = env.get("BLOGDEPLOY_REMOTE_URL") or env.get("REPOSITORY")
    if remote_url and remote_url.strip():
        values["remote_url"] = remote_url.strip()

    actor = (env.get("GITHUB_ACTOR") or "").strip()
    if actor:
        values["author_name"] = actor
    if (env.get("BLOGDEPLOY_AUTHOR_NAME") or "").strip():
        values["author_name"] = env["BLOGDEPLOY_AUTHOR_NAME"].strip()
    if (env.get("BLOGDEPLOY_AUTHOR_EMAIL") or "").strip():
        values["author_email"] = env["BLOGDEPLOY_AUTHOR_EMAIL"].strip()

    settings = PublisherSettings(repo_path=repo_path, **values)
    return settings.with_overrides(**overrides)


__all__ = [
    "DEFAULT_CONFIG_FILENAME",
    "DEFAULT_OUTPUT_DIR",
    "PublisherSettings",
    "load_config_file",
    "load_settings",
]
