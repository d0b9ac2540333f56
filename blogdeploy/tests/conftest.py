"""Shared fixtures for the test suite."""

from __future__ import annotations

from pathlib import Path
import sys

import pytest

from blogdeploy.services.settings import PublisherSettings
from blogdeploy.tests.helpers import BlogCheckout, commit_all, git, init_repo


# Stand-in for Hugo: renders content/*.md into public/ (or the -d destination) from the current directory.
_GENERATOR_SOURCE = '''\
import pathlib
import sys

args = sys.argv[1:]
root = pathlib.Path.cwd()
out = root / (args[args.index("-d") + 1] if "-d" in args else "public")
out.mkdir(parents=True, exist_ok=True)
pages = []
for source in sorted((root / "content").glob("*.md")):
    (out / f"{source.stem}.html").write_text("<p>" + source.read_text().strip() + "</p>\\n")
    pages.append(source.stem)
(out / "index.html").write_text("\\n".join(pages) + "\\n")
print(f"Built {len(pages)} page(s)")
'''


@pytest.fixture()
def blog(tmp_path: Path) -> BlogCheckout:
    """Create a bare remote and an authoring checkout with one committed post."""

    remote = tmp_path / "remote.git"
    remote.mkdir()
    git("init", "--bare", cwd=remote)
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=remote)

    source = tmp_path / "blog"
    source.mkdir()
    init_repo(source)
    (source / "content").mkdir()
    (source / "content" / "hello.md").write_text("Hello world\n", encoding="utf-8")
    (source / ".gitignore").write_text("public/\n", encoding="utf-8")
    commit_all(source, "Add first post")
    git("remote", "add", "origin", str(remote), cwd=source)
    git("push", "origin", "main", cwd=source)

    script = tmp_path / "generate.py"
    script.write_text(_GENERATOR_SOURCE, encoding="utf-8")
    return BlogCheckout(source=source, remote=remote, generator_script=script)


@pytest.fixture()
def settings(blog: BlogCheckout) -> PublisherSettings:
    """Publisher settings pointing at the ``blog`` checkout and the stand-in generator."""

    return PublisherSettings(
        repo_path=blog.source,
        generator=(sys.executable, str(blog.generator_script)),
        sync_submodules=False,
        author_name="ci-bot",
    )
