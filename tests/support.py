"""Shared fixtures-in-code for the test-suite.

``ConfigTree`` writes configuration documents into a temporary store so each
test narrates only the documents it cares about. ``CountingBackend`` wraps a
real backend and records how often it was reached.
"""

from __future__ import annotations

import shutil
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from textwrap import dedent

from layered_config_server.adapters.backends.native import FilesystemBackend
from layered_config_server.domain.model import SourceDocument

GIT = shutil.which("git")


@dataclass
class ConfigTree:
    """A directory of configuration documents."""

    root: Path

    def write(self, relative: str, content: str) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(dedent(content).lstrip("\n"), encoding="utf-8")
        return path

    def backend(self, **kwargs: object) -> FilesystemBackend:
        return FilesystemBackend(self.root, **kwargs)  # type: ignore[arg-type]


def create_config_tree(tmp_path: Path) -> ConfigTree:
    root = tmp_path / "config"
    root.mkdir(parents=True, exist_ok=True)
    return ConfigTree(root)


@dataclass
class CountingBackend:
    """Delegate to *inner* while counting fetches; optionally slow fetches down."""

    inner: FilesystemBackend
    fetch_delay: float = 0.0
    fetches: int = 0
    probes: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def fetch(self, application: str, label: str) -> tuple[list[SourceDocument], str]:
        with self._lock:
            self.fetches += 1
        if self.fetch_delay:
            time.sleep(self.fetch_delay)
        return self.inner.fetch(application, label)

    def probe(self, application: str, label: str) -> str:
        with self._lock:
            self.probes += 1
        return self.inner.probe(application, label)

    def check(self) -> bool:
        return self.inner.check()


@dataclass
class GitRepo:
    """A throw-away git repository used as a remote."""

    path: Path

    def git(self, *args: str) -> str:
        completed = subprocess.run(
            ["git", "-c", "user.email=tests@example.com", "-c", "user.name=Tests", *args],
            cwd=self.path,
            capture_output=True,
            text=True,
            check=True,
        )
        return completed.stdout.strip()

    def commit(self, files: dict[str, str], message: str = "update") -> str:
        for relative, content in files.items():
            target = self.path / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(dedent(content).lstrip("\n"), encoding="utf-8")
        self.git("add", "-A")
        self.git("commit", "--quiet", "-m", message)
        return self.git("rev-parse", "HEAD")


def create_git_repo(tmp_path: Path) -> GitRepo:
    path = tmp_path / "remote"
    path.mkdir(parents=True, exist_ok=True)
    repo = GitRepo(path)
    repo.git("init", "--quiet")
    repo.git("symbolic-ref", "HEAD", "refs/heads/main")
    return repo
