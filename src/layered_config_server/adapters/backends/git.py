"""Remote-repository source backend driven by the ``git`` executable.

Purpose
-------
Implement :class:`layered_config_server.application.ports.SourceBackend` for a
version-controlled repository. Each label (branch, tag, or commit) gets its
own working copy below ``basedir`` so concurrent fetches of different labels
never share a checkout; fetches of the same label serialise on a per-label
writer lock.

Contents
--------
* :class:`GitBackend` – clone/fetch/checkout orchestration plus probing.
* :class:`GitCommandError` – a failed ``git`` invocation (wrapped into
  :class:`~layered_config_server.domain.errors.SourceUnavailable` before it
  leaves the adapter).

System Role
-----------
Selected by :func:`layered_config_server.core.build_backend` when
``backend.type`` is ``git``. Working copies are a cache: a copy that fails to
update is deleted and cloned again.
"""

from __future__ import annotations

import hashlib
import re
import shutil
import subprocess
import threading
import time
from pathlib import Path
from typing import Callable, Final, Sequence

from ...domain.errors import DocumentNotFound, NoSuchLabel, SourceUnavailable
from ...domain.model import SourceDocument
from ...observability import log_debug, log_info, log_warning, make_event
from .native import DEFAULT_SEARCH_PATHS, collect_files

_COMMIT: Final[re.Pattern[str]] = re.compile(r"^[0-9a-fA-F]{7,40}$")
_UNSAFE: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9._-]")


class GitCommandError(Exception):
    """A ``git`` invocation exited with a non-zero status."""

    def __init__(self, args: Sequence[str], returncode: int, stderr: str) -> None:
        super().__init__(f"git {' '.join(args)} exited with {returncode}: {stderr.strip()}")
        self.returncode = returncode
        self.stderr = stderr


class GitBackend:
    """Serve documents from per-label working copies of a git repository.

    Parameters
    ----------
    uri:
        Anything ``git clone`` accepts (URL or local path).
    basedir:
        Directory holding the working copies; created on demand.
    search_paths:
        Same semantics as :class:`~layered_config_server.adapters.backends.native.FilesystemBackend`.
    timeout:
        Seconds allowed per ``git`` invocation.
    refresh_interval:
        Seconds during which a label fetched recently is not fetched again.
    clock:
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        uri: str,
        basedir: str | Path,
        *,
        search_paths: Sequence[str] = DEFAULT_SEARCH_PATHS,
        timeout: float = 10.0,
        refresh_interval: float = 0.0,
        git: str = "git",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.uri = uri
        self.basedir = Path(basedir)
        self.search_paths = tuple(search_paths) or DEFAULT_SEARCH_PATHS
        self.timeout = timeout
        self.refresh_interval = refresh_interval
        self._git = git
        self._clock = clock
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._last_refresh: dict[str, float] = {}

    def fetch(self, application: str, label: str) -> tuple[list[SourceDocument], str]:
        """Bring the label's working copy up to date and read matching documents."""

        with self._label_lock(label):
            workdir = self._sync(label)
            commit = self._head(workdir)
            try:
                items = [(name, path.read_bytes()) for name, path in collect_files(workdir, self.search_paths, application, label)]
            except OSError as exc:
                raise SourceUnavailable(f"Failed to read working copy {workdir}: {exc}") from exc
        if not items:
            raise DocumentNotFound(f"No configuration documents for application '{application}' in {self.uri}@{label}")
        documents = [
            SourceDocument(name=name, raw_content=content, backend_version=commit, location=f"{self.uri.rstrip('/')}/{name}")
            for name, content in items
        ]
        log_debug("documents_fetched", **make_event(application, label, {"documents": len(documents), "version": commit}))
        return documents, commit

    def probe(self, application: str, label: str) -> str:
        """Return the commit *label* currently points at on the remote.

        Labels that look like commit ids and match no ref are their own
        version.
        """

        if label.startswith("-"):
            raise NoSuchLabel(label)
        refs = self._ls_remote(label)
        for ref in (f"refs/heads/{label}", f"refs/tags/{label}^{{}}", f"refs/tags/{label}"):
            if ref in refs:
                return refs[ref]
        if _COMMIT.match(label):
            return label.lower()
        raise NoSuchLabel(label)

    def check(self) -> bool:
        """Return ``True`` when the remote answers ``ls-remote``."""

        try:
            self._run("ls-remote", "--heads", self.uri)
        except SourceUnavailable:
            return False
        return True

    def workdir(self, label: str) -> Path:
        """Return the working copy directory used for *label*.

        Examples
        --------
        >>> GitBackend("repo", "/tmp/base").workdir("main").as_posix()
        '/tmp/base/main'
        >>> GitBackend("repo", "/tmp/base").workdir("feature/x").as_posix()
        '/tmp/base/feature_x-45239254'
        """

        safe = _UNSAFE.sub("_", label)
        if safe != label or safe.startswith("."):
            safe = f"{safe}-{hashlib.sha1(label.encode('utf-8')).hexdigest()[:8]}"
        return self.basedir / safe

    def _label_lock(self, label: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(label, threading.Lock())

    def _sync(self, label: str) -> Path:
        """Clone or update the working copy for *label* and check it out."""

        workdir = self.workdir(label)
        if (workdir / ".git").is_dir():
            if self._fresh(label):
                return workdir
            try:
                self._update(workdir, label)
                return workdir
            except (SourceUnavailable, NoSuchLabel) as exc:
                log_warning("working_copy_reset", label=label, path=str(workdir), error=str(exc))
                shutil.rmtree(workdir, ignore_errors=True)
        elif workdir.exists():
            shutil.rmtree(workdir, ignore_errors=True)
        self._clone(workdir, label)
        return workdir

    def _head(self, workdir: Path) -> str:
        try:
            return self._run("rev-parse", "HEAD", cwd=workdir).strip()
        except GitCommandError as exc:
            raise SourceUnavailable(f"Working copy {workdir} has no checked out commit: {exc}") from exc

    def _fresh(self, label: str) -> bool:
        last = self._last_refresh.get(label)
        return bool(self.refresh_interval) and last is not None and self._clock() - last < self.refresh_interval

    def _clone(self, workdir: Path, label: str) -> None:
        self.basedir.mkdir(parents=True, exist_ok=True)
        log_info("repository_clone", uri=self.uri, label=label, path=str(workdir))
        self._run("clone", "--quiet", "--no-checkout", self.uri, str(workdir))
        self._checkout(workdir, label)

    def _update(self, workdir: Path, label: str) -> None:
        self._run("fetch", "--quiet", "--force", "--tags", "origin", cwd=workdir)
        self._checkout(workdir, label)

    def _checkout(self, workdir: Path, label: str) -> None:
        commit = self._resolve_label(workdir, label)
        self._run("checkout", "--quiet", "--force", "--detach", commit, cwd=workdir)
        self._run("clean", "-q", "-f", "-d", cwd=workdir)
        self._last_refresh[label] = self._clock()
        log_debug("working_copy_checked_out", label=label, commit=commit, path=str(workdir))

    def _resolve_label(self, workdir: Path, label: str) -> str:
        if label.startswith("-"):
            raise NoSuchLabel(label)
        for ref in (f"refs/remotes/origin/{label}", f"refs/tags/{label}", label):
            try:
                return self._run("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", cwd=workdir).strip()
            except GitCommandError:
                continue
        raise NoSuchLabel(label)

    def _ls_remote(self, label: str) -> dict[str, str]:
        output = self._run("ls-remote", self.uri, f"refs/heads/{label}", f"refs/tags/{label}", f"refs/tags/{label}^{{}}")
        refs: dict[str, str] = {}
        for line in output.splitlines():
            commit, _, ref = line.partition("\t")
            if ref:
                refs[ref.strip()] = commit.strip()
        return refs

    def _run(self, *args: str, cwd: Path | None = None) -> str:
        """Run ``git`` with *args*; failures become ``SourceUnavailable``.

        ``rev-parse`` failures are raised as :class:`GitCommandError` so label
        resolution can try the next candidate ref.
        """

        command = [self._git, *args]
        try:
            completed = subprocess.run(
                command,
                cwd=str(cwd) if cwd is not None else None,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise SourceUnavailable(f"git {args[0]} timed out after {self.timeout}s for {self.uri}") from exc
        except OSError as exc:
            raise SourceUnavailable(f"Cannot execute {self._git}: {exc}") from exc
        if completed.returncode != 0:
            error = GitCommandError(args, completed.returncode, completed.stderr)
            if args[0] == "rev-parse":
                raise error
            raise SourceUnavailable(f"Repository {self.uri} unavailable: {error}") from error
        return completed.stdout


__all__ = ["GitBackend", "GitCommandError"]
