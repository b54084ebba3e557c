"""Filesystem source backend.

Purpose
-------
Implement :class:`layered_config_server.application.ports.SourceBackend` for a
local directory tree. The adapter is the only component that understands the
on-disk layout: a root directory plus ordered search paths that may contain
``{application}``/``{label}`` placeholders and ``*`` wildcards.

Contents
--------
* :class:`FilesystemBackend` – lists, reads, and versions documents.
* :func:`collect_files` – search-path expansion shared with the git backend.
* :func:`content_version` – deterministic version token over document bytes.

System Role
-----------
Selected by :func:`layered_config_server.core.build_backend` when
``backend.type`` is ``native``. Versions are content hashes, so identical
trees always report the same version.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterable, Sequence

from ...application.resolver import matches_application
from ...domain.errors import DocumentNotFound, SourceUnavailable
from ...domain.model import SourceDocument
from ...observability import log_debug, make_event

DEFAULT_SEARCH_PATHS: tuple[str, ...] = ("",)


def collect_files(root: Path, search_paths: Sequence[str], application: str, label: str) -> list[tuple[str, Path]]:
    """Return ``(relative_name, path)`` pairs of documents that may serve *application*.

    Search paths are visited in order; files inside one directory are sorted
    by name. Directories that expand outside *root* are ignored.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> root = Path(tmp.name)
    >>> _ = (root / "billing").mkdir()
    >>> _ = (root / "billing" / "billing-dev.yml").write_text("a: 1")
    >>> _ = (root / "application.yml").write_text("b: 2")
    >>> [name for name, _ in collect_files(root, ["{application}", ""], "billing", "main")]
    ['billing/billing-dev.yml', 'application.yml']
    >>> tmp.cleanup()
    """

    base = root.resolve()
    collected: list[tuple[str, Path]] = []
    seen: set[Path] = set()
    for directory in _expand_search_paths(base, search_paths, application, label):
        for path in sorted(directory.iterdir(), key=lambda p: p.name):
            if path in seen or not path.is_file() or not matches_application(path.name, application):
                continue
            seen.add(path)
            collected.append((path.relative_to(base).as_posix(), path))
    return collected


def content_version(items: Iterable[tuple[str, bytes]]) -> str:
    """Return a SHA-1 hex digest over ``(name, content)`` pairs.

    Examples
    --------
    >>> content_version([("a.yml", b"x: 1")]) == content_version([("a.yml", b"x: 1")])
    True
    >>> content_version([("a.yml", b"x: 1")]) == content_version([("a.yml", b"x: 2")])
    False
    """

    digest = hashlib.sha1()
    for name, content in items:
        digest.update(name.encode("utf-8"))
        digest.update(b"\0")
        digest.update(len(content).to_bytes(8, "big"))
        digest.update(content)
    return digest.hexdigest()


def _expand_search_paths(base: Path, search_paths: Sequence[str], application: str, label: str) -> Iterable[Path]:
    for pattern in search_paths or DEFAULT_SEARCH_PATHS:
        expanded = pattern.replace("{application}", application).replace("{label}", label).strip("/")
        candidates = sorted(base.glob(expanded)) if "*" in expanded else [base / expanded]
        for candidate in candidates:
            directory = candidate.resolve()
            if directory != base and base not in directory.parents:
                continue
            if directory.is_dir():
                yield directory


class FilesystemBackend:
    """Serve documents from a local directory tree.

    Why
    ----
    Local mirrors are the simplest store and the fastest one to test against;
    they share search-path semantics with the git backend's working copies.
    """

    def __init__(self, root: str | Path, *, search_paths: Sequence[str] = DEFAULT_SEARCH_PATHS) -> None:
        self.root = Path(root)
        self.search_paths = tuple(search_paths) or DEFAULT_SEARCH_PATHS

    def fetch(self, application: str, label: str) -> tuple[list[SourceDocument], str]:
        """Read every document that may apply to *application*.

        Examples
        --------
        >>> from tempfile import TemporaryDirectory
        >>> tmp = TemporaryDirectory()
        >>> _ = (Path(tmp.name) / "application.yml").write_text("x: 1")
        >>> documents, version = FilesystemBackend(tmp.name).fetch("billing", "main")
        >>> [doc.name for doc in documents], len(version)
        (['application.yml'], 40)
        >>> tmp.cleanup()
        """

        items = self._read(application, label)
        if not items:
            raise DocumentNotFound(f"No configuration documents for application '{application}' under {self.root}")
        version = content_version((name, content) for name, _, content in items)
        documents = [
            SourceDocument(name=name, raw_content=content, backend_version=version, location=f"file:{path.as_posix()}")
            for name, path, content in items
        ]
        log_debug("documents_fetched", **make_event(application, label, {"documents": len(documents), "version": version}))
        return documents, version

    def probe(self, application: str, label: str) -> str:
        """Return the content version of the documents *application* would read."""

        return content_version((name, content) for name, _, content in self._read(application, label))

    def check(self) -> bool:
        """Return ``True`` when the root directory exists and can be listed."""

        try:
            next(iter(self.root.iterdir()), None)
        except OSError:
            return False
        return True

    def _read(self, application: str, label: str) -> list[tuple[str, Path, bytes]]:
        if not self.root.is_dir():
            raise SourceUnavailable(f"Configuration root is not a readable directory: {self.root}")
        try:
            return [(name, path, path.read_bytes()) for name, path in collect_files(self.root, self.search_paths, application, label)]
        except OSError as exc:
            raise SourceUnavailable(f"Failed to read configuration root {self.root}: {exc}") from exc


__all__ = ["FilesystemBackend", "DEFAULT_SEARCH_PATHS", "collect_files", "content_version"]
