"""Application-layer ports describing adapter responsibilities.

Purpose
-------
Define the structural contracts that adapters must satisfy so the composition
root can orchestrate behaviour without depending on concrete implementations.

Contents
--------
* :class:`SourceBackend` – reads raw documents and reports store versions.
* :class:`DocumentParser` – parses one raw document into a mapping.

System Role
-----------
These protocols enforce Dependency Inversion. The filesystem and git
backends implement :class:`SourceBackend`; the structured parsers implement
:class:`DocumentParser`.
"""

from __future__ import annotations

from typing import Mapping, Protocol, Sequence, runtime_checkable

from ..domain.model import SourceDocument


@runtime_checkable
class SourceBackend(Protocol):
    """Read configuration documents from a storage medium.

    Methods
    -------
    :meth:`fetch`
        Full read of every document that may apply to an application.
    :meth:`probe`
        Cheap version check used by the cache before deciding hit or miss.
    :meth:`check`
        Reachability check backing the health endpoint.
    """

    def fetch(self, application: str, label: str) -> tuple[Sequence[SourceDocument], str]:
        """Return the matching documents and the version they were read at.

        Raises ``SourceUnavailable`` when the store cannot be read and
        ``DocumentNotFound`` when no document matches *application*.
        """

    def probe(self, application: str, label: str) -> str:
        """Return the current version token without building documents."""

    def check(self) -> bool:
        """Return ``True`` when the store is reachable."""


class DocumentParser(Protocol):
    """Parse one named document into a mapping or raise ``MalformedDocument``."""

    def parse(self, name: str, raw: bytes) -> Mapping[str, object]:
        """Return the mapping stored in *raw*."""


__all__ = ["SourceBackend", "DocumentParser"]
