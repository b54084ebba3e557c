"""Document resolution policy.

Purpose
-------
Decide which of the documents a backend returned apply to a request and in
which order. The module is pure: it looks only at document names.

Contents
    - ``GLOBAL_APPLICATION``: stem of the documents shared by every application.
    - ``candidate_stems``: the ordered file stems for an application/profiles.
    - ``matches_application``: listing filter shared by the source backends.
    - ``resolve``: order the available documents for a request.

System Role
-----------
Sits between the source backends and the merge engine. The order produced
here is the precedence order of the resulting bundle (most specific first).
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Iterable, Sequence

from ..adapters.parsers.structured import SUPPORTED_SUFFIXES
from ..domain.model import ConfigRequest, SourceDocument

GLOBAL_APPLICATION = "application"


def candidate_stems(application: str, profiles: Sequence[str]) -> list[str]:
    """Return file stems for *application* and *profiles*, most specific first.

    Profile-specific documents of the application come first (leftmost
    profile first), then the application default, then the global profile
    documents and finally the global default.

    Examples
    --------
    >>> candidate_stems("billing", ["dev"])
    ['billing-dev', 'billing', 'application-dev', 'application']
    >>> candidate_stems("billing", ["dev", "db"])
    ['billing-dev', 'billing-db', 'billing', 'application-dev', 'application-db', 'application']
    >>> candidate_stems("application", ["dev"])
    ['application-dev', 'application']
    """

    stems: list[str] = []
    for name in (application, GLOBAL_APPLICATION):
        for stem in [f"{name}-{profile}" for profile in profiles] + [name]:
            if stem not in stems:
                stems.append(stem)
    return stems


def matches_application(file_name: str, application: str) -> bool:
    """Return ``True`` when *file_name* may contribute to *application*.

    Examples
    --------
    >>> matches_application("billing-dev.yml", "billing")
    True
    >>> matches_application("application.properties", "billing")
    True
    >>> matches_application("billing.txt", "billing")
    False
    >>> matches_application("payments.yml", "billing")
    False
    """

    path = PurePosixPath(file_name)
    if path.suffix.lower() not in SUPPORTED_SUFFIXES:
        return False
    stem = path.stem
    return any(stem == name or stem.startswith(f"{name}-") for name in (application, GLOBAL_APPLICATION))


def resolve(request: ConfigRequest, documents: Iterable[SourceDocument]) -> list[SourceDocument]:
    """Order *documents* that apply to *request* by precedence.

    Ordering is candidate stem rank, then the position of the document's
    directory in the backend listing (search path order), then suffix rank.
    Documents that match no candidate are dropped; an unknown profile simply
    yields fewer documents.
    """

    stems = {stem: rank for rank, stem in enumerate(candidate_stems(request.application, request.profiles))}
    directories: dict[str, int] = {}
    ranked: list[tuple[int, int, int, SourceDocument]] = []
    for document in documents:
        path = PurePosixPath(document.name)
        directory = str(path.parent)
        directories.setdefault(directory, len(directories))
        suffix = path.suffix.lower()
        if path.stem not in stems or suffix not in SUPPORTED_SUFFIXES:
            continue
        ranked.append((stems[path.stem], directories[directory], SUPPORTED_SUFFIXES.index(suffix), document))
    ranked.sort(key=lambda item: item[:3])
    return [item[3] for item in ranked]


__all__ = ["GLOBAL_APPLICATION", "candidate_stems", "matches_application", "resolve"]
