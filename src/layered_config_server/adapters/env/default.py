"""``CONFIG_SERVER_*`` environment variables as a settings layer.

Variables are matched against :data:`ENV_PREFIX` and the remainder is split
on ``__`` into nested sections. Values stay text: labels such as ``1.10`` or
profiles such as ``007`` must survive unchanged, and the typed fields are
converted by :func:`layered_config_server.settings.settings_from_mapping`.
The result overlays the settings file in
:func:`layered_config_server.settings.load_settings`.
"""

from __future__ import annotations

import os
from typing import Final, Mapping

from ...domain.errors import SettingsError
from ...observability import log_debug

ENV_PREFIX: Final[str] = "CONFIG_SERVER_"
NESTING: Final[str] = "__"


class EnvSettingsLoader:
    """Collect the server's variables out of a process environment.

    Examples
    --------
    >>> env = {
    ...     'CONFIG_SERVER_SERVER__PORT': '9000',
    ...     'CONFIG_SERVER_GIT__URI': 'https://example.com/config.git',
    ...     'CONFIG_SERVER_BACKEND': 'git',
    ...     'HOME': '/root',
    ... }
    >>> EnvSettingsLoader(environ=env).load()
    {'server': {'port': '9000'}, 'git': {'uri': 'https://example.com/config.git'}, 'backend': 'git'}
    """

    def __init__(self, *, environ: Mapping[str, str] | None = None, prefix: str = ENV_PREFIX) -> None:
        self._environ = os.environ if environ is None else environ
        self.prefix = prefix

    def load(self) -> dict[str, object]:
        """Return the matching variables as a nested mapping of strings.

        Raises
        ------
        SettingsError
            One variable names a section another variable sets to a plain value.
        """

        sections: dict[str, object] = {}
        for name, raw in self._environ.items():
            if not name.startswith(self.prefix) or name == self.prefix:
                continue
            nest_key(sections, name[len(self.prefix) :], raw, source=name)
        if sections:
            log_debug("env_settings_loaded", sections=sorted(sections))
        return sections


def nest_key(sections: dict[str, object], dotted: str, value: object, *, source: str | None = None) -> None:
    """Store *value* under the lower-cased ``__`` path *dotted*.

    A path may not be both a plain value and a section (``GIT=x`` together
    with ``GIT__URI=y``); the clash is reported whichever comes first.

    Examples
    --------
    >>> sections: dict[str, object] = {}
    >>> nest_key(sections, 'CACHE__PROBE_INTERVAL', '5')
    >>> sections
    {'cache': {'probe_interval': '5'}}
    """

    *parents, leaf = dotted.lower().split(NESTING)
    node = sections
    for depth, parent in enumerate(parents):
        child = node.setdefault(parent, {})
        if not isinstance(child, dict):
            path = ".".join(parents[: depth + 1])
            raise SettingsError(f"{source or dotted}: '{path}' is already set to a plain value")
        node = child
    if isinstance(node.get(leaf), dict):
        path = ".".join([*parents, leaf])
        raise SettingsError(f"{source or dotted}: '{path}' is already a settings section")
    node[leaf] = value


__all__ = ["ENV_PREFIX", "EnvSettingsLoader", "nest_key"]
