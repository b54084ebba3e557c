"""Settings layering: defaults, settings file, then CONFIG_SERVER_* variables."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from layered_config_server.domain.errors import SettingsError
from layered_config_server.settings import ServerSettings, load_settings, settings_from_mapping


def test_defaults() -> None:
    settings = load_settings(environ={})
    assert settings == ServerSettings()
    assert settings.server.port == 8888
    assert settings.backend == "native"
    assert settings.default_profile == "default"
    assert settings.default_label == "main"
    assert settings.fetch_timeout == 10.0


def test_environment_overrides() -> None:
    settings = load_settings(
        environ={
            "CONFIG_SERVER_SERVER__PORT": "9000",
            "CONFIG_SERVER_BACKEND__TYPE": "git",
            "CONFIG_SERVER_GIT__URI": "https://example.com/config.git",
            "CONFIG_SERVER_GIT__SEARCH_PATHS": "{application}, shared",
            "CONFIG_SERVER_DEFAULTS__LABEL": "1234",
            "CONFIG_SERVER_CACHE__PROBE_INTERVAL": "2.5",
            "CONFIG_SERVER_FETCH_TIMEOUT": "3",
            "UNRELATED": "x",
        }
    )
    assert settings.server.port == 9000
    assert settings.backend == "git"
    assert settings.git.uri == "https://example.com/config.git"
    assert settings.git.search_paths == ("{application}", "shared")
    assert settings.default_label == "1234"
    assert settings.cache.probe_interval == 2.5
    assert settings.fetch_timeout == 3.0


def test_settings_file_is_layered_below_environment(tmp_path: Path) -> None:
    settings_file = tmp_path / "server.toml"
    settings_file.write_text(
        '[server]\nport = 7000\nhost = "127.0.0.1"\n[native]\nroot = "/srv/config"\nsearch_paths = ["{application}", ""]\n',
        encoding="utf-8",
    )
    settings = load_settings(settings_file=settings_file, environ={"CONFIG_SERVER_SERVER__PORT": "7100"})
    assert settings.server.port == 7100
    assert settings.server.host == "127.0.0.1"
    assert settings.native.root == "/srv/config"
    assert settings.native.search_paths == ("{application}", "")


def test_properties_settings_file(tmp_path: Path) -> None:
    settings_file = tmp_path / "server.properties"
    settings_file.write_text("backend.type=git\ngit.uri=/srv/repo.git\ncache.max_entries=50\n", encoding="utf-8")
    settings = load_settings(settings_file=settings_file, environ={})
    assert settings.backend == "git"
    assert settings.git.uri == "/srv/repo.git"
    assert settings.cache.max_entries == 50


def test_invalid_settings_file(tmp_path: Path) -> None:
    settings_file = tmp_path / "server.yml"
    settings_file.write_text("server: [unclosed\n", encoding="utf-8")
    with pytest.raises(SettingsError):
        load_settings(settings_file=settings_file, environ={})


@pytest.mark.parametrize(
    "data",
    [
        {"backend": {"type": "s3"}},
        {"backend": {"type": "git"}},
        {"server": {"port": "http"}},
        {"server": {"port": -1}},
        {"fetch_timeout": 0},
        {"cache": {"max_entries": True}},
        {"native": "config"},
        {"server": {"port": 9000.5}},
        {"server": {"port": "9000.5"}},
        {"cache": {"max_entries": "2.5"}},
        {"cache": {"probe_interval": "nan"}},
    ],
)
def test_invalid_values_raise(data: dict) -> None:
    with pytest.raises(SettingsError):
        settings_from_mapping(data)


def test_to_dict_is_json_ready() -> None:
    payload = json.loads(json.dumps(ServerSettings().to_dict()))
    assert payload["backend"] == {"type": "native"}
    assert payload["defaults"] == {"profile": "default", "label": "main"}
    assert payload["native"]["search_paths"] == [""]


def test_environment_text_settings_keep_their_spelling() -> None:
    settings = load_settings(
        environ={
            "CONFIG_SERVER_DEFAULTS__LABEL": "1.10",
            "CONFIG_SERVER_DEFAULTS__PROFILE": "007",
            "CONFIG_SERVER_SERVER__HOST": "127.000.000.001",
            "CONFIG_SERVER_NATIVE__ROOT": "2024.10",
        }
    )
    assert settings.default_label == "1.10"
    assert settings.default_profile == "007"
    assert settings.server.host == "127.000.000.001"
    assert settings.native.root == "2024.10"


def test_whole_float_port_from_file_is_accepted() -> None:
    assert settings_from_mapping({"server": {"port": 9000.0}}).server.port == 9000


@pytest.mark.parametrize(
    "environ",
    [
        {"CONFIG_SERVER_GIT": "x", "CONFIG_SERVER_GIT__URI": "y"},
        {"CONFIG_SERVER_GIT__URI": "y", "CONFIG_SERVER_GIT": "x"},
    ],
)
def test_conflicting_environment_variables_raise_settings_error(environ: dict[str, str]) -> None:
    with pytest.raises(SettingsError, match="git"):
        load_settings(environ=environ)
