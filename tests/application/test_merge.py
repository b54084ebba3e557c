from __future__ import annotations

import json

import pytest
from hypothesis import given
from hypothesis import strategies as st

from layered_config_server.application.merge import PlaceholderResolver, flatten, merge
from layered_config_server.domain.errors import MalformedDocument, PlaceholderResolutionError
from layered_config_server.domain.model import ConfigRequest, SourceDocument

KEY = st.text(alphabet="abcxyz", min_size=1, max_size=4)
SCALAR = st.one_of(st.booleans(), st.integers(), st.text(alphabet="abc ", max_size=5))
MAPPING = st.dictionaries(KEY, SCALAR, max_size=5)


def _doc(name: str, body: str) -> SourceDocument:
    return SourceDocument(name, body.encode("utf-8"), "v1")


def _merge(*documents: SourceDocument, profile: str = "dev", environ: dict[str, str] | None = None):
    return merge(ConfigRequest("app", profile), documents, version="v1", environ=environ or {})


def test_first_document_wins_on_collision() -> None:
    bundle = _merge(_doc("app-dev.yml", "x: 2\n"), _doc("application.yml", "x: 1\ny: 3\n"))
    assert bundle.properties == {"x": 2, "y": 3}
    assert bundle.sources == ("app-dev.yml", "application.yml")
    assert bundle.property_sources[1].properties == {"x": 1, "y": 3}


def test_nested_and_list_flattening() -> None:
    bundle = _merge(
        _doc(
            "application.yml",
            """
            server:
              port: 8080
              hosts:
                - a
                - name: b
            """.replace("            ", ""),
        )
    )
    assert bundle.properties == {"server.port": 8080, "server.hosts[0]": "a", "server.hosts[1].name": "b"}


def test_mixed_formats_merge_into_flat_keys() -> None:
    bundle = _merge(
        _doc("app-dev.properties", "server.port=9090\n"),
        _doc("app.json", '{"server": {"port": 1, "host": "h"}}'),
        _doc("application.toml", '[server]\ntimeout = 5\n'),
    )
    assert bundle.properties == {"server.port": "9090", "server.host": "h", "server.timeout": 5}


def test_placeholder_default_used_when_variable_unset() -> None:
    bundle = _merge(_doc("application.yml", "key: ${FOO:bar}\n"), environ={})
    assert bundle.properties["key"] == "bar"


def test_placeholder_prefers_environment() -> None:
    bundle = _merge(_doc("application.yml", "key: ${FOO:bar}\n"), environ={"FOO": "baz"})
    assert bundle.properties["key"] == "baz"


def test_placeholder_relaxed_environment_name() -> None:
    bundle = _merge(_doc("application.yml", "url: ${db.host-name}\n"), environ={"DB_HOST_NAME": "pg"})
    assert bundle.properties["url"] == "pg"


def test_placeholder_references_other_property_across_documents() -> None:
    bundle = _merge(
        _doc("app-dev.yml", "host: dev-db\n"),
        _doc("application.yml", "host: db\nurl: jdbc://${host}:${port:5432}/x\n"),
    )
    assert bundle.properties["url"] == "jdbc://dev-db:5432/x"


def test_placeholder_nested_default() -> None:
    bundle = _merge(_doc("application.yml", "a: ${MISSING:${OTHER:fallback}}\n"))
    assert bundle.properties["a"] == "fallback"


def test_placeholder_empty_default() -> None:
    bundle = _merge(_doc("application.yml", "a: 'x${MISSING:}y'\n"))
    assert bundle.properties["a"] == "xy"


def test_unresolved_placeholder_names_key() -> None:
    with pytest.raises(PlaceholderResolutionError) as excinfo:
        _merge(_doc("application.yml", "db:\n  url: ${DB_URL}\n"))
    assert excinfo.value.key == "db.url"
    assert excinfo.value.placeholder == "DB_URL"


def test_circular_placeholder_is_an_error() -> None:
    with pytest.raises(PlaceholderResolutionError, match="circular"):
        _merge(_doc("application.yml", "a: ${b}\nb: ${a}\n"))


def test_placeholder_boolean_reference_renders_lowercase() -> None:
    resolver = PlaceholderResolver({"flag": True}, {})
    assert resolver.expand("msg", "enabled=${flag}") == "enabled=true"


def test_non_string_values_untouched() -> None:
    bundle = _merge(_doc("application.yml", "n: 5\nf: 1.5\nb: false\nz: null\n"))
    assert bundle.properties == {"n": 5, "f": 1.5, "b": False, "z": None}


def test_malformed_document_is_named() -> None:
    with pytest.raises(MalformedDocument) as excinfo:
        _merge(_doc("app-dev.yml", "x: [1\n"), _doc("application.yml", "x: 1\n"))
    assert excinfo.value.source == "app-dev.yml"


def test_merge_is_deterministic() -> None:
    documents = (_doc("app-dev.yml", "b: 1\na: ${b}\n"), _doc("application.yml", "c: [1, 2]\n"))
    assert _merge(*documents).to_json() == _merge(*documents).to_json()


def test_flatten_empty_containers() -> None:
    assert flatten({"a": {}, "b": []}) == {"a": "", "b": ""}


@given(MAPPING, MAPPING)
def test_earlier_source_always_wins(first, second) -> None:
    bundle = _merge(
        SourceDocument("app-dev.json", json.dumps(first).encode(), "v1"),
        SourceDocument("application.json", json.dumps(second).encode(), "v1"),
    )
    for key, value in first.items():
        assert bundle.properties[key] == value
    for key, value in second.items():
        if key not in first:
            assert bundle.properties[key] == value


def test_non_finite_floats_render_as_text() -> None:
    bundle = _merge(
        _doc("app-dev.yml", "ratio: .inf\nfloor: -.inf\nmissing: .nan\nplain: 0.5\n"),
        _doc("application.toml", "limit = inf\n"),
    )
    assert bundle.properties == {"ratio": "inf", "floor": "-inf", "missing": "nan", "plain": 0.5, "limit": "inf"}
    assert json.loads(bundle.to_json())["properties"]["ratio"] == "inf"


def test_failing_reference_names_the_property_without_value() -> None:
    with pytest.raises(PlaceholderResolutionError) as excinfo:
        _merge(_doc("application.yml", "url: http://${host}/\nhost: ${DB_HOST}\n"))
    assert excinfo.value.key == "host"
    assert excinfo.value.placeholder == "DB_HOST"
