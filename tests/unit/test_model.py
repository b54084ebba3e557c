"""Value object behaviour for requests and bundles."""

from __future__ import annotations

import json

import pytest

from layered_config_server.domain.model import ConfigRequest, PropertySource, ResolvedBundle


def test_request_defaults() -> None:
    request = ConfigRequest("billing")
    assert request.profiles == ("default",)
    assert request.label == "main"
    assert request.key == ("billing", "default", "main")


def test_request_profiles_are_trimmed_and_unique() -> None:
    assert ConfigRequest("billing", " dev ,,db, dev").profiles == ("dev", "db")
    assert ConfigRequest("billing", " , ").profiles == ("default",)


def test_request_label_slash_escape() -> None:
    assert ConfigRequest("billing", "dev", "release(_)2024(_)q1").label == "release/2024/q1"


def test_request_is_immutable() -> None:
    request = ConfigRequest("billing")
    with pytest.raises(AttributeError):
        request.application = "other"  # type: ignore[misc]


def test_property_source_is_read_only() -> None:
    source = PropertySource("a.yml", {"x": 1})
    with pytest.raises(TypeError):
        source.properties["x"] = 2  # type: ignore[index]


def test_bundle_body_lists_sources_in_precedence_order() -> None:
    bundle = ResolvedBundle(
        application="billing",
        profiles=("dev",),
        label="main",
        version="v1",
        property_sources=(
            PropertySource("file:billing-dev.yml", {"x": 2}),
            PropertySource("file:application.yml", {"x": 1, "y": True}),
        ),
    )
    body = json.loads(bundle.to_json())
    assert body["name"] == "billing"
    assert body["profiles"] == ["dev"]
    assert body["label"] == "main"
    assert body["version"] == "v1"
    assert body["sources"] == ["file:billing-dev.yml", "file:application.yml"]
    assert body["properties"] == {"x": 2, "y": True}
    assert body["propertySources"][1] == {"name": "file:application.yml", "source": {"x": 1, "y": True}}
