from __future__ import annotations

import pytest

from layered_config_server.adapters.parsers.structured import (
    SUPPORTED_SUFFIXES,
    JSONDocumentParser,
    PropertiesDocumentParser,
    TOMLDocumentParser,
    YAMLDocumentParser,
    parser_for,
)
from layered_config_server.domain.errors import MalformedDocument


def test_yaml_parser_nested() -> None:
    data = YAMLDocumentParser().parse("app.yml", b"db:\n  host: localhost\n  port: 5432\n")
    assert data == {"db": {"host": "localhost", "port": 5432}}


def test_yaml_parser_handles_empty_file() -> None:
    assert YAMLDocumentParser().parse("app.yml", b"# empty file\n") == {}


def test_yaml_parser_reports_position() -> None:
    with pytest.raises(MalformedDocument) as excinfo:
        YAMLDocumentParser().parse("billing-dev.yml", b"db:\n  host: a\n port: [1\n")
    error = excinfo.value
    assert error.source == "billing-dev.yml"
    assert error.line is not None
    assert "billing-dev.yml" in str(error)


def test_yaml_parser_rejects_scalar_document() -> None:
    with pytest.raises(MalformedDocument, match="not a mapping"):
        YAMLDocumentParser().parse("app.yml", b"- just\n- a list\n")


def test_json_parser_reports_line_and_column() -> None:
    with pytest.raises(MalformedDocument) as excinfo:
        JSONDocumentParser().parse("app.json", b'{\n  "a": 1,\n  oops\n}')
    assert excinfo.value.line == 3
    assert excinfo.value.column is not None


def test_toml_parser() -> None:
    assert TOMLDocumentParser().parse("app.toml", b"[db]\nport = 5432\n") == {"db": {"port": 5432}}


def test_toml_parser_invalid() -> None:
    with pytest.raises(MalformedDocument) as excinfo:
        TOMLDocumentParser().parse("app.toml", b"[db\nport = 5432\n")
    assert excinfo.value.source == "app.toml"


def test_invalid_utf8_is_malformed() -> None:
    with pytest.raises(MalformedDocument) as excinfo:
        YAMLDocumentParser().parse("app.yml", b"a: 1\nb: \xff\xfe\n")
    assert excinfo.value.line == 2


def test_properties_parser_separators_and_comments() -> None:
    raw = b"""# comment
! also a comment
a=1
b : two
c three
empty=
path=C:\\\\temp
"""
    data = PropertiesDocumentParser().parse("app.properties", raw)
    assert data == {"a": "1", "b": "two", "c": "three", "empty": "", "path": "C:\\temp"}


def test_properties_parser_continuation_and_escapes() -> None:
    raw = b"greeting = hello \\\n    world\nkey\\ with\\ spaces = x\nunicode=caf\\u00e9\ntab=a\\tb\n"
    data = PropertiesDocumentParser().parse("app.properties", raw)
    assert data["greeting"] == "hello world"
    assert data["key with spaces"] == "x"
    assert data["unicode"] == "caf\u00e9"
    assert data["tab"] == "a\tb"


def test_properties_parser_last_duplicate_wins() -> None:
    assert PropertiesDocumentParser().parse("a.properties", b"x=1\nx=2\n") == {"x": "2"}


def test_properties_parser_bad_unicode_escape() -> None:
    with pytest.raises(MalformedDocument) as excinfo:
        PropertiesDocumentParser().parse("app.properties", b"ok=1\nbad=\\u12G4\n")
    assert excinfo.value.line == 2


def test_parser_lookup() -> None:
    assert isinstance(parser_for("a/b/app.yaml"), YAMLDocumentParser)
    assert isinstance(parser_for("app.properties"), PropertiesDocumentParser)
    assert parser_for("app.ini") is None
    assert SUPPORTED_SUFFIXES[:3] == (".yml", ".yaml", ".properties")
