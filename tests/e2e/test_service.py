"""End-to-end coverage of ConfigService against a real filesystem store."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from layered_config_server.core import STATUS_DOWN, STATUS_UP, ConfigService, build_service
from layered_config_server.domain.errors import DocumentNotFound, MalformedDocument, SourceUnavailable
from layered_config_server.domain.model import ConfigRequest
from layered_config_server.settings import settings_from_mapping
from tests.support import ConfigTree, CountingBackend, create_config_tree


@pytest.fixture
def tree(tmp_path: Path) -> ConfigTree:
    tree = create_config_tree(tmp_path)
    tree.write("application.yml", "x: 1\ngreeting: hello ${WHO:world}\n")
    tree.write("billing-dev.yml", "x: 2\n")
    return tree


def test_profile_precedence(tree: ConfigTree) -> None:
    with ConfigService(tree.backend(), environ={}) as service:
        assert service.resolve(ConfigRequest("billing", "dev")).properties["x"] == 2
        assert service.resolve(ConfigRequest("billing", "prod")).properties["x"] == 1


def test_placeholders_use_service_environment(tree: ConfigTree) -> None:
    with ConfigService(tree.backend(), environ={"WHO": "ops"}) as service:
        assert service.resolve(ConfigRequest("billing", "dev")).properties["greeting"] == "hello ops"


def test_changed_document_is_picked_up(tree: ConfigTree) -> None:
    backend = CountingBackend(tree.backend())
    with ConfigService(backend, environ={}) as service:
        request = ConfigRequest("billing", "dev")
        first = service.resolve(request)
        assert service.resolve(request) is first
        assert backend.fetches == 1

        tree.write("billing-dev.yml", "x: 3\n")
        updated = service.resolve(request)
        assert updated.properties["x"] == 3
        assert updated.version != first.version
        assert backend.fetches == 2


def test_missing_application_is_not_found(tmp_path: Path) -> None:
    tree = create_config_tree(tmp_path)
    tree.write("billing.yml", "x: 1\n")
    with ConfigService(tree.backend(), environ={}) as service:
        with pytest.raises(DocumentNotFound):
            service.resolve(ConfigRequest("payments", "dev"))


def test_malformed_document_does_not_poison_other_keys(tree: ConfigTree) -> None:
    tree.write("billing-dev.yml", "x: [1\n")
    with ConfigService(tree.backend(), environ={}) as service:
        with pytest.raises(MalformedDocument):
            service.resolve(ConfigRequest("billing", "dev"))
        assert service.resolve(ConfigRequest("payments", "dev")).properties["x"] == 1
        assert ConfigRequest("billing", "dev").key not in service.cache


def test_missing_root_is_unavailable(tmp_path: Path) -> None:
    settings = settings_from_mapping({"native": {"root": str(tmp_path / "missing")}})
    with build_service(settings, environ={}) as service:
        with pytest.raises(SourceUnavailable):
            service.resolve(ConfigRequest("billing", "dev"))
        assert service.health() == STATUS_DOWN


def test_stalled_fetch_times_out(tree: ConfigTree) -> None:
    backend = CountingBackend(tree.backend(), fetch_delay=1.0)
    with ConfigService(backend, environ={}, fetch_timeout=0.1) as service:
        with pytest.raises(SourceUnavailable, match="exceeded"):
            service.resolve(ConfigRequest("billing", "dev"))


def test_concurrent_requests_share_one_fetch(tree: ConfigTree) -> None:
    backend = CountingBackend(tree.backend(), fetch_delay=0.2)
    workers = 6
    barrier = threading.Barrier(workers)
    results = []
    with ConfigService(backend, environ={}) as service:

        def worker() -> None:
            barrier.wait()
            results.append(service.resolve(ConfigRequest("billing", "dev")))

        threads = [threading.Thread(target=worker) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    assert backend.fetches == 1
    assert len(results) == workers
    assert all(result is results[0] for result in results)


def test_health_up(tree: ConfigTree) -> None:
    with ConfigService(tree.backend(), environ={}) as service:
        assert service.health() == STATUS_UP
