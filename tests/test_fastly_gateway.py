from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import pytest

from fn_gateway import fastly_gateway
from fn_gateway.errors import FastlyAPIError
from fn_gateway.fastly_gateway import FastlyGateway


@dataclass
class _Target:
    name: str
    host: str
    base_path: str = "/"
    url_vcl: str = '"/x"'
    custom_vcl: str = ""


class _FakeFastly:
    def __init__(self, existing_backends: Optional[List[str]] = None,
                 fail_healthcheck: Optional[str] = None) -> None:
        self._lock = threading.Lock()
        self.calls: List[tuple] = []
        self.activated: List[int] = []
        self.existing_backends = set(existing_backends or [])
        self.fail_healthcheck = fail_healthcheck

    def _record(self, *call: Any) -> None:
        with self._lock:
            self.calls.append(call)

    def transact(self, operations: Callable[[int], Any], activate: bool = True) -> Any:
        result = operations(7)
        if activate:
            self.activated.append(7)
        return result

    def write_condition(self, version: int, name: str, data: Dict[str, Any]) -> None:
        self._record("condition", version, name, data)

    def write_healthcheck(self, version: int, name: str, data: Dict[str, Any]) -> None:
        if name == self.fail_healthcheck:
            raise FastlyAPIError("boom", 500)
        self._record("healthcheck", version, name, data)

    def create_backend(self, version: int, data: Dict[str, Any]) -> None:
        if data["name"] in self.existing_backends:
            raise FastlyAPIError("Duplicate record", 409)
        self._record("create_backend", version, data["name"], data)

    def update_backend(self, version: int, name: str, data: Dict[str, Any]) -> None:
        self._record("update_backend", version, name, data)

    def write_snippet(self, version: int, name: str, data: Dict[str, Any]) -> None:
        self._record("snippet", version, name, data)

    def of(self, kind: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == kind]


def _gateway(fake: _FakeFastly, *targets: _Target, checkpath: str = "/health") -> FastlyGateway:
    gateway = (
        FastlyGateway()
        .with_auth("token")
        .with_service_id("svc")
        .with_checkpath(checkpath)
    )
    for t in targets:
        gateway.with_deployer(t)
    gateway._fastly = fake
    return gateway


def test_ready_requires_auth_service_and_checkpath() -> None:
    gateway = FastlyGateway().with_auth("token").with_service_id("svc")
    assert not gateway.ready()

    gateway.with_checkpath("/health")
    assert gateway.ready()


def test_init_creates_client_once_when_ready(monkeypatch: pytest.MonkeyPatch) -> None:
    created: List[tuple] = []

    class FakeClient:
        def __init__(self, auth: str, service_id: str) -> None:
            created.append((auth, service_id))

    monkeypatch.setattr(fastly_gateway, "FastlyClient", FakeClient)

    gateway = FastlyGateway().with_auth("token").with_service_id("svc")
    gateway.init()
    assert created == []

    gateway.with_checkpath("/health")
    gateway.init()
    gateway.init()
    assert created == [("token", "svc")]


def test_single_deployer_scenario() -> None:
    fake = _FakeFastly()
    gateway = _gateway(fake, _Target(name="g", host="g.example.com", url_vcl='"/x"'))

    gateway.deploy()

    healthchecks = fake.of("healthcheck")
    assert len(healthchecks) == 1
    _, version, name, data = healthchecks[0]
    assert version == 7
    assert name == "gCheck"
    assert data["path"] == "/health"
    assert data["check_interval"] == 60000
    assert data["expected_response"] == 200
    assert data["timeout"] == 5000

    backends = fake.of("create_backend")
    assert [b[2] for b in backends] == ["g"]
    backend = backends[0][3]
    assert backend["hostname"] == "g.example.com"
    assert backend["ssl_sni_hostname"] == "g.example.com"
    assert backend["healthcheck"] == "gCheck"
    assert backend["use_ssl"] is True
    assert backend["request_condition"] == "false"

    snippets = {s[2]: s[3] for s in fake.of("snippet")}
    assert "set req.backend = F_g;" in snippets["backend"]["content"]
    assert fake.activated == [7]


def test_deploy_writes_condition_then_snippets_in_order() -> None:
    fake = _FakeFastly()
    gateway = _gateway(
        fake,
        _Target(name="A", host="a.example.com"),
        _Target(name="B", host="b.example.com"),
    )

    gateway.deploy()

    assert fake.calls[0][0] == "condition"
    assert fake.calls[0][3] == {"name": "false", "statement": "false", "type": "REQUEST"}

    snippets = fake.of("snippet")
    assert [s[2] for s in snippets] == ["backend", "missurl", "passurl", "logurl"]
    assert [s[3]["type"] for s in snippets] == ["recv", "miss", "pass", "fetch"]
    for s in snippets:
        assert s[3]["priority"] == 10
        assert s[3]["dynamic"] == 0
    # 스니펫은 헬스체크/백엔드가 모두 끝난 뒤에 작성된다.
    first_snippet = fake.calls.index(snippets[0])
    assert all(fake.calls.index(c) < first_snippet for c in fake.of("create_backend"))


def test_existing_backend_is_updated() -> None:
    fake = _FakeFastly(existing_backends=["B"])
    gateway = _gateway(
        fake,
        _Target(name="A", host="a.example.com"),
        _Target(name="B", host="b.example.com"),
    )

    gateway.deploy()

    assert [c[2] for c in fake.of("create_backend")] == ["A"]
    assert [c[2] for c in fake.of("update_backend")] == ["B"]


def test_healthcheck_failure_aborts_transaction() -> None:
    fake = _FakeFastly(fail_healthcheck="BCheck")
    gateway = _gateway(
        fake,
        _Target(name="A", host="a.example.com"),
        _Target(name="B", host="b.example.com"),
    )

    with pytest.raises(FastlyAPIError):
        gateway.deploy()

    assert fake.of("snippet") == []
    assert fake.activated == []


def test_healthcheck_path_joins_base_path_and_checkpath() -> None:
    gateway = _gateway(_FakeFastly(), checkpath="/_status")
    target = _Target(name="G", host="g.example.com", base_path="/pkg--fn")

    assert gateway.healthcheck_for(target)["path"] == "/pkg--fn/_status"


def test_deploy_without_deployers_is_rejected() -> None:
    fake = _FakeFastly()
    gateway = _gateway(fake)

    with pytest.raises(ValueError):
        gateway.deploy()
    assert fake.calls == []
