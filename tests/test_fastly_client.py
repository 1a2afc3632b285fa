from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import pytest

from fn_gateway.errors import FastlyAPIError
from fn_gateway.fastly_client import FastlyClient


class _FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else json.dumps(payload).encode()
        self.text = self.content.decode()

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        return self._payload


class _FakeSession:
    """
    (method, path) -> 응답 매핑. path 는 /service/{id} 이후 부분.
    """

    def __init__(self, routes: Dict[tuple, _FakeResponse]) -> None:
        self.routes = routes
        self.requests: List[Dict[str, Any]] = []

    def request(self, method: str, url: str, headers: Any = None,
                data: Optional[Dict[str, Any]] = None, timeout: Any = None) -> _FakeResponse:
        path = url.split("/service/svc", 1)[1]
        self.requests.append({"method": method, "path": path, "data": data, "headers": headers})
        return self.routes.get((method, path), _FakeResponse(404, {"msg": "Record not found"}))

    def seen(self) -> List[tuple]:
        return [(r["method"], r["path"]) for r in self.requests]


def _client(routes: Dict[tuple, _FakeResponse]) -> tuple[FastlyClient, _FakeSession]:
    session = _FakeSession(routes)
    return FastlyClient("token", "svc", session=session), session


def test_requests_carry_fastly_key() -> None:
    client, session = _client({("GET", "/version"): _FakeResponse(200, [{"number": 1, "active": True}])})

    client.read_versions()

    assert session.requests[0]["headers"]["Fastly-Key"] == "token"


def test_transact_clones_active_version_and_activates() -> None:
    client, session = _client({
        ("GET", "/version"): _FakeResponse(200, [
            {"number": 1, "active": False},
            {"number": 2, "active": True},
            {"number": 3, "active": False},
        ]),
        ("PUT", "/version/2/clone"): _FakeResponse(200, {"number": 4}),
        ("PUT", "/version/4/activate"): _FakeResponse(200, {"number": 4, "active": True}),
    })

    seen_versions: List[int] = []
    result = client.transact(lambda v: seen_versions.append(v) or "done")

    assert result == "done"
    assert seen_versions == [4]
    assert session.seen()[-1] == ("PUT", "/version/4/activate")


def test_transact_leaves_clone_inactive_on_failure() -> None:
    client, session = _client({
        ("GET", "/version"): _FakeResponse(200, [{"number": 1, "active": True}]),
        ("PUT", "/version/1/clone"): _FakeResponse(200, {"number": 2}),
    })

    def failing(_: int) -> None:
        raise FastlyAPIError("boom", 500)

    with pytest.raises(FastlyAPIError):
        client.transact(failing)

    assert ("PUT", "/version/2/activate") not in session.seen()


def test_transact_uses_latest_when_nothing_active() -> None:
    client, session = _client({
        ("GET", "/version"): _FakeResponse(200, [{"number": 1}, {"number": 2}]),
        ("PUT", "/version/2/clone"): _FakeResponse(200, {"number": 3}),
    })

    client.transact(lambda v: None, activate=False)

    assert session.seen() == [("GET", "/version"), ("PUT", "/version/2/clone")]


def test_write_snippet_creates_when_missing() -> None:
    client, session = _client({
        ("POST", "/version/5/snippet"): _FakeResponse(200, {"name": "backend"}),
    })

    client.write_snippet(5, "backend", {"name": "backend", "dynamic": 0})

    assert session.seen() == [
        ("GET", "/version/5/snippet/backend"),
        ("POST", "/version/5/snippet"),
    ]


def test_write_healthcheck_updates_when_present() -> None:
    client, session = _client({
        ("GET", "/version/5/healthcheck/GoogleCheck"): _FakeResponse(200, {"name": "GoogleCheck"}),
        ("PUT", "/version/5/healthcheck/GoogleCheck"): _FakeResponse(200, {"name": "GoogleCheck"}),
    })

    client.write_healthcheck(5, "GoogleCheck", {"name": "GoogleCheck", "path": "/x"})

    assert session.seen()[-1] == ("PUT", "/version/5/healthcheck/GoogleCheck")


def test_upsert_propagates_non_404_errors() -> None:
    client, _ = _client({
        ("GET", "/version/5/condition/false"): _FakeResponse(403, {"msg": "forbidden"}),
    })

    with pytest.raises(FastlyAPIError) as excinfo:
        client.write_condition(5, "false", {"name": "false"})

    assert excinfo.value.status_code == 403
    assert "forbidden" in excinfo.value.details


def test_booleans_are_sent_as_integers() -> None:
    client, session = _client({
        ("POST", "/version/5/backend"): _FakeResponse(200, {"name": "Google"}),
    })

    client.create_backend(5, {"name": "Google", "use_ssl": True})

    assert session.requests[0]["data"] == {"name": "Google", "use_ssl": 1}
