"""
fastly_client
-------------

Fastly REST API 를 감싼 최소한의 클라이언트.

설정 변경은 항상 '버전'을 통해 이뤄진다.
transact() 는 현재 활성 버전을 clone 하고, 그 버전에 쓰기를 모은 뒤 activate 한다.
중간에 실패하면 clone 된 버전은 활성화되지 않은 채 남는다 (Fastly 쪽에서 무시됨).
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, TypeVar
from urllib.parse import quote

import requests

from .errors import FastlyAPIError
from .logging_utils import get_logger


logger = get_logger(__name__)

FASTLY_API_URL = "https://api.fastly.com"
DEFAULT_TIMEOUT = 60.0

T = TypeVar("T")


def _form(data: Mapping[str, Any]) -> Dict[str, Any]:
    # Fastly form API 는 bool 을 1/0 으로 받는다.
    out: Dict[str, Any] = {}
    for k, v in data.items():
        if isinstance(v, bool):
            out[k] = 1 if v else 0
        else:
            out[k] = v
    return out


class FastlyClient:
    def __init__(
        self,
        auth: str,
        service_id: str,
        *,
        session: Optional[requests.Session] = None,
        base_url: str = FASTLY_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.service_id = service_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._headers = {
            "Fastly-Key": auth,
            "Accept": "application/json",
        }

    def _request(self, method: str, path: str, data: Optional[Mapping[str, Any]] = None) -> Any:
        url = f"{self.base_url}/service/{self.service_id}{path}"
        logger.debug("Fastly %s %s", method, url)
        resp = self._session.request(
            method,
            url,
            headers=self._headers,
            data=_form(data) if data is not None else None,
            timeout=self.timeout,
        )
        if not resp.ok:
            raise FastlyAPIError(
                f"Fastly API {method} {path} 실패 (status={resp.status_code})",
                resp.status_code,
                resp.text or None,
            )
        if not resp.content:
            return None
        return resp.json()

    # --- 버전 ---

    def read_versions(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/version")

    def get_versions(self) -> Tuple[int, Optional[int]]:
        """
        (latest, active) 버전 번호를 반환한다. 활성 버전이 없으면 active 는 None.
        """
        versions = self.read_versions()
        if not versions:
            raise FastlyAPIError("서비스에 버전이 없습니다.", 404)
        latest = max(v["number"] for v in versions)
        active_numbers = [v["number"] for v in versions if v.get("active")]
        active = max(active_numbers) if active_numbers else None
        return latest, active

    def clone_version(self, version: int) -> int:
        data = self._request("PUT", f"/version/{version}/clone")
        return data["number"]

    def activate_version(self, version: int) -> None:
        self._request("PUT", f"/version/{version}/activate")

    def transact(self, operations: Callable[[int], T], activate: bool = True) -> T:
        latest, active = self.get_versions()
        base = active if active is not None else latest
        new_version = self.clone_version(base)
        logger.info("Fastly 버전 %s 을(를) 복제하여 버전 %s 생성", base, new_version)

        result = operations(new_version)

        if activate:
            self.activate_version(new_version)
            logger.info("Fastly 버전 %s 활성화", new_version)
        return result

    # --- 리소스 ---

    def _upsert(self, kind: str, version: int, name: str, data: Mapping[str, Any]) -> Any:
        item_path = f"/version/{version}/{kind}/{quote(name, safe='')}"
        try:
            self._request("GET", item_path)
        except FastlyAPIError as e:
            if e.status_code != 404:
                raise
            return self._request("POST", f"/version/{version}/{kind}", data)
        return self._request("PUT", item_path, data)

    def write_condition(self, version: int, name: str, data: Mapping[str, Any]) -> Any:
        return self._upsert("condition", version, name, data)

    def write_healthcheck(self, version: int, name: str, data: Mapping[str, Any]) -> Any:
        return self._upsert("healthcheck", version, name, data)

    def write_snippet(self, version: int, name: str, data: Mapping[str, Any]) -> Any:
        return self._upsert("snippet", version, name, data)

    def create_backend(self, version: int, data: Mapping[str, Any]) -> Any:
        return self._request("POST", f"/version/{version}/backend", data)

    def update_backend(self, version: int, name: str, data: Mapping[str, Any]) -> Any:
        return self._request("PUT", f"/version/{version}/backend/{quote(name, safe='')}", data)
