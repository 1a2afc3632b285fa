"""
fastly_gateway
--------------

여러 deployer 앞에 Fastly 게이트웨이를 구성한다.
deployer 별 헬스체크/백엔드를 만들고, 난수 기반 백엔드 선택 VCL 과 URL 재작성 VCL 을 쓴다.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import vcl
from .deployer import Deployer
from .errors import FastlyAPIError
from .fastly_client import FastlyClient
from .logging_utils import get_logger


logger = get_logger(__name__)

FALSE_CONDITION = "false"
SNIPPET_PRIORITY = 10
MAX_PARALLEL_WRITES = 8


def healthcheck_name(deployer: Deployer) -> str:
    return f"{deployer.name}Check"


def _run_batch(fn: Callable[[Dict[str, Any]], Any], items: Sequence[Dict[str, Any]]) -> List[Any]:
    """
    items 를 동시에 처리한다. 하나라도 실패하면 그 예외가 그대로 올라온다.
    """
    if not items:
        return []
    with ThreadPoolExecutor(max_workers=min(MAX_PARALLEL_WRITES, len(items))) as pool:
        return list(pool.map(fn, items))


class FastlyGateway:
    def __init__(self) -> None:
        self._service: Optional[str] = None
        self._auth: Optional[str] = None
        self._fastly: Optional[FastlyClient] = None
        self._deployers: List[Deployer] = []
        self._checkpath = ""

    def ready(self) -> bool:
        return bool(self._service) and bool(self._auth) and bool(self._checkpath)

    def init(self) -> None:
        if self.ready() and self._fastly is None:
            self._fastly = FastlyClient(self._auth, self._service)

    def with_auth(self, value: str) -> "FastlyGateway":
        self._auth = value
        return self

    def with_service_id(self, value: str) -> "FastlyGateway":
        self._service = value
        return self

    def with_deployer(self, value: Deployer) -> "FastlyGateway":
        self._deployers.append(value)
        return self

    def with_checkpath(self, value: str) -> "FastlyGateway":
        self._checkpath = value
        return self

    @property
    def deployers(self) -> List[Deployer]:
        return list(self._deployers)

    # --- 리소스 정의 ---

    def healthcheck_for(self, deployer: Deployer) -> Dict[str, Any]:
        return {
            "check_interval": 60000,
            "expected_response": 200,
            "host": deployer.host,
            "http_version": "1.1",
            "method": "GET",
            "initial": 1,
            "name": healthcheck_name(deployer),
            "path": deployer.base_path + self._checkpath,
            "threshold": 1,
            "timeout": 5000,
            "window": 2,
        }

    def backend_for(self, deployer: Deployer) -> Dict[str, Any]:
        return {
            "hostname": deployer.host,
            "ssl_cert_hostname": deployer.host,
            "ssl_sni_hostname": deployer.host,
            "address": deployer.host,
            "override_host": deployer.host,
            "name": deployer.name,
            "healthcheck": healthcheck_name(deployer),
            "error_threshold": 0,
            "first_byte_timeout": 60000,
            "weight": 100,
            "connect_timeout": 5000,
            "port": 443,
            "between_bytes_timeout": 10000,
            "shield": "",
            "max_conn": 200,
            "use_ssl": True,
            # 자동 생성되는 backend 선택 로직에서 제외시킨다.
            "request_condition": FALSE_CONDITION,
        }

    def snippets(self) -> List[Dict[str, Any]]:
        url_vcl = vcl.set_url_vcl(self._deployers)
        return [
            self._snippet("backend", "recv", vcl.select_backend_vcl(self._deployers)),
            self._snippet("missurl", "miss", url_vcl),
            self._snippet("passurl", "pass", url_vcl),
            self._snippet("logurl", "fetch", vcl.log_url_vcl()),
        ]

    @staticmethod
    def _snippet(name: str, type_: str, content: str) -> Dict[str, Any]:
        return {
            "name": name,
            "priority": SNIPPET_PRIORITY,
            "dynamic": 0,
            "type": type_,
            "content": content,
        }

    # --- 배포 ---

    def _write_backend(self, version: int, backend: Dict[str, Any]) -> Any:
        try:
            return self._fastly.create_backend(version, backend)
        except FastlyAPIError as e:
            logger.debug("backend 생성 실패, 업데이트 시도: %s (%s)", backend["name"], e)
            return self._fastly.update_backend(version, backend["name"], backend)

    def _write_config(self, version: int) -> None:
        fastly = self._fastly

        fastly.write_condition(version, FALSE_CONDITION, {
            "name": FALSE_CONDITION,
            "statement": "false",
            "type": "REQUEST",
        })

        healthchecks = [self.healthcheck_for(d) for d in self._deployers]
        _run_batch(lambda hc: fastly.write_healthcheck(version, hc["name"], hc), healthchecks)
        logger.info("헬스체크 %d개 작성", len(healthchecks))

        backends = [self.backend_for(d) for d in self._deployers]
        _run_batch(lambda be: self._write_backend(version, be), backends)
        logger.info("백엔드 %d개 작성", len(backends))

        for snippet in self.snippets():
            fastly.write_snippet(version, snippet["name"], snippet)
        logger.info("VCL 스니펫 작성 완료")

    def deploy(self) -> None:
        if not self._deployers:
            raise ValueError("게이트웨이에는 최소 한 개의 deployer 가 필요합니다.")
        if self._fastly is None:
            raise RuntimeError("Fastly 클라이언트가 초기화되지 않았습니다. init() 을 먼저 호출하세요.")

        logger.info("Set up Fastly Gateway")
        self._fastly.transact(self._write_config, activate=True)
