"""
deployer
--------

배포 타깃이 공통으로 제공해야 하는 인터페이스와,
배포 직후 스모크 테스트를 수행하는 공용 헬퍼.
"""

from __future__ import annotations

import uuid
from typing import Dict, Optional, Protocol

import requests

from .errors import SmokeTestError
from .logging_utils import get_logger


logger = get_logger(__name__)

DEFAULT_TEST_TIMEOUT = 60.0


class Deployer(Protocol):
    """
    배포 타깃 하나. FastlyGateway 는 name/host/base_path/url_vcl/custom_vcl 만 사용한다.
    """

    id: str
    name: str

    @property
    def host(self) -> str: ...

    @property
    def base_path(self) -> str: ...

    @property
    def url_vcl(self) -> str: ...

    @property
    def custom_vcl(self) -> str: ...

    def ready(self) -> bool: ...

    def validate(self) -> None: ...

    def init(self) -> None: ...

    def deploy(self) -> None: ...

    def test(self) -> None: ...


def test_request(
    url: str,
    *,
    test_path: str = "",
    id_header: Optional[str] = None,
    retry_404: int = 0,
    headers: Optional[Dict[str, str]] = None,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TEST_TIMEOUT,
) -> requests.Response:
    """
    배포된 함수 URL 로 GET 요청을 보내 정상 응답인지 확인한다.

    - 2xx / 301 / 302 는 성공
    - 404 는 retry_404 횟수만큼 재시도 (배포 직후 전파 지연 대응)
    - 그 외에는 SmokeTestError
    """
    test_url = f"{url}{test_path}"
    http = session or requests.Session()

    req_headers = dict(headers or {})
    if id_header:
        req_headers[id_header] = uuid.uuid4().hex

    logger.info("스모크 테스트 요청: %s", test_url)
    resp = http.get(test_url, headers=req_headers, timeout=timeout, allow_redirects=False)

    if resp.ok:
        if id_header:
            logger.info("id: %s", resp.headers.get(id_header) or req_headers[id_header])
        logger.info("ok: %s", resp.status_code)
        logger.debug("%s", resp.text)
        return resp

    if resp.status_code in (301, 302):
        logger.info("ok: %s", resp.status_code)
        logger.debug("Location: %s", resp.headers.get("Location"))
        return resp

    if resp.status_code == 404 and retry_404 > 0:
        logger.warning("warn: %s (retry)", resp.status_code)
        return test_request(
            url,
            test_path=test_path,
            id_header=id_header,
            retry_404=retry_404 - 1,
            headers=headers,
            session=http,
            timeout=timeout,
        )

    raise SmokeTestError(resp.status_code, resp.text)
