"""
gcp_functions
-------------

Google Cloud Functions 배포 타깃.

업로드 URL 발급 -> zip PUT -> 함수 생성/업데이트(LRO 대기) -> allUsers invoker 부여
-> 스모크 테스트 순서로 동작한다.
"""

from __future__ import annotations

import os
from typing import Any, Optional
from urllib.parse import quote

import requests
from google.api_core.exceptions import GoogleAPICallError, NotFound
from google.cloud import functions_v1
from google.iam.v1 import policy_pb2
from google.oauth2 import service_account

from .config import FunctionConfig, GoogleConfig
from .deployer import test_request
from .errors import ProviderError, google_error_details
from .logging_utils import get_logger


logger = get_logger(__name__)

ENTRY_POINT = "google"
INVOKER_ROLE = "roles/cloudfunctions.invoker"
PUBLIC_MEMBER = "allUsers"
TRACE_HEADER = "X-Cloud-Trace-Context"

# 업로드 URL 은 100MiB 까지만 허용한다.
MAX_UPLOAD_BYTES = 104857600
UPLOAD_TIMEOUT = 600.0


def _load_credentials(key_path: str) -> service_account.Credentials:
    return service_account.Credentials.from_service_account_file(key_path)


def _encode_label(value: str) -> str:
    # encodeURIComponent 와 같은 문자 집합을 그대로 둔다.
    return quote(value, safe="-_.!~*'()")


class GoogleDeployer:
    def __init__(
        self,
        base_cfg: FunctionConfig,
        cfg: GoogleConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.id = "google"
        self.name = "Google"
        self.cfg = base_cfg
        self._cfg = cfg
        self._client: Optional[functions_v1.CloudFunctionsServiceClient] = None
        self._session = session or requests.Session()

        self._upload_url: Optional[str] = None
        self._function: Any = None
        self._function_url: Optional[str] = None

    def ready(self) -> bool:
        return self._client is not None

    def validate(self) -> None:
        if not self.ready():
            raise ValueError("Google target needs key file, email, and project ID")

    def init(self) -> None:
        missing = self._cfg.missing()
        if missing:
            logger.info("Google 타깃 설정이 없어 클라이언트를 만들지 않습니다: %s", ", ".join(missing))
            return

        try:
            key_path = os.path.join(os.getcwd(), self._cfg.key_file)
            credentials = _load_credentials(key_path)
            self._client = functions_v1.CloudFunctionsServiceClient(credentials=credentials)
        except Exception as e:  # noqa: BLE001
            logger.error("Unable to authenticate with Google: %s", e)
            raise

    # --- 게이트웨이에서 참조하는 속성 ---

    @property
    def full_function_name(self) -> str:
        return (
            f"{self.cfg.package_name}--{self.cfg.name}"
            .replace(".", "_")
            .replace("@", "_")
        )

    @property
    def host(self) -> str:
        return f"{self._cfg.region}-{self._cfg.project_id}.cloudfunctions.net"

    @property
    def base_path(self) -> str:
        return f"/{self.full_function_name}"

    @property
    def url_vcl(self) -> str:
        return f'"{self.base_path}" + req.url'

    @property
    def custom_vcl(self) -> str:
        return ""

    @property
    def location(self) -> str:
        return f"projects/{self._cfg.project_id}/locations/{self._cfg.region}"

    @property
    def function_path(self) -> str:
        return f"{self.location}/functions/{self.full_function_name}"

    # --- 배포 단계 ---

    def upload_zip(self) -> None:
        resp = self._client.generate_upload_url(request={"parent": self.location})
        upload_url = resp.upload_url

        logger.info("zip 업로드: %s", self.cfg.zip_file)
        with open(self.cfg.zip_file, "rb") as body:
            put = self._session.put(
                upload_url,
                data=body,
                headers={
                    "Content-Type": "application/zip",
                    "x-goog-content-length-range": f"0,{MAX_UPLOAD_BYTES}",
                },
                timeout=UPLOAD_TIMEOUT,
            )
        put.raise_for_status()

        self._upload_url = upload_url

    def function_exists(self, name: str) -> bool:
        """
        get_function 으로 존재 여부를 확인한다.

        NotFound 가 아닌 오류(권한 등)도 '없음'으로 취급하고 경고만 남긴다.
        실제 원인은 이어지는 create 호출에서 드러난다.
        """
        try:
            self._client.get_function(request={"name": name})
        except NotFound:
            return False
        except GoogleAPICallError as e:
            logger.warning("함수 조회 실패, 신규 생성으로 진행합니다: %s", e)
            return False
        return True

    def build_function(self, name: str) -> functions_v1.CloudFunction:
        func = functions_v1.CloudFunction(
            name=name,
            service_account_email=self._cfg.email,
            description=self.cfg.description,
            entry_point=ENTRY_POINT,
            runtime=f"nodejs{self.cfg.node_version}",
            available_memory_mb=self.cfg.memory,
            labels={
                "pkgversion": _encode_label(self.cfg.version.replace(".", "_")),
                "updated": str(self.cfg.updated_at),
            },
            environment_variables=dict(self.cfg.params),
            https_trigger=functions_v1.HttpsTrigger(),
        )
        if self._upload_url:
            func.source_upload_url = self._upload_url
        return func

    def create_function(self) -> None:
        name = self.function_path
        exists = self.function_exists(name)

        try:
            func = self.build_function(name)

            if exists:
                op = self._client.update_function(request={"function": func})
                logger.info("updating existing function")
            else:
                op = self._client.create_function(
                    request={"location": self.location, "function": func},
                )
                logger.info("creating function, please wait (Google deployments are slow).")

            self._function = op.result()
            logger.info("function deployed")

            logger.info("enabling unauthenticated requests")
            self._client.set_iam_policy(
                request={
                    "resource": name,
                    "policy": policy_pb2.Policy(
                        bindings=[
                            policy_pb2.Binding(role=INVOKER_ROLE, members=[PUBLIC_MEMBER]),
                        ],
                    ),
                },
            )
        except GoogleAPICallError as err:
            error = ProviderError(str(err), google_error_details(err))
            logger.error("Google 함수 생성/업데이트 실패: %s", error)
            if error.has_details:
                logger.error("details: %s", error.details)
            raise error from err

        self._function_url = self._function.https_trigger.url or None

    def deploy(self) -> None:
        try:
            self.upload_zip()
            self.create_function()
        except Exception as e:  # noqa: BLE001
            logger.error("Unable to deploy Google Cloud function: %s", e)
            raise

    def test(self) -> requests.Response:
        url = self._function_url
        if not url:
            url = (
                f"https://{self._cfg.region}-{self._cfg.project_id}"
                f".cloudfunctions.net/{self.full_function_name}"
            )
        return test_request(
            url,
            test_path=self.cfg.test_path,
            id_header=TRACE_HEADER,
            retry_404=1,
            headers=self.cfg.test_headers,
            session=self._session,
        )
