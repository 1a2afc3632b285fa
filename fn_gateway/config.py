from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import dotenv_values, load_dotenv


ENV_FILES_DEFAULT_ORDER = [".env", ".env.infra", ".env.secrets"]

# 함수 런타임 환경변수와 스모크 테스트 헤더는 별도 파일로 관리한다.
PARAMS_FILE_DEFAULT = ".env.params"
TEST_HEADERS_FILE_DEFAULT = ".env.test-headers"

DEFAULT_MEMORY_MB = 256
DEFAULT_NODE_VERSION = "18"
DEFAULT_GOOGLE_REGION = "us-central1"


def load_env_files(base_dir: str = ".",
                   files: Optional[List[str]] = None) -> None:
    """
    주어진 디렉토리에서 .env 계열 파일을 순서대로 로드한다.
    후순위 파일이 같은 키를 덮어쓴다.
    """
    order = files or ENV_FILES_DEFAULT_ORDER
    for name in order:
        path = os.path.join(base_dir, name)
        if os.path.exists(path):
            load_dotenv(path, override=True)


def load_values_file(base_dir: str = ".",
                     filename: str = PARAMS_FILE_DEFAULT) -> Dict[str, str]:
    """
    dotenv 형식 파일(.env.params, .env.test-headers)을 dict 로 읽는다.
    파일이 없으면 빈 dict. 값이 없는 키(None)는 제외한다.
    """
    path = os.path.join(base_dir, filename)
    if not os.path.exists(path):
        return {}
    return {k: v for k, v in dotenv_values(dotenv_path=path).items() if v is not None}


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} 는 정수여야 합니다: {raw!r}") from e


@dataclass
class FunctionConfig:
    """
    배포 대상 함수의 공통 메타데이터. 모든 타깃이 공유한다.
    """

    # 필수
    package_name: str
    name: str
    version: str
    zip_file: str

    description: str = ""
    memory: int = DEFAULT_MEMORY_MB
    node_version: str = DEFAULT_NODE_VERSION
    # epoch millis
    updated_at: int = 0
    params: Dict[str, str] = field(default_factory=dict)

    # 스모크 테스트
    test_path: str = ""
    test_headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, base_dir: str = ".") -> "FunctionConfig":
        missing: List[str] = []
        def req(name: str) -> str:
            val = os.getenv(name)
            if not val:
                missing.append(name)
            return val or ""

        cfg = cls(
            package_name=req("PACKAGE_NAME"),
            name=req("FUNCTION_NAME"),
            version=req("FUNCTION_VERSION"),
            zip_file=req("ZIP_FILE"),
            description=os.getenv("FUNCTION_DESCRIPTION", ""),
            memory=_get_int("FUNCTION_MEMORY", DEFAULT_MEMORY_MB),
            node_version=os.getenv("NODE_VERSION") or DEFAULT_NODE_VERSION,
            updated_at=_get_int("FUNCTION_UPDATED_AT", int(time.time() * 1000)),
            params=load_values_file(base_dir, PARAMS_FILE_DEFAULT),
            test_path=os.getenv("TEST_PATH", ""),
            test_headers=load_values_file(base_dir, TEST_HEADERS_FILE_DEFAULT),
        )

        if missing:
            raise ValueError(
                "필수 환경변수가 누락되었습니다: " + ", ".join(sorted(set(missing)))
            )

        return cfg


@dataclass
class GoogleConfig:
    """
    Google Cloud Functions 타깃 설정.
    값이 비어 있어도 생성은 되며, 배포 가능 여부는 missing() 으로 판단한다.
    """

    email: str = ""
    key_file: str = ""
    project_id: str = ""
    region: str = DEFAULT_GOOGLE_REGION

    def missing(self) -> List[str]:
        names = []
        if not self.email:
            names.append("GOOGLE_SERVICE_ACCOUNT_EMAIL")
        if not self.key_file:
            names.append("GOOGLE_KEY_FILE")
        if not self.project_id:
            names.append("GOOGLE_PROJECT_ID")
        return names

    @property
    def enabled(self) -> bool:
        return not self.missing()

    @classmethod
    def from_env(cls) -> "GoogleConfig":
        return cls(
            email=os.getenv("GOOGLE_SERVICE_ACCOUNT_EMAIL", ""),
            key_file=os.getenv("GOOGLE_KEY_FILE", ""),
            project_id=os.getenv("GOOGLE_PROJECT_ID", ""),
            region=os.getenv("GOOGLE_REGION") or DEFAULT_GOOGLE_REGION,
        )


@dataclass
class FastlyConfig:
    auth: str = ""
    service_id: str = ""
    checkpath: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.auth and self.service_id and self.checkpath)

    @classmethod
    def from_env(cls) -> "FastlyConfig":
        return cls(
            auth=os.getenv("FASTLY_AUTH", ""),
            service_id=os.getenv("FASTLY_SERVICE_ID", ""),
            checkpath=os.getenv("FASTLY_CHECKPATH", ""),
        )
