"""
errors
------

프로바이더 호출 실패를 표현하는 예외 타입.
프로바이더가 진단 정보를 준 경우에만 details 가 채워진다.
"""

from __future__ import annotations

from typing import Optional

from google.api_core.exceptions import GoogleAPICallError


class ProviderError(RuntimeError):
    def __init__(self, message: str, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.details = details

    @property
    def has_details(self) -> bool:
        return bool(self.details)


class FastlyAPIError(ProviderError):
    def __init__(self, message: str, status_code: int, details: Optional[str] = None) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class SmokeTestError(ProviderError):
    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"test failed: {status_code}", body or None)
        self.status_code = status_code


def google_error_details(err: BaseException) -> Optional[str]:
    """
    google-api-core 예외에서 진단 정보(bad request / status details)를 문자열로 뽑는다.
    없으면 None.
    """
    if not isinstance(err, GoogleAPICallError):
        return None

    parts = []
    for item in getattr(err, "details", None) or []:
        parts.append(str(item).strip())
    for item in getattr(err, "errors", None) or []:
        text = str(item).strip()
        if text and text not in parts:
            parts.append(text)

    parts = [p for p in parts if p]
    if not parts:
        return None
    return "\n".join(parts)
