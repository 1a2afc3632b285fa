"""
fn_gateway
----------

함수 하나를 여러 클라우드 타깃에 배포하고,
그 앞단에 Fastly 게이트웨이(헬스체크 + 백엔드 선택 VCL)를 구성하는 배포 CLI 패키지.
현재 지원 타깃: Google Cloud Functions.
"""

__all__ = [
    "config",
    "orchestrator",
]
