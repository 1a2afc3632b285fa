from __future__ import annotations

from typing import Callable, Iterable, List, Optional

from .config import FastlyConfig, FunctionConfig, GoogleConfig
from .deployer import Deployer
from .fastly_gateway import FastlyGateway
from .gcp_functions import GoogleDeployer
from .logging_utils import get_logger


logger = get_logger(__name__)

# CLI 등에서 사용할 수 있도록 섹션 이름을 상수로 노출
ALL_SECTIONS: List[str] = [
    "google",
    "test",
    "gateway",
]


def _section_enabled(name: str, google_cfg: GoogleConfig, fastly_cfg: FastlyConfig) -> bool:
    if name in ("google", "test"):
        return google_cfg.enabled
    if name == "gateway":
        # 게이트웨이 뒤에 둘 타깃이 없으면 Fastly 설정만으로는 실행하지 않는다.
        return fastly_cfg.enabled and google_cfg.enabled
    return False


def _filter_sections(google_cfg: GoogleConfig,
                     fastly_cfg: FastlyConfig,
                     only_sections: Optional[Iterable[str]]) -> List[str]:
    """
    설정/only_sections 에 따라 실제 실행 대상 섹션 목록을 결정한다.
    """
    enabled = [s for s in ALL_SECTIONS if _section_enabled(s, google_cfg, fastly_cfg)]
    if only_sections:
        requested = {s for s in only_sections}
        return [s for s in enabled if s in requested]
    return enabled


def plan_all(base_cfg: FunctionConfig, google_cfg: GoogleConfig, fastly_cfg: FastlyConfig) -> str:
    """
    현재 설정과 섹션별 활성 상태를 요약 텍스트로 리턴한다.
    실제 GCP/Fastly 호출은 하지 않는다.
    """
    lines: List[str] = []
    lines.append("# Deploy plan")
    lines.append(f"- function: {base_cfg.package_name}/{base_cfg.name}@{base_cfg.version}")
    lines.append(f"- zip: {base_cfg.zip_file}")
    lines.append("")

    lines.append("## Config summary")
    lines.append(f"- memory: {base_cfg.memory}MB")
    lines.append(f"- runtime: nodejs{base_cfg.node_version}")
    lines.append(f"- params: {', '.join(sorted(base_cfg.params)) or '(none)'}")
    if google_cfg.enabled:
        lines.append(f"- google: project={google_cfg.project_id} region={google_cfg.region}")
    else:
        lines.append(f"- google: 설정 누락 ({', '.join(google_cfg.missing())})")
    if fastly_cfg.enabled:
        lines.append(f"- fastly: service={fastly_cfg.service_id} checkpath={fastly_cfg.checkpath}")
    else:
        lines.append("- fastly: (not set)")
    lines.append("")

    lines.append("## Sections")
    for name in ALL_SECTIONS:
        enabled = _section_enabled(name, google_cfg, fastly_cfg)
        status = "ENABLED" if enabled else "SKIPPED"
        lines.append(f"- {name}: {status}")

    return "\n".join(lines)


def _format_summary(executed: List[str], skipped: List[str], failed: List[str]) -> str:
    lines: List[str] = []
    lines.append("# Deploy summary")
    for title, items in (
        ("Executed sections", executed),
        ("Skipped sections", skipped),
        ("Failed sections", failed),
    ):
        lines.append("")
        lines.append(f"## {title}")
        if items:
            for s in items:
                lines.append(f"- {s}")
        else:
            lines.append("- (none)")
    return "\n".join(lines)


def build_gateway(fastly_cfg: FastlyConfig, deployers: Iterable[Deployer]) -> FastlyGateway:
    gateway = (
        FastlyGateway()
        .with_auth(fastly_cfg.auth)
        .with_service_id(fastly_cfg.service_id)
        .with_checkpath(fastly_cfg.checkpath)
    )
    for deployer in deployers:
        gateway.with_deployer(deployer)
    return gateway


def apply_all(
    base_cfg: FunctionConfig,
    google_cfg: GoogleConfig,
    fastly_cfg: FastlyConfig,
    only_sections: Optional[Iterable[str]] = None,
    deployer_factory: Callable[[FunctionConfig, GoogleConfig], Deployer] = GoogleDeployer,
) -> tuple[str, bool]:
    """
    섹션별로 실제 배포 로직을 호출한다.

    google 배포가 실패하면 test/gateway 는 실행하지 않는다.
    스모크 테스트가 실패해도 gateway 는 실행하지 않는다.
    --only gateway 처럼 이번 실행에서 배포하지 않은 경우에는 init/validate 를 통과한 타깃만 붙인다.

    Returns:
        summary: 사람이 읽기 좋은 텍스트 요약
        has_failures: 하나 이상의 섹션에서 예외가 발생했는지 여부
    """
    executed: List[str] = []
    skipped: List[str] = []
    failed: List[str] = []

    sections = _filter_sections(google_cfg, fastly_cfg, only_sections)
    logger.info("적용 대상 섹션: %s", sections)

    deployer = deployer_factory(base_cfg, google_cfg)
    deployed: List[Deployer] = []

    for name in ALL_SECTIONS:
        if name not in sections:
            skipped.append(name)
            continue

        if name in ("test", "gateway") and "google" in failed:
            logger.warning("google 배포 실패로 섹션을 건너뜁니다: %s", name)
            skipped.append(name)
            continue

        if name == "gateway" and "test" in failed:
            logger.warning("스모크 테스트 실패로 섹션을 건너뜁니다: %s", name)
            skipped.append(name)
            continue

        logger.info("섹션 실행: %s", name)

        try:
            if name == "google":
                deployer.init()
                deployer.validate()
                deployer.deploy()
                deployed.append(deployer)
            elif name == "test":
                # 클라이언트 없이도 결정적 URL 로 테스트할 수 있다.
                deployer.test()
            elif name == "gateway":
                if not deployed:
                    deployer.init()
                    deployer.validate()
                    deployed.append(deployer)
                gateway = build_gateway(fastly_cfg, deployed)
                gateway.init()
                gateway.deploy()
        except Exception:  # noqa: BLE001
            failed.append(name)
            logger.exception("섹션 실행 실패: %s", name)
            continue

        executed.append(name)

    return _format_summary(executed, skipped, failed), bool(failed)
