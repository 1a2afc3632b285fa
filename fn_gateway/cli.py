import sys
from typing import Optional

import click
from dotenv import dotenv_values

from .config import FastlyConfig, FunctionConfig, GoogleConfig, load_env_files
from .gcp_functions import GoogleDeployer
from .logging_utils import setup_logging, get_logger
from .orchestrator import ALL_SECTIONS, apply_all, plan_all


logger = get_logger(__name__)


@click.group()
@click.option(
    "-C",
    "--chdir",
    "chdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help="작업 디렉토리 (기본: 현재 디렉토리)",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 DEBUG로 올립니다. (-vv 이면 라이브러리 로그까지)",
)
@click.pass_context
def main(ctx: click.Context, chdir: str, verbose: int) -> None:
    """Google Cloud Functions 배포 + Fastly 게이트웨이 구성용 CLI"""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["chdir"] = chdir
    ctx.obj["verbose"] = verbose


def _load_config_from_ctx(ctx: click.Context) -> tuple[FunctionConfig, GoogleConfig, FastlyConfig]:
    base_dir: str = ctx.obj["chdir"]
    load_env_files(base_dir)
    base_cfg = FunctionConfig.from_env(base_dir)
    google_cfg = GoogleConfig.from_env()
    fastly_cfg = FastlyConfig.from_env()
    logger.debug("Config loaded: %s / %s", base_cfg, google_cfg)
    return base_cfg, google_cfg, fastly_cfg


def _build_params_dump(base_dir: str) -> str:
    """
    .env.params 의 키 목록을 덤프한다. 값은 출력하지 않는다.
    """
    lines: list[str] = ["## .env.params"]
    values = dotenv_values(dotenv_path=f"{base_dir}/.env.params")
    if not values:
        lines.append("- (파일이 없거나 비어 있습니다)")
    else:
        for k in sorted(values):
            lines.append(f"- {k}")
    return "\n".join(lines)


@main.command()
@click.option(
    "-a",
    "--all",
    "show_all",
    is_flag=True,
    help=".env.params 의 키 목록까지 함께 출력합니다.",
)
@click.pass_context
def plan(ctx: click.Context, show_all: bool) -> None:
    """현재 설정을 요약하고 섹션별 ENABLED/SKIPPED 상태를 출력"""
    try:
        base_cfg, google_cfg, fastly_cfg = _load_config_from_ctx(ctx)
    except Exception as e:  # noqa: BLE001
        click.echo(f"[ERROR] 설정 로드 실패: {e}", err=True)
        sys.exit(1)

    report = plan_all(base_cfg, google_cfg, fastly_cfg)

    if show_all:
        report = report + "\n\n" + _build_params_dump(ctx.obj["chdir"])

    click.echo(report)


@main.command(name="deploy")
@click.option(
    "--only",
    "only",
    type=str,
    default="",
    help="쉼표로 구분된 섹션 이름(google,test,gateway). 기본은 설정된 섹션 전체.",
)
@click.pass_context
def deploy(ctx: click.Context, only: str) -> None:
    """함수를 배포하고 스모크 테스트 후 Fastly 게이트웨이를 갱신"""
    try:
        base_cfg, google_cfg, fastly_cfg = _load_config_from_ctx(ctx)
    except Exception as e:  # noqa: BLE001
        click.echo(f"[ERROR] 설정 로드 실패: {e}", err=True)
        sys.exit(1)

    only_list: Optional[list[str]] = None
    if only.strip():
        only_list = [p.strip() for p in only.split(",") if p.strip()]

        invalid = sorted({s for s in only_list if s not in ALL_SECTIONS})
        if invalid:
            click.echo(
                "[ERROR] 잘못된 섹션 이름이 있습니다: "
                + ", ".join(invalid)
                + f"\n허용되는 섹션: {', '.join(ALL_SECTIONS)}",
                err=True,
            )
            sys.exit(1)

    try:
        summary, has_failures = apply_all(base_cfg, google_cfg, fastly_cfg, only_sections=only_list)
    except Exception as e:  # noqa: BLE001
        logger.exception("배포 중 오류 발생")
        click.echo(f"[ERROR] 배포 실패: {e}", err=True)
        sys.exit(1)

    click.echo(summary)

    if has_failures:
        sys.exit(1)


@main.command()
@click.pass_context
def test(ctx: click.Context) -> None:
    """이미 배포된 함수에 스모크 테스트 요청만 보낸다"""
    try:
        base_cfg, google_cfg, _ = _load_config_from_ctx(ctx)
    except Exception as e:  # noqa: BLE001
        click.echo(f"[ERROR] 설정 로드 실패: {e}", err=True)
        sys.exit(1)

    try:
        GoogleDeployer(base_cfg, google_cfg).test()
    except Exception as e:  # noqa: BLE001
        click.echo(f"[ERROR] 테스트 실패: {e}", err=True)
        sys.exit(1)

    click.echo("ok")
