"""
vcl
---

Fastly VCL 스니펫 생성. 네트워크 호출 없이 deployer 목록만으로 문자열을 만든다.

deployer 는 name / url_vcl / custom_vcl 속성만 있으면 된다.
Fastly 는 backend 이름 앞에 F_ 를 붙여 VCL 변수로 노출한다.
"""

from __future__ import annotations

from typing import Sequence

from .deployer import Deployer


def backend_ref(name: str) -> str:
    return f"F_{name}"


def _require_deployers(deployers: Sequence[Deployer]) -> None:
    if not deployers:
        raise ValueError("게이트웨이에는 최소 한 개의 deployer 가 필요합니다.")


def select_backend_vcl(deployers: Sequence[Deployer]) -> str:
    """
    recv 단계: 0..N-1 난수를 뽑아, 난수 이상 인덱스 중 첫 번째 healthy backend 를 고른다.
    아무것도 고르지 못하면 0번 deployer 로 무조건 fallback.
    """
    _require_deployers(deployers)

    head = f"""
      declare local var.i INTEGER;
      set var.i = randomint(0, {len(deployers) - 1});

      if (false) {{}}"""

    middle = [
        f"""if(var.i <= {i} && backend.{backend_ref(d.name)}.healthy) {{
      set req.backend = {backend_ref(d.name)};
    }}"""
        for i, d in enumerate(deployers)
    ]

    first = deployers[0]
    fallback = f"""{{
      set req.backend = {backend_ref(first.name)};
      {first.custom_vcl}
    }}"""

    return " else ".join([head, *middle, fallback])


def set_url_vcl(deployers: Sequence[Deployer]) -> str:
    """
    miss/pass 단계: 선택된 backend 에 맞게 bereq.url 을 각 타깃의 URL 로 바꾼다.
    """
    _require_deployers(deployers)

    return "\n".join(
        f"""
      if (req.backend == {backend_ref(d.name)}) {{
        set bereq.url = {d.url_vcl};
      }}
      """
        for d in deployers
    )


def log_url_vcl() -> str:
    return (
        "set beresp.http.X-Backend-URL = bereq.url;\n"
        "set beresp.http.X-Backend-Name = req.backend;"
    )
