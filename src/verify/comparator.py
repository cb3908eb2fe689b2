"""
패킷 비교 모듈입니다.

원본 IP 패킷과 복원된 IP 패킷을 바이트 단위로 비교하고,
다르면 사람이 읽을 수 있는 두 열 hex 덤프를 출력합니다.

출력 형식:
    - 한 줄에 4바이트씩, 왼쪽 열은 원본, 오른쪽 열은 복원 패킷
    - 같은 바이트는 [0xNN], 다른 바이트는 #0xNN#
    - 출력량 제한을 위해 앞쪽 min(180, 짧은 쪽 길이) 바이트만 비교
"""

from __future__ import annotations

from typing import TextIO

import numpy as np

# hex 덤프로 출력하는 최대 바이트 수
DEFAULT_MAX_DUMP_BYTES = 180

# 한 줄에 출력하는 바이트 수
_BYTES_PER_ROW = 4
_CELL_GAP = "  "
_EMPTY_CELL = " " * 8
_COLUMN_GAP = " " * 6

_HEADER = (
    "------------------------------ Compare ------------------------------",
    "--------- reference ----------         ----------- new --------------",
)
_FOOTER = "----------------------- packets are different -----------------------"


def _cell(value: int, differs: bool) -> str:
    if differs:
        return f"#0x{value:02x}#"
    return f"[0x{value:02x}]"


def format_packet_diff(
    reference: bytes,
    candidate: bytes,
    max_bytes: int = DEFAULT_MAX_DUMP_BYTES,
) -> list[str]:
    """
    두 패킷의 차이를 hex 덤프 줄 목록으로 만듭니다.

    패킷이 완전히 같으면 빈 목록을 반환합니다.

    파라미터:
        reference: 원본 패킷
        candidate: 비교 대상 (복원된) 패킷
        max_bytes: 출력할 최대 바이트 수

    반환값:
        list[str]: 개행 문자가 없는 출력 줄 목록
    """
    if reference == candidate:
        return []

    compared = min(max_bytes, len(reference), len(candidate))
    ref = np.array(bytearray(reference[:compared]), dtype=np.uint8)
    new = np.array(bytearray(candidate[:compared]), dtype=np.uint8)
    diff_mask = ref != new

    lines = list(_HEADER)
    if len(reference) != len(candidate):
        lines.append(
            f"packets have different sizes ({len(reference)} != {len(candidate)}), "
            f"compare only the {compared} first bytes"
        )

    for start in range(0, compared, _BYTES_PER_ROW):
        stop = min(start + _BYTES_PER_ROW, compared)
        left = [
            _cell(int(ref[i]), bool(diff_mask[i])) + _CELL_GAP
            for i in range(start, stop)
        ]
        right = [
            _cell(int(new[i]), bool(diff_mask[i])) + _CELL_GAP
            for i in range(start, stop)
        ]
        padding = _EMPTY_CELL * (_BYTES_PER_ROW - len(left))
        lines.append("".join(left) + padding + _COLUMN_GAP + "".join(right))

    lines.append(_FOOTER)
    return lines


def compare_packets(
    reference: bytes,
    candidate: bytes,
    out: TextIO,
    max_bytes: int = DEFAULT_MAX_DUMP_BYTES,
) -> bool:
    """
    두 패킷이 같은지 확인하고, 다르면 hex 덤프를 out에 씁니다.

    반환값:
        bool: 길이와 내용이 모두 같으면 True
    """
    lines = format_packet_diff(reference, candidate, max_bytes)
    if not lines:
        return True
    out.write("\n".join(lines) + "\n")
    out.flush()
    return False
