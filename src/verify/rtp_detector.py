"""
UDP 트래픽 RTP 판별 모듈입니다.

압축기가 UDP 패킷마다 호출하여 RTP 프로파일을 쓸지 결정합니다.
아래 규칙을 순서대로 검사하고, 하나라도 걸리면 RTP가 아닙니다.

    1. 출발지/목적지 포트가 모두 5060 (SIP)
    2. 목적지 포트가 홀수 (RTCP)
    3. UDP 길이 필드 > 200
    4. 페이로드 < 12 바이트 (최소 RTP 헤더)
    5. RTP 버전 비트 != 2
    6. 페이로드 타입이 GSM, G.723, G.729, telephony-event 외의 값
"""

from __future__ import annotations

import struct

SIP_PORT = 5060
MAX_UDP_LENGTH = 200
RTP_MIN_HEADER_LEN = 12
RTP_VERSION = 2

# GSM, ITU-T G.723, ITU-T G.729, telephony-event
RTP_PAYLOAD_TYPES = frozenset({0x03, 0x04, 0x12, 0x65})

_UDP_HEADER = struct.Struct("!HHH")


def looks_like_rtp(ip_header: bytes, udp_header: bytes, payload: bytes) -> bool:
    """
    UDP 데이터그램이 RTP 스트림처럼 보이는지 판별합니다.

    파라미터:
        ip_header: IP 헤더 (판별에 사용하지 않음)
        udp_header: 8바이트 UDP 헤더
        payload: UDP 페이로드

    반환값:
        bool: RTP로 판단되면 True
    """
    if len(udp_header) < _UDP_HEADER.size:
        return False
    source_port, dest_port, udp_length = _UDP_HEADER.unpack_from(udp_header)

    if source_port == SIP_PORT and dest_port == SIP_PORT:
        return False
    if dest_port % 2 != 0:
        return False
    if udp_length > MAX_UDP_LENGTH:
        return False
    if len(payload) < RTP_MIN_HEADER_LEN:
        return False
    if (payload[0] >> 6) & 0x03 != RTP_VERSION:
        return False
    if payload[1] & 0x7F not in RTP_PAYLOAD_TYPES:
        return False
    return True
