"""
librohc ctypes 바인딩 모듈입니다.

역할:
- librohc 1.x C API (rohc_comp.h / rohc_decomp.h)를 Python ctypes로 래핑
- 트레이스/난수/RTP 감지 콜백 함수 타입 정의
- rohc_comp_last_packet_info2_t 구조체 정의
- 플랫폼별 라이브러리 경로 처리와 로드 결과 캐싱

라이브러리 설치 경로:
    Linux: ldconfig 탐색 (librohc.so) 또는 /usr/lib/librohc.so
    macOS: ldconfig 탐색 또는 /usr/local/lib/librohc.dylib
    설정 engine.library_path가 지정되면 해당 경로를 우선 사용

주의:
    C 트레이스 콜백은 가변 인자(printf 형식)이지만 ctypes 콜백은 가변 인자를
    받을 수 없으므로 형식 문자열만 전달받습니다.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import logging
import platform
from typing import Optional

logger = logging.getLogger(__name__)

# =============================================================================
# 예외 클래스
# =============================================================================

class RohcLibraryNotFoundError(RuntimeError):
    """librohc 공유 라이브러리를 찾을 수 없을 때 발생합니다."""


# =============================================================================
# librohc 상수
# =============================================================================

ROHC_SMALL_CID_MAX = 15
ROHC_LARGE_CID_MAX = 16383

# 압축/복원 출력 버퍼 크기 (바이트)
MAX_ROHC_SIZE = 5 * 1024


class RohcCidType:
    """rohc_cid_type_t 상수"""
    LARGE_CID = 0
    SMALL_CID = 1


# =============================================================================
# 라이브러리 로드
# =============================================================================

_rohc_lib: Optional[ctypes.CDLL] = None


def _default_library_path() -> str:
    found = ctypes.util.find_library('rohc')
    if found:
        return found
    if platform.system() == 'Darwin':
        return '/usr/local/lib/librohc.dylib'
    return '/usr/lib/librohc.so'


def _load_library(library_path: str = "") -> ctypes.CDLL:
    """librohc 공유 라이브러리를 로드합니다. 캐싱하여 재사용합니다."""
    global _rohc_lib
    if _rohc_lib is not None:
        return _rohc_lib

    lib_path = library_path or _default_library_path()
    try:
        lib = ctypes.CDLL(lib_path)
    except OSError as exc:
        raise RohcLibraryNotFoundError(
            f"librohc를 로드할 수 없습니다: {lib_path}\n"
            "librohc 1.x를 설치하거나 engine.library_path를 지정하세요."
        ) from exc

    _declare_prototypes(lib)
    _rohc_lib = lib
    logger.info(f"librohc 로드 완료: {lib_path}")
    return _rohc_lib


def is_library_available(library_path: str = "") -> bool:
    """librohc가 설치되어 로드 가능한지 확인합니다."""
    try:
        _load_library(library_path)
        return True
    except RohcLibraryNotFoundError:
        return False


def library_version(library_path: str = "") -> Optional[str]:
    """rohc_version() 결과를 반환합니다. 라이브러리가 없으면 None."""
    try:
        lib = _load_library(library_path)
    except RohcLibraryNotFoundError:
        return None
    raw = lib.rohc_version()
    return raw.decode('ascii', errors='replace') if raw else None


# =============================================================================
# 콜백 함수 타입
# =============================================================================

# void (*)(rohc_trace_level_t, rohc_trace_entity_t, int profile, const char *fmt, ...)
TRACE_CALLBACK = ctypes.CFUNCTYPE(
    None,
    ctypes.c_int,     # level
    ctypes.c_int,     # entity
    ctypes.c_int,     # profile
    ctypes.c_char_p,  # format
)

# int (*)(const struct rohc_comp *, void *user_context)
RANDOM_CALLBACK = ctypes.CFUNCTYPE(
    ctypes.c_int,
    ctypes.c_void_p,
    ctypes.c_void_p,
)

# bool (*)(const uint8_t *ip, const uint8_t *udp, const uint8_t *payload,
#          unsigned int payload_size, void *rtp_private)
RTP_DETECT_CALLBACK = ctypes.CFUNCTYPE(
    ctypes.c_bool,
    ctypes.c_void_p,
    ctypes.c_void_p,
    ctypes.c_void_p,
    ctypes.c_uint,
    ctypes.c_void_p,
)


# =============================================================================
# 구조체
# =============================================================================

class LastPacketInfo2(ctypes.Structure):
    """rohc_comp_last_packet_info2_t (librohc 1.x)"""
    _fields_ = [
        ('version_major', ctypes.c_ushort),
        ('version_minor', ctypes.c_ushort),
        ('context_id', ctypes.c_uint),
        ('is_context_init', ctypes.c_bool),
        ('context_mode', ctypes.c_int),
        ('context_state', ctypes.c_int),
        ('context_used', ctypes.c_bool),
        ('profile_id', ctypes.c_int),
        ('packet_type', ctypes.c_int),
        ('total_last_uncomp_size', ctypes.c_ulong),
        ('header_last_uncomp_size', ctypes.c_ulong),
        ('total_last_comp_size', ctypes.c_ulong),
        ('header_last_comp_size', ctypes.c_ulong),
    ]


# =============================================================================
# 함수 프로토타입
# =============================================================================

def _declare_prototypes(lib: ctypes.CDLL) -> None:
    """사용하는 librohc 함수의 인자/반환 타입을 선언합니다."""
    c_void_p = ctypes.c_void_p
    c_int = ctypes.c_int
    c_bool = ctypes.c_bool
    c_ubyte_p = ctypes.POINTER(ctypes.c_ubyte)

    lib.rohc_version.argtypes = []
    lib.rohc_version.restype = ctypes.c_char_p

    # 압축기
    lib.rohc_alloc_compressor.argtypes = [c_int, c_int, c_int, c_int]
    lib.rohc_alloc_compressor.restype = c_void_p
    lib.rohc_free_compressor.argtypes = [c_void_p]
    lib.rohc_free_compressor.restype = None
    lib.rohc_comp_set_traces_cb.argtypes = [c_void_p, TRACE_CALLBACK]
    lib.rohc_comp_set_traces_cb.restype = c_bool
    lib.rohc_activate_profile.argtypes = [c_void_p, c_int]
    lib.rohc_activate_profile.restype = None
    lib.rohc_c_set_large_cid.argtypes = [c_void_p, c_int]
    lib.rohc_c_set_large_cid.restype = None
    lib.rohc_c_set_max_cid.argtypes = [c_void_p, c_int]
    lib.rohc_c_set_max_cid.restype = None
    lib.rohc_comp_set_random_cb.argtypes = [c_void_p, RANDOM_CALLBACK, c_void_p]
    lib.rohc_comp_set_random_cb.restype = c_bool
    lib.rohc_comp_reset_rtp_ports.argtypes = [c_void_p]
    lib.rohc_comp_reset_rtp_ports.restype = c_bool
    lib.rohc_comp_set_rtp_detection_cb.argtypes = [c_void_p, RTP_DETECT_CALLBACK, c_void_p]
    lib.rohc_comp_set_rtp_detection_cb.restype = c_bool
    lib.rohc_compress.argtypes = [c_void_p, c_ubyte_p, c_int, c_ubyte_p, c_int]
    lib.rohc_compress.restype = c_int
    lib.rohc_comp_get_last_packet_info2.argtypes = [
        c_void_p, ctypes.POINTER(LastPacketInfo2),
    ]
    lib.rohc_comp_get_last_packet_info2.restype = c_bool

    # 복원기
    lib.rohc_alloc_decompressor.argtypes = [c_void_p]
    lib.rohc_alloc_decompressor.restype = c_void_p
    lib.rohc_free_decompressor.argtypes = [c_void_p]
    lib.rohc_free_decompressor.restype = None
    lib.rohc_decomp_set_traces_cb.argtypes = [c_void_p, TRACE_CALLBACK]
    lib.rohc_decomp_set_traces_cb.restype = c_bool
    lib.rohc_decomp_set_cid_type.argtypes = [c_void_p, c_int]
    lib.rohc_decomp_set_cid_type.restype = c_bool
    lib.rohc_decomp_set_max_cid.argtypes = [c_void_p, c_int]
    lib.rohc_decomp_set_max_cid.restype = c_bool
    lib.rohc_decompress.argtypes = [c_void_p, c_ubyte_p, c_int, c_ubyte_p, c_int]
    lib.rohc_decompress.restype = c_int


# =============================================================================
# 버퍼 헬퍼
# =============================================================================

def ip_header_length(ip_ptr: int) -> int:
    """IP 헤더 포인터에서 헤더 길이를 계산합니다 (IPv4 IHL, IPv6 고정 40)."""
    first = ctypes.string_at(ip_ptr, 1)[0]
    if (first >> 4) == 4:
        return (first & 0x0F) * 4
    return 40


def make_input_buffer(data: bytes) -> ctypes.Array:
    """bytes를 C 입력 버퍼(unsigned char 배열)로 복사합니다."""
    return (ctypes.c_ubyte * len(data)).from_buffer_copy(data)


def make_output_buffer(size: int = MAX_ROHC_SIZE) -> ctypes.Array:
    return (ctypes.c_ubyte * size)()
