"""
네트워크 인터페이스 라이브 캡처 모듈입니다.

역할:
- scapy conf.L2listen 소켓으로 지정 장치의 모든 프레임 수신 (promiscuous 아님)
- 소켓의 링크 계층 클래스로 세션 LinkLayer 결정
- snaplen(기본 1518)을 넘는 프레임은 잘라서 caplen < len 으로 보고
- select() 폴링으로 정지 플래그를 주기적으로 확인

사용 예시:
    >>> stop_event = threading.Event()
    >>> capture = LiveCapture(config.capture, stop_event)
    >>> capture.open()
    >>> frame = capture.next_frame()
    >>> capture.close()
"""

from __future__ import annotations

import logging
import select
import threading
from typing import Any, Optional

from scapy.config import conf
from scapy.error import Scapy_Exception

from src.capture import CapturedFrame, LinkLayer
from src.config.schema import CaptureConfig
from src.errors import CaptureOpenError, UnsupportedLinkTypeError

logger = logging.getLogger(__name__)

# scapy 링크 계층 클래스 이름 → LinkLayer
_LAYER_CLASS_MAP: dict[str, LinkLayer] = {
    "Ether": LinkLayer.ETHERNET,
    "CookedLinux": LinkLayer.LINUX_COOKED,
    "IP": LinkLayer.RAW,
    "IPv6": LinkLayer.RAW,
    "IPv46": LinkLayer.RAW,
}


class LiveCapture:
    """
    scapy L2 리슨 소켓 기반 라이브 캡처 소스입니다.

    수신 흐름:
        select(poll_interval) → recv_raw() → snaplen 절단 → CapturedFrame

    next_frame()은 패킷이 올 때까지 블록하지만, poll_interval_sec마다
    stop_event를 확인하여 정지 요청 시 None을 반환합니다.
    """

    def __init__(
        self,
        config: CaptureConfig,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        """
        LiveCapture를 초기화합니다.

        파라미터:
            config: 캡처 설정 (device, snaplen, poll_interval_sec 사용)
            stop_event: 설정되면 수신 대기를 중단하는 정지 플래그
        """
        self._device = config.device
        self._snaplen = config.snaplen
        self._poll_interval_sec = config.poll_interval_sec
        self._stop_event = stop_event or threading.Event()

        self._socket: Optional[Any] = None
        self._link_layer: Optional[LinkLayer] = None

        logger.info(
            f"LiveCapture 초기화: device={self._device}, "
            f"snaplen={self._snaplen}"
        )

    @property
    def link_layer(self) -> LinkLayer:
        """장치의 링크 계층을 반환합니다. open() 이후에만 유효합니다."""
        if self._link_layer is None:
            raise RuntimeError("캡처 소스가 열리지 않았습니다. open()을 먼저 호출하세요.")
        return self._link_layer

    @property
    def description(self) -> str:
        return f"network device '{self._device}'"

    def open(self) -> None:
        """
        네트워크 장치를 열고 링크 계층을 결정합니다.

        예외:
            CaptureOpenError: 장치가 없거나 권한이 부족할 때
            UnsupportedLinkTypeError: 지원하지 않는 링크 계층일 때
        """
        if self._socket is not None:
            logger.warning("LiveCapture가 이미 열려 있습니다")
            return

        if not self._device:
            raise CaptureOpenError("network device name is required")

        try:
            self._socket = conf.L2listen(iface=self._device, promisc=False)
        except (OSError, Scapy_Exception) as exc:
            raise CaptureOpenError(
                f"failed to open network device '{self._device}': {exc}"
            ) from exc

        layer_class = getattr(self._socket, "LL", None)
        layer_name = getattr(layer_class, "__name__", repr(layer_class))
        link_layer = _LAYER_CLASS_MAP.get(layer_name)
        if link_layer is None:
            self.close()
            raise UnsupportedLinkTypeError(
                f"link layer type {layer_name} not supported on device "
                f"'{self._device}' (supported = Ethernet, Linux cooked, Raw)"
            )

        self._link_layer = link_layer
        logger.info(
            f"네트워크 장치 열기 완료: {self._device}, "
            f"link_layer={link_layer.name}"
        )

    def next_frame(self) -> Optional[CapturedFrame]:
        """
        다음 프레임을 반환합니다.

        정지 요청 또는 소켓 종료 시 None을 반환합니다.
        """
        while self._socket is not None and not self._stop_event.is_set():
            readable, _, _ = select.select(
                [self._socket], [], [], self._poll_interval_sec
            )
            if not readable:
                continue

            try:
                _, data, timestamp = self._socket.recv_raw()
            except OSError as exc:
                logger.error(f"프레임 수신 실패, 캡처 종료: {exc}")
                return None

            if data is None:
                # 자기 자신이 송신한 프레임 등 scapy가 걸러낸 경우
                continue

            declared_length = len(data)
            captured = bytes(data[:self._snaplen])
            return CapturedFrame(
                data=captured,
                declared_length=declared_length,
                captured_length=len(captured),
                timestamp=timestamp or 0.0,
            )

        return None

    def close(self) -> None:
        """소켓을 닫습니다. 여러 번 호출해도 안전합니다."""
        if self._socket is None:
            return
        self._socket.close()
        self._socket = None
        logger.debug(f"네트워크 장치 닫기: {self._device}")
