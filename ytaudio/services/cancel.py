"""
跨线程取消令牌

下载在 worker 线程中执行 (yt-dlp 是同步库)，ffmpeg 在事件循环中执行，
两边都需要感知同一个取消信号，因此基于 threading.Event 实现
"""
import threading
from typing import Optional


class CancelToken:
    """一次性取消令牌"""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled"):
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self.cancelled}, reason={self.reason!r})"
