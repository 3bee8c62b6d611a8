"""
音频下载 Pipeline 数据模型
"""
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_CHANNEL = "Unknown Channel"


class AudioFormat(str, Enum):
    """支持的输出格式，值即 yt-dlp FFmpegExtractAudio 的 preferredcodec"""

    BEST = "best"
    MP3 = "mp3"
    M4A = "m4a"
    AAC = "aac"
    FLAC = "flac"

    @property
    def codec(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Optional[str]) -> "AudioFormat":
        """大小写/空白不敏感，空值视为 best；不支持的格式抛 ValueError"""
        text = (value or "best").strip().lower() or "best"
        try:
            return cls(text)
        except ValueError:
            allowed = ", ".join(f.value for f in cls)
            raise ValueError(f"Unsupported format '{text}'. Use one of: {allowed}.") from None


@dataclass
class PipelineRequest:
    """单次下载请求"""
    source_url: str
    audio_format: AudioFormat = AudioFormat.BEST
    cookie_file: Optional[str] = None
    cookie_header: Optional[str] = None


@dataclass(frozen=True)
class CookieChoice:
    """按优先级解析后的 cookie 来源（最多一个有值）"""
    cookie_file: Optional[str] = None
    cookie_header: Optional[str] = None

    @property
    def anonymous(self) -> bool:
        return not self.cookie_file and not self.cookie_header


@dataclass
class ProbeResult:
    """元数据探测结果，失败时使用占位值"""
    title: str
    channel: str
    canonical_url: str
    success: bool
    error: Optional[str] = None

    @classmethod
    def placeholder(cls, url: str, error: Optional[str] = None) -> "ProbeResult":
        return cls(
            title=UNKNOWN_TITLE,
            channel=UNKNOWN_CHANNEL,
            canonical_url=url,
            success=False,
            error=error,
        )


@dataclass
class RemuxResult:
    """ffmpeg 重写元数据结果"""
    success: bool
    new_path: Optional[Path] = None
    error: Optional[str] = None


@dataclass
class DownloadOutcome:
    """
    Pipeline 最终产物

    成功时 output_path 及其所在 job_dir 的所有权转交给调用方，用完必须删除
    """
    success: bool
    output_path: Optional[Path] = None
    error: Optional[str] = None
    probe_ok: bool = True           # 元数据探测是否成功（失败时已使用占位值）
    job_dir: Optional[Path] = None  # 本次任务的独立工作目录
