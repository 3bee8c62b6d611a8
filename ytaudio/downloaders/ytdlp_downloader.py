"""
基于 yt-dlp 的音频下载器
提供两种模式: 仅探测元数据 / 下载并提取音频
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yt_dlp
from yt_dlp.utils import DownloadCancelled

from ytaudio.downloaders.base import Downloader
from ytaudio.models.audio import (
    UNKNOWN_CHANNEL,
    UNKNOWN_TITLE,
    AudioFormat,
    CookieChoice,
    DownloadOutcome,
    ProbeResult,
)
from ytaudio.services.cancel import CancelToken

logger = logging.getLogger(__name__)

# 无 cookie 时伪装成移动端客户端，绕过部分反爬检查
ANONYMOUS_EXTRACTOR_ARGS = {"youtube": {"player_client": ["android"]}}

OUTPUT_TEMPLATE = "audio - %(channel,uploader)s - %(title)s.%(ext)s"


def flatten_error(payload: Union[None, str, Any]) -> Optional[str]:
    """将错误输出统一为单个字符串（字符串原样返回，字符串序列按行拼接）"""
    if payload is None:
        return None
    if isinstance(payload, str):
        return payload
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload).decode("utf-8", errors="replace")
    try:
        return os.linesep.join(str(line) for line in payload)
    except TypeError:
        return str(payload)


class _ErrorCollector:
    """传给 yt-dlp 的 logger，收集 ERROR 行用于返回给调用方"""

    def __init__(self):
        self.errors: List[str] = []

    def debug(self, msg: str):
        pass

    def info(self, msg: str):
        pass

    def warning(self, msg: str):
        logger.debug(f"[yt-dlp] {msg}")

    def error(self, msg: str):
        self.errors.append(msg)


def _cancel_hook(cancel: Optional[CancelToken]):
    """progress / postprocessor hook: 令牌被触发时中断 yt-dlp"""

    def hook(_status: dict):
        if cancel is not None and cancel.cancelled:
            raise DownloadCancelled(cancel.reason)

    return hook


class YtdlpDownloader(Downloader):
    """
    yt-dlp 音频下载器

    cookie 优先级: cookie 文件参数 > cookie 请求头参数 > 默认 cookie 文件(存在时) > 无
    """

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        default_cookie_file: Optional[Union[str, Path]] = None,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.default_cookie_file = Path(default_cookie_file) if default_cookie_file else None

    # ---------- cookie / 选项 ----------

    def resolve_cookies(
        self,
        cookie_file: Optional[str] = None,
        cookie_header: Optional[str] = None,
    ) -> CookieChoice:
        if cookie_file and cookie_file.strip():
            return CookieChoice(cookie_file=cookie_file)
        if cookie_header and cookie_header.strip():
            return CookieChoice(cookie_header=cookie_header)
        if self.default_cookie_file and self.default_cookie_file.is_file():
            return CookieChoice(cookie_file=str(self.default_cookie_file))
        return CookieChoice()

    @staticmethod
    def _base_options(choice: CookieChoice) -> Dict[str, Any]:
        opts: Dict[str, Any] = {
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
        }
        if choice.cookie_file:
            opts["cookiefile"] = choice.cookie_file
        if choice.cookie_header:
            opts["http_headers"] = {"Cookie": choice.cookie_header}

        # android 客户端只在完全没有 cookie 时使用
        if choice.anonymous:
            opts["extractor_args"] = ANONYMOUS_EXTRACTOR_ARGS
        return opts

    def build_download_options(
        self,
        audio_format: AudioFormat,
        output_dir: Path,
        choice: CookieChoice,
        collector: Optional[_ErrorCollector] = None,
        cancel: Optional[CancelToken] = None,
    ) -> Dict[str, Any]:
        opts = self._base_options(choice)
        hook = _cancel_hook(cancel)
        opts.update(
            {
                "format": "bestaudio/best",
                "outtmpl": os.path.join(str(output_dir), OUTPUT_TEMPLATE),
                "postprocessors": [
                    {
                        "key": "FFmpegExtractAudio",
                        "preferredcodec": audio_format.codec,
                        "preferredquality": "0",
                    }
                ],
                # 不挂 FFmpegMetadata / EmbedThumbnail，元数据由 ffmpeg 重写
                "writethumbnail": False,
                "restrictfilenames": True,
                "nocheckcertificate": True,
                "overwrites": True,
                "ignoreerrors": False,
                "progress_hooks": [hook],
                "postprocessor_hooks": [hook],
            }
        )
        if collector is not None:
            opts["logger"] = collector
        if self.ffmpeg_path:
            opts["ffmpeg_location"] = self.ffmpeg_path
        return opts

    # ---------- 探测 ----------

    def probe(
        self,
        url: str,
        cookie_file: Optional[str] = None,
        cookie_header: Optional[str] = None,
    ) -> ProbeResult:
        """获取标题 / 频道 / 规范链接，任何异常都降级为占位值"""
        try:
            choice = self.resolve_cookies(cookie_file, cookie_header)
            opts = self._base_options(choice)
            opts["skip_download"] = True

            with yt_dlp.YoutubeDL(opts) as ydl:
                info = ydl.extract_info(url, download=False)

            if not isinstance(info, dict):
                return ProbeResult.placeholder(url, "Failed to fetch video info")

            return ProbeResult(
                title=info.get("title") or UNKNOWN_TITLE,
                channel=info.get("channel") or info.get("uploader") or UNKNOWN_CHANNEL,
                canonical_url=info.get("webpage_url") or url,
                success=True,
            )
        except Exception as e:
            return ProbeResult.placeholder(url, str(e) or "Failed to fetch video info")

    # ---------- 下载 ----------

    @staticmethod
    def _reported_path(info: dict) -> Optional[str]:
        """后处理完成后 requested_downloads[0].filepath 指向转码后的文件"""
        downloads = info.get("requested_downloads") or []
        if downloads and downloads[0].get("filepath"):
            return downloads[0]["filepath"]
        return info.get("filepath") or info.get("_filename")

    def download(
        self,
        url: str,
        audio_format: AudioFormat,
        output_dir: Path,
        cookie_file: Optional[str] = None,
        cookie_header: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
    ) -> DownloadOutcome:
        choice = self.resolve_cookies(cookie_file, cookie_header)
        collector = _ErrorCollector()
        opts = self.build_download_options(audio_format, output_dir, choice, collector, cancel)

        logger.info(
            f"[下载] format={audio_format.value}, "
            f"cookies={'file' if choice.cookie_file else 'header' if choice.cookie_header else 'none'}, "
            f"URL={url}"
        )

        try:
            with yt_dlp.YoutubeDL(opts) as ydl:
                info = ydl.extract_info(url, download=True)
        except DownloadCancelled:
            logger.info(f"[下载] 已取消: URL={url}")
            return DownloadOutcome(success=False, error="Download cancelled")
        except Exception as e:
            error = flatten_error(collector.errors or None) or flatten_error(str(e)) or "yt-dlp failed"
            return DownloadOutcome(success=False, error=error)

        if not isinstance(info, dict):
            return DownloadOutcome(
                success=False,
                error=flatten_error(collector.errors or None) or "yt-dlp failed",
            )

        reported = self._reported_path(info)
        logger.info(f"[下载完成] -> {reported}")
        return DownloadOutcome(success=True, output_path=Path(reported) if reported else None)
