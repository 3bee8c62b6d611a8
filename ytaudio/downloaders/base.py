"""
下载器抽象基类
所有下载器都需要继承此类并实现 probe / download 方法
"""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from ytaudio.models.audio import AudioFormat, DownloadOutcome, ProbeResult
from ytaudio.services.cancel import CancelToken


class Downloader(ABC):
    """音频下载器基类"""

    @abstractmethod
    def probe(
        self,
        url: str,
        cookie_file: Optional[str] = None,
        cookie_header: Optional[str] = None,
    ) -> ProbeResult:
        """
        只获取元数据，不下载（失败时返回占位值，不抛异常）

        :param url: 视频链接
        :param cookie_file: cookie 文件路径
        :param cookie_header: 原始 Cookie 请求头
        :return: 探测结果
        """
        ...

    @abstractmethod
    def download(
        self,
        url: str,
        audio_format: AudioFormat,
        output_dir: Path,
        cookie_file: Optional[str] = None,
        cookie_header: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
    ) -> DownloadOutcome:
        """
        下载并转码音频轨道

        :param url: 视频链接
        :param audio_format: 目标格式
        :param output_dir: 输出目录
        :param cancel: 取消令牌
        :return: 下载结果，output_path 为下载器报告的路径（可能不存在）
        """
        ...
