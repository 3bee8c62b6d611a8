"""
元数据重写器抽象基类
"""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from ytaudio.models.audio import RemuxResult
from ytaudio.services.cancel import CancelToken


class Remuxer(ABC):
    """音频容器元数据重写器基类"""

    @abstractmethod
    async def remux(
        self,
        input_path: Optional[Path],
        title: str,
        channel: str,
        url: str,
        cancel: Optional[CancelToken] = None,
    ) -> RemuxResult:
        """
        清除原有元数据，只写入 title / artist / comment 三个标签

        :param input_path: 待处理的音频文件（处理后原地替换）
        :param title: 标题
        :param channel: 频道 / 上传者，写入 artist
        :param url: 规范链接，写入 comment
        :return: 重写结果
        """
        ...
