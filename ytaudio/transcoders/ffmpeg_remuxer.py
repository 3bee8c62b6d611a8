"""
基于 ffmpeg 的元数据重写器
流复制（不重新编码），清空全部元数据后写入指定标签
"""
import asyncio
import logging
import os
from pathlib import Path
from typing import List, Optional

from ytaudio.models.audio import RemuxResult
from ytaudio.services.cancel import CancelToken
from ytaudio.transcoders.base import Remuxer

logger = logging.getLogger(__name__)


class FfmpegRemuxer(Remuxer):
    """
    ffmpeg 一次性子进程

    参数以列表形式传入 create_subprocess_exec，不经过 shell，
    标题 / 频道中的引号和特殊字符不会影响命令本身
    """

    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout: float = 120.0):
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout

    @staticmethod
    def temp_path_for(input_path: Path) -> Path:
        """audio.mp3 -> audio.clean.mp3（同目录）"""
        return input_path.with_name(f"{input_path.stem}.clean{input_path.suffix}")

    def build_command(
        self,
        input_path: Path,
        output_path: Path,
        title: str,
        channel: str,
        url: str,
    ) -> List[str]:
        return [
            self.ffmpeg_path,
            "-y",                      # 覆盖输出
            "-i", str(input_path),
            "-vn",                     # 丢弃封面等视频流
            "-c", "copy",              # 不重新编码
            "-map_metadata", "-1",     # 清空全部元数据
            "-fflags", "+bitexact",    # 不写入 encoder 标签
            "-metadata", f"title={title}",
            "-metadata", f"artist={channel}",
            "-metadata", f"comment={url}",
            str(output_path),
        ]

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process):
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()

    @staticmethod
    def _discard(path: Path):
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"[Remux] 删除临时文件失败: {path}: {e}")

    async def remux(
        self,
        input_path: Optional[Path],
        title: str,
        channel: str,
        url: str,
        cancel: Optional[CancelToken] = None,
    ) -> RemuxResult:
        if input_path is None:
            return RemuxResult(success=False, error="No output produced")

        input_path = Path(input_path)
        temp_path = self.temp_path_for(input_path)

        if cancel is not None and cancel.cancelled:
            return RemuxResult(success=False, error="Remux cancelled")

        cmd = self.build_command(input_path, temp_path, title, channel, url)
        logger.info(f"[Remux] {input_path.name}: title={title!r}, artist={channel!r}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return RemuxResult(success=False, error=f"Failed to start ffmpeg: {e}")

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await self._kill(proc)
            self._discard(temp_path)
            return RemuxResult(success=False, error=f"ffmpeg remux timed out after {self.timeout:.0f}s")
        except asyncio.CancelledError:
            logger.info(f"[Remux] 已取消，终止 ffmpeg: pid={proc.pid}")
            await self._kill(proc)
            self._discard(temp_path)
            raise

        if proc.returncode != 0 or not temp_path.exists():
            err = (stderr or b"").decode("utf-8", errors="replace").strip()
            self._discard(temp_path)
            return RemuxResult(success=False, error=err or "ffmpeg remux failed")

        try:
            os.replace(temp_path, input_path)
        except OSError as e:
            self._discard(temp_path)
            return RemuxResult(success=False, error=str(e))

        return RemuxResult(success=True, new_path=input_path)
