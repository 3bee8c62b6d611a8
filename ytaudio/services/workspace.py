"""
临时工作目录管理

- 每个任务一个独立子目录，避免并发请求互相看到对方的文件
- JobDir 持有目录所有权，cleanup() 幂等且尽力而为
- sweep() 按修改时间回收遗留文件（进程崩溃 / 清理回调未触发时兜底）
"""
import logging
import shutil
import time
import uuid
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


def resolve_output_path(reported: Optional[Union[str, Path]], directory: Path) -> Optional[Path]:
    """
    确定下载产物路径

    优先使用 yt-dlp 报告的路径；路径缺失或文件不存在时，
    退化为目录中最近修改的文件；目录为空返回 None
    """
    if reported:
        path = Path(reported)
        if path.is_file():
            return path
        logger.warning(f"[路径] 报告的文件不存在，回退到目录扫描: {path}")

    if not directory.is_dir():
        return None

    candidates = [p for p in directory.iterdir() if p.is_file()]
    if not candidates:
        return None
    return max(candidates, key=lambda p: p.stat().st_mtime)


class JobDir:
    """单个任务的工作目录（可作为上下文管理器使用）"""

    def __init__(self, path: Path):
        self.path = path
        self._released = False

    @property
    def job_id(self) -> str:
        return self.path.name

    def cleanup(self):
        """删除整个任务目录，失败只记日志不抛出"""
        if self._released:
            return
        self._released = True
        try:
            shutil.rmtree(self.path, ignore_errors=False)
            logger.debug(f"[清理] 已删除任务目录: {self.path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"[清理] 删除任务目录失败: {self.path}: {e}")

    def __enter__(self) -> "JobDir":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cleanup()


class Workspace:
    """进程级工作目录根，启动时创建一次"""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def create_job(self) -> JobDir:
        path = self.root / uuid.uuid4().hex
        path.mkdir(parents=True, exist_ok=False)
        return JobDir(path)

    def sweep(self, max_age_seconds: float) -> int:
        """删除根目录下修改时间超过 max_age_seconds 的条目，返回删除数量"""
        if not self.root.is_dir():
            return 0

        cutoff = time.time() - max_age_seconds
        removed = 0
        for entry in self.root.iterdir():
            try:
                if entry.stat().st_mtime >= cutoff:
                    continue
                if entry.is_dir():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"[回收] 删除过期条目失败: {entry}: {e}")

        if removed:
            logger.info(f"[回收] 已删除 {removed} 个过期条目: root={self.root}")
        return removed
