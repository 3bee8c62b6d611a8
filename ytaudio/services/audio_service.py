"""
音频下载核心 Pipeline
编排整个流程: 探测元数据 → 下载转码 → 重写元数据 → 返回文件
"""
import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

from ytaudio.config import BinaryLocations, settings
from ytaudio.downloaders.base import Downloader
from ytaudio.downloaders.ytdlp_downloader import YtdlpDownloader
from ytaudio.models.audio import AudioFormat, DownloadOutcome, PipelineRequest, ProbeResult
from ytaudio.services.cancel import CancelToken
from ytaudio.services.workspace import JobDir, Workspace, resolve_output_path
from ytaudio.transcoders.base import Remuxer
from ytaudio.transcoders.ffmpeg_remuxer import FfmpegRemuxer

logger = logging.getLogger(__name__)

# 超时 / 取消后等待下载线程退出的最长时间（秒），超出则交给回收任务
WORKER_GRACE_PERIOD = 30.0


class AudioService:
    """
    音频提取服务

    Pipeline 流程:
    1. 探测元数据 (yt-dlp, 失败则使用占位值继续)
    2. 下载并提取音频 (yt-dlp + ffmpeg)
    3. 清空容器元数据，只写入 title / artist / comment (ffmpeg 流复制)

    每个任务使用独立的工作目录；成功时目录所有权交给调用方，失败时立即删除
    """

    def __init__(
        self,
        downloader: Optional[Downloader] = None,
        remuxer: Optional[Remuxer] = None,
        workspace: Optional[Workspace] = None,
        binaries: Optional[BinaryLocations] = None,
        download_timeout: Optional[float] = None,
        worker_grace: float = WORKER_GRACE_PERIOD,
    ):
        self.binaries = binaries or settings.binaries
        self.downloader: Downloader = downloader or YtdlpDownloader(
            ffmpeg_path=self.binaries.ffmpeg_path,
            default_cookie_file=settings.cookie_file,
        )
        self.remuxer: Remuxer = remuxer or FfmpegRemuxer(
            ffmpeg_path=self.binaries.ffmpeg_path,
            timeout=settings.remux_timeout,
        )
        self.workspace = workspace or Workspace(settings.work_dir)
        self.download_timeout = settings.download_timeout if download_timeout is None else download_timeout
        self.worker_grace = worker_grace
        logger.info(
            f"[AudioService] 初始化完成: "
            f"work_dir={self.workspace.root}, ffmpeg={self.binaries.ffmpeg_path}"
        )

    def validate_binaries(self) -> Tuple[bool, Optional[str]]:
        return self.binaries.validate()

    async def probe(
        self,
        url: str,
        cookie_file: Optional[str] = None,
        cookie_header: Optional[str] = None,
    ) -> ProbeResult:
        return await asyncio.to_thread(self.downloader.probe, url, cookie_file, cookie_header)

    # ==================== 核心 Pipeline ====================

    async def run(self, req: PipelineRequest, cancel: Optional[CancelToken] = None) -> DownloadOutcome:
        return await self.download(
            url=req.source_url,
            audio_format=req.audio_format,
            cookie_file=req.cookie_file,
            cookie_header=req.cookie_header,
            cancel=cancel,
        )

    async def download(
        self,
        url: str,
        audio_format: Union[AudioFormat, str],
        cookie_file: Optional[str] = None,
        cookie_header: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
    ) -> DownloadOutcome:
        """
        主流程入口: 视频 URL → 带规范元数据的音频文件

        :param url: 视频链接
        :param audio_format: best / mp3 / m4a / aac / flac
        :param cookie_file: cookie 文件路径（优先）
        :param cookie_header: 原始 Cookie 请求头
        :param cancel: 取消令牌，超时或客户端断开时触发
        :return: DownloadOutcome，成功时调用方负责删除 job_dir
        """
        try:
            fmt = audio_format if isinstance(audio_format, AudioFormat) else AudioFormat.parse(audio_format)
        except ValueError as e:
            return DownloadOutcome(success=False, error=str(e))

        cancel = cancel or CancelToken()

        try:
            job = self.workspace.create_job()
        except OSError as e:
            logger.error(f"[Pipeline] 创建工作目录失败: {e}", exc_info=True)
            return DownloadOutcome(success=False, error=str(e))

        logger.info(f"[Pipeline] 任务开始: job={job.job_id}, format={fmt.value}, URL={url}")

        workers: List[asyncio.Future] = []
        try:
            outcome = await asyncio.wait_for(
                self._run_steps(url, fmt, job, cookie_file, cookie_header, cancel, workers),
                timeout=self.download_timeout or None,
            )
        except asyncio.TimeoutError:
            cancel.cancel("timeout")
            await self._drain_workers(workers, job)
            outcome = DownloadOutcome(
                success=False,
                error=f"Download timed out after {self.download_timeout:g}s",
            )
        except asyncio.CancelledError:
            cancel.cancel("cancelled")
            await self._drain_workers(workers, job)
            job.cleanup()
            logger.info(f"[Pipeline] 任务已取消: job={job.job_id}")
            raise
        except Exception as e:
            logger.error(f"[Pipeline] 任务异常: job={job.job_id}, error={e}", exc_info=True)
            outcome = DownloadOutcome(success=False, error=str(e))

        if not outcome.success:
            job.cleanup()
            logger.warning(f"[Pipeline] 任务失败: job={job.job_id}, error={outcome.error}")
            return outcome

        outcome.job_dir = job.path
        logger.info(f"[Pipeline] 任务完成: job={job.job_id} -> {outcome.output_path}")
        return outcome

    # ==================== Pipeline 子步骤 ====================

    async def _run_steps(
        self,
        url: str,
        fmt: AudioFormat,
        job: JobDir,
        cookie_file: Optional[str],
        cookie_header: Optional[str],
        cancel: CancelToken,
        workers: List[asyncio.Future],
    ) -> DownloadOutcome:
        # ---- Step 1: 探测元数据 ----
        probe = await self.probe(url, cookie_file, cookie_header)
        if not probe.success:
            logger.warning(f"[探测] 元数据获取失败，使用占位值: URL={url}, error={probe.error}")

        # ---- Step 2: 下载 ----
        # 线程无法被 asyncio 取消，shield 保留 future 供超时 / 取消后等待其退出
        worker = asyncio.ensure_future(asyncio.to_thread(
            self.downloader.download,
            url,
            fmt,
            job.path,
            cookie_file,
            cookie_header,
            cancel,
        ))
        workers.append(worker)
        fetched = await asyncio.shield(worker)
        if not fetched.success:
            return DownloadOutcome(success=False, error=fetched.error or "yt-dlp failed", probe_ok=probe.success)

        # ---- Step 3: 定位产物 ----
        path = resolve_output_path(fetched.output_path, job.path)
        if path is None:
            return DownloadOutcome(success=False, error="No output produced", probe_ok=probe.success)

        # ---- Step 4: 重写元数据 ----
        remux = await self.remuxer.remux(path, probe.title, probe.channel, probe.canonical_url, cancel)
        if not remux.success:
            return DownloadOutcome(
                success=False,
                error=remux.error or "Failed to set metadata",
                probe_ok=probe.success,
            )

        return DownloadOutcome(success=True, output_path=remux.new_path or path, probe_ok=probe.success)

    async def _drain_workers(self, workers: List[asyncio.Future], job: JobDir):
        """令牌已触发后等待下载线程退出，避免删除目录后线程又写入文件"""
        pending = [w for w in workers if not w.done()]
        if pending:
            logger.info(f"[Pipeline] 等待下载线程退出: job={job.job_id}")
            _, pending = await asyncio.wait(pending, timeout=self.worker_grace)
            if pending:
                logger.warning(
                    f"[Pipeline] 下载线程 {self.worker_grace:g}s 内未退出，残留文件交给回收任务: job={job.job_id}"
                )
        for w in workers:
            if w.done() and not w.cancelled() and w.exception() is not None:
                logger.debug(f"[Pipeline] 下载线程异常（已超时 / 取消）: {w.exception()}")

    # ==================== 临时文件回收 ====================

    async def reap_forever(self, interval: float, max_age: float):
        """定期删除工作目录中的过期条目，直到被取消"""
        logger.info(f"[回收] 启动: interval={interval:.0f}s, max_age={max_age:.0f}s")
        while True:
            try:
                await asyncio.to_thread(self.workspace.sweep, max_age)
            except Exception as e:
                logger.error(f"[回收] 扫描失败: {e}", exc_info=True)
            await asyncio.sleep(interval)

    @staticmethod
    def release(output_path: Optional[Path], job_dir: Optional[Path] = None):
        """响应发送完毕后删除产物（尽力而为，失败只记日志）"""
        if job_dir is not None:
            JobDir(job_dir).cleanup()
            return
        if output_path is not None:
            try:
                output_path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"[清理] 删除文件失败: {output_path}: {e}")
