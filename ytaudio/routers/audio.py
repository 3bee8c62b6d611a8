"""
音频 API 路由

  1. GET  /audio?url=...&format=...  : HTTP Basic 鉴权，返回音频文件流
  2. POST /audio/direct              : JSON 中携带用户名密码，返回音频文件流
  3. GET  /audio/healthz             : 检查 ffmpeg / yt-dlp 是否就绪（匿名）
"""
import asyncio
import contextlib
import logging
from pathlib import Path
from typing import Awaitable, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import FileResponse, JSONResponse, Response
from starlette.background import BackgroundTask

from ytaudio.models.api import DirectRequest, HealthResponse
from ytaudio.models.audio import AudioFormat, DownloadOutcome, PipelineRequest
from ytaudio.security import check_credentials, get_auth_users, require_user
from ytaudio.services.audio_service import AudioService
from ytaudio.services.cancel import CancelToken

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/audio", tags=["音频"])

CONTENT_TYPES: Dict[str, str] = {
    "mp3": "audio/mpeg",
    "m4a": "audio/mp4",
    "aac": "audio/aac",
    "flac": "audio/flac",
    "opus": "audio/ogg",
    "ogg": "audio/ogg",
}

# 客户端断开检测间隔（秒）
DISCONNECT_POLL_INTERVAL = 0.5

# 客户端主动断开（nginx 约定）
CLIENT_CLOSED_REQUEST = 499

# 全局单例 service
_audio_service: Optional[AudioService] = None


def get_audio_service() -> AudioService:
    global _audio_service
    if _audio_service is None:
        _audio_service = AudioService()
    return _audio_service


def content_type_for(path_or_ext: str) -> str:
    """按扩展名返回 Content-Type，未知类型返回 application/octet-stream"""
    ext = Path(path_or_ext).suffix or path_or_ext
    return CONTENT_TYPES.get(ext.strip(".").lower(), "application/octet-stream")


def normalize_url(value: str) -> str:
    """缺少协议时补上 https://"""
    value = (value or "").strip()
    if not value:
        return value
    if value.lower().startswith(("http://", "https://")):
        return value
    return "https://" + value.lstrip("/")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# ==================== API Endpoints ====================


@router.get("", summary="下载音频")
async def get_audio(
    request: Request,
    url: str = Query("", description="视频链接"),
    format: Optional[str] = Query(None, description="best / mp3 / m4a / aac / flac"),
    user: str = Depends(require_user),
    service: AudioService = Depends(get_audio_service),
):
    """提取音频并以文件流返回，发送完毕后删除临时文件"""
    if not url.strip():
        return _error(400, "url is required")

    logger.info(f"[API] 下载请求: user={user}, format={format}, URL={url}")
    return await _serve(request, service, url.strip(), format)


@router.post("/direct", summary="携带凭据直接下载音频")
async def direct(
    request: Request,
    req: DirectRequest,
    users: Dict[str, str] = Depends(get_auth_users),
    service: AudioService = Depends(get_audio_service),
):
    """
    无需 Authorization 头，用户名密码随 JSON 请求体提交

    Body: {"username": "...", "password": "...", "url": "...", "format": "best|mp3|m4a|aac|flac"}
    """
    if not req.username.strip() or not req.password.strip() or not req.url.strip():
        return _error(400, "username, password, and url are required")

    if not users:
        logger.error("[鉴权] 未配置任何用户 (AUTH_USERS)")
        return _error(500, "server auth not configured")

    if not check_credentials(users, req.username, req.password):
        logger.warning(f"[鉴权] 凭据无效: user={req.username}")
        return _error(401, "invalid credentials")

    url = normalize_url(req.url)
    logger.info(f"[API] direct 下载请求: user={req.username}, format={req.format}, URL={url}")
    return await _serve(request, service, url, req.format)


@router.get("/healthz", summary="健康检查", response_model=HealthResponse)
def health(service: AudioService = Depends(get_audio_service)):
    ok, error = service.validate_binaries()
    if ok:
        return HealthResponse(ok=True)
    return JSONResponse(status_code=503, content=HealthResponse(ok=False, error=error).model_dump())


# ==================== 内部实现 ====================


async def _serve(request: Request, service: AudioService, url: str, fmt_value: Optional[str]) -> Response:
    try:
        fmt = AudioFormat.parse(fmt_value)
    except ValueError as e:
        return _error(400, str(e))

    ok, error = service.validate_binaries()
    if not ok:
        logger.error(f"[API] 下载器未就绪: {error}")
        return _error(503, f"Downloader not ready: {error}")

    cancel = CancelToken()
    outcome = await _run_until_disconnected(
        request,
        service.run(PipelineRequest(source_url=url, audio_format=fmt), cancel=cancel),
        cancel,
    )
    if outcome is None:
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    path = outcome.output_path
    if not outcome.success or path is None or not path.is_file():
        service.release(path, outcome.job_dir)
        return _error(502, outcome.error or "Unknown error extracting audio")

    return _file_response(service, outcome)


def _file_response(service: AudioService, outcome: DownloadOutcome) -> FileResponse:
    """流式返回文件（支持 Range），响应发送完毕后删除"""
    path = outcome.output_path
    headers = {"Cache-Control": "no-store"}
    if not outcome.probe_ok:
        headers["X-Metadata-Probe"] = "failed"

    return FileResponse(
        path=str(path),
        media_type=content_type_for(path.name),
        filename=path.name,
        headers=headers,
        background=BackgroundTask(service.release, path, outcome.job_dir),
    )


async def _run_until_disconnected(
    request: Request,
    pipeline: Awaitable[DownloadOutcome],
    cancel: CancelToken,
) -> Optional[DownloadOutcome]:
    """
    执行 Pipeline，同时轮询客户端连接状态

    客户端断开时取消任务（ffmpeg 进程被终止，yt-dlp 在下一个 hook 处中断），返回 None
    """
    task = asyncio.ensure_future(pipeline)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_INTERVAL)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info("[API] 客户端已断开，取消任务")
                cancel.cancel("client disconnected")
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
                return None
    except asyncio.CancelledError:
        cancel.cancel("cancelled")
        task.cancel()
        raise
