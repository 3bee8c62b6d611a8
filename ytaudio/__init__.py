"""
ytaudio - 视频链接转音频文件的后端服务
"""
import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request


@asynccontextmanager
async def _lifespan(app: FastAPI):
    from ytaudio.config import settings
    from ytaudio.routers.audio import get_audio_service

    service = get_audio_service()
    reaper = asyncio.create_task(
        service.reap_forever(settings.reaper_interval, settings.reaper_max_age)
    )
    try:
        yield
    finally:
        reaper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reaper


def create_app() -> FastAPI:
    from ytaudio.routers import admin, audio

    app = FastAPI(
        title="ytaudio",
        description="输入视频链接，返回只带标题 / 作者 / 来源链接元数据的音频文件",
        version="0.1.0",
        lifespan=_lifespan,
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Download-Options"] = "noopen"
        return response

    app.include_router(audio.router)
    app.include_router(admin.router)
    return app
