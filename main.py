"""
ytaudio: 视频链接转音频文件服务

启动命令:
    python main.py
    或
    uvicorn main:app --host 0.0.0.0 --port 8900
"""
import logging

import uvicorn

from ytaudio import create_app
from ytaudio.config import settings

# 配置日志
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s │ %(levelname)-7s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger("ytaudio")

app = create_app()

if __name__ == "__main__":
    ok, error = settings.binaries.validate()

    logger.info(f"🚀 ytaudio 启动中 http://{settings.host}:{settings.port}")
    logger.info(f"📖 API 文档: http://127.0.0.1:{settings.port}/docs")
    logger.info(f"📂 工作目录: {settings.work_dir}")
    logger.info(f"🍪 默认 cookie: {settings.cookie_file} (exists={settings.cookie_file.is_file()})")
    if ok:
        logger.info(f"🎬 ffmpeg: {settings.ffmpeg_path}")
    else:
        logger.warning(f"⚠️ 下载器未就绪: {error}")
    if not settings.auth_users:
        logger.warning("⚠️ AUTH_USERS 未配置，所有下载请求都会被拒绝")

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        reload=False,
    )
