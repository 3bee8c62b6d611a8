"""
ytaudio 配置模块
从 .env 文件加载所有配置项，提供全局单例 settings
"""
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent


def _pick_cookie_file() -> Path:
    """
    按运行环境选择默认 cookie 文件路径（文件不存在不算错误）

    - COOKIE_FILE 显式指定
    - APP_ENV=development: <repo>/dev-cookies/youtube.txt
    - 其他: ~/.ytaudio/youtube.txt
    """
    explicit = os.getenv("COOKIE_FILE")
    if explicit:
        return Path(explicit).expanduser()

    if os.getenv("APP_ENV", "production").lower() == "development":
        return BASE_DIR / "dev-cookies" / "youtube.txt"

    return Path.home() / ".ytaudio" / "youtube.txt"


def parse_users(raw: str) -> Dict[str, str]:
    """解析 AUTH_USERS: "alice:secret,bob:pw" -> {"alice": "secret", "bob": "pw"}"""
    users: Dict[str, str] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item or ":" not in item:
            continue
        username, password = item.split(":", 1)
        if username and password:
            users[username] = password
    return users


@dataclass(frozen=True)
class BinaryLocations:
    """外部可执行文件位置（启动时解析一次，之后只读）"""

    ffmpeg_path: str = "ffmpeg"

    def resolve_ffmpeg(self) -> Optional[str]:
        """显式路径直接检查文件，纯命令名则从 PATH 查找"""
        if os.sep in self.ffmpeg_path or (os.altsep and os.altsep in self.ffmpeg_path):
            return self.ffmpeg_path if os.path.isfile(self.ffmpeg_path) else None
        return shutil.which(self.ffmpeg_path)

    def validate(self) -> Tuple[bool, Optional[str]]:
        """
        健康检查：ffmpeg 可执行 & yt-dlp 可用

        不会在每次下载前自动调用，由调用方显式触发
        """
        try:
            if self.resolve_ffmpeg() is None:
                return False, f"Missing ffmpeg at {self.ffmpeg_path}. Install ffmpeg or set FFMPEG_PATH."

            from yt_dlp.version import __version__ as ytdlp_version
            if not ytdlp_version:
                return False, "yt-dlp version could not be determined"

            return True, None
        except Exception as e:
            return False, str(e)


@dataclass
class Settings:
    """全局配置"""

    # 服务
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8900"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # 工作目录（每个任务在其下建独立子目录）
    work_dir: Path = Path(os.getenv("WORK_DIR", os.path.join(tempfile.gettempdir(), "yt-audio-api")))

    # 外部程序
    ffmpeg_path: str = os.getenv("FFMPEG_PATH", "ffmpeg")

    # 默认 cookie 文件 (Netscape 格式)
    cookie_file: Path = field(default_factory=_pick_cookie_file)

    # 鉴权用户 "user:pass,user2:pass2"
    auth_users: Dict[str, str] = field(default_factory=lambda: parse_users(os.getenv("AUTH_USERS", "")))

    # 可管理默认 cookie 文件的用户（须同时在 AUTH_USERS 中）
    admin_user: str = os.getenv("ADMIN_USER", "")

    # 超时（秒）
    download_timeout: float = float(os.getenv("DOWNLOAD_TIMEOUT", "900"))
    remux_timeout: float = float(os.getenv("REMUX_TIMEOUT", "120"))

    # 临时文件清理
    reaper_interval: float = float(os.getenv("REAPER_INTERVAL", "600"))
    reaper_max_age: float = float(os.getenv("REAPER_MAX_AGE", "3600"))

    def __post_init__(self):
        self.work_dir.mkdir(parents=True, exist_ok=True)

    @property
    def binaries(self) -> BinaryLocations:
        return BinaryLocations(ffmpeg_path=self.ffmpeg_path)


settings = Settings()
