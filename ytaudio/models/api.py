"""
HTTP 接口请求 / 响应模型 (Pydantic)
"""
from typing import Optional

from pydantic import BaseModel


class DirectRequest(BaseModel):
    """POST /audio/direct 请求体（凭据随请求提交）"""
    username: str = ""
    password: str = ""
    url: str = ""
    format: Optional[str] = "best"             # best / mp3 / m4a / aac / flac


class HealthResponse(BaseModel):
    """健康检查结果"""
    ok: bool
    error: Optional[str] = None


class CookieUpdate(BaseModel):
    """POST /admin/cookie 请求体"""
    cookie_text: str = ""                       # Netscape 格式 cookie 文件内容


class CookieStatus(BaseModel):
    """默认 cookie 文件状态"""
    path: str
    exists: bool
    size: int = 0
