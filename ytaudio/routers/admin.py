"""
管理 API 路由（仅 ADMIN_USER 可见，其他用户一律 404）

  1. GET  /admin/cookie : 查看默认 cookie 文件状态
  2. POST /admin/cookie : 上传新的 cookie 文本，原子替换默认 cookie 文件
"""
import logging
import os
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from ytaudio.config import settings
from ytaudio.models.api import CookieStatus, CookieUpdate
from ytaudio.security import require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["管理"])


def get_admin_user() -> str:
    return settings.admin_user


def get_cookie_path() -> Path:
    return settings.cookie_file


def require_owner(
    user: str = Depends(require_user),
    owner: str = Depends(get_admin_user),
) -> str:
    """已登录且为 ADMIN_USER（不区分大小写），否则假装接口不存在"""
    if not owner or user.lower() != owner.lower():
        logger.warning(f"[管理] 非管理员访问: user={user}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    return user


def cookie_status(path: Path) -> CookieStatus:
    exists = path.is_file()
    return CookieStatus(path=str(path), exists=exists, size=path.stat().st_size if exists else 0)


def replace_cookie_file(path: Path, text: str):
    """先写 youtube.txt.tmp 再 os.replace，下载线程不会读到半个文件"""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    try:
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


# ==================== API Endpoints ====================


@router.get("/cookie", summary="默认 cookie 文件状态", response_model=CookieStatus)
def get_cookie(
    user: str = Depends(require_owner),
    path: Path = Depends(get_cookie_path),
):
    return cookie_status(path)


@router.post("/cookie", summary="更新默认 cookie 文件", response_model=CookieStatus)
def update_cookie(
    req: CookieUpdate,
    user: str = Depends(require_owner),
    path: Path = Depends(get_cookie_path),
):
    if not req.cookie_text.strip():
        return JSONResponse(status_code=400, content={"error": "Cookie text is required."})

    try:
        replace_cookie_file(path, req.cookie_text)
    except OSError as e:
        logger.error(f"[管理] 写入 cookie 文件失败: {path}: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": f"Failed to write cookie file: {e}"})

    logger.info(f"[管理] cookie 已更新: user={user}, path={path}, size={len(req.cookie_text)}")
    return cookie_status(path)
