"""
鉴权
用户列表来自配置 AUTH_USERS，密码比较使用常量时间
"""
import logging
import secrets
from typing import Dict

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from ytaudio.config import settings

logger = logging.getLogger(__name__)

basic_auth = HTTPBasic(realm="ytaudio")


def get_auth_users() -> Dict[str, str]:
    return settings.auth_users


def check_credentials(users: Dict[str, str], username: str, password: str) -> bool:
    expected = users.get(username)
    if expected is None:
        # 用户不存在时也做一次比较，避免时间差泄露用户名
        secrets.compare_digest(password.encode("utf-8"), b"\x00" * len(password.encode("utf-8")))
        return False
    return secrets.compare_digest(password.encode("utf-8"), expected.encode("utf-8"))


def require_user(
    credentials: HTTPBasicCredentials = Depends(basic_auth),
    users: Dict[str, str] = Depends(get_auth_users),
) -> str:
    """HTTP Basic 鉴权依赖，返回用户名"""
    if not users:
        logger.error("[鉴权] 未配置任何用户 (AUTH_USERS)")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="server auth not configured",
        )

    if not check_credentials(users, credentials.username, credentials.password):
        logger.warning(f"[鉴权] 凭据无效: user={credentials.username}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid credentials",
            headers={"WWW-Authenticate": 'Basic realm="ytaudio"'},
        )
    return credentials.username
