"""
JWT 访问令牌签发器（PyJWT）
"""
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional
import uuid

import jwt

from application.ports.access_token import AccessTokenClaims
from domain.common.exceptions import TokenExpiredException
from core.logging_config import get_logger


logger = get_logger(__name__)


class JwtAccessTokenIssuer:
    """AccessTokenIssuer 的 JWT 实现"""

    def __init__(
        self,
        secret_key: str,
        *,
        algorithm: str = "HS256",
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        ttl: timedelta = timedelta(minutes=15),
    ) -> None:
        if not secret_key:
            raise ValueError("secret_key is required")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._issuer = issuer
        self._audience = audience
        self._ttl = ttl

    @classmethod
    def from_settings(cls, settings) -> "JwtAccessTokenIssuer":
        return cls(
            settings.SECRET_KEY,
            algorithm=settings.ALGORITHM,
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
            ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        )

    @property
    def default_ttl(self) -> timedelta:
        return self._ttl

    def mint(
        self,
        user_id: str,
        roles: Iterable[str],
        permissions: Iterable[str],
        ttl: Optional[timedelta] = None,
    ) -> str:
        """创建访问令牌"""
        now = datetime.now(timezone.utc)
        to_encode = {
            "sub": str(user_id),
            "roles": sorted(set(roles)),
            "permissions": sorted(set(permissions)),
            "type": "access",
            "iat": now,
            "exp": now + (ttl or self._ttl),
            "jti": str(uuid.uuid4()),
        }
        if self._issuer:
            to_encode["iss"] = self._issuer
        if self._audience:
            to_encode["aud"] = self._audience
        return jwt.encode(to_encode, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> Optional[AccessTokenClaims]:
        """Verify an access JWT.

        - Expired token: raise TokenExpiredException
        - Invalid token or wrong type: return None
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                issuer=self._issuer,
                audience=self._audience,
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredException("Access token expired")
        except jwt.InvalidTokenError as exc:
            logger.info("access_token_invalid", error=str(exc))
            return None

        if payload.get("type") != "access":
            return None

        return AccessTokenClaims(
            user_id=str(payload["sub"]),
            roles=frozenset(payload.get("roles") or ()),
            permissions=frozenset(payload.get("permissions") or ()),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            jti=payload.get("jti"),
        )
