"""
Access token issuer port (application/ports).

The signing algorithm/key/issuer/audience are infrastructure configuration;
application services only mint and verify opaque bearer strings.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class AccessTokenClaims:
    user_id: str
    roles: frozenset = field(default_factory=frozenset)
    permissions: frozenset = field(default_factory=frozenset)
    expires_at: Optional[datetime] = None
    jti: Optional[str] = None


@runtime_checkable
class AccessTokenIssuer(Protocol):
    """Signs/verifies short-lived bearer tokens carrying identity + authorization claims."""

    @property
    def default_ttl(self) -> timedelta: ...

    def mint(
        self,
        user_id: str,
        roles: Iterable[str],
        permissions: Iterable[str],
        ttl: Optional[timedelta] = None,
    ) -> str: ...

    def verify(self, token: str) -> Optional[AccessTokenClaims]:
        """Return claims for a valid access token, None when invalid.

        Raises TokenExpiredException for a well-formed but expired token.
        """
        ...
