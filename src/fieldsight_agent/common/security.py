"""
Утилиты безопасности и авторизации.

Режимы:
- AUTH_REQUIRED=false: все подключения анонимные (dev / демо)
- AUTH_REQUIRED=true : нужен Bearer-токен, проверяется через identity provider:
  JWT_SHARED_SECRET (HS*) или OIDC JWKS (OIDC_JWKS_URL / discovery по OIDC_ISSUER_URL)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

import jwt
import requests

from .config import get_settings
from .errors import UnauthorizedError


@dataclass(frozen=True)
class AuthUser:
    uid: str
    email: str | None = None
    roles: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class AuthContext:
    subject: str
    auth_type: str  # none|jwt
    user: AuthUser | None = None
    claims: dict[str, Any] | None = None


ANONYMOUS = AuthContext(subject="anonymous", auth_type="none")


def is_auth_required() -> bool:
    return bool(get_settings().auth_required)


def _jwt_algorithms(raw: str) -> list[str]:
    algos = [a.strip() for a in (raw or "").split(",") if a.strip()]
    return algos or ["RS256"]


def extract_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    prefix = "bearer "
    if authorization.lower().startswith(prefix):
        token = authorization[len(prefix) :].strip()
        return token or None
    return None


@lru_cache(maxsize=8)
def _get_jwks_client(jwks_url: str) -> jwt.PyJWKClient:
    return jwt.PyJWKClient(jwks_url)


@lru_cache(maxsize=8)
def _discover_jwks_url(issuer_url: str, timeout_s: int) -> str:
    discovery = issuer_url.rstrip("/") + "/.well-known/openid-configuration"
    try:
        resp = requests.get(discovery, timeout=timeout_s)
        resp.raise_for_status()
        data = resp.json()
    except Exception as e:
        raise UnauthorizedError("OIDC discovery failed", {"err": str(e)}) from e

    jwks = data.get("jwks_uri")
    if not jwks:
        raise UnauthorizedError("OIDC discovery has no jwks_uri")
    return str(jwks)


def verify_token(token: str) -> dict[str, Any]:
    """
    Проверка токена у identity provider. Возвращает claims.
    """
    s = get_settings()
    algos = _jwt_algorithms(s.oidc_algorithms)
    audience = s.oidc_audience
    issuer = s.oidc_issuer_url
    leeway = int(s.jwt_clock_skew_sec or 30)

    kwargs: dict[str, Any] = {
        "algorithms": algos,
        "options": {"verify_aud": bool(audience)},
        "leeway": leeway,
    }
    if audience:
        kwargs["audience"] = audience
    if issuer:
        kwargs["issuer"] = issuer

    secret = (s.jwt_shared_secret or "").strip()
    if secret:
        try:
            return jwt.decode(token, secret, **kwargs)
        except jwt.PyJWTError as e:
            raise UnauthorizedError("Token verification failed", {"err": str(e)}) from e

    jwks_url = (s.oidc_jwks_url or "").strip()
    if not jwks_url:
        if not issuer:
            raise UnauthorizedError("Identity provider is not configured")
        jwks_url = _discover_jwks_url(issuer, int(s.oidc_discovery_timeout_sec or 5))

    try:
        key = _get_jwks_client(jwks_url).get_signing_key_from_jwt(token).key
        return jwt.decode(token, key=key, **kwargs)
    except jwt.PyJWTError as e:
        raise UnauthorizedError("Token verification failed", {"err": str(e)}) from e


def _map_claims(claims: dict[str, Any]) -> AuthUser:
    roles = claims.get("roles")
    if not isinstance(roles, list):
        roles = []
    return AuthUser(
        uid=str(claims.get("uid") or claims.get("sub") or "unknown"),
        email=claims.get("email") if isinstance(claims.get("email"), str) else None,
        roles=[r for r in roles if isinstance(r, str)],
    )


def authenticate_token(token: str | None) -> AuthContext:
    """
    Проверка токена (WS: query ?token=..., либо Authorization header).
    Если авторизация выключена: анонимный контекст.
    """
    if not is_auth_required():
        return ANONYMOUS
    if not token:
        raise UnauthorizedError("Missing auth token")
    claims = verify_token(token)
    user = _map_claims(claims)
    return AuthContext(subject=user.uid, auth_type="jwt", user=user, claims=claims)


def authenticate_bearer_header(authorization: str | None) -> AuthContext:
    if not is_auth_required():
        return ANONYMOUS
    token = extract_bearer(authorization)
    if not token:
        raise UnauthorizedError("Missing bearer token")
    return authenticate_token(token)
