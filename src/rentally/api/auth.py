"""Bearer-token authentication for operator endpoints.

Operators sign in with the company's OIDC provider; ``/ops`` routes accept
the resulting RS256 ID token and resolve its subject against the
``operators`` table. Signing keys come from the provider's JWKS document,
cached for ten minutes and refetched once when a token names an unknown kid.
"""

from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass
from typing import Any

import jwt
import requests
from fastapi import HTTPException, Request

from rentally.infra.db import txn

JWKS_TTL_S = 600


@dataclass
class CurrentOperator:
    """Authenticated operator context."""

    id: int
    external_subject: str
    email: str | None
    name: str | None


@dataclass(frozen=True)
class OidcConfig:
    issuer: str
    audience: str
    jwks_url: str
    authorized_parties: frozenset[str]

    @classmethod
    def from_env(cls) -> OidcConfig | None:
        """None when any of OIDC_ISSUER, OIDC_AUDIENCE, OIDC_JWKS_URL is unset."""
        issuer = os.environ.get("OIDC_ISSUER", "")
        audience = os.environ.get("OIDC_AUDIENCE", "")
        jwks_url = os.environ.get("OIDC_JWKS_URL", "")
        if not (issuer and audience and jwks_url):
            return None
        parties = os.environ.get("OIDC_AUTHORIZED_PARTIES", "").split(",")
        return cls(
            issuer=issuer,
            audience=audience,
            jwks_url=jwks_url,
            authorized_parties=frozenset(p.strip() for p in parties if p.strip()),
        )


def _unauthorized(detail: str = "Invalid token") -> HTTPException:
    return HTTPException(status_code=401, detail=detail)


def _fetch_jwks(jwks_url: str) -> dict[str, Any]:
    resp = requests.get(jwks_url, timeout=10)
    resp.raise_for_status()
    return resp.json()


class _JwksCache:
    def __init__(self, ttl_s: float = JWKS_TTL_S) -> None:
        self._ttl_s = ttl_s
        self._lock = threading.Lock()
        self._keys: dict[str, dict[str, Any]] | None = None
        self._loaded_at = 0.0

    def clear(self) -> None:
        with self._lock:
            self._keys = None
            self._loaded_at = 0.0

    def _load(self, jwks_url: str, refresh: bool) -> dict[str, dict[str, Any]]:
        with self._lock:
            now = time.time()
            stale = now - self._loaded_at >= self._ttl_s
            if self._keys is None or stale or refresh:
                try:
                    document = _fetch_jwks(jwks_url)
                except requests.RequestException:
                    raise HTTPException(status_code=503, detail="Auth temporarily unavailable")
                self._keys = {k["kid"]: k for k in document.get("keys", []) if "kid" in k}
                self._loaded_at = now
            return self._keys

    def key_for(self, jwks_url: str, kid: str) -> dict[str, Any] | None:
        key = self._load(jwks_url, refresh=False).get(kid)
        if key is None:
            # Provider may have rotated its keys since the last fetch
            key = self._load(jwks_url, refresh=True).get(kid)
        return key


_jwks = _JwksCache()


def reset_jwks_cache() -> None:
    _jwks.clear()


def verify_token(token: str) -> str:
    """Verify an RS256 JWT and return its subject claim.

    Raises:
        HTTPException: 401 if the token is invalid, 503 if JWKS is unreachable.
    """
    config = OidcConfig.from_env()
    if config is None:
        raise _unauthorized("OIDC not configured")

    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except jwt.exceptions.DecodeError:
        raise _unauthorized()
    if not kid:
        raise _unauthorized()

    key_data = _jwks.key_for(config.jwks_url, kid)
    if key_data is None:
        raise _unauthorized()

    try:
        claims = jwt.decode(
            token,
            jwt.algorithms.RSAAlgorithm.from_jwk(key_data),
            algorithms=["RS256"],
            issuer=config.issuer,
            audience=config.audience,
            options={"require": ["exp", "iss", "aud", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except (jwt.InvalidTokenError, ValueError):
        raise _unauthorized()

    azp = claims.get("azp")
    if config.authorized_parties and azp is not None and azp not in config.authorized_parties:
        raise _unauthorized()

    subject = claims.get("sub")
    if not subject:
        raise _unauthorized()
    return subject


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization")
    if not header:
        raise _unauthorized("Missing authorization header")
    scheme, _, token = header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise _unauthorized("Invalid authorization header")
    return token


def _get_operator_from_db(external_subject: str) -> CurrentOperator | None:
    with txn() as cur:
        cur.execute(
            "SELECT id, external_subject, email, name FROM operators WHERE external_subject = %s",
            (external_subject,),
        )
        row = cur.fetchone()
    return CurrentOperator(*row) if row else None


def get_current_operator(request: Request) -> CurrentOperator:
    """FastAPI dependency: the operator behind the bearer token.

    Raises:
        HTTPException: 401 if the token is invalid or missing, 403 if the
            subject is not a registered operator.
    """
    operator = _get_operator_from_db(verify_token(_bearer_token(request)))
    if operator is None:
        raise HTTPException(status_code=403, detail="Operator not found")
    return operator
