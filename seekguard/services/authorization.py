from __future__ import annotations

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from starlette.requests import Request

from seekguard.runtime.sessions import ClientIdentity, identify

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class Credentials:
    """
    authorization: raw Authorization header value ("" when absent)
    bearer_token: token following "Bearer " in that header, if any
    signed_token: token carried in the query string, if any
    host: client network origin, if known
    """
    authorization: str = ""
    bearer_token: Optional[str] = None
    signed_token: Optional[str] = None
    host: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request, *, token_param: str = "st") -> "Credentials":
        authorization = request.headers.get("authorization", "")
        bearer = None
        if authorization.startswith(BEARER_PREFIX):
            bearer = authorization[len(BEARER_PREFIX):].strip() or None
        return cls(
            authorization=authorization,
            bearer_token=bearer,
            signed_token=request.query_params.get(token_param) or None,
            host=request.client.host if request.client else None,
        )

    @property
    def token(self) -> Optional[str]:
        return self.bearer_token or self.signed_token

    def identity(self) -> ClientIdentity:
        return identify(
            authorization=self.authorization,
            signed_token=self.signed_token,
            host=self.host,
        )


class AuthorizationChecker(Protocol):
    def is_authorized(self, credentials: Credentials, resource_name: str) -> bool:
        ...


class PresenceAuthorizationChecker:
    """
    Placeholder policy: any non-empty bearer or query token is accepted without
    verification. Requests carrying neither pass only when auth is not required.

    This adds friction, not security. Use HmacTokenChecker for real deployments.
    """

    def __init__(self, *, auth_required: bool = True):
        self.auth_required = auth_required

    def is_authorized(self, credentials: Credentials, resource_name: str) -> bool:
        if credentials.token:
            return True
        return not self.auth_required


def sign_token(secret: str, resource_name: str, expires_at: int) -> str:
    """Issue a `<expires_at>.<signature>` token for one resource."""
    return f"{expires_at}.{_signature(secret, resource_name, expires_at)}"


def _signature(secret: str, resource_name: str, expires_at: int) -> str:
    message = f"{resource_name}:{expires_at}"
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


class HmacTokenChecker:
    """
    Verifies tokens produced by `sign_token`: HMAC-SHA256 over
    "<resource_name>:<expires_at>" keyed with a shared secret, not yet expired.
    """

    def __init__(
        self,
        secret: str,
        *,
        auth_required: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("HmacTokenChecker needs a non-empty secret")
        self.secret = secret
        self.auth_required = auth_required
        self._clock = clock

    def is_authorized(self, credentials: Credentials, resource_name: str) -> bool:
        token = credentials.token
        if not token:
            return not self.auth_required

        expires_s, sep, signature = token.partition(".")
        if not sep or not expires_s.isdigit():
            logger.warning("rejecting malformed token for %s", resource_name)
            return False

        expires_at = int(expires_s)
        expected = _signature(self.secret, resource_name, expires_at)
        if not hmac.compare_digest(expected, signature):
            logger.warning("rejecting token with bad signature for %s", resource_name)
            return False
        if expires_at < self._clock():
            logger.info("rejecting expired token for %s", resource_name)
            return False
        return True
