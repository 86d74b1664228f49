from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Dict, Generic, Optional, TypeVar, Union

import anyio
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response, StreamingResponse

from seekguard.core.errors import (
    AuthorizationFailure,
    ClientDisconnected,
    NotFound,
    RangeNotSatisfiable,
    SeekGuardError,
    StreamFailure,
)
from seekguard.runtime.sessions import ClientIdentity, SessionStore
from seekguard.services.authorization import AuthorizationChecker, Credentials
from seekguard.services.bitrate import BitrateEstimator
from seekguard.services.byte_range import ByteSpan, parse_range_header
from seekguard.services.resource_service import ResourceHandle, ResourceService
from seekguard.services.throttle import DisconnectAwareTimer, Receive, SeekThrottlePolicy, ThrottleTimer

T = TypeVar("T")

# Sent to the client on every video response to discourage saving the file.
ANTI_DOWNLOAD_HEADERS = {
    "Content-Disposition": "inline",
    "X-Content-Type-Options": "nosniff",
    "Cache-Control": "no-store",
    "Accept-Ranges": "bytes",
}

_DETAILS = {401: "Unauthorized", 404: "Not found", 499: "Client closed request", 500: "Server error"}


@dataclass(frozen=True)
class Proceed(Generic[T]):
    value: T


@dataclass(frozen=True)
class Halt:
    """Terminal outcome of a stage: the request ends with this status."""
    status_code: int
    detail: str = ""
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def for_error(cls, exc: SeekGuardError, headers: Optional[Dict[str, str]] = None) -> "Halt":
        return cls(exc.status_code, _DETAILS.get(exc.status_code, ""), dict(headers or {}))

    def to_response(self) -> Response:
        return PlainTextResponse(self.detail, status_code=self.status_code, headers=self.headers)


StageResult = Union[Proceed[T], Halt]


@dataclass(frozen=True)
class Transfer:
    resource: ResourceHandle
    span: ByteSpan
    partial: bool

    @property
    def status_code(self) -> int:
        return 206 if self.partial else 200


class RangeStreamingEngine:
    """
    Serves byte ranges of files under a resource root, delaying forward seeks.

    A request moves through Authorize -> Resolve -> Determine span -> Throttle ->
    Respond & stream -> Completion. Each stage returns Proceed or Halt, so every
    exit path can be driven on its own. Session offsets are only written once the
    last byte of a transfer has been handed to the server.
    """

    def __init__(
        self,
        *,
        resources: ResourceService,
        sessions: SessionStore,
        authorizer: AuthorizationChecker,
        bitrate: BitrateEstimator,
        policy: SeekThrottlePolicy,
        timer: Optional[ThrottleTimer] = None,
        chunk_size: int = 64 * 1024,
        token_param: str = "st",
    ):
        self.resources = resources
        self.sessions = sessions
        self.authorizer = authorizer
        self.bitrate = bitrate
        self.policy = policy
        self.timer = timer or DisconnectAwareTimer()
        self.chunk_size = chunk_size
        self.token_param = token_param
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    # ---------- entry points ----------

    async def handle(self, request: Request, name: str) -> Response:
        try:
            return await self._handle(request, name, send_body=request.method.upper() != "HEAD")
        except Exception:
            self.logger.exception("unexpected failure serving %r", name)
            return Halt(500, "Server error").to_response()

    async def _handle(self, request: Request, name: str, *, send_body: bool) -> Response:
        credentials = Credentials.from_request(request, token_param=self.token_param)

        auth = self.authorize(credentials, name)
        if isinstance(auth, Halt):
            return auth.to_response()

        resolved = await self.resolve(name)
        if isinstance(resolved, Halt):
            return resolved.to_response()
        resource = resolved.value

        planned = self.determine_span(resource, request.headers.get("range"))
        if isinstance(planned, Halt):
            return planned.to_response()
        transfer = planned.value

        headers = self.response_headers(transfer)
        if not send_body:
            return Response(status_code=transfer.status_code, headers=headers)

        identity = credentials.identity()
        throttled = await self.throttle(identity, transfer, request.receive)
        if isinstance(throttled, Halt):
            return throttled.to_response()

        return await self.respond(identity, transfer, headers)

    # ---------- stages ----------

    def authorize(self, credentials: Credentials, name: str) -> StageResult[None]:
        if not self.authorizer.is_authorized(credentials, name):
            return Halt.for_error(AuthorizationFailure(name))
        return Proceed(None)

    async def resolve(self, name: str) -> StageResult[ResourceHandle]:
        try:
            return Proceed(await self.resources.resolve(name))
        except NotFound as exc:
            return Halt.for_error(exc)

    def determine_span(self, resource: ResourceHandle, range_header: Optional[str]) -> StageResult[Transfer]:
        if range_header:
            try:
                span = parse_range_header(range_header, size=resource.size)
            except RangeNotSatisfiable as exc:
                self.logger.info("416 for %s: %s (%r)", resource.name, exc.detail, range_header)
                return Halt.for_error(exc, {**ANTI_DOWNLOAD_HEADERS, "Content-Range": f"bytes */{exc.size}"})
            if span is not None:
                return Proceed(Transfer(resource, span, partial=True))
        return Proceed(Transfer(resource, ByteSpan.whole(resource.size), partial=False))

    async def throttle(self, identity: ClientIdentity, transfer: Transfer, receive: Receive) -> StageResult[int]:
        session = self.sessions.get(identity)
        bitrate = await self.bitrate.estimate(transfer.resource)
        # Measured from the byte after the last one served, so sequential reads are free.
        delay_ms = self.policy.compute_delay(session.resume_offset, transfer.span.start, bitrate)
        if delay_ms > 0:
            self.logger.info(
                "throttling %s by %dms (last=%d start=%d bitrate=%.0f)",
                transfer.resource.name, delay_ms, session.last_offset, transfer.span.start, bitrate,
            )
        try:
            await self.timer.wait(delay_ms, receive)
        except ClientDisconnected as exc:
            return Halt.for_error(exc)
        return Proceed(delay_ms)

    def response_headers(self, transfer: Transfer) -> Dict[str, str]:
        headers = {
            **ANTI_DOWNLOAD_HEADERS,
            "Content-Type": transfer.resource.content_type,
            "Content-Length": str(transfer.span.length),
        }
        if transfer.partial:
            headers["Content-Range"] = transfer.span.content_range(transfer.resource.size)
        return headers

    async def respond(self, identity: ClientIdentity, transfer: Transfer, headers: Dict[str, str]) -> Response:
        # Checked before headers go out so an unreadable file still becomes a clean 500.
        # The handle itself is only opened once the body starts streaming.
        await anyio.to_thread.run_sync(_check_readable, transfer.resource.path)
        return StreamingResponse(
            self.stream(identity, transfer),
            status_code=transfer.status_code,
            headers=headers,
        )

    async def stream(self, identity: ClientIdentity, transfer: Transfer) -> AsyncIterator[bytes]:
        span = transfer.span
        name = transfer.resource.name
        try:
            f = await anyio.open_file(transfer.resource.path, mode="rb")
        except OSError as e:
            self.logger.exception("open failed on %s", name)
            raise StreamFailure(f"open failed on {name}") from e

        try:
            await f.seek(span.start)
            remaining = span.length
            while remaining > 0:
                try:
                    chunk = await f.read(min(self.chunk_size, remaining))
                except OSError as e:
                    self.logger.exception("read failed on %s", name)
                    raise StreamFailure(f"read failed on {name}") from e
                if not chunk:
                    self.logger.error("%s ended early, %d bytes short", name, remaining)
                    raise StreamFailure(f"{name} truncated")
                remaining -= len(chunk)
                yield chunk
        except (GeneratorExit, anyio.get_cancelled_exc_class()):
            self.logger.info("transfer of %s bytes %d-%d aborted by client", name, span.start, span.end)
            raise
        finally:
            with anyio.CancelScope(shield=True):
                await f.aclose()

        if span.length > 0:
            self.sessions.record_completion(identity, span.end)
            self.logger.debug("completed %s bytes %d-%d", name, span.start, span.end)


def _check_readable(path: Path) -> None:
    with open(path, "rb"):
        pass
