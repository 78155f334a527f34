"""ASGI middleware that signs each request with SigV4 before forwarding it.

The middleware is a pure ASGI wrapper rather than a ``BaseHTTPMiddleware``
so that the buffered body can be handed to the next application through a
replayed ``receive`` channel.

Request flow: buffer body -> sign -> set headers -> call next app.
"""

from __future__ import annotations

import logging
import time

from starlette.applications import Starlette
from starlette.datastructures import MutableHeaders
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from sigv4_middleware.body import BufferedBody
from sigv4_middleware.config import SigV4MiddlewareConfig
from sigv4_middleware.errors import BodyReadError
from sigv4_middleware.signer import Clock, SigV4Signer, utc_now

logger = logging.getLogger(__name__)


class SigV4Middleware:
    """Adds SigV4 authentication headers to every HTTP request.

    Headers set (existing values are replaced): ``X-Amz-Date``,
    ``X-Amz-Content-Sha256``, ``Authorization`` and, when the signer has a
    session token, ``X-Amz-Security-Token``. Responses pass through
    untouched and errors raised by the next application propagate unchanged.

    Attributes:
        app: The next ASGI application in the chain.
        signer: The configured SigV4 signer.
        metrics_enabled: Whether to update the Prometheus counters.
    """

    def __init__(self, app: ASGIApp, signer: SigV4Signer, metrics_enabled: bool = False) -> None:
        self.app = app
        self.signer = signer
        self.metrics_enabled = metrics_enabled

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.monotonic()
        method = scope["method"]
        path = scope["path"]

        try:
            body = await BufferedBody.read(receive)
        except BodyReadError as exc:
            logger.warning(
                "Aborting %s %s before signing: %s",
                method,
                path,
                exc.message,
                extra={"method": method, "path": path},
            )
            self._count_failure()
            response = JSONResponse(exc.to_dict(), status_code=exc.http_status)
            await response(scope, receive, send)
            return

        query = scope.get("query_string", b"").decode("utf-8")
        signed = self.signer.sign(method, path, query, body.data)

        # Copy the scope so the header list we mutate belongs to this request only.
        scope = dict(scope)
        scope["headers"] = list(scope.get("headers", []))
        headers = MutableHeaders(scope=scope)
        for name, value in signed.headers.items():
            headers[name] = value

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        logger.debug(
            "Signed %s %s for %s/%s",
            method,
            path,
            self.signer.service,
            self.signer.region,
            extra={
                "method": method,
                "path": path,
                "service": self.signer.service,
                "region": self.signer.region,
                "signed_headers": signed.canonical_request.signed_headers,
                "duration_ms": duration_ms,
            },
        )
        self._count_signed(len(body))

        await self.app(scope, body.replay(receive), send)

    def _count_signed(self, body_size: int) -> None:
        if not self.metrics_enabled:
            return
        import sigv4_middleware.metrics as _m

        if _m.requests_signed_total is not None:
            _m.requests_signed_total.labels(
                service=self.signer.service, region=self.signer.region
            ).inc()
        if body_size > 0 and _m.request_body_bytes_total is not None:
            _m.request_body_bytes_total.inc(body_size)

    def _count_failure(self) -> None:
        if not self.metrics_enabled:
            return
        import sigv4_middleware.metrics as _m

        if _m.body_read_failures_total is not None:
            _m.body_read_failures_total.inc()


def add_sigv4_signing(
    app: Starlette, config: SigV4MiddlewareConfig, clock: Clock = utc_now
) -> SigV4Signer:
    """Install SigV4Middleware on a FastAPI or Starlette application.

    Args:
        app: The application whose inbound requests should be signed.
        config: The loaded middleware configuration.
        clock: Time source, injectable for tests.

    Returns:
        The signer the middleware was configured with.

    Raises:
        ConfigurationError: If a required signing value is empty.
    """
    signer = SigV4Signer.from_config(config.signing, clock=clock)

    metrics_enabled = config.observability.metrics
    if metrics_enabled:
        import sigv4_middleware.metrics as _metrics

        _metrics.init_metrics()

    app.add_middleware(SigV4Middleware, signer=signer, metrics_enabled=metrics_enabled)
    logger.info(
        "SigV4 signing enabled for %s (service=%s, region=%s)",
        signer.endpoint,
        signer.service,
        signer.region,
    )
    return signer
