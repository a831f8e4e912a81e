import time

import aiohttp

from smart_proxy.main.logging import get_logger

logger = get_logger(__name__)

# IdP calls are a single round trip each; nothing here retries.
REQUEST_TIMEOUT_SECONDS = 30.0
CONNECT_TIMEOUT_SECONDS = 10.0
SLOW_DNS_THRESHOLD_MS = 2000


class AioHttpClient:
    """Pooled client session shared by every outbound call to the IdP."""

    session: aiohttp.ClientSession = None

    def _create_trace_config(self) -> aiohttp.TraceConfig:
        """Create TraceConfig for DNS timing and upstream request logging."""
        trace = aiohttp.TraceConfig()

        async def on_dns_start(session, trace_config_ctx, params):
            trace_config_ctx._dns_start_time = time.perf_counter()

        async def on_dns_end(session, trace_config_ctx, params):
            if hasattr(trace_config_ctx, "_dns_start_time"):
                dns_duration_ms = (time.perf_counter() - trace_config_ctx._dns_start_time) * 1000

                if dns_duration_ms > SLOW_DNS_THRESHOLD_MS:
                    logger.warning(
                        f"SLOW DNS resolution detected for {params.host}",
                        extra={
                            "event": "dns_slow",
                            "host": params.host,
                            "duration_ms": int(dns_duration_ms),
                            "threshold_ms": SLOW_DNS_THRESHOLD_MS,
                        },
                    )

        async def on_request_start(session, trace_config_ctx, params):
            trace_config_ctx._request_start_time = time.perf_counter()

        async def on_request_end(session, trace_config_ctx, params):
            duration_ms = None
            if hasattr(trace_config_ctx, "_request_start_time"):
                duration_ms = int(
                    (time.perf_counter() - trace_config_ctx._request_start_time) * 1000
                )

            # Query strings are dropped, they may carry codes
            logger.debug(
                f"IdP request {params.method} {params.url.with_query(None)} -> {params.response.status}",
                extra={
                    "event": "idp_request",
                    "method": params.method,
                    "status_code": params.response.status,
                    "duration_ms": duration_ms,
                },
            )

        async def on_request_exception(session, trace_config_ctx, params):
            logger.warning(
                f"IdP request {params.method} {params.url.with_query(None)} failed",
                extra={
                    "event": "idp_request_failed",
                    "method": params.method,
                    "error": str(params.exception),
                    "error_type": type(params.exception).__name__,
                },
            )

        trace.on_dns_resolvehost_start.append(on_dns_start)
        trace.on_dns_resolvehost_end.append(on_dns_end)
        trace.on_request_start.append(on_request_start)
        trace.on_request_end.append(on_request_end)
        trace.on_request_exception.append(on_request_exception)

        return trace

    def start(self):
        timeout = aiohttp.ClientTimeout(
            total=REQUEST_TIMEOUT_SECONDS,
            connect=CONNECT_TIMEOUT_SECONDS,
        )

        connector = aiohttp.TCPConnector(
            limit=100,
            limit_per_host=30,  # Practically every call goes to one IdP host
            enable_cleanup_closed=True,
            use_dns_cache=True,
            ttl_dns_cache=300,
        )

        self.session = aiohttp.ClientSession(
            timeout=timeout,
            connector=connector,
            trace_configs=[self._create_trace_config()],
        )

    @property
    def is_started(self) -> bool:
        return self.session is not None

    async def stop(self):
        if self.session is not None:
            await self.session.close()
        self.session = None

    def __call__(self) -> aiohttp.ClientSession:
        assert self.session is not None
        return self.session


aiohttp_client = AioHttpClient()
