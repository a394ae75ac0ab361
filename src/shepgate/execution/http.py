"""
HTTP executor for ShepGate.

Calls REST-style downstream servers with httpx. Each server gets one pooled
``httpx.Client`` bound to its ``base_url``; the Authorization header is set
when the client is opened, from the server's ``auth_secret`` looked up in
the SecretProvider.

Argument conventions:
    endpoint: Path appended to the server base URL (default "/")
    params:   Query parameters
    body:     JSON body for non-GET calls
    method:   Explicit HTTP method; otherwise tools named ``*_get`` or
              ``get_*`` use GET and everything else uses POST
"""

import logging
import time
from typing import Any, Callable

import httpx

from shepgate.execution.base import ExecutionResult, Executor
from shepgate.execution.pool import DEFAULT_IDLE_TIMEOUT_SECONDS, ConnectionPool
from shepgate.execution.secrets import SecretProvider, StaticSecretProvider
from shepgate.schema import Server, Tool

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
ALLOWED_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})


def infer_method(tool_name: str) -> str:
    """GET for read-style tool names, POST otherwise."""
    lowered = tool_name.lower()
    if lowered.endswith("_get") or lowered.startswith("get_"):
        return "GET"
    return "POST"


class HttpExecutor(Executor):
    """
    Invoke tools on HTTP servers.

    Args:
        secrets: Resolves ``Server.auth_secret`` names to tokens
        timeout_seconds: Per-request timeout
        idle_timeout: Seconds after which an unused client is closed
        transport: Optional httpx transport (tests use httpx.MockTransport)
        clock: Time source for the connection pool
    """

    def __init__(
        self,
        secrets: SecretProvider | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.secrets = secrets or StaticSecretProvider()
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self.pool: ConnectionPool[httpx.Client] = ConnectionPool(
            factory=self._open_client,
            closer=lambda client: client.close(),
            idle_timeout=idle_timeout,
            clock=clock,
        )

    def invoke(self, server: Server, tool: Tool, arguments: dict[str, Any]) -> ExecutionResult:
        if not server.base_url:
            return ExecutionResult.fail(f"Server '{server.name}' has no base URL")

        method = str(arguments.get("method") or infer_method(tool.name)).upper()
        if method not in ALLOWED_METHODS:
            return ExecutionResult.fail(f"Unsupported HTTP method: {method}")

        endpoint = str(arguments.get("endpoint") or "/")
        params = arguments.get("params")
        body = arguments.get("body")

        client = self.pool.acquire(server)
        try:
            response = client.request(
                method,
                endpoint,
                params=params,
                json=body if method != "GET" else None,
            )
        except httpx.TimeoutException:
            return ExecutionResult.fail(
                f"Request timed out after {self.timeout_seconds}s",
                method=method,
                endpoint=endpoint,
            )
        except httpx.RequestError as e:
            self.pool.close(server.id)
            return ExecutionResult.fail(
                f"Request failed: {e}",
                method=method,
                endpoint=endpoint,
            )

        payload = _decode_body(response)
        logger.debug("%s %s%s -> %d", method, server.base_url, endpoint, response.status_code)

        if response.is_success:
            return ExecutionResult.ok(
                payload,
                status_code=response.status_code,
                method=method,
                endpoint=endpoint,
            )
        return ExecutionResult.fail(
            f"HTTP {response.status_code}",
            status_code=response.status_code,
            method=method,
            endpoint=endpoint,
            body=payload,
        )

    def connections(self) -> list[tuple[str, float]]:
        return self.pool.status()

    def close(self) -> None:
        self.pool.close_all()

    def _open_client(self, server: Server) -> httpx.Client:
        headers = {"Accept": "application/json"}
        if server.auth_secret:
            token = self.secrets.get_secret(server.auth_secret)
            if token:
                headers["Authorization"] = f"Bearer {token}"
            else:
                logger.warning(
                    "Secret %s for server %s is not defined", server.auth_secret, server.name
                )
        return httpx.Client(
            base_url=server.base_url or "",
            headers=headers,
            timeout=self.timeout_seconds,
            follow_redirects=True,
            transport=self._transport,
        )


def _decode_body(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            pass
    return response.text
