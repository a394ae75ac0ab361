"""
Unit tests for the HTTP executor.

Uses httpx.MockTransport, so no network access is needed.

Tests cover:
- Method inference from tool names
- Endpoint, params and body handling
- Bearer auth from the secret provider
- Non-2xx responses and transport errors
- Client pooling per server
"""

import json

import httpx
import pytest

from shepgate.execution import HttpExecutor, StaticSecretProvider
from shepgate.execution.http import infer_method
from shepgate.schema import Server, ServerType, Tool


def _server(**kwargs) -> Server:
    defaults = {
        "id": "s1",
        "name": "api",
        "type": ServerType.HTTP,
        "base_url": "https://api.example.com",
    }
    defaults.update(kwargs)
    return Server(**defaults)


def _tool(name: str) -> Tool:
    return Tool(id=f"t-{name}", server_id="s1", name=name)


class Recorder:
    """MockTransport handler that records requests."""

    def __init__(self, status_code: int = 200, payload: object = None) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = status_code
        self.payload = {"ok": True} if payload is None else payload

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.payload)


class TestInferMethod:
    """Tests for infer_method."""

    @pytest.mark.parametrize(
        ("name", "method"),
        [
            ("http_get", "GET"),
            ("repos_get", "GET"),
            ("get_issue", "GET"),
            ("http_post", "POST"),
            ("create_issue", "POST"),
        ],
    )
    def test_infer(self, name: str, method: str) -> None:
        assert infer_method(name) == method


class TestInvoke:
    """Tests for HttpExecutor.invoke."""

    def test_get_with_params(self) -> None:
        recorder = Recorder(payload=[{"name": "repo"}])
        executor = HttpExecutor(transport=httpx.MockTransport(recorder))

        result = executor.invoke(
            _server(),
            _tool("http_get"),
            {"endpoint": "/repos", "params": {"org": "acme"}},
        )

        assert result.success
        assert result.result == [{"name": "repo"}]
        assert result.metadata["status_code"] == 200
        request = recorder.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/repos"
        assert request.url.params["org"] == "acme"

    def test_post_with_body(self) -> None:
        recorder = Recorder()
        executor = HttpExecutor(transport=httpx.MockTransport(recorder))

        executor.invoke(_server(), _tool("http_post"), {"endpoint": "/issues", "body": {"title": "bug"}})

        request = recorder.requests[0]
        assert request.method == "POST"
        assert json.loads(request.content) == {"title": "bug"}

    def test_explicit_method(self) -> None:
        recorder = Recorder()
        executor = HttpExecutor(transport=httpx.MockTransport(recorder))
        executor.invoke(_server(), _tool("remove_issue"), {"method": "delete", "endpoint": "/issues/1"})
        assert recorder.requests[0].method == "DELETE"

    def test_unsupported_method(self) -> None:
        executor = HttpExecutor(transport=httpx.MockTransport(Recorder()))
        result = executor.invoke(_server(), _tool("x"), {"method": "TRACE"})
        assert not result.success
        assert "TRACE" in result.error

    def test_bearer_auth_from_secret(self) -> None:
        recorder = Recorder()
        executor = HttpExecutor(
            secrets=StaticSecretProvider({"API_TOKEN": "tok-123"}),
            transport=httpx.MockTransport(recorder),
        )
        executor.invoke(_server(auth_secret="API_TOKEN"), _tool("http_get"), {})
        assert recorder.requests[0].headers["Authorization"] == "Bearer tok-123"

    def test_missing_secret_sends_no_auth(self) -> None:
        recorder = Recorder()
        executor = HttpExecutor(transport=httpx.MockTransport(recorder))
        executor.invoke(_server(auth_secret="UNDEFINED"), _tool("http_get"), {})
        assert "Authorization" not in recorder.requests[0].headers

    def test_error_status(self) -> None:
        recorder = Recorder(status_code=404, payload={"message": "Not Found"})
        executor = HttpExecutor(transport=httpx.MockTransport(recorder))

        result = executor.invoke(_server(), _tool("http_get"), {"endpoint": "/missing"})

        assert not result.success
        assert result.error == "HTTP 404"
        assert result.metadata["body"] == {"message": "Not Found"}

    def test_text_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="plain")

        executor = HttpExecutor(transport=httpx.MockTransport(handler))
        assert executor.invoke(_server(), _tool("http_get"), {}).result == "plain"

    def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        executor = HttpExecutor(transport=httpx.MockTransport(handler))
        result = executor.invoke(_server(), _tool("http_get"), {})

        assert not result.success
        assert "Request failed" in result.error
        assert len(executor.pool) == 0

    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("too slow", request=request)

        executor = HttpExecutor(timeout_seconds=2, transport=httpx.MockTransport(handler))
        result = executor.invoke(_server(), _tool("http_get"), {})

        assert not result.success
        assert "timed out" in result.error

    def test_missing_base_url(self) -> None:
        executor = HttpExecutor(transport=httpx.MockTransport(Recorder()))
        result = executor.invoke(_server(base_url=None), _tool("http_get"), {})
        assert not result.success


class TestPooling:
    """Tests for client reuse."""

    def test_client_reused_per_server(self) -> None:
        executor = HttpExecutor(transport=httpx.MockTransport(Recorder()))
        executor.invoke(_server(), _tool("http_get"), {})
        executor.invoke(_server(), _tool("http_get"), {})
        executor.invoke(_server(id="s2"), _tool("http_get"), {})
        assert len(executor.pool) == 2

    def test_close(self) -> None:
        executor = HttpExecutor(transport=httpx.MockTransport(Recorder()))
        executor.invoke(_server(), _tool("http_get"), {})
        executor.close()
        assert len(executor.pool) == 0

    def test_connections_reported(self) -> None:
        executor = HttpExecutor(transport=httpx.MockTransport(Recorder()))
        assert executor.connections() == []
        executor.invoke(_server(), _tool("http_get"), {})
        assert [server_id for server_id, _ in executor.connections()] == ["s1"]
