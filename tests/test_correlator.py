"""Tests for request/response correlation."""

import asyncio

import pytest

from acp_bridge.exceptions import (
    BridgeShutdownError,
    RemoteError,
    RequestTimeoutError,
)
from acp_bridge.rpc.correlator import RequestCorrelator
from acp_bridge.rpc.protocol import JsonRpcErrorObject, JsonRpcRequest, JsonRpcResponse


class _Outbox:
    """Records requests handed to the correlator's send function."""

    def __init__(self) -> None:
        self.requests: list[JsonRpcRequest] = []

    async def send(self, request: JsonRpcRequest) -> None:
        self.requests.append(request)


def _result(request_id: int, result: object) -> JsonRpcResponse:
    return JsonRpcResponse.model_validate({"jsonrpc": "2.0", "id": request_id, "result": result})


class TestRequestCorrelatorInit:
    """Test construction."""

    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValueError, match="timeout must be positive"):
            RequestCorrelator(_Outbox().send, timeout=0)

    def test_timeout_ms(self) -> None:
        assert RequestCorrelator(_Outbox().send, timeout=1.5).timeout_ms == 1500


class TestRequestCorrelatorCall:
    """Test issuing calls and resolving them."""

    @pytest.mark.asyncio
    async def test_ids_start_at_one_and_increase(self) -> None:
        outbox = _Outbox()
        correlator = RequestCorrelator(outbox.send)

        tasks = [asyncio.create_task(correlator.call(f"m{i}")) for i in range(3)]
        await asyncio.sleep(0)

        assert [r.id for r in outbox.requests] == [1, 2, 3]
        assert correlator.pending_count == 3
        for request in outbox.requests:
            correlator.handle_response(_result(int(request.id), request.method))
        assert await asyncio.gather(*tasks) == ["m0", "m1", "m2"]
        assert correlator.pending_count == 0

    @pytest.mark.asyncio
    async def test_out_of_order_responses(self) -> None:
        outbox = _Outbox()
        correlator = RequestCorrelator(outbox.send)
        first = asyncio.create_task(correlator.call("a"))
        second = asyncio.create_task(correlator.call("b"))
        await asyncio.sleep(0)

        correlator.handle_response(_result(2, "B"))
        correlator.handle_response(_result(1, "A"))

        assert await first == "A"
        assert await second == "B"

    @pytest.mark.asyncio
    async def test_null_result_resolves(self) -> None:
        outbox = _Outbox()
        correlator = RequestCorrelator(outbox.send)
        task = asyncio.create_task(correlator.call("m"))
        await asyncio.sleep(0)

        correlator.handle_response(_result(1, None))
        assert await task is None

    @pytest.mark.asyncio
    async def test_error_response_raises_remote_error(self) -> None:
        outbox = _Outbox()
        correlator = RequestCorrelator(outbox.send)
        task = asyncio.create_task(correlator.call("m"))
        await asyncio.sleep(0)

        correlator.handle_response(
            JsonRpcResponse(
                id=1, error=JsonRpcErrorObject(code=-32000, message="nope", data={"x": 1})
            )
        )
        with pytest.raises(RemoteError, match="^nope$") as exc_info:
            await task
        assert exc_info.value.code == -32000
        assert exc_info.value.data == {"x": 1}

    @pytest.mark.asyncio
    async def test_error_without_message_raises_remote_error(self) -> None:
        correlator = RequestCorrelator(_Outbox().send)
        task = asyncio.create_task(correlator.call("m"))
        await asyncio.sleep(0)

        correlator.handle_response(
            JsonRpcResponse.model_validate({"jsonrpc": "2.0", "id": 1, "error": {"code": -32000}})
        )
        with pytest.raises(RemoteError) as exc_info:
            await task
        assert str(exc_info.value) == ""
        assert exc_info.value.code == -32000
        assert correlator.pending_count == 0

    @pytest.mark.asyncio
    async def test_bare_error_value_raises_remote_error(self) -> None:
        correlator = RequestCorrelator(_Outbox().send)
        task = asyncio.create_task(correlator.call("m"))
        await asyncio.sleep(0)

        correlator.handle_response(
            JsonRpcResponse.model_validate({"jsonrpc": "2.0", "id": 1, "error": "boom"})
        )
        with pytest.raises(RemoteError, match="^boom$") as exc_info:
            await task
        assert exc_info.value.code is None
        assert exc_info.value.data == "boom"

    @pytest.mark.asyncio
    async def test_rejects_blank_method(self) -> None:
        correlator = RequestCorrelator(_Outbox().send)
        with pytest.raises(ValueError):
            await correlator.call("  ")
        assert correlator.last_id == 0

    @pytest.mark.asyncio
    async def test_send_failure_removes_entry(self) -> None:
        async def failing_send(request: JsonRpcRequest) -> None:
            raise ConnectionResetError("closed")

        correlator = RequestCorrelator(failing_send)
        with pytest.raises(ConnectionResetError):
            await correlator.call("m")
        assert correlator.pending_count == 0

    @pytest.mark.asyncio
    async def test_caller_cancellation_removes_entry(self) -> None:
        correlator = RequestCorrelator(_Outbox().send)
        task = asyncio.create_task(correlator.call("m"))
        await asyncio.sleep(0)
        assert correlator.pending_count == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert correlator.pending_count == 0


class TestRequestCorrelatorResponses:
    """Test handling of unmatched and late responses."""

    def test_unknown_id_is_ignored(self) -> None:
        correlator = RequestCorrelator(_Outbox().send)
        assert correlator.handle_response(_result(99, "x")) is False

    def test_null_id_is_ignored(self) -> None:
        correlator = RequestCorrelator(_Outbox().send)
        response = JsonRpcResponse.failure(None, -32700, "Parse error")
        assert correlator.handle_response(response) is False

    @pytest.mark.asyncio
    async def test_duplicate_response_is_ignored(self) -> None:
        correlator = RequestCorrelator(_Outbox().send)
        task = asyncio.create_task(correlator.call("m"))
        await asyncio.sleep(0)

        assert correlator.handle_response(_result(1, "first")) is True
        assert correlator.handle_response(_result(1, "second")) is False
        assert await task == "first"


class TestRequestCorrelatorTimeout:
    """Test per-call timeouts."""

    @pytest.mark.asyncio
    async def test_times_out_with_method_in_message(self) -> None:
        correlator = RequestCorrelator(_Outbox().send, timeout=0.05)

        with pytest.raises(RequestTimeoutError, match="Request timeout after 50ms: session/new"):
            await correlator.call("session/new")
        assert correlator.pending_count == 0

    @pytest.mark.asyncio
    async def test_late_response_after_timeout_is_dropped(self) -> None:
        correlator = RequestCorrelator(_Outbox().send, timeout=0.05)
        with pytest.raises(RequestTimeoutError):
            await correlator.call("m")

        assert correlator.handle_response(_result(1, "late")) is False

    @pytest.mark.asyncio
    async def test_response_cancels_timer(self) -> None:
        correlator = RequestCorrelator(_Outbox().send, timeout=0.05)
        task = asyncio.create_task(correlator.call("m"))
        await asyncio.sleep(0)
        correlator.handle_response(_result(1, "ok"))

        await asyncio.sleep(0.1)
        assert await task == "ok"


class TestRequestCorrelatorRejectAll:
    """Test bulk rejection and id reset."""

    @pytest.mark.asyncio
    async def test_reject_all_fails_every_call(self) -> None:
        correlator = RequestCorrelator(_Outbox().send)
        tasks = [asyncio.create_task(correlator.call("m")) for _ in range(2)]
        await asyncio.sleep(0)

        rejected = correlator.reject_all(lambda: BridgeShutdownError("ACP client shutdown"))

        assert rejected == 2
        for task in tasks:
            with pytest.raises(BridgeShutdownError, match="ACP client shutdown"):
                await task

    @pytest.mark.asyncio
    async def test_reset_ids_restarts_at_one(self) -> None:
        outbox = _Outbox()
        correlator = RequestCorrelator(outbox.send)
        task = asyncio.create_task(correlator.call("m"))
        await asyncio.sleep(0)

        with pytest.raises(RuntimeError):
            correlator.reset_ids()

        correlator.reject_all(lambda: BridgeShutdownError("x"))
        with pytest.raises(BridgeShutdownError):
            await task
        correlator.reset_ids()

        next_call = asyncio.create_task(correlator.call("again"))
        await asyncio.sleep(0)
        assert outbox.requests[-1].id == 1
        correlator.handle_response(_result(1, "ok"))
        assert await next_call == "ok"
