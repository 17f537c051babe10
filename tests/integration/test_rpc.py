from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mcp_solana_holders import rpc

# Mark all tests in this module as asyncio
pytestmark = pytest.mark.asyncio


@patch('mcp_solana_holders.rpc.AsyncClient')
async def test_check_rpc_speed_valid(MockAsyncClient: MagicMock):
    mock_client_instance = AsyncMock()
    MockAsyncClient.return_value.__aenter__.return_value = mock_client_instance

    status = await rpc.check_rpc_speed("http://localhost:8899")

    assert status.is_valid is True
    assert status.latency_ms >= 0
    assert status.error is None
    mock_client_instance.get_slot.assert_awaited_once()


@patch('mcp_solana_holders.rpc.AsyncClient')
async def test_check_rpc_speed_invalid(MockAsyncClient: MagicMock):
    mock_client_instance = AsyncMock()
    mock_client_instance.get_slot.side_effect = ConnectionError("connection refused")
    MockAsyncClient.return_value.__aenter__.return_value = mock_client_instance

    status = await rpc.check_rpc_speed("http://localhost:1")

    assert status.is_valid is False
    assert status.latency_ms == -1
    assert "connection refused" in status.error


@patch('mcp_solana_holders.rpc.AsyncClient')
async def test_create_client_prefers_user_url(MockAsyncClient: MagicMock):
    rpc.create_client("  https://my.rpc  ")
    assert MockAsyncClient.call_args.args[0] == "https://my.rpc"

    rpc.create_client("   ")
    assert MockAsyncClient.call_args.args[0] == rpc.RPC_ENDPOINT
