import time
from typing import Optional

from pydantic import BaseModel
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed

from mcp.server.fastmcp.utilities.logging import get_logger

from .config import RPC_ENDPOINT

logger = get_logger(__name__)


class RPCStatus(BaseModel):
    latency_ms: int
    is_valid: bool
    error: Optional[str] = None


async def check_rpc_speed(rpc_url: str) -> RPCStatus:
    """Measures one get_slot round trip against `rpc_url`."""
    start = time.monotonic()
    try:
        async with AsyncClient(rpc_url, commitment=Confirmed) as client:
            await client.get_slot()
        latency_ms = int((time.monotonic() - start) * 1000)
        logger.debug(f"RPC {rpc_url} answered in {latency_ms} ms")
        return RPCStatus(latency_ms=latency_ms, is_valid=True)
    except Exception as e:
        logger.warning(f"RPC {rpc_url} check failed: {e}")
        return RPCStatus(latency_ms=-1, is_valid=False, error=str(e) or "Invalid RPC")


def create_client(rpc_url: Optional[str] = None) -> AsyncClient:
    """Client on the user's RPC when one is given, otherwise on the configured endpoint."""
    if rpc_url and rpc_url.strip():
        return AsyncClient(rpc_url.strip(), commitment=Confirmed)
    return AsyncClient(RPC_ENDPOINT, commitment=Confirmed)
