import importlib # Needed for reloading
import sys
import types
from pathlib import Path
from typing import Generator
from unittest.mock import AsyncMock, MagicMock # For mocking Context and RPC

import pytest
from pytest import MonkeyPatch
from solders.hash import Hash
from solders.keypair import Keypair

# Ensure the package can be imported
ROOT_DIR = Path(__file__).parent.parent.parent
sys.path.insert(0, str(ROOT_DIR))

from tests.integration.helpers import create_mock_blockhash_resp, make_swap_instructions

# --- Mock Context Fixture ---

@pytest.fixture(scope="function")
def mock_context() -> MagicMock:
    """Provides a mock MCP Context object."""
    return MagicMock()

# --- RPC and Quote Service Fixtures ---

@pytest.fixture(scope="function")
def blockhash() -> Hash:
    return Hash.new_unique()


@pytest.fixture(scope="function")
def mock_client(blockhash: Hash) -> AsyncMock:
    """AsyncClient stand-in that serves a fixed blockhash."""
    client = AsyncMock()
    client.get_latest_blockhash.return_value = create_mock_blockhash_resp(blockhash)
    return client


@pytest.fixture(scope="function")
def mock_swap_client() -> AsyncMock:
    """Quote service stand-in that always finds a route."""
    swap_client = AsyncMock()

    async def build(user_public_key, input_mint, output_mint, amount, dexes=None):
        return make_swap_instructions(user_public_key)

    swap_client.build_swap_instructions.side_effect = build
    return swap_client

# --- Patched Server Module Fixture ---

@pytest.fixture(scope="function")
def temp_wallets_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Creates a temporary directory and path for the wallets JSON file."""
    temp_dir = tmp_path_factory.mktemp("holders_data")
    return temp_dir / "test_wallets.json"


@pytest.fixture(scope="function")
def admin_keypair() -> Keypair:
    return Keypair()


@pytest.fixture(scope="function")
def patched_server_module(
    monkeypatch: MonkeyPatch, temp_wallets_path: Path, admin_keypair: Keypair
) -> Generator[types.ModuleType, None, None]:
    """
    Points WALLETS_FILE at a temp path and configures the admin key, then
    provides the reloaded server module.
    """
    # Use setenv so the reloaded modules pick it up via os.getenv
    monkeypatch.setenv("WALLETS_FILE", str(temp_wallets_path))
    monkeypatch.setenv("ADMIN_PRIVATE_KEY", str(admin_keypair))
    try:
        import mcp_solana_holders.config
        import mcp_solana_holders.server
        importlib.reload(mcp_solana_holders.config)
        reloaded_server = importlib.reload(mcp_solana_holders.server)
    except Exception as e:
        pytest.fail(f"Failed to reload mcp_solana_holders.server: {e}")

    yield reloaded_server
