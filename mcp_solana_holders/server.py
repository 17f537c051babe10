# MCP Solana Holders
import json
from typing import Annotated, List, Optional

from pydantic import Field
from solders.keypair import Keypair

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.utilities.logging import get_logger

from .builder import CampaignBuildError, build_airdrop_transactions
from .config import ADMIN_PRIVATE_KEY, LAMPORTS_PER_SOL, RPC_ENDPOINT, WALLETS_FILE
from .funding import prepare_funding_allocations, total_admin_funding
from .jupiter import JupiterSwapClient
from .orchestrator import CampaignExecutionError, execute_airdrop, reconcile_balances
from .rpc import check_rpc_speed, create_client
from .wallets import generate_wallets as generate_wallet_set
from .wallets import load_wallets, remove_wallets, save_wallets

logger = get_logger(__name__)

# --- Server Setup ---
mcp = FastMCP(name="Solana Holders Campaign")

NO_WALLETS = "No wallets generated yet. Call generate_wallets first."

# --- MCP Tools ---

@mcp.tool()
async def generate_wallets(
    context: Context,
    admin_public_key: str = Field(..., description="Public key of the funding (admin) wallet."),
    quantity: int = Field(..., description="Number of wallets to generate."),
    mode: str = Field(..., description="'fixed' for one amount, 'random' for a range."),
    amount: float = Field(..., description="SOL each wallet swaps (minimum in random mode)."),
    max_amount: Annotated[Optional[float], Field(description="Maximum SOL in random mode.")] = None,
) -> str:
    """Generates a new wallet set and saves it, replacing any previous one."""
    logger.info(f"Received generate_wallets request: admin={admin_public_key}, quantity={quantity}, mode={mode}")
    try:
        wallets = generate_wallet_set(admin_public_key, quantity, mode, amount, max_amount)
        save_wallets(WALLETS_FILE, wallets)
        total_sol = sum(w.sol_amount for w in wallets[1:])
        return f"Generated {quantity} wallets intending to swap {total_sol:.6f} SOL in total."
    except ValueError as e:
        return f"Invalid wallet generation request: {e}"
    except Exception as e:
        logger.exception(f"Error generating wallets: {e}")
        return f"An error occurred while generating wallets: {e}"


@mcp.tool()
async def get_wallets(context: Context) -> str:
    """Lists the saved wallets without their secret keys."""
    wallets = load_wallets(WALLETS_FILE)
    if not wallets:
        return json.dumps({"wallets": []})
    return json.dumps(
        {"wallets": [w.model_dump(mode="json", exclude={"secret_key"}) for w in wallets]},
        indent=2,
    )


@mcp.tool()
async def clear_wallets(context: Context) -> str:
    """Deletes the saved wallet set."""
    if remove_wallets(WALLETS_FILE):
        return "Wallets removed."
    return "No wallets to remove."


@mcp.tool()
async def plan_funding(context: Context) -> str:
    """Shows how many lamports every wallet must receive and what the admin sends in total."""
    wallets = load_wallets(WALLETS_FILE)
    if not wallets:
        return NO_WALLETS
    funded = prepare_funding_allocations(wallets)
    total = total_admin_funding(funded)
    return json.dumps(
        {
            "admin": funded[0].public_key,
            "total_lamports": total,
            "total_sol": total / LAMPORTS_PER_SOL,
            "wallets": [
                {
                    "index": w.index,
                    "public_key": w.public_key,
                    "sol_amount": w.sol_amount,
                    "transfer_amount": w.transfer_amount,
                }
                for w in funded[1:]
            ],
        },
        indent=2,
    )


@mcp.tool()
async def preview_campaign(
    context: Context,
    output_mint: Annotated[Optional[str], Field(description="Token every wallet buys. Omit for funding only.")] = None,
    dexes: Annotated[Optional[List[str]], Field(description="DEX labels to route through.")] = None,
    rpc_url: Annotated[Optional[str], Field(description="RPC endpoint overriding the configured one.")] = None,
) -> str:
    """Builds the campaign and returns its operations in submission order, without sending anything."""
    wallets = load_wallets(WALLETS_FILE)
    if not wallets:
        return NO_WALLETS
    try:
        async with create_client(rpc_url) as client, JupiterSwapClient() as jupiter:
            airdrop = await build_airdrop_transactions(wallets, client, output_mint, dexes, swap_client=jupiter)
        return json.dumps(
            {"operations": [op.model_dump(mode="json") for op in airdrop.operations]},
            indent=2,
        )
    except CampaignBuildError as e:
        return f"Cannot build campaign: {e}"
    except Exception as e:
        logger.exception(f"Error previewing campaign: {e}")
        return f"An error occurred while building the campaign: {e}"


@mcp.tool()
async def run_campaign(
    context: Context,
    output_mint: Annotated[Optional[str], Field(description="Token every wallet buys. Omit for funding only.")] = None,
    dexes: Annotated[Optional[List[str]], Field(description="DEX labels to route through.")] = None,
    rpc_url: Annotated[Optional[str], Field(description="RPC endpoint overriding the configured one.")] = None,
    stop_on_failure: bool = False,
) -> str:
    """
    Builds and submits the whole campaign using ADMIN_PRIVATE_KEY as the funding
    wallet. Per-wallet results are saved back to the wallets file.
    """
    if not ADMIN_PRIVATE_KEY:
        return "Error: ADMIN_PRIVATE_KEY is not configured."
    wallets = load_wallets(WALLETS_FILE)
    if not wallets:
        return NO_WALLETS
    try:
        admin_keypair = Keypair.from_base58_string(ADMIN_PRIVATE_KEY)
    except ValueError:
        return "Error: ADMIN_PRIVATE_KEY is not a valid base58 keypair."
    if str(admin_keypair.pubkey()) != wallets[0].public_key:
        return f"Error: ADMIN_PRIVATE_KEY does not belong to admin wallet {wallets[0].public_key}."

    logger.info(f"Running campaign for {len(wallets) - 1} wallets via {rpc_url or RPC_ENDPOINT}")
    try:
        async with create_client(rpc_url) as client, JupiterSwapClient() as jupiter:
            airdrop = await build_airdrop_transactions(wallets, client, output_mint, dexes, swap_client=jupiter)
            report = await execute_airdrop(
                client, airdrop, admin_keypair=admin_keypair, stop_on_failure=stop_on_failure,
            )
        save_wallets(WALLETS_FILE, airdrop.wallets)
        return json.dumps(
            {
                "initial_signature": report.initial_signature,
                "succeeded": report.succeeded,
                "failed": report.failed,
                "total": report.total,
                "stopped_early": report.stopped_early,
                "outcomes": [o.model_dump() for o in report.outcomes],
            },
            indent=2,
        )
    except CampaignBuildError as e:
        return f"Cannot build campaign: {e}"
    except CampaignExecutionError as e:
        return f"Campaign aborted: {e}"
    except Exception as e:
        logger.exception(f"Error running campaign: {e}")
        return f"An error occurred while running the campaign: {e}"


@mcp.tool()
async def wallet_balances(
    context: Context,
    token_mint: Annotated[Optional[str], Field(description="Token mint to report balances for.")] = None,
    rpc_url: Annotated[Optional[str], Field(description="RPC endpoint overriding the configured one.")] = None,
) -> str:
    """Fetches on-chain SOL (and optionally token) balances of the generated wallets."""
    wallets = load_wallets(WALLETS_FILE)
    if not wallets:
        return NO_WALLETS
    try:
        async with create_client(rpc_url) as client:
            reconciled = await reconcile_balances(client, wallets, token_mint)
        save_wallets(WALLETS_FILE, reconciled)
        return json.dumps(
            {
                "token_mint": token_mint,
                "wallets": [
                    {
                        "index": w.index,
                        "public_key": w.public_key,
                        "sol_balance": w.sol_balance,
                        "token_balance": w.token_balance,
                        "result": w.result.value,
                    }
                    for w in reconciled[1:]
                ],
            },
            indent=2,
        )
    except ValueError as e:
        return f"Invalid token mint address: {e}"
    except Exception as e:
        logger.exception(f"Error fetching balances: {e}")
        return f"An error occurred while fetching balances: {e}"


@mcp.tool()
async def check_rpc(
    context: Context,
    rpc_url: str = Field(..., description="RPC endpoint to test."),
) -> str:
    """Checks that an RPC endpoint answers and reports its latency."""
    status = await check_rpc_speed(rpc_url)
    return status.model_dump_json()


def main():
    print(f"Using wallets file: {WALLETS_FILE}")
    print(f"Using RPC Endpoint: {RPC_ENDPOINT}")
    mcp.run()


if __name__ == "__main__":
    # Example: python -m mcp_solana_holders.server
    main()
