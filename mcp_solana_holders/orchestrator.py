import asyncio
from typing import Callable, List, Optional, Sequence

from pydantic import BaseModel
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.rpc.responses import GetBalanceResp, GetTokenAccountBalanceResp
from solders.transaction import VersionedTransaction
from spl.token.instructions import get_associated_token_address

from mcp.server.fastmcp.utilities.logging import get_logger

from .builder import AirdropTransactions
from .config import DELAY_BETWEEN_TRANSACTIONS
from .wallets import WalletRecord, WalletResult

logger = get_logger(__name__)


class CampaignExecutionError(RuntimeError):
    """The admin fan-out could not be landed, so no wallet was funded."""

# --- Data Structures ---

class TransactionOutcome(BaseModel):
    wallet_index: int
    description: str
    success: bool
    signature: Optional[str] = None
    error: Optional[str] = None


class CampaignReport(BaseModel):
    initial_signature: str
    outcomes: List[TransactionOutcome]
    total: int # Child transactions built
    stopped_early: bool = False

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

# --- Submission ---

async def send_and_confirm(client: AsyncClient, transaction: VersionedTransaction) -> str:
    """Sends a transaction and waits for it to reach confirmed commitment."""
    send_resp = await client.send_transaction(transaction)
    signature = send_resp.value
    confirm_resp = await client.confirm_transaction(signature, commitment=Confirmed)
    status = confirm_resp.value[0] if confirm_resp.value else None
    if status is not None and status.err is not None:
        raise RPCException(f"Transaction {signature} failed on-chain: {status.err}")
    return str(signature)


def _mark(wallets: Sequence[WalletRecord], index: int, success: bool) -> None:
    if index >= len(wallets):
        return
    wallet = wallets[index]
    if not success:
        wallet.result = WalletResult.FAILED
    elif wallet.result != WalletResult.FAILED:
        # A later success never clears an earlier failure
        wallet.result = WalletResult.SUCCESS


async def execute_airdrop(
    client: AsyncClient,
    airdrop: AirdropTransactions,
    admin_keypair: Optional[Keypair] = None,
    on_progress: Optional[Callable[[int, int], None]] = None,
    delay_between_transactions: float = DELAY_BETWEEN_TRANSACTIONS,
    stop_on_failure: bool = False,
) -> CampaignReport:
    """
    Lands the admin fan-out, then submits every child transaction strictly in
    build order, confirming each before the next. Results are recorded on
    `airdrop.wallets`.

    When `admin_keypair` is None the initial transaction is sent as-is, so the
    caller must have signed it already.
    """
    wallets = airdrop.wallets
    initial = airdrop.initial_transaction
    if admin_keypair is not None:
        if str(admin_keypair.pubkey()) != wallets[0].public_key:
            raise CampaignExecutionError("Admin keypair does not match wallet 0.")
        initial = VersionedTransaction(initial.message, [admin_keypair])

    try:
        initial_signature = await send_and_confirm(client, initial)
    except Exception as e:
        logger.exception(f"Initial fan-out transaction failed: {e}")
        raise CampaignExecutionError(f"Initial fan-out transaction failed: {e}") from e
    logger.info(f"Initial fan-out confirmed: {initial_signature}")

    total = len(airdrop.child_transactions)
    logger.info(f"Executing {total} child transactions in order...")
    outcomes: List[TransactionOutcome] = []
    stopped_early = False

    for position, child in enumerate(airdrop.child_transactions):
        if position > 0 and delay_between_transactions > 0:
            await asyncio.sleep(delay_between_transactions)
        try:
            signature = await send_and_confirm(client, child.transaction)
            outcome = TransactionOutcome(
                wallet_index=child.wallet_index, description=child.description,
                success=True, signature=signature,
            )
            logger.info(f"Transaction {position + 1}/{total} completed: {child.description}")
        except Exception as e:
            logger.exception(f"Transaction failed for wallet {child.wallet_index}: {e}")
            outcome = TransactionOutcome(
                wallet_index=child.wallet_index, description=child.description,
                success=False, error=str(e),
            )

        _mark(wallets, child.wallet_index, outcome.success)
        outcomes.append(outcome)
        if on_progress is not None:
            on_progress(len(outcomes), total)

        if not outcome.success and stop_on_failure:
            logger.warning(f"Stopping after failed transaction {position + 1}/{total}")
            stopped_early = True
            break

    report = CampaignReport(
        initial_signature=initial_signature, outcomes=outcomes, total=total, stopped_early=stopped_early,
    )
    logger.info(f"Campaign finished: {report.succeeded}/{total} successful")
    return report

# --- Reconciliation ---

async def _token_balance(client: AsyncClient, owner: Pubkey, mint: Pubkey) -> int:
    ata = get_associated_token_address(owner, mint)
    try:
        token_resp: GetTokenAccountBalanceResp = await client.get_token_account_balance(ata)
        return int(token_resp.value.amount)
    except RPCException as rpc_err:
        err_str = str(rpc_err)
        if "Account not found" in err_str or "could not find account" in err_str:
            logger.debug(f"ATA {ata} for {owner} not found. Assuming 0 balance.")
            return 0
        raise


async def reconcile_balances(
    client: AsyncClient,
    wallets: Sequence[WalletRecord],
    token_mint: Optional[str] = None,
) -> List[WalletRecord]:
    """Returns copies of the generated wallets' records with on-chain balances filled in."""
    mint_pubkey = Pubkey.from_string(token_mint) if token_mint else None
    reconciled = [wallets[0].model_copy()] if wallets else []

    for wallet in wallets[1:]:
        try:
            balance_resp: GetBalanceResp = await client.get_balance(wallet.pubkey)
            update = {"sol_balance": balance_resp.value}
            if mint_pubkey is not None:
                update["token_balance"] = await _token_balance(client, wallet.pubkey, mint_pubkey)
        except Exception as e:
            # Keep the previous record for this wallet
            logger.exception(f"Failed to fetch balances for wallet {wallet.index} ({wallet.public_key}): {e}")
            reconciled.append(wallet.model_copy())
            continue
        reconciled.append(wallet.model_copy(update=update))
        logger.debug(f"Wallet {wallet.index} ({wallet.public_key}) balances: {update}")

    logger.info(f"Reconciled balances for {max(len(wallets) - 1, 0)} wallets")
    return reconciled
