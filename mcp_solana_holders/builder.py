from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solders.hash import Hash as Blockhash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from mcp.server.fastmcp.utilities.logging import get_logger

from .config import EXTRA_BUFFER, FEE_PER_TRANSFER, LAMPORTS_PER_SOL, SOL_MINT
from .funding import prepare_funding_allocations
from .jupiter import JupiterSwapClient
from .tree import children_of, first_level_indices
from .wallets import WalletRecord

logger = get_logger(__name__)


class CampaignBuildError(ValueError):
    """The wallet set or arguments cannot produce a valid campaign."""

# --- Data Structures ---

class OperationKind(str, Enum):
    TRANSFER = "transfer"
    SWAP = "swap"


class Operation(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: OperationKind
    wallet_index: int # Wallet whose outcome this operation decides
    payer_index: int
    recipient_index: Optional[int] = None # transfer only
    amount: Optional[int] = None # lamports, transfer only
    description: str


class ChildTransaction(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    transaction: VersionedTransaction
    signers: List[Keypair]
    operation: Operation

    @property
    def wallet_index(self) -> int:
        return self.operation.wallet_index

    @property
    def description(self) -> str:
        return self.operation.description


class AirdropTransactions(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    initial_transaction: VersionedTransaction # Unsigned, the admin signs it
    initial_operations: List[Operation]
    child_transactions: List[ChildTransaction]
    keypair_map: Dict[str, Keypair]
    wallets: List[WalletRecord] # Records with transfer_amount filled in
    blockhash: Blockhash

    @property
    def operations(self) -> List[Operation]:
        return [*self.initial_operations, *(child.operation for child in self.child_transactions)]

# --- Helpers ---

def _validate_wallets(wallets: Sequence[WalletRecord]) -> None:
    if len(wallets) < 2:
        raise CampaignBuildError("A campaign needs the admin wallet and at least one generated wallet.")
    for position, wallet in enumerate(wallets):
        if wallet.index != position:
            raise CampaignBuildError(f"Wallet at position {position} carries index {wallet.index}.")
        try:
            Pubkey.from_string(wallet.public_key) # Validate pubkey format
        except ValueError as e:
            raise CampaignBuildError(f"Invalid public key for wallet {position}: {wallet.public_key}") from e
        if position > 0 and wallet.keypair is None:
            raise CampaignBuildError(f"Wallet {position} ({wallet.public_key}) has no keypair to sign with.")
        if wallet.intended_lamports < 0:
            raise CampaignBuildError(f"Wallet {position} ({wallet.public_key}) has a negative amount: {wallet.sol_amount} SOL.")


def _sol(lamports: int) -> str:
    return f"{lamports / LAMPORTS_PER_SOL:.9f}".rstrip("0").rstrip(".")


def _transfer_instruction(payer: Pubkey, recipient: Pubkey, lamports: int) -> Instruction:
    return transfer(TransferParams(from_pubkey=payer, to_pubkey=recipient, lamports=lamports))


def _compile(payer: Pubkey, instructions: List[Instruction], blockhash: Blockhash) -> MessageV0:
    return MessageV0.try_compile(
        payer=payer,
        instructions=instructions,
        address_lookup_table_accounts=[],
        recent_blockhash=blockhash,
    )


def _transfer_operation(wallets: Sequence[WalletRecord], payer_index: int, recipient_index: int) -> Operation:
    payer = wallets[payer_index]
    recipient = wallets[recipient_index]
    return Operation(
        kind=OperationKind.TRANSFER,
        wallet_index=recipient_index,
        payer_index=payer_index,
        recipient_index=recipient_index,
        amount=recipient.transfer_amount,
        description=f"Transfer: {payer.public_key} -> {recipient.public_key} ({_sol(recipient.transfer_amount)} SOL)",
    )

# --- Builders ---

def build_initial_transaction(
    wallets: Sequence[WalletRecord], blockhash: Blockhash
) -> Tuple[VersionedTransaction, List[Operation]]:
    """
    The admin's fan-out: one transfer per first-level wallet. Returned unsigned
    since the admin key is usually held outside this process.
    """
    root = wallets[0]
    operations = [_transfer_operation(wallets, 0, i) for i in first_level_indices(wallets)]
    instructions = [
        _transfer_instruction(root.pubkey, wallets[op.recipient_index].pubkey, op.amount)
        for op in operations
    ]
    message = _compile(root.pubkey, instructions, blockhash)
    transaction = VersionedTransaction.populate(message, [Signature.default()])
    return transaction, operations


async def create_swap_transaction(
    wallet: WalletRecord,
    blockhash: Blockhash,
    output_mint: str,
    swap_client: JupiterSwapClient,
    dexes: Optional[Sequence[str]] = None,
) -> Optional[VersionedTransaction]:
    """Signed swap of the wallet's intended holding, or None if no route could be built."""
    amount = wallet.intended_lamports
    if amount <= 0:
        logger.warning(f"Wallet {wallet.index} ({wallet.public_key}) has nothing to swap, skipping")
        return None
    try:
        swap = await swap_client.build_swap_instructions(
            wallet.public_key, SOL_MINT, output_mint, amount, dexes
        )
        message = _compile(wallet.pubkey, swap.ordered(), blockhash)
        return VersionedTransaction(message, [wallet.keypair])
    except Exception as e:
        logger.exception(f"Failed to create swap transaction for {wallet.public_key}: {e}")
        return None


async def build_child_transactions(
    wallets: Sequence[WalletRecord],
    blockhash: Blockhash,
    output_mint: Optional[str] = None,
    swap_client: Optional[JupiterSwapClient] = None,
    dexes: Optional[Sequence[str]] = None,
) -> List[ChildTransaction]:
    """
    Walks each first-level subtree depth-first. A node's transfer to a child is
    emitted before anything in that child's subtree, and the node's own swap
    after both subtrees.
    """
    transactions: List[ChildTransaction] = []

    async def descend(index: int) -> None:
        node = wallets[index]
        for child in children_of(wallets, index):
            operation = _transfer_operation(wallets, index, child)
            instruction = _transfer_instruction(node.pubkey, wallets[child].pubkey, operation.amount)
            message = _compile(node.pubkey, [instruction], blockhash)
            transactions.append(ChildTransaction(
                transaction=VersionedTransaction(message, [node.keypair]),
                signers=[node.keypair],
                operation=operation,
            ))
            logger.debug(operation.description)
            await descend(child)

        if index > 0 and output_mint:
            swap_tx = await create_swap_transaction(node, blockhash, output_mint, swap_client, dexes)
            if swap_tx is None:
                logger.warning(f"No swap transaction for wallet {index} ({node.public_key})")
                return
            transactions.append(ChildTransaction(
                transaction=swap_tx,
                signers=[node.keypair],
                operation=Operation(
                    kind=OperationKind.SWAP,
                    wallet_index=index,
                    payer_index=index,
                    description=f"Swap: {node.public_key} swaps {node.sol_amount} SOL -> {output_mint}",
                ),
            ))

    for index in first_level_indices(wallets):
        await descend(index)

    return transactions


async def build_airdrop_transactions(
    wallets: Sequence[WalletRecord],
    client: AsyncClient,
    output_mint: Optional[str] = None,
    dexes: Optional[Sequence[str]] = None,
    swap_client: Optional[JupiterSwapClient] = None,
    fee_per_transfer: int = FEE_PER_TRANSFER,
    extra_buffer: int = EXTRA_BUFFER,
) -> AirdropTransactions:
    """
    Builds every transaction of a holders campaign.

    Funding requirements are computed first, then one blockhash is fetched and
    shared by all transactions. The child transactions must be submitted in
    list order, each confirmed before the next.
    """
    logger.info(f"Building airdrop transactions for {len(wallets)} wallets, output_mint={output_mint}, dexes={dexes}")
    _validate_wallets(wallets)
    if output_mint:
        try:
            Pubkey.from_string(output_mint) # Validate mint format
        except ValueError as e:
            raise CampaignBuildError(f"Invalid output mint address: {output_mint}") from e

    funded = prepare_funding_allocations(wallets, fee_per_transfer, extra_buffer)

    blockhash_resp = await client.get_latest_blockhash(commitment=Confirmed)
    blockhash = blockhash_resp.value.blockhash

    initial_transaction, initial_operations = build_initial_transaction(funded, blockhash)

    if output_mint and swap_client is None:
        async with JupiterSwapClient() as jupiter:
            child_transactions = await build_child_transactions(funded, blockhash, output_mint, jupiter, dexes)
    else:
        child_transactions = await build_child_transactions(funded, blockhash, output_mint, swap_client, dexes)

    keypair_map = {w.public_key: w.keypair for w in funded if w.keypair is not None}
    logger.info(f"Built initial transaction with {len(initial_operations)} transfers and {len(child_transactions)} child transactions")

    return AirdropTransactions(
        initial_transaction=initial_transaction,
        initial_operations=initial_operations,
        child_transactions=child_transactions,
        keypair_map=keypair_map,
        wallets=funded,
        blockhash=blockhash,
    )
