from typing import List, Sequence

from mcp.server.fastmcp.utilities.logging import get_logger

from .config import EXTRA_BUFFER, FEE_PER_TRANSFER
from .tree import children_of
from .wallets import WalletRecord

logger = get_logger(__name__)


def compute_required_funding(
    wallets: Sequence[WalletRecord],
    index: int,
    fee_per_transfer: int = FEE_PER_TRANSFER,
    extra_buffer: int = EXTRA_BUFFER,
) -> int:
    """
    Lamports wallet `index` must receive to keep its own holding plus buffer,
    forward each child its full requirement, and pay one flat fee per forward.
    Returns 0 for an index past the end of the list.
    """
    if index >= len(wallets):
        return 0

    self_holding = wallets[index].intended_lamports + extra_buffer
    children_cost = sum(
        compute_required_funding(wallets, child, fee_per_transfer, extra_buffer) + fee_per_transfer
        for child in children_of(wallets, index)
    )
    return self_holding + children_cost


def prepare_funding_allocations(
    wallets: Sequence[WalletRecord],
    fee_per_transfer: int = FEE_PER_TRANSFER,
    extra_buffer: int = EXTRA_BUFFER,
) -> List[WalletRecord]:
    """
    Returns copies of `wallets` with `transfer_amount` set on every non-root
    record. The input list and its records are left untouched.
    """
    funded = [w.model_copy() for w in wallets]
    for i in range(1, len(funded)):
        required = compute_required_funding(wallets, i, fee_per_transfer, extra_buffer)
        funded[i] = funded[i].model_copy(update={"transfer_amount": required})

    logger.debug(
        f"Prepared funding for {max(len(funded) - 1, 0)} wallets, "
        f"admin sends {total_admin_funding(funded)} lamports"
    )
    return funded


def total_admin_funding(wallets: Sequence[WalletRecord]) -> int:
    """Lamports the admin wallet sends in the initial fan-out, excluding its own fee."""
    return sum(wallets[i].transfer_amount for i in children_of(wallets, 0))
