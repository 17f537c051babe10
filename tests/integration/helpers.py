from typing import List, Optional
from unittest.mock import MagicMock

from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from mcp_solana_holders.jupiter import SwapInstructions
from mcp_solana_holders.wallets import WalletRecord

SYSTEM_PROGRAM = Pubkey.from_string("11111111111111111111111111111111")


def make_wallets(amounts: List[float], admin_keypair: Optional[Keypair] = None) -> List[WalletRecord]:
    """Admin record at index 0 followed by one generated wallet per amount."""
    admin_keypair = admin_keypair or Keypair()
    wallets = [WalletRecord(index=0, public_key=str(admin_keypair.pubkey()))]
    for i, amount in enumerate(amounts, start=1):
        wallets.append(WalletRecord.from_keypair(i, Keypair(), amount))
    return wallets


def make_swap_instructions(user_public_key: str) -> SwapInstructions:
    """Minimal instruction groups signed by the swapping wallet."""
    user = Pubkey.from_string(user_public_key)
    program = Pubkey.new_unique()
    return SwapInstructions(
        compute_budget_instructions=[Instruction(program, bytes([2, 0, 0, 0]), [])],
        setup_instructions=[],
        swap_instruction=Instruction(program, b"swap", [AccountMeta(user, True, True)]),
        cleanup_instruction=None,
        quote={"routePlan": [{"percent": 100}]},
    )


def create_mock_blockhash_resp(blockhash: Hash) -> MagicMock:
    mock_resp = MagicMock()
    mock_resp.value.blockhash = blockhash
    return mock_resp


def decode_transfers(transaction) -> List[tuple]:
    """(from, to, lamports) for every system transfer in a compiled transaction."""
    message = transaction.message
    keys = message.account_keys
    transfers = []
    for ix in message.instructions:
        if keys[ix.program_id_index] != SYSTEM_PROGRAM:
            continue
        data = bytes(ix.data)
        assert int.from_bytes(data[:4], "little") == 2 # Transfer discriminator
        lamports = int.from_bytes(data[4:12], "little")
        accounts = bytes(ix.accounts)
        transfers.append((str(keys[accounts[0]]), str(keys[accounts[1]]), lamports))
    return transfers
