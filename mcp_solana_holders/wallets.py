import json
import os
import random
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from mcp.server.fastmcp.utilities.logging import get_logger

from .config import LAMPORTS_PER_SOL

logger = get_logger(__name__)

# --- Data Structures ---

class WalletResult(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class WalletRecord(BaseModel):
    """
    One participant of a campaign. Index 0 is the admin (funding) wallet,
    indices 1..N are generated wallets laid out as an implicit binary tree.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    index: int
    public_key: str
    secret_key: Optional[str] = None # base58, absent for the admin wallet
    keypair: Optional[Keypair] = Field(default=None, exclude=True)
    sol_amount: float = 0.0 # Intended holding in SOL
    transfer_amount: int = 0 # Required funding in lamports, filled by prepare_funding_allocations
    result: WalletResult = WalletResult.PENDING
    sol_balance: Optional[int] = None # lamports, filled by reconcile_balances
    token_balance: Optional[int] = None # base units, filled by reconcile_balances

    @model_validator(mode="before")
    @classmethod
    def _restore_keypair(cls, data: Any) -> Any:
        # Persisted records only carry the secret key, rebuild the signer from it
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("keypair") is None and data.get("secret_key"):
            data["keypair"] = Keypair.from_base58_string(data["secret_key"])
        if data.get("keypair") is not None and not data.get("public_key"):
            data["public_key"] = str(data["keypair"].pubkey())
        return data

    @model_validator(mode="after")
    def _check_keypair_matches(self) -> "WalletRecord":
        if self.keypair is not None and str(self.keypair.pubkey()) != self.public_key:
            raise ValueError(f"Keypair does not match public key {self.public_key}")
        return self

    @property
    def pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.public_key)

    @property
    def intended_lamports(self) -> int:
        return round(self.sol_amount * LAMPORTS_PER_SOL)

    @classmethod
    def from_keypair(cls, index: int, keypair: Keypair, sol_amount: float = 0.0) -> "WalletRecord":
        return cls(
            index=index,
            public_key=str(keypair.pubkey()),
            secret_key=str(keypair),
            keypair=keypair,
            sol_amount=sol_amount,
        )

# --- Generation ---

def generate_wallets(
    admin_public_key: str,
    quantity: int,
    mode: str,
    value1: float,
    value2: Optional[float] = None,
    admin_keypair: Optional[Keypair] = None,
) -> List[WalletRecord]:
    """
    Creates the wallet set for a campaign: the admin record at index 0 followed
    by `quantity` freshly generated wallets.

    In "fixed" mode every wallet intends to hold `value1` SOL. In "random" mode
    each amount is drawn uniformly from [value1, value2] and rounded to 6 decimals.
    """
    if mode not in ("fixed", "random"):
        raise ValueError(f"Unknown amount mode: {mode}")
    if quantity <= 0:
        raise ValueError("Quantity must be positive.")
    if value1 < 0 or (value2 is not None and value2 < 0):
        raise ValueError("Amounts must not be negative.")
    if mode == "random" and value2 is not None and value2 < value1:
        raise ValueError("Maximum amount must not be lower than minimum amount.")

    Pubkey.from_string(admin_public_key) # Validate pubkey format
    if admin_keypair is not None:
        admin = WalletRecord.from_keypair(0, admin_keypair)
    else:
        admin = WalletRecord(index=0, public_key=admin_public_key)
    if admin.public_key != admin_public_key:
        raise ValueError("Admin keypair does not match admin public key.")

    wallets = [admin]
    for i in range(1, quantity + 1):
        if mode == "fixed":
            amount = value1
        else:
            high = value2 if value2 is not None else value1
            amount = round(random.uniform(value1, high), 6)
        wallets.append(WalletRecord.from_keypair(i, Keypair(), amount))

    logger.info(f"Generated {quantity} wallets ({mode} mode) for admin {admin_public_key}")
    return wallets

# --- Persistence ---

def save_wallets(path: Path, wallets: List[WalletRecord]) -> None:
    """Saves the wallet set to a JSON file readable only by the owner."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump([w.model_dump(mode="json") for w in wallets], f, indent=4)
    # File holds secret keys
    os.chmod(path, 0o600)
    logger.info(f"Saved {len(wallets)} wallets to {path}")


def load_wallets(path: Path) -> Optional[List[WalletRecord]]:
    """Loads the wallet set from a JSON file, or None if absent or unreadable."""
    if not path.exists():
        logger.info(f"Wallets file {path} not found.")
        return None
    try:
        with open(path, 'r') as f:
            data = json.load(f)
        wallets = [WalletRecord(**w) for w in data]
        logger.debug(f"Loaded {len(wallets)} wallets from {path}")
        return wallets
    except (json.JSONDecodeError, IOError, TypeError, ValidationError, ValueError) as e:
        logger.error(f"Failed to parse wallets from {path}: {e}")
        return None


def remove_wallets(path: Path) -> bool:
    if path.exists():
        path.unlink()
        logger.info(f"Removed wallets file {path}")
        return True
    return False
