"""
MCP Solana Holders Package

This package bootstraps an "increase holders" campaign on Solana: a single admin
wallet funds many freshly generated wallets through a binary fan-out, and each
generated wallet then swaps SOL into a target token. It is exposed as an MCP
(Model Context Protocol) server.

The funding tree is stored as a flat list where wallet `i` funds wallets `2i+1`
and `2i+2`. Every wallet receives enough lamports to keep its own swap amount,
forward its children's full requirements, and pay one flat fee per forward.
Transactions are built in an order that is safe to submit one by one.

Main components:
- wallets.py: Wallet records, generation and JSON persistence
- funding.py: Bottom-up funding requirements
- builder.py: Depth-first transaction builder (transfers and swaps)
- jupiter.py: Jupiter quote and swap-instruction client
- orchestrator.py: In-order submission and balance reconciliation
- server.py: MCP tools
"""

from .builder import AirdropTransactions, CampaignBuildError, build_airdrop_transactions
from .funding import compute_required_funding, prepare_funding_allocations

__all__ = [
    "AirdropTransactions",
    "CampaignBuildError",
    "build_airdrop_transactions",
    "compute_required_funding",
    "prepare_funding_allocations",
]
