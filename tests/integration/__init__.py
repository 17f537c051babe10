"""
Integration Tests for MCP Solana Holders

The integration tests cover:
- Funding requirements over the implicit binary tree
- Transaction order (transfers before subtrees, swaps after them)
- Route-unavailable handling and construction errors
- Jupiter quote and swap-instruction decoding
- In-order submission, failure isolation and balance reconciliation
- MCP tools against a temporary wallets file

All tests use mocked Solana RPC calls, a mocked quote service and temporary
file storage, so no blockchain access is required.
"""

# Integration tests for mcp-solana-holders
