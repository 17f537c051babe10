"""
Test Package for MCP Solana Holders

This package contains the test suite for the MCP Solana Holders server: funding
requirements, depth-first transaction building, the Jupiter client, in-order
submission, and the MCP tools.

Test Structure:
- integration/: Tests for the library modules and the MCP tools
- conftest.py: Pytest fixtures and configuration for testing
"""

# Test package for mcp-solana-holders
