import base64
import json

import httpx
import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from mcp_solana_holders.config import DEX_PRESET, SOL_MINT
from mcp_solana_holders.jupiter import (
    JupiterError,
    JupiterSwapClient,
)

# Mark all tests in this module as asyncio
pytestmark = pytest.mark.asyncio

OUTPUT_MINT = str(Keypair().pubkey())
USER = str(Keypair().pubkey())


def jupiter_ix(data: bytes, signer: str = USER) -> dict:
    return {
        "programId": str(Pubkey.new_unique()),
        "accounts": [{"pubkey": signer, "isSigner": True, "isWritable": True}],
        "data": base64.b64encode(data).decode(),
    }


QUOTE = {
    "inputMint": SOL_MINT,
    "outputMint": OUTPUT_MINT,
    "inAmount": "10000000",
    "outAmount": "123456",
    "routePlan": [{"swapInfo": {"label": "Raydium"}, "percent": 100}],
}

SWAP_INSTRUCTIONS = {
    "computeBudgetInstructions": [jupiter_ix(b"cu-limit"), jupiter_ix(b"cu-price")],
    "setupInstructions": [jupiter_ix(b"setup")],
    "swapInstruction": jupiter_ix(b"swap"),
    "cleanupInstruction": jupiter_ix(b"cleanup"),
    "addressLookupTableAddresses": [],
}


def make_client(handler) -> JupiterSwapClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return JupiterSwapClient(base_url="https://jup.test/swap/v1", http_client=http)

# --- Client ---

async def test_build_swap_instructions_order():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path.endswith("/quote"):
            return httpx.Response(200, json=QUOTE)
        return httpx.Response(200, json=SWAP_INSTRUCTIONS)

    async with make_client(handler) as client:
        swap = await client.build_swap_instructions(USER, SOL_MINT, OUTPUT_MINT, 10_000_000, ["Raydium"])

    datas = [bytes(ix.data) for ix in swap.ordered()]
    assert datas == [b"cu-limit", b"cu-price", b"setup", b"swap", b"cleanup"]
    assert swap.quote == QUOTE

    quote_params = requests[0].url.params
    assert quote_params["inputMint"] == SOL_MINT
    assert quote_params["outputMint"] == OUTPUT_MINT
    assert quote_params["amount"] == "10000000"
    assert quote_params["dexes"] == "Raydium"

    body = json.loads(requests[1].content)
    assert body["userPublicKey"] == USER
    assert body["quoteResponse"] == QUOTE
    assert body["prioritizationFeeLamports"]["priorityLevelWithMaxLamports"]["maxLamports"] == 1000


async def test_no_cleanup_instruction():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/quote"):
            return httpx.Response(200, json=QUOTE)
        payload = dict(SWAP_INSTRUCTIONS)
        payload.pop("cleanupInstruction")
        return httpx.Response(200, json=payload)

    async with make_client(handler) as client:
        swap = await client.build_swap_instructions(USER, SOL_MINT, OUTPUT_MINT, 1000)

    assert swap.cleanup_instruction is None
    assert len(swap.ordered()) == 4


async def test_quote_http_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "Could not find any route"})

    async with make_client(handler) as client:
        with pytest.raises(JupiterError):
            await client.build_swap_instructions(USER, SOL_MINT, OUTPUT_MINT, 1000)


async def test_empty_route_plan_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={**QUOTE, "routePlan": []})

    async with make_client(handler) as client:
        with pytest.raises(JupiterError):
            await client.get_quote(SOL_MINT, OUTPUT_MINT, 1000)


async def test_preset_falls_back_to_unfiltered_quote():
    quote_calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/quote"):
            quote_calls.append(dict(request.url.params))
            if "dexes" in request.url.params:
                return httpx.Response(400, json={"error": "No routes found"})
            return httpx.Response(200, json=QUOTE)
        return httpx.Response(200, json=SWAP_INSTRUCTIONS)

    async with make_client(handler) as client:
        swap = await client.build_swap_instructions(USER, SOL_MINT, OUTPUT_MINT, 1000, [DEX_PRESET])

    assert len(quote_calls) == 2
    assert quote_calls[0]["dexes"] == "Raydium,Meteora,Orca+V2"
    assert "dexes" not in quote_calls[1]
    assert swap.swap_instruction is not None


async def test_other_filters_do_not_fall_back():
    quote_calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        quote_calls.append(request)
        return httpx.Response(400, json={"error": "No routes found"})

    async with make_client(handler) as client:
        with pytest.raises(JupiterError):
            await client.build_swap_instructions(USER, SOL_MINT, OUTPUT_MINT, 1000, ["Raydium"])

    assert len(quote_calls) == 1


async def test_transport_error_is_wrapped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with make_client(handler) as client:
        with pytest.raises(JupiterError):
            await client.get_quote(SOL_MINT, OUTPUT_MINT, 1000)
