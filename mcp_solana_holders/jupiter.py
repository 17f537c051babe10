import base64
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from mcp.server.fastmcp.utilities.logging import get_logger

from .config import (
    DEX_PRESET,
    JUPITER_API_URL,
    PRIORITY_FEE_MAX_LAMPORTS,
    PRIORITY_LEVEL,
    SLIPPAGE_BPS,
)

logger = get_logger(__name__)


class JupiterError(Exception):
    """The quote service could not produce a route or instructions."""


class SwapInstructions(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    compute_budget_instructions: List[Instruction] = Field(default_factory=list)
    setup_instructions: List[Instruction] = Field(default_factory=list)
    swap_instruction: Instruction
    cleanup_instruction: Optional[Instruction] = None
    quote: Dict[str, Any] = Field(default_factory=dict) # Route descriptor as returned by the service

    def ordered(self) -> List[Instruction]:
        """Instructions in submission order: compute budget, setup, swap, cleanup."""
        instructions = [*self.compute_budget_instructions, *self.setup_instructions, self.swap_instruction]
        if self.cleanup_instruction is not None:
            instructions.append(self.cleanup_instruction)
        return instructions


def normalize_dexes(dexes: Optional[Sequence[str]]) -> Optional[List[str]]:
    """Splits comma-separated entries ("Raydium,Meteora,Orca+V2") into single DEX labels."""
    if not dexes:
        return None
    labels = [label.strip() for entry in dexes for label in entry.split(",")]
    return [label for label in labels if label] or None


def instruction_from_jupiter(raw: Dict[str, Any]) -> Instruction:
    """Decodes one instruction in the quote service's JSON shape."""
    try:
        return Instruction(
            program_id=Pubkey.from_string(raw["programId"]),
            data=base64.b64decode(raw["data"]),
            accounts=[
                AccountMeta(
                    pubkey=Pubkey.from_string(account["pubkey"]),
                    is_signer=account["isSigner"],
                    is_writable=account["isWritable"],
                )
                for account in raw["accounts"]
            ],
        )
    except (KeyError, TypeError, ValueError) as e:
        raise JupiterError(f"Malformed instruction from quote service: {e}") from e


class JupiterSwapClient:
    """
    Thin async client for the Jupiter quote and swap-instructions endpoints.
    """

    def __init__(
        self,
        base_url: str = JUPITER_API_URL,
        slippage_bps: int = SLIPPAGE_BPS,
        priority_fee_max_lamports: int = PRIORITY_FEE_MAX_LAMPORTS,
        priority_level: str = PRIORITY_LEVEL,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.slippage_bps = slippage_bps
        self.priority_fee_max_lamports = priority_fee_max_lamports
        self.priority_level = priority_level
        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "JupiterSwapClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        dexes: Optional[Sequence[str]] = None,
        only_direct_routes: bool = True,
    ) -> Dict[str, Any]:
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": str(self.slippage_bps),
            "swapMode": "ExactIn",
        }
        if only_direct_routes:
            params["onlyDirectRoutes"] = "true"
        labels = normalize_dexes(dexes)
        if labels:
            params["dexes"] = ",".join(labels)

        logger.debug(f"Requesting quote {input_mint} -> {output_mint} for {amount} (dexes={labels})")
        quote = await self._request("GET", "/quote", params=params)
        if not quote.get("routePlan"):
            raise JupiterError(f"No route found for {input_mint} -> {output_mint}")
        return quote

    async def get_swap_instructions(self, user_public_key: str, quote: Dict[str, Any]) -> Dict[str, Any]:
        body = {
            "userPublicKey": user_public_key,
            "quoteResponse": quote,
            "prioritizationFeeLamports": {
                "priorityLevelWithMaxLamports": {
                    "maxLamports": self.priority_fee_max_lamports,
                    "priorityLevel": self.priority_level,
                },
            },
        }
        return await self._request("POST", "/swap-instructions", json=body)

    async def build_swap_instructions(
        self,
        user_public_key: str,
        input_mint: str,
        output_mint: str,
        amount: int,
        dexes: Optional[Sequence[str]] = None,
    ) -> SwapInstructions:
        """
        Quotes `amount` of `input_mint` into `output_mint` and returns the decoded
        instruction groups for `user_public_key` to sign.

        When the combined DEX preset was requested and it yields no route, the
        quote is retried once without a DEX filter.
        """
        try:
            quote = await self.get_quote(input_mint, output_mint, amount, dexes)
        except JupiterError:
            if dexes and dexes[0] == DEX_PRESET:
                logger.warning(f"No route with DEX preset for {output_mint}, retrying without filter")
                quote = await self.get_quote(input_mint, output_mint, amount)
            else:
                raise

        response = await self.get_swap_instructions(user_public_key, quote)
        if "swapInstruction" not in response:
            raise JupiterError(f"Swap instructions missing from response: {response.get('error', response)}")

        cleanup = response.get("cleanupInstruction")
        return SwapInstructions(
            compute_budget_instructions=[instruction_from_jupiter(ix) for ix in response.get("computeBudgetInstructions", [])],
            setup_instructions=[instruction_from_jupiter(ix) for ix in response.get("setupInstructions", [])],
            swap_instruction=instruction_from_jupiter(response["swapInstruction"]),
            cleanup_instruction=instruction_from_jupiter(cleanup) if cleanup else None,
            quote=quote,
        )

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self.http.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.HTTPError as e:
            raise JupiterError(f"Jupiter request {path} failed: {e}") from e
        if response.status_code != 200:
            raise JupiterError(f"Jupiter request {path} failed: {response.status_code} - {response.text}")
        try:
            data = response.json()
        except ValueError as e:
            raise JupiterError(f"Jupiter request {path} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise JupiterError(f"Jupiter request {path} returned unexpected payload")
        if "error" in data:
            raise JupiterError(f"Jupiter request {path} failed: {data['error']}")
        return data
