from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class SwapMode(StrEnum):
    EXACT_IN = "ExactIn"
    EXACT_OUT = "ExactOut"


class QuoteParams(BaseModel):
    source_mint: str
    destination_mint: str
    amount: int = Field(gt=0)
    swap_mode: SwapMode = SwapMode.EXACT_IN
    slippage: float | None = Field(default=None, ge=0, le=1)
    price_limit: Decimal | None = None


class Quote(BaseModel):
    in_amount: int
    out_amount: int
    fee_amount: int
    fee_mint: str
    fee_pct: Decimal
    price_impact_pct: float
    not_enough_liquidity: bool = False
    min_out_amount: int | None = None
    max_in_amount: int | None = None
    execution_price: Decimal | None = None
    remaining_accounts: list[str] = []
    required_accounts: list[str] = []


class SwapParams(BaseModel):
    source_mint: str
    destination_mint: str
    user_source_token_account: str
    user_destination_token_account: str
    user_transfer_authority: str
    in_amount: int = Field(gt=0)
    swap_mode: SwapMode = SwapMode.EXACT_IN
    slippage: float | None = Field(default=None, ge=0, le=1)


class AccountMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    pubkey: str
    is_signer: bool = False
    is_writable: bool = False
