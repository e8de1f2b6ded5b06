from clmm_quoter.core.clmm.errors import (
    AccountLackError,
    ClmmError,
    DecodeError,
    InvalidParametersError,
    InvalidTickArrayError,
    NumericOverflowError,
)
from clmm_quoter.core.clmm.pool import (
    compute_amount_in,
    compute_amount_out,
    format_pool,
    required_tick_array_addresses,
)
from clmm_quoter.core.clmm.swap import swap_compute
from clmm_quoter.core.clmm.tick_array import build_tick_array_cache
from clmm_quoter.core.clmm.types import (
    ClmmPool,
    ComputeAmountInResult,
    ComputeAmountOutResult,
    SwapComputeResult,
    SwapStatus,
    TickArray,
)

__all__ = [
    "AccountLackError",
    "ClmmError",
    "ClmmPool",
    "ComputeAmountInResult",
    "ComputeAmountOutResult",
    "DecodeError",
    "InvalidParametersError",
    "InvalidTickArrayError",
    "NumericOverflowError",
    "SwapComputeResult",
    "SwapStatus",
    "TickArray",
    "build_tick_array_cache",
    "compute_amount_in",
    "compute_amount_out",
    "format_pool",
    "required_tick_array_addresses",
    "swap_compute",
]
