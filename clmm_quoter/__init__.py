__version__ = "0.1.0"

from clmm_quoter.core import BaseAdapter
from clmm_quoter.core.clmm import (
    ClmmPool,
    compute_amount_in,
    compute_amount_out,
    format_pool,
    required_tick_array_addresses,
)

__all__ = [
    "__version__",
    "BaseAdapter",
    "ClmmPool",
    "compute_amount_in",
    "compute_amount_out",
    "format_pool",
    "required_tick_array_addresses",
]
