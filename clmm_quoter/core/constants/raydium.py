from solders.pubkey import Pubkey

# Raydium concentrated liquidity (CLMM) program, Solana mainnet
RAYDIUM_CLMM_PROGRAM_ID = Pubkey.from_string(
    "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK"
)

# Tick arrays fetched around the current price, split evenly on both sides
FETCH_TICKARRAY_COUNT = 15

DEFAULT_SLIPPAGE = 0.005

# Slippage factors are applied as integers scaled by this amount
SLIPPAGE_SCALE = 10_000_000_000

ADAPTER_RAYDIUM_CLMM = "RAYDIUM_CLMM"
