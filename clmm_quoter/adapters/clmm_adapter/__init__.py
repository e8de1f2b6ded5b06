from clmm_quoter.adapters.clmm_adapter.adapter import ClmmAdapter

__all__ = ["ClmmAdapter"]
