from clmm_quoter.core.adapters.BaseAdapter import BaseAdapter

__all__ = [
    "BaseAdapter",
]
