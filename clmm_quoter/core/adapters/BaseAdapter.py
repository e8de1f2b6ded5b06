from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from loguru import logger
from solders.pubkey import Pubkey

from clmm_quoter.core.adapters.models import AccountMeta, Quote, QuoteParams, SwapParams


class BaseAdapter(ABC):
    """Router-facing view of a single on-chain market.

    The router asks for the accounts it must fetch, pushes their bytes back
    through ``update`` and then quotes against that snapshot.
    """

    adapter_type: str | None = None

    def __init__(self, name: str, config: dict[str, Any] | None = None):
        self.name = name
        self.config = config or {}
        self.logger = logger.bind(adapter=self.__class__.__name__)

    @property
    @abstractmethod
    def label(self) -> str: ...

    @property
    @abstractmethod
    def id(self) -> str: ...

    @property
    @abstractmethod
    def reserve_token_mints(self) -> list[Pubkey]: ...

    @abstractmethod
    def get_accounts_for_update(self) -> list[Pubkey]: ...

    @abstractmethod
    def update(self, account_infos: Mapping[Pubkey | str, bytes | None]) -> None: ...

    @abstractmethod
    def get_quote(self, params: QuoteParams) -> Quote: ...

    @abstractmethod
    def get_swap_leg_and_accounts(
        self, params: SwapParams
    ) -> tuple[dict[str, Any], list[AccountMeta]]: ...
