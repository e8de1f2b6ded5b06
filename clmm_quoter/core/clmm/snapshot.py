"""JSON snapshots of a pool's accounts, as captured by an external fetcher.

Layout::

    {
      "program_id": "<base58>",            # optional
      "pool": {"address": "<base58>", "data": "<base64>"},
      "amm_config": {"address": "<base58>", "data": "<base64>"},
      "tick_array_bitmap_extension": {...} | null,
      "tick_arrays": [{"address": "<base58>", "data": "<base64>"}, ...]
    }
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError
from solders.pubkey import Pubkey

from clmm_quoter.core.clmm.errors import DecodeError, InvalidParametersError
from clmm_quoter.core.clmm.layouts import decode_tick_array
from clmm_quoter.core.clmm.pool import format_pool
from clmm_quoter.core.clmm.tick_array import build_tick_array_cache
from clmm_quoter.core.clmm.types import ClmmPool, TickArray


class AccountSnapshot(BaseModel):
    address: str
    data: str


class PoolSnapshotFile(BaseModel):
    program_id: str | None = None
    pool: AccountSnapshot
    amm_config: AccountSnapshot
    tick_array_bitmap_extension: AccountSnapshot | None = None
    tick_arrays: list[AccountSnapshot] = []


@dataclass(frozen=True)
class PoolSnapshot:
    pool: ClmmPool
    tick_array_cache: dict[int, TickArray]
    account_infos: dict[Pubkey, bytes]


def parse_pubkey(value: str, label: str = "address") -> Pubkey:
    try:
        return Pubkey.from_string(value.strip())
    except ValueError as exc:
        raise InvalidParametersError(f"invalid {label}: {value!r}") from exc


def _decode_data(account: AccountSnapshot) -> bytes:
    try:
        return base64.b64decode(account.data, validate=True)
    except binascii.Error as exc:
        raise DecodeError(
            f"account {account.address} data is not valid base64", account=account.address
        ) from exc


def parse_snapshot(payload: dict[str, Any], program_id: Pubkey | None = None) -> PoolSnapshot:
    try:
        snapshot = PoolSnapshotFile.model_validate(payload)
    except ValidationError as exc:
        raise InvalidParametersError(f"invalid pool snapshot: {exc}") from exc

    if snapshot.program_id:
        program_id = parse_pubkey(snapshot.program_id, "program_id")
    pool_id = parse_pubkey(snapshot.pool.address, "pool address")
    config_id = parse_pubkey(snapshot.amm_config.address, "amm_config address")

    account_infos: dict[Pubkey, bytes] = {
        pool_id: _decode_data(snapshot.pool),
        config_id: _decode_data(snapshot.amm_config),
    }
    extension_data = None
    if snapshot.tick_array_bitmap_extension is not None:
        extension_data = _decode_data(snapshot.tick_array_bitmap_extension)
        account_infos[
            parse_pubkey(snapshot.tick_array_bitmap_extension.address, "extension address")
        ] = extension_data

    kwargs = {"program_id": program_id} if program_id is not None else {}
    pool = format_pool(
        pool_id, account_infos[pool_id], account_infos[config_id], extension_data, **kwargs
    )

    tick_arrays: list[TickArray] = []
    for account in snapshot.tick_arrays:
        address = parse_pubkey(account.address, "tick array address")
        data = _decode_data(account)
        account_infos[address] = data
        tick_arrays.append(decode_tick_array(data, address))

    return PoolSnapshot(
        pool=pool,
        tick_array_cache=build_tick_array_cache(tick_arrays, pool.tick_spacing, pool.id),
        account_infos=account_infos,
    )


def load_snapshot(path: str | Path, program_id: Pubkey | None = None) -> PoolSnapshot:
    snapshot_path = Path(path).expanduser()
    try:
        payload = json.loads(snapshot_path.read_text())
    except json.JSONDecodeError as exc:
        raise InvalidParametersError(f"snapshot {snapshot_path} is not valid JSON") from exc
    return parse_snapshot(payload, program_id)


def dump_account(address: Pubkey, data: bytes) -> dict[str, str]:
    return {"address": str(address), "data": base64.b64encode(data).decode()}
