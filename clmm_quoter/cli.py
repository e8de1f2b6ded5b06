from __future__ import annotations

import json
import sys
from dataclasses import fields, is_dataclass
from pathlib import Path
from typing import Any, NoReturn

import click
from loguru import logger
from pydantic import ValidationError

from clmm_quoter.adapters.clmm_adapter import ClmmAdapter
from clmm_quoter.core.clmm.errors import ClmmError, InvalidParametersError
from clmm_quoter.core.clmm.pool import (
    compute_amount_in,
    compute_amount_out,
    required_tick_array_start_indexes,
)
from clmm_quoter.core.clmm.pda import get_pda_tick_array_address
from clmm_quoter.core.clmm.snapshot import PoolSnapshot, load_snapshot, parse_pubkey
from clmm_quoter.core.config import QuoterSettings, load_settings
from clmm_quoter.core.utils.units import from_raw_amount, to_raw_amount


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _fail(error: Exception) -> NoReturn:
    _echo_json({"ok": False, "error": type(error).__name__, "details": str(error)})
    raise SystemExit(1)


def _as_dict(result: Any) -> dict[str, Any]:
    if not is_dataclass(result):
        raise TypeError(f"expected a dataclass result, got {type(result).__name__}")
    return {f.name: getattr(result, f.name) for f in fields(result)}


def _load(snapshot: Path, settings: QuoterSettings) -> PoolSnapshot:
    try:
        return load_snapshot(snapshot, settings.program_pubkey)
    except ClmmError as e:
        _fail(e)


@click.group(name="clmm-quote", help="Offline swap quotes for CLMM pool snapshots.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (defaults to $CLMM_QUOTER_CONFIG_PATH or ./config.json).",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
)
@click.pass_context
def clmm_quote_cli(
    ctx: click.Context, config_path: Path | None, log_level: str | None
) -> None:
    try:
        settings = load_settings(config_path, overrides={"log_level": log_level})
    except (ValidationError, ValueError, FileNotFoundError) as e:
        _fail(e)

    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    ctx.obj = settings


@clmm_quote_cli.command(name="quote", help="Quote a swap against a pool snapshot.")
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--input-mint", required=True, help="Mint the trader pays with.")
@click.option(
    "--amount",
    required=True,
    help="Input amount, or the desired output amount with --exact-out.",
)
@click.option(
    "--exact-out",
    is_flag=True,
    default=False,
    help="Treat --amount as the exact amount of the other mint to receive.",
)
@click.option("--slippage", type=float, default=None, help="Fraction, e.g. 0.005.")
@click.option("--price-limit", default=None, help="Stop at this price of mint A in B.")
@click.option(
    "--ui-amount",
    is_flag=True,
    default=False,
    help="--amount is in token units rather than base units.",
)
@click.pass_obj
def quote_cmd(
    settings: QuoterSettings,
    snapshot: Path,
    input_mint: str,
    amount: str,
    exact_out: bool,
    slippage: float | None,
    price_limit: str | None,
    ui_amount: bool,
) -> None:
    snap = _load(snapshot, settings)
    pool = snap.pool
    try:
        mint_in = parse_pubkey(input_mint, "input mint")
        info_in = pool.mint_info(mint_in)
        if info_in is None:
            raise InvalidParametersError(f"input mint {mint_in} is not part of pool {pool.id}")
        info_out = pool.mint_b if info_in == pool.mint_a else pool.mint_a
        specified = info_out if exact_out else info_in
        raw_amount = (
            to_raw_amount(amount, specified.decimals) if ui_amount else int(amount)
        )
        slip = settings.default_slippage if slippage is None else slippage
        if exact_out:
            result = compute_amount_in(
                pool, snap.tick_array_cache, info_out.mint, raw_amount, slip, price_limit
            )
        else:
            result = compute_amount_out(
                pool, snap.tick_array_cache, mint_in, raw_amount, slip, price_limit
            )
    except (ClmmError, ValueError) as e:
        _fail(e)

    payload = _as_dict(result)
    payload["input_mint"] = str(info_in.mint)
    payload["output_mint"] = str(info_out.mint)
    if exact_out:
        payload["ui_amount_in"] = from_raw_amount(result.amount_in, info_in.decimals)
    else:
        payload["ui_amount_out"] = from_raw_amount(result.amount_out, info_out.decimals)
    _echo_json({"ok": True, "result": payload})


@clmm_quote_cli.command(
    name="tick-arrays", help="List the initialized tick arrays around the price."
)
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--count", type=int, default=None, help="Total arrays to fetch.")
@click.pass_obj
def tick_arrays_cmd(settings: QuoterSettings, snapshot: Path, count: int | None) -> None:
    pool = _load(snapshot, settings).pool
    fetch_count = settings.tick_array_fetch_count if count is None else count
    items = [
        {
            "start_index": start_index,
            "address": str(
                get_pda_tick_array_address(pool.program_id, pool.id, start_index)
            ),
        }
        for start_index in required_tick_array_start_indexes(pool, fetch_count)
    ]
    _echo_json({"ok": True, "result": {"pool": str(pool.id), "tick_arrays": items}})


@clmm_quote_cli.command(
    name="accounts", help="List every account a router must fetch for this pool."
)
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def accounts_cmd(settings: QuoterSettings, snapshot: Path) -> None:
    snap = _load(snapshot, settings)
    pool = snap.pool
    adapter = ClmmAdapter(
        pool.id,
        snap.account_infos[pool.id],
        settings=settings.model_copy(update={"program_id": str(pool.program_id)}),
    )
    try:
        adapter.update(snap.account_infos)
    except ClmmError as e:
        _fail(e)
    _echo_json(
        {
            "ok": True,
            "result": {
                "pool": adapter.id,
                "accounts": [str(a) for a in adapter.get_accounts_for_update()],
            },
        }
    )


def main() -> None:
    clmm_quote_cli()


if __name__ == "__main__":
    main()
