#!/usr/bin/env python3
"""Simple CLI for trying the swap terminal core locally"""

import argparse
import asyncio

from swapdesk.core.errors import SwapDeskError
from swapdesk.core.models import NATIVE_SOL_MINT, USDC_MINT, Network
from swapdesk.core.risk import assess_price_impact, format_route, is_high_slippage, thresholds_from_settings
from swapdesk.core.units import format_amount, from_base_units, to_base_units
from swapdesk.db.supabase_client import get_trade_store
from swapdesk.logging_config import setup_logging
from swapdesk.providers.jupiter import get_aggregator_client
from swapdesk.providers.solana import get_rpc_client
from swapdesk.services.token_metadata import get_token_cache

TOKEN_ALIASES = {"SOL": NATIVE_SOL_MINT, "USDC": USDC_MINT}

SEVERITY_ICONS = {"low": "🟢", "medium": "🟡", "high": "🔴"}


def resolve_mint(token: str) -> str:
    return TOKEN_ALIASES.get(token.upper(), token)


async def cli_quote(input_token: str, output_token: str, amount: str, slippage_bps: int):
    """CLI command to quote a swap"""
    cache = get_token_cache()
    await cache.start()
    aggregator = get_aggregator_client()
    try:
        input_mint = resolve_mint(input_token)
        output_mint = resolve_mint(output_token)
        input_meta = await cache.get(input_mint)
        output_meta = await cache.get(output_mint)

        print(f"🔍 Quoting {amount} {input_meta.symbol} → {output_meta.symbol}...")
        quote = await aggregator.fetch_quote(
            input_mint,
            output_mint,
            to_base_units(amount, input_meta.decimals),
            slippage_bps,
        )
    except SwapDeskError as e:
        print(f"❌ {e.message}")
        return
    finally:
        await aggregator.close()
        await cache.stop()

    impact = assess_price_impact(quote.price_impact_raw, thresholds_from_settings())
    out_human = from_base_units(quote.out_amount, output_meta.decimals)

    print("\n💱 Quote")
    print("=" * 50)
    print(f"You pay:      {amount} {input_meta.symbol}")
    print(f"You receive:  ~{format_amount(out_human)} {output_meta.symbol}")
    print(f"Route:        {format_route(quote.route_plan)}")
    print(f"Price impact: {SEVERITY_ICONS[impact.severity.value]} {impact.value:.2f}%")
    print(f"Slippage:     {quote.slippage_bps / 100:.2f}%")
    if quote.approximate:
        print("\n⚠️  Estimate from spot prices only, no live route")
    if is_high_slippage(quote.slippage_bps):
        print("\n⚠️  High slippage tolerance")
    if not output_meta.decimals_confirmed:
        print(f"\n⚠️  Decimals for {output_meta.symbol} unconfirmed, amounts may be off")


async def cli_token(mint: str):
    """CLI command to show token metadata"""
    cache = get_token_cache()
    await cache.start()
    try:
        meta = await cache.get(resolve_mint(mint))
    finally:
        await cache.stop()

    print(f"\n🪙 {meta.symbol} ({meta.name})")
    print(f"Mint:     {meta.mint}")
    print(f"Decimals: {meta.decimals}{'' if meta.decimals_confirmed else ' (default)'}")


async def cli_trades(wallet: str, limit: int):
    """CLI command to list recent trades"""
    store = get_trade_store()
    records = await store.list_trade_records(wallet, limit=limit)
    if not records:
        print("No trades recorded")
        return

    print(f"\n📜 Last {len(records)} trades for {wallet}")
    print("-" * 50)
    for record in records:
        print(
            f"{record.created_at:%Y-%m-%d %H:%M} {record.direction.value:<4} "
            f"{format_amount(record.input_amount):>12} → {format_amount(record.output_amount_estimate):<12} "
            f"{record.transaction_signature or ''}"
        )


async def cli_balance(address: str, network: str):
    """CLI command to show SOL and token balances"""
    rpc = get_rpc_client(Network(network))
    try:
        sol = await rpc.get_balance(address)
        tokens = await rpc.get_token_balances(address)
    finally:
        await rpc.close()

    print(f"\n👛 {address} ({network})")
    print(f"SOL: {format_amount(sol)}")
    for token in tokens:
        print(f"  {token['mint']}: {format_amount(token['balance'])}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SwapDesk CLI")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command")

    quote_parser = subparsers.add_parser("quote", help="Quote a swap")
    quote_parser.add_argument("input", help="Input token mint (or SOL/USDC)")
    quote_parser.add_argument("output", help="Output token mint (or SOL/USDC)")
    quote_parser.add_argument("amount", help="Input amount in human units")
    quote_parser.add_argument("--slippage-bps", type=int, default=100, help="Slippage in basis points (default: 100)")

    token_parser = subparsers.add_parser("token", help="Show token metadata")
    token_parser.add_argument("mint", help="Token mint (or SOL/USDC)")

    trades_parser = subparsers.add_parser("trades", help="List recent trades for a wallet")
    trades_parser.add_argument("wallet", help="Wallet address")
    trades_parser.add_argument("--limit", type=int, default=20, help="Number of trades (default: 20)")

    balance_parser = subparsers.add_parser("balance", help="Show wallet balances")
    balance_parser.add_argument("address", help="Wallet address")
    balance_parser.add_argument("--network", choices=[n.value for n in Network], default="mainnet")

    return parser


async def main():
    parser = build_parser()
    args = parser.parse_args()
    setup_logging(args.log_level or "WARNING")

    if not args.command:
        parser.print_help()
        return

    if args.command == "quote":
        await cli_quote(args.input, args.output, args.amount, args.slippage_bps)

    elif args.command == "token":
        await cli_token(args.mint)

    elif args.command == "trades":
        if args.limit <= 0:
            raise ValueError("Limit must be positive")
        await cli_trades(args.wallet, args.limit)

    elif args.command == "balance":
        await cli_balance(args.address, args.network)

    else:
        print(f"❌ Unknown command: {args.command}")
        parser.print_help()


if __name__ == "__main__":
    asyncio.run(main())
