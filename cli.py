#!/usr/bin/env python3
"""Command line entry points for running and poking at the wallet bot"""

import argparse
import asyncio
from typing import List, Optional

from chatwallet.config import settings
from chatwallet.core.quote import QuoteEngine
from chatwallet.logging_config import setup_logging
from chatwallet.providers.hashpack import HashpackPriceProvider
from chatwallet.services.address import to_evm_address


async def cli_poll():
    """Run the bot with long polling until interrupted"""
    from chatwallet.services.runtime import BotRuntime

    if not settings.has_telegram_token:
        print("❌ TELEGRAM_BOT_TOKEN is not set")
        return

    runtime = BotRuntime.build()
    await runtime.start(polling=True)
    print("🤖 Bot is polling for updates. Press Ctrl+C to stop.")
    try:
        await asyncio.Event().wait()
    finally:
        await runtime.stop()


async def cli_serve(host: str, port: int):
    """Serve the FastAPI app (webhook endpoint, health check)"""
    import uvicorn

    config = uvicorn.Config(
        "chatwallet.main:app",
        host=host,
        port=port,
        log_level=settings.log_level.lower(),
    )
    await uvicorn.Server(config).serve()


async def cli_quote(asset_id: str):
    """Print the oracle quote for an asset"""
    provider = HashpackPriceProvider()
    try:
        lookup = await QuoteEngine(provider).lookup(asset_id)
    finally:
        await provider.close()

    if not lookup.available:
        print(f"❌ Quote unavailable for {asset_id}: {lookup.reason}")
        return

    quote = lookup.quote
    print(f"\n💱 Quote for {asset_id}")
    print("=" * 40)
    print(f"Symbol:    {quote.symbol}")
    print(f"Price:     ${quote.price_usd} USD")
    print(f"Decimals:  {quote.decimals}")
    if lookup.used_fallback:
        print("⚠️  Asset is not listed by the oracle; this is the fallback quote")


def cli_evm_address(ledger_id: str):
    try:
        print(to_evm_address(ledger_id))
    except ValueError as e:
        print(f"❌ {e}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chat Wallet CLI")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("poll", help="Run the bot with long polling")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP app (webhook + health)")
    serve_parser.add_argument("--host", default=settings.host, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=settings.port, help="Bind port")

    quote_parser = subparsers.add_parser("quote", help="Look up an asset quote")
    quote_parser.add_argument("asset_id", help="Ledger id of the token, e.g. 0.0.1456986")

    evm_parser = subparsers.add_parser("evm-address", help="Convert a ledger id to its EVM address")
    evm_parser.add_argument("ledger_id", help="Ledger id, e.g. 0.0.3045981")

    return parser


async def main(argv: Optional[List[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    command = args.command.lower()

    if command == "poll":
        setup_logging()
        await cli_poll()

    elif command == "serve":
        await cli_serve(args.host, args.port)

    elif command == "quote":
        await cli_quote(args.asset_id)

    elif command == "evm-address":
        cli_evm_address(args.ledger_id)

    else:
        print(f"❌ Unknown command: {command}")
        parser.print_help()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
