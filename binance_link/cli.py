"""CLI entry point for binance-link."""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from pathlib import Path
from typing import Any, Callable

import click

from . import __version__
from .config import get_binance_tld, load_host_config
from .oauth.codec import FernetSecretCodec
from .output import OutputHandler
from .service import BinanceService, RequestNotAcceptedError, await_callback, create_service

# Logger for CLI
logger = logging.getLogger("bnlink")

Start = Callable[[Callable[..., None]], bool]


@click.group()
@click.option("--json", "json_mode", is_flag=True, help="Output in JSON format")
@click.option("--env-file", "env_path", type=click.Path(exists=True), help="Path to .env file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, json_mode: bool, env_path: str | None, verbose: bool) -> None:
    """binance-link - Connect a Binance account over OAuth and query it."""
    ctx.ensure_object(dict)
    ctx.obj["json_mode"] = json_mode
    ctx.obj["env_path"] = Path(env_path) if env_path else None
    ctx.obj["output"] = OutputHandler(json_mode)

    # Configure logging based on verbosity
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    else:
        logging.basicConfig(level=logging.WARNING)


def get_service(ctx: click.Context) -> BinanceService:
    """Build the service from the configured environment."""
    return create_service(load_host_config(ctx.obj["env_path"]))


def run_operations(service: BinanceService, *starts: Start) -> list[tuple[Any, ...]]:
    """Issue callback-style operations concurrently and collect their results.

    The HTTP client is closed once every request has completed.
    """

    async def runner() -> list[tuple[Any, ...]]:
        try:
            results = await asyncio.gather(*(await_callback(start) for start in starts))
            return list(results)
        finally:
            await service.multiplexer.aclose()

    return asyncio.run(runner())


def require_connected(ctx: click.Context, service: BinanceService) -> None:
    output: OutputHandler = ctx.obj["output"]
    if not service.is_connected():
        output.error(
            Exception("Not connected to Binance"),
            error_type="NotAuthenticated",
            help_text="Run 'bnlink login' to connect your account.",
        )


@main.command()
@click.option("--no-browser", is_flag=True, help="Print the authorization URL instead of opening it")
@click.option("--code", help="Authorization code (prompted for if omitted)")
@click.pass_context
def login(ctx: click.Context, no_browser: bool, code: str | None) -> None:
    """Authorize this client and store the resulting tokens."""
    output: OutputHandler = ctx.obj["output"]
    service = get_service(ctx)

    auth_url = service.get_oauth_client_url()
    if no_browser or not webbrowser.open(auth_url):
        click.echo(f"Open this URL to authorize:\n{auth_url}", err=True)

    if code is None:
        code = click.prompt("Authorization code", err=True).strip()

    service.set_auth_code(code)
    try:
        [(success,)] = run_operations(service, service.exchange_token)
    except RequestNotAcceptedError as e:
        logger.error(f"Token exchange was not issued: {e}")
        output.error(e)
        return

    if not success:
        output.error(
            Exception("Token exchange failed"),
            error_type="TokenExchangeError",
            help_text="The authorization code may have expired. Run 'bnlink login' again.",
        )
        return

    output.success({"connected": True}, "Connected to Binance.")


@main.command()
@click.pass_context
def logout(ctx: click.Context) -> None:
    """Revoke the access token and forget stored credentials."""
    output: OutputHandler = ctx.obj["output"]
    service = get_service(ctx)
    require_connected(ctx, service)

    [(success,)] = run_operations(service, service.revoke_token)
    if not success:
        output.error(
            Exception("Token revocation failed"),
            error_type="RevokeError",
            help_text="Stored credentials were kept. Try again later.",
        )
        return

    output.success({"connected": False}, "Disconnected from Binance.")


@main.command()
@click.option("--country", default="", help="Two-letter country code used to pick the Binance domain")
@click.pass_context
def status(ctx: click.Context, country: str) -> None:
    """Show whether stored credentials are available."""
    output: OutputHandler = ctx.obj["output"]
    service = get_service(ctx)

    data = service.credential.redacted()
    data["oauth_host"] = service.config.oauth_host
    data["tld"] = get_binance_tld(country)
    if isinstance(service.store.codec, FernetSecretCodec):
        data["key_storage"] = "keyring" if service.store.codec.is_using_keyring() else "machine-derived"

    message = "Connected to Binance." if data["authenticated"] else "Not connected."
    output.success(data, message)


@main.command()
@click.argument("symbol_pair")
@click.pass_context
def ticker(ctx: click.Context, symbol_pair: str) -> None:
    """Show the price and 24h volume for SYMBOL_PAIR (e.g. BTCUSDT)."""
    output: OutputHandler = ctx.obj["output"]
    service = get_service(ctx)

    [(price,), (volume,)] = run_operations(
        service,
        lambda cb: service.get_ticker_price(symbol_pair, cb),
        lambda cb: service.get_ticker_volume(symbol_pair, cb),
    )
    output.success(
        {"symbol": symbol_pair, "price": price, "volume": volume},
        f"{symbol_pair}: price {price}, volume {volume}",
    )


@main.command()
@click.pass_context
def balances(ctx: click.Context) -> None:
    """List free balances per asset."""
    output: OutputHandler = ctx.obj["output"]
    service = get_service(ctx)
    require_connected(ctx, service)

    [(result, success)] = run_operations(service, service.get_account_balances)
    if not success:
        output.error(Exception("Could not fetch balances"), error_type="RequestFailed")
        return

    output.table(["Asset", "Free"], [[asset, free] for asset, free in sorted(result.items())])


@main.command()
@click.argument("symbol")
@click.pass_context
def deposit(ctx: click.Context, symbol: str) -> None:
    """Show the deposit address for SYMBOL."""
    output: OutputHandler = ctx.obj["output"]
    service = get_service(ctx)
    require_connected(ctx, service)

    [(address, url, success)] = run_operations(
        service, lambda cb: service.get_deposit_info(symbol, cb)
    )
    if not success:
        output.error(Exception(f"Could not fetch deposit info for {symbol}"), error_type="RequestFailed")
        return

    output.success({"symbol": symbol, "address": address, "url": url}, f"{symbol}: {address}")


@main.command()
@click.argument("from_asset")
@click.argument("to_asset")
@click.argument("amount")
@click.pass_context
def quote(ctx: click.Context, from_asset: str, to_asset: str, amount: str) -> None:
    """Request a conversion quote for AMOUNT of FROM_ASSET into TO_ASSET."""
    output: OutputHandler = ctx.obj["output"]
    service = get_service(ctx)
    require_connected(ctx, service)

    [(quote_id, quote_price, total_fee, total_amount)] = run_operations(
        service, lambda cb: service.get_convert_quote(from_asset, to_asset, amount, cb)
    )
    if not quote_id:
        output.error(Exception("No quote returned"), error_type="RequestFailed")
        return

    output.success(
        {
            "quote_id": quote_id,
            "quote_price": quote_price,
            "total_fee": total_fee,
            "total_amount": total_amount,
        },
        f"Quote {quote_id}: price {quote_price}, fee {total_fee}, total {total_amount}",
    )


@main.command()
@click.argument("quote_id")
@click.pass_context
def confirm(ctx: click.Context, quote_id: str) -> None:
    """Confirm the conversion quoted as QUOTE_ID."""
    output: OutputHandler = ctx.obj["output"]
    service = get_service(ctx)
    require_connected(ctx, service)

    [(success, error_message)] = run_operations(
        service, lambda cb: service.confirm_convert(quote_id, cb)
    )
    if not success:
        output.error(Exception(error_message or "Conversion failed"), error_type="ConvertError")
        return

    output.success({"quote_id": quote_id, "confirmed": True}, f"Conversion {quote_id} confirmed.")


@main.command()
@click.pass_context
def assets(ctx: click.Context) -> None:
    """List convertible assets and their conversion targets."""
    output: OutputHandler = ctx.obj["output"]
    service = get_service(ctx)
    require_connected(ctx, service)

    [(result,)] = run_operations(service, service.get_convert_assets)
    output.table(
        ["Asset", "Converts to"],
        [[name, ", ".join(targets)] for name, targets in sorted(result.items())],
    )


if __name__ == "__main__":
    main()
