"""lngw - operator dashboard for a Lightning Network gateway."""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Annotated, Any, AsyncIterator, Optional

import typer
from rich.columns import Columns
from rich.console import Console, Group
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Prompt
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from .config import GatewayConfig
from .endpoint import EndpointStore
from .formatters import (
    EMPTY,
    bitcoin_status_label,
    bitcoin_warnings,
    describe_error,
    format_age,
    format_maybe_number,
    format_maybe_percent,
    format_msat,
    header_lag,
    middle_ellipsis,
)
from .health import HealthPoller, HealthState
from .local import LocalApi
from .recent import RecentRequestsStore
from .session import RemoteSession
from .types import GatewayError, HttpError, RecentRequestEntry, ValidationError

app = typer.Typer(
    name="lngw",
    help="LN Gateway dashboard - node health and LNURL flows",
    rich_markup_mode="markdown",
)
remote_app = typer.Typer(help="Show or change the remembered remote gateway")
app.add_typer(remote_app, name="remote")

console = Console()


def configure_logging(debug: bool) -> None:
    logger = logging.getLogger("ln_gateway_dash")
    logger.handlers.clear()
    logger.addHandler(RichHandler(console=console, show_path=False))
    logger.setLevel(logging.DEBUG if debug else logging.WARNING)
    logger.propagate = False


@app.callback()
def main(
    ctx: typer.Context,
    debug: Annotated[
        bool, typer.Option("--debug", help="Log every request made to the gateway")
    ] = False,
) -> None:
    try:
        config = GatewayConfig.from_env()
    except GatewayError as e:
        console.print(f"[red]❌ Configuration error: {e}[/red]")
        raise typer.Exit(1)
    if debug:
        config = replace(config, debug=True)
    configure_logging(config.debug)
    ctx.obj = config


def handle_gateway_error(e: Exception, title: str = "Error") -> None:
    if isinstance(e, ValidationError):
        console.print(f"[yellow]⚠️  {e}[/yellow]")
    elif isinstance(e, HttpError):
        status, details = describe_error(e)
        console.print(f"[red]❌ {title} (HTTP {status}): {details}[/red]")
    elif isinstance(e, GatewayError):
        console.print(f"[red]❌ {title}: {describe_error(e)[1]}[/red]")
    else:
        console.print(f"[red]❌ {title}: {e}[/red]")


def run(coro: Any, title: str = "Error") -> None:
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")
    except GatewayError as e:
        handle_gateway_error(e, title)
        raise typer.Exit(1)


def print_json(title: str, value: Any) -> None:
    text = json.dumps(value, indent=2) if not isinstance(value, str) else value
    console.print(Panel(Syntax(text, "json", word_wrap=True), title=title, expand=False))


# ──────────────────────────────────────────────────────────────────────────────
# Status rendering
# ──────────────────────────────────────────────────────────────────────────────

CONNECTION_STYLES = {"online": "green", "offline": "red", "connecting": "yellow"}


def _info_table(title: str, rows: list[tuple[str, str]], status: Text | None = None) -> Panel:
    table = Table.grid(padding=(0, 2))
    table.add_column(style="dim")
    table.add_column()
    for label, value in rows:
        table.add_row(label, value)
    return Panel(table, title=title, subtitle=status, expand=True)


def render_status(state: HealthState, api_base_url: str, now: float | None = None) -> Group:
    """Build the status view for one ``HealthState``."""
    connection = state.connection
    online = connection.state == "online"
    style = CONNECTION_STYLES[connection.state]
    if online and not state.is_operational:
        style = "yellow"

    header = Table.grid(padding=(0, 2))
    header.add_row(
        Text(connection.state.upper(), style=f"bold {style}"),
        Text("operational" if state.is_operational else "degraded", style=style)
        if online
        else Text(""),
        f"Latency: {state.latency_ms}ms" if online and state.latency_ms is not None else "Latency: —",
        f"Updated: {_updated(state, now)}" if online else "Updated: —",
        Text(api_base_url, style="dim"),
    )
    parts: list[Any] = [header]
    if connection.detail:
        parts.append(Text(connection.detail, style="dim"))

    snapshot = state.snapshot
    if snapshot is not None:
        bitcoin = snapshot.get("bitcoin", {})
        lightning = snapshot.get("lightning", {})
        bitcoin_ok = bitcoin.get("status") == "ok"
        btc_style = {"ok": "green", "unreachable": "red"}.get(bitcoin.get("status", ""), "dim")

        def when_ok(value: str) -> str:
            return value if bitcoin_ok else EMPTY

        version = bitcoin.get("subversion") or str(bitcoin.get("version", "")) or None
        ibd = bitcoin.get("initial_block_download")
        blockchain = _info_table(
            "BLOCKCHAIN",
            [
                ("Chain", when_ok(bitcoin.get("chain") or EMPTY)),
                ("Blocks", when_ok(format_maybe_number(bitcoin.get("blocks")))),
                ("Headers", when_ok(format_maybe_number(bitcoin.get("headers")))),
                ("Header lag", format_maybe_number(header_lag(bitcoin))),
                ("Sync", when_ok(format_maybe_percent(bitcoin.get("verification_progress")))),
                ("Connections", when_ok(format_maybe_number(bitcoin.get("connections")))),
                ("IBD", when_ok("Yes" if ibd else "No")),
                ("Version", when_ok(version or EMPTY)),
            ],
            Text(bitcoin_status_label(bitcoin.get("status")), style=btc_style),
        )
        node = _info_table(
            "NODE",
            [
                ("Alias", lightning.get("alias") or EMPTY),
                ("Pubkey", middle_ellipsis(lightning.get("pubkey") or EMPTY)),
                ("CLN version", lightning.get("cln_version") or EMPTY),
            ],
            Text(str(lightning.get("status", EMPTY)), style="green" if lightning.get("status") == "ok" else "yellow"),
        )
        channels = _info_table(
            "CHANNELS",
            [
                ("Peers", format_maybe_number(lightning.get("num_peers"))),
                ("Active", format_maybe_number(lightning.get("num_active_channels"))),
                ("Pending", format_maybe_number(lightning.get("num_pending_channels"))),
            ],
        )
        gateway = _info_table(
            "GATEWAY",
            [
                ("Min withdrawable", format_msat(snapshot.get("min_withdrawable_msat"))),
                ("Max withdrawable", format_msat(snapshot.get("max_withdrawable_msat"))),
            ],
        )
        parts.append(Columns([blockchain, node, channels, gateway], equal=True))

        warnings = bitcoin_warnings(snapshot) if bitcoin_ok else None
        if warnings:
            parts.append(Text(f"⚠️  {warnings}", style="yellow"))

    return Group(*parts)


def _updated(state: HealthState, now: float | None) -> str:
    if state.updated_at is None:
        return EMPTY
    clock = time.strftime("%H:%M:%S", time.localtime(state.updated_at))
    return f"{clock} ({state.age_seconds(now)}s ago)"


def render_recent(items: list[RecentRequestEntry], now_ms: int | None = None) -> Table:
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    table = Table(title=f"Recent requests ({len(items)} shown)")
    table.add_column("Status", justify="right")
    table.add_column("Request", style="cyan")
    table.add_column("From", style="dim")
    table.add_column("Age", style="magenta")
    for entry in items:
        status_style = "green" if entry.get("ok") else "red"
        table.add_row(
            Text(str(entry.get("status")), style=status_style),
            f"{entry.get('method')} {entry.get('path')}",
            entry.get("client_addr") or "unknown",
            format_age(entry.get("ts_ms", now_ms), now_ms),
        )
    return table


# ──────────────────────────────────────────────────────────────────────────────
# Status commands
# ──────────────────────────────────────────────────────────────────────────────


@app.command()
def status(ctx: typer.Context) -> None:
    """Poll /health once and show node, chain and gateway status."""
    config: GatewayConfig = ctx.obj

    async def _status() -> None:
        async with LocalApi(config.api_base_url) as api:
            poller = HealthPoller(api, interval=config.health_interval)
            state = await poller.poll()
        console.print(render_status(state, config.api_base_url))
        if state.connection.state == "offline":
            raise typer.Exit(1)

    run(_status())


@app.command()
def watch(ctx: typer.Context) -> None:
    """Live status and recent-requests view. Ctrl+C to stop."""
    config: GatewayConfig = ctx.obj

    async def _watch() -> None:
        async with LocalApi(config.api_base_url) as api:
            poller = HealthPoller(api, interval=config.health_interval)
            store = RecentRequestsStore(
                api, limit=config.recent_limit, interval=config.recent_interval
            )

            def view() -> Group:
                parts: list[Any] = [render_status(poller.state, config.api_base_url)]
                if store.error is not None:
                    parts.append(Text(f"Recent requests: {describe_error(store.error)[1]}", style="red"))
                elif store.items:
                    parts.append(render_recent(store.items))
                return Group(*parts)

            with Live(view(), console=console, refresh_per_second=4) as live:
                unsubscribe = poller.subscribe(lambda state: live.update(view()))
                store.start()
                try:
                    async with poller:
                        while True:
                            await asyncio.sleep(1)
                            # Keeps the "Ns ago" ages ticking between polls
                            live.update(view())
                finally:
                    unsubscribe()
                    await store.stop()

    run(_watch())


@app.command()
def recent(
    ctx: typer.Context,
    limit: Annotated[
        Optional[int], typer.Option("--limit", "-n", help="How many entries to show")
    ] = None,
    clear: Annotated[
        bool, typer.Option("--clear", help="Clear the recent-requests ring")
    ] = False,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
) -> None:
    """List (or clear) requests recently observed by the gateway."""
    config: GatewayConfig = ctx.obj

    async def _recent() -> None:
        async with LocalApi(config.api_base_url) as api:
            store = RecentRequestsStore(api, limit=limit or config.recent_limit)
            await store.refresh()
            if store.error is not None:
                handle_gateway_error(store.error, "Failed to load recent requests")
                raise typer.Exit(1)
            if clear:
                if not store.items:
                    console.print("[yellow]No recent requests to clear[/yellow]")
                    return
                if not yes and not typer.confirm(
                    f"Clear {len(store.items)} recent requests?", default=False
                ):
                    return
                await store.clear()
                console.print("[green]✅ Cleared.[/green]")
            if not store.items:
                console.print("[dim]No recent requests yet.[/dim]")
                return
            console.print(render_recent(store.items))

    run(_recent(), "Failed to clear recent requests")


# ──────────────────────────────────────────────────────────────────────────────
# Remote endpoint
# ──────────────────────────────────────────────────────────────────────────────


def get_store(config: GatewayConfig) -> EndpointStore:
    return EndpointStore(config.env_file, default_scheme=config.default_scheme)


@remote_app.command("show")
def remote_show(ctx: typer.Context) -> None:
    """Show the remembered remote endpoint."""
    store = get_store(ctx.obj)
    if store.is_set:
        console.print(f"[green]{store.get()}[/green]")
    else:
        console.print("[yellow]No remote endpoint set[/yellow]")
        console.print("Set one with: lngw remote set http://remote-host:3000")


@remote_app.command("set")
def remote_set(
    ctx: typer.Context,
    url: Annotated[str, typer.Argument(help="Base URL, e.g. remote-host:3000")],
) -> None:
    """Remember a remote gateway endpoint."""
    store = get_store(ctx.obj)
    store.set(url)
    if not store.is_set:
        console.print("[red]❌ URL is empty[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✅ Remote endpoint: {store.get()}[/green]")


@remote_app.command("clear")
def remote_clear(ctx: typer.Context) -> None:
    """Forget the remembered remote endpoint."""
    if get_store(ctx.obj).clear():
        console.print("[green]🗑️ Cleared remote endpoint[/green]")
    else:
        console.print("[yellow]ℹ️ No remote endpoint to clear[/yellow]")


# ──────────────────────────────────────────────────────────────────────────────
# LNURL flows
# ──────────────────────────────────────────────────────────────────────────────

EndpointOption = Annotated[
    Optional[str],
    typer.Option("--endpoint", "-e", help="Remote gateway base URL (remembered)"),
]


@asynccontextmanager
async def open_session(config: GatewayConfig, endpoint: str | None) -> AsyncIterator[RemoteSession]:
    session = RemoteSession(get_store(config))
    try:
        if endpoint:
            await session.set_endpoint(endpoint)
        elif not session.is_ready:
            console.print("\n[cyan]🌐 Remote endpoint[/cyan]")
            console.print("No remote endpoint is set.")
            raw = Prompt.ask("Gateway base URL", default=config.api_base_url)
            await session.set_endpoint(raw)
        if not session.is_ready:
            raise ValidationError("Set a remote endpoint first")
        console.print(f"[dim]Remote endpoint: {session.endpoint}[/dim]")
        yield session
    finally:
        await session.aclose()


@app.command()
def withdraw(
    ctx: typer.Context,
    destination: Annotated[
        Optional[str], typer.Option("--destination", "-d", help="Destination (btc address)")
    ] = None,
    amount: Annotated[
        Optional[str], typer.Option("--amount", "-a", help="Amount in sat (optional)")
    ] = None,
    endpoint: EndpointOption = None,
) -> None:
    """GET /withdraw-request, then send the callback when a destination is given."""
    config: GatewayConfig = ctx.obj

    async def _withdraw() -> None:
        async with open_session(config, endpoint) as session:
            flow = session.withdraw
            request = await flow.create_request()
            print_json("Withdraw request", request)
            if destination is None and amount is None:
                console.print("[dim]Pass --destination (and --amount) to send the callback[/dim]")
                return
            response = await flow.invoke_callback(destination, amount)
            print_json("Callback response", response)

    run(_withdraw(), "Withdraw failed")


@app.command()
def channel(
    ctx: typer.Context,
    remote_id: Annotated[
        Optional[str],
        typer.Option("--remote-id", "-r", help="Node pubkey of the remote peer"),
    ] = None,
    amount: Annotated[
        Optional[str], typer.Option("--amount", "-a", help="Amount in sat (optional)")
    ] = None,
    announce: Annotated[
        Optional[str], typer.Option("--announce", help="true | false (optional)")
    ] = None,
    endpoint: EndpointOption = None,
) -> None:
    """GET /channel-request, then ask for a channel when --remote-id is given."""
    config: GatewayConfig = ctx.obj

    async def _channel() -> None:
        async with open_session(config, endpoint) as session:
            flow = session.channel
            request = await flow.create_request()
            print_json("Channel request", request)
            if remote_id is None and amount is None and announce is None:
                console.print("[dim]Pass --remote-id to send the callback[/dim]")
                return
            response = await flow.invoke_callback(remote_id, amount, announce)
            print_json("Callback response", response)

    run(_channel(), "Open channel failed")


@app.command()
def auth(
    ctx: typer.Context,
    action: Annotated[
        Optional[str], typer.Option("--action", help="login | register | link | auth")
    ] = None,
    key: Annotated[
        Optional[str], typer.Option("--key", "-k", help="Linking key (compressed pubkey hex)")
    ] = None,
    sig: Annotated[
        Optional[str], typer.Option("--sig", "-s", help="Signature of k1 (hex)")
    ] = None,
    tag: Annotated[Optional[str], typer.Option("--tag", help="Tag (optional)")] = None,
    endpoint: EndpointOption = None,
) -> None:
    """GET /lnurl-auth-request, then send key + sig to the callback."""
    config: GatewayConfig = ctx.obj

    async def _auth() -> None:
        async with open_session(config, endpoint) as session:
            flow = session.auth
            request = await flow.create_request(action)
            print_json("LNURL-auth request", request)
            if key is None and sig is None:
                console.print(
                    "[dim]Sign k1 with your linking key, then rerun with --key and --sig[/dim]"
                )
                return
            response = await flow.invoke_callback(key, sig, tag)
            print_json("Callback response", response)

    run(_auth(), "LNURL-auth failed")


if __name__ == "__main__":
    app()
