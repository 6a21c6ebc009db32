"""CLI for mint-bot - manage the wallet vault and run mints from the terminal."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path

import typer
from pydantic import SecretStr
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from mint_bot.config import BotConfig, ChainConfig, default_config, load_config, save_config

app = typer.Typer(
    name="mint-bot",
    help="Mint from a vault of encrypted wallets.",
    no_args_is_help=True,
)
console = Console()

_config_path: Path = Path("mint-bot.yaml")


def _version_callback(value: bool):
    if value:
        from mint_bot import __version__
        console.print(f"mint-bot {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config: Path = typer.Option(
        Path("mint-bot.yaml"),
        "--config",
        "-c",
        help="Path to the YAML config file",
        envvar="MINT_BOT_CONFIG",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """Mint from a vault of encrypted wallets."""
    global _config_path
    _config_path = config


def _run(coro):
    """Run an async function synchronously."""
    return asyncio.run(coro)


def _load(require_password: bool = True) -> BotConfig:
    """Load the config file (or defaults) and set up logging.

    Prompts for the vault password when it isn't configured.
    """
    from mint_bot.log import setup_logging

    config = load_config(_config_path) if _config_path.exists() else default_config()
    setup_logging(config.log_level)

    if require_password and not config.vault.password.get_secret_value():
        password = console.input("[bold]Vault password: [/bold]", password=True)
        config = config.model_copy(
            update={"vault": config.vault.model_copy(update={"password": SecretStr(password)})}
        )
    return config


async def _open(config: BotConfig):
    from mint_bot.engine.minter import Minter
    from mint_bot.engine.notify import ConsoleNotifier

    return await Minter.open(config, notifier=ConsoleNotifier(console))


# ------------------------------------------------------------------
# init
# ------------------------------------------------------------------


@app.command()
def init(
    chain: str = typer.Option("monad-testnet", "--chain", help="Chain preset"),
    contract: str = typer.Option("", "--contract", help="Contract address to mint from"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config file"),
):
    """Write a starter config file."""
    if _config_path.exists() and not force:
        console.print(f"[yellow]{_config_path} already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)

    try:
        chain_config = ChainConfig.preset(chain)
    except KeyError as e:
        console.print(f"[red]{e.args[0]}[/red]")
        raise typer.Exit(1)

    config = BotConfig(chain=chain_config, contract_address=contract)
    save_config(config, _config_path)
    console.print(Panel(
        f"[bold green]Config written to {_config_path}[/bold green]\n\n"
        f"Set [cyan]MINT_BOT_VAULT_PASSWORD[/cyan], then add wallets with "
        f"[cyan]mint-bot vault add[/cyan].",
        title="mint-bot",
    ))


# ------------------------------------------------------------------
# vault
# ------------------------------------------------------------------

vault_app = typer.Typer(
    name="vault",
    help="Manage the encrypted wallet vault.",
    no_args_is_help=True,
)
app.add_typer(vault_app, name="vault")


@vault_app.command("add")
def vault_add(
    count: int = typer.Option(1, "--count", "-n", help="Number of private keys to enter"),
):
    """Add private keys to the vault (creates it if missing)."""
    from mint_bot.errors import IntegrityError, MalformedCredentialError, PersistenceError
    from mint_bot.vault.store import add_credentials

    config = _load()
    secrets = [
        console.input(f"[bold]Private key {i + 1}/{count}: [/bold]", password=True)
        for i in range(count)
    ]

    try:
        added = add_credentials(
            config.vault.path, config.vault.password.get_secret_value(), secrets
        )
    except MalformedCredentialError as e:
        console.print(f"[red]{e}[/red] Vault unchanged.")
        raise typer.Exit(1)
    except (IntegrityError, PersistenceError) as e:
        console.print(f"[red]Cannot update vault: {e}[/red]")
        raise typer.Exit(1)

    for address in added:
        console.print(f"[green]Added[/green] [cyan]{address}[/cyan]")


@vault_app.command("list")
def vault_list():
    """Show the addresses stored in the vault."""
    config = _load()

    async def _addresses():
        minter = await _open(config)
        addresses = sorted(minter.keyring.list_addresses())
        minter.close()
        return addresses

    addresses = _run(_addresses())
    if not addresses:
        console.print("[yellow]No wallets loaded.[/yellow]")
        raise typer.Exit(1)

    table = Table(title="Vault Wallets")
    table.add_column("#", style="dim")
    table.add_column("Address", style="cyan")
    for i, address in enumerate(addresses, start=1):
        table.add_row(str(i), address)
    console.print(table)


# ------------------------------------------------------------------
# mint / balance / supply
# ------------------------------------------------------------------


@app.command()
def mint():
    """Mint once from every wallet in the vault."""
    config = _load()

    async def _mint():
        minter = await _open(config)
        try:
            return await minter.mint_all()
        finally:
            minter.close()

    results = _run(_mint())
    if not results or not all(r.ok for r in results):
        raise typer.Exit(1)


@app.command()
def balance():
    """Show the native balance of every wallet."""
    config = _load()

    async def _balance():
        minter = await _open(config)
        result = await minter.balances()
        minter.close()
        return result

    result = _run(_balance())
    if not result:
        console.print("[yellow]No wallets configured.[/yellow]")
        raise typer.Exit(1)

    table = Table(title="Wallet Balances")
    table.add_column("Address", style="cyan")
    table.add_column("Balance", justify="right")
    table.add_column("Symbol")
    for address, info in result.items():
        if info.get("error"):
            table.add_row(address, f"[red]error[/red] - {info['error']}", info["symbol"])
        else:
            table.add_row(address, info["balance"], info["symbol"])
    console.print(table)


@app.command()
def supply():
    """Show the contract's minted and maximum supply."""
    config = _load(require_password=False)

    async def _supply():
        from mint_bot.chain.client import Web3LedgerClient
        from mint_bot.engine.ledger import SubmissionLedger
        from mint_bot.engine.minter import Minter
        from mint_bot.vault.keyring import KeyRing

        minter = Minter(config, KeyRing(), Web3LedgerClient(config.chain.rpc_url), SubmissionLedger())
        return await minter.supply()

    try:
        total, maximum = _run(_supply())
    except Exception as e:
        console.print(f"[red]Error fetching supply: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"📊 Supply: {total}/{maximum}\nRemaining: {maximum - total}")


# ------------------------------------------------------------------
# history / status / serve
# ------------------------------------------------------------------


@app.command()
def history(
    limit: int = typer.Option(10, "--limit", "-n", help="Number of entries to show"),
    plain: bool = typer.Option(False, "--plain", help="Print a plain numbered list instead of a table"),
):
    """Show recent submissions, newest first."""
    from mint_bot.engine.ledger import SubmissionLedger
    from mint_bot.engine.notify import format_history

    config = _load(require_password=False)
    ledger = SubmissionLedger(config.ledger.path, config.ledger.max_entries)
    ledger.load()
    entries = ledger.recent(limit)

    if plain:
        console.print(format_history(entries, config.chain.explorer_url), markup=False, highlight=False)
        return

    if not entries:
        console.print("[dim]📜 No transaction history found[/dim]")
        return

    table = Table(title="Recent Transactions")
    table.add_column("Time (UTC)", style="dim")
    table.add_column("Address", style="cyan")
    table.add_column("Status")
    table.add_column("Tx / Error")
    for entry in entries:
        when = datetime.fromtimestamp(entry.timestamp / 1000, tz=timezone.utc)
        if entry.ok:
            status, detail = "[green]success[/green]", config.chain.tx_url(entry.tx_hash or "")
        else:
            status, detail = "[red]failed[/red]", entry.error or ""
        table.add_row(f"{when:%Y-%m-%d %H:%M:%S}", entry.address, status, detail)
    console.print(table)


@app.command()
def status():
    """Show the current bot configuration."""
    config = _load()

    async def _status():
        minter = await _open(config)
        s = minter.status()
        s["connected"] = await minter.connected()
        minter.close()
        return s

    s = _run(_status())
    rpc = {True: "🟢 reachable", False: "🔴 unreachable"}.get(s["connected"], "⚪ unknown")
    console.print(Panel(
        f"🔗 Network: {s['network']} ({rpc})\n"
        f"🔢 Chain ID: {s['chain_id']}\n"
        f"📄 Contract: {s['contract']}\n"
        f"👛 Wallets: {s['wallets']}\n"
        f"⛽ Gas Limit: {s['gas_limit']}\n"
        f"💰 Gas Price: {s['gas_price']}\n"
        f"📦 Batch mode: {s['batch_mode']}\n"
        f"📜 History entries: {s['ledger_entries']}",
        title=f"{s['name']} Status",
    ))


@app.command()
def serve():
    """Run the health/status HTTP server."""
    from mint_bot.server import run_server

    config = _load()
    console.print(
        f"[bold green]Starting server at http://{config.server.host}:{config.server.port}[/bold green]"
    )
    run_server(config)
