#!/usr/bin/env python3
"""
MessageVault CLI - Local Vault Management Interface

Every command works against a chain snapshot on disk:
- init: deploy an EntryPoint and a vault, fund the vault's deposit
- send: sign a sendMessageToWallet user operation and submit it via handleOps
- messages: list stored messages
- deposit / withdraw-all: manage the vault's EntryPoint deposit
- check: report whether the vault is ready for user operations
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import asdict
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import click
from eth_account import Account
from eth_keys.exceptions import ValidationError as KeyValidationError
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from messagevault import __version__
from messagevault.core.chain_persistence import ChainStorage
from messagevault.core.client import VaultClient
from messagevault.core.config import WEI_PER_ETHER, VaultSettings
from messagevault.core.contracts import EntryPoint, MessageVault, StakeManager
from messagevault.core.exceptions import MessageVaultError, StorageError
from messagevault.core.logging_config import setup_logging
from messagevault.core.maintenance import check_requirements, setup_vault, withdraw_all
from messagevault.core.vm import ChainState, VMExecutionError, normalize_address

logger = logging.getLogger(__name__)
console = Console()

DEFAULT_OWNER_FUNDING_ETH = "10"

CLI_ERRORS = (click.ClickException, MessageVaultError, VMExecutionError, ValueError)


def _handle_cli_error(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging/exit codes."""
    logger.error("CLI error: %s", exc, exc_info=True)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _to_wei(amount: str) -> int:
    """Convert an ether amount given on the command line to wei."""
    try:
        wei = Decimal(amount) * WEI_PER_ETHER
    except InvalidOperation as exc:
        raise click.BadParameter(f"Not a number: {amount!r}") from exc
    if wei < 0 or wei != wei.to_integral_value():
        raise click.BadParameter(f"Amount must be a non-negative multiple of 1 wei: {amount!r}")
    return int(wei)


def _format_eth(wei: int) -> str:
    return f"{Decimal(wei) / WEI_PER_ETHER:f} ETH"


def _account(private_key: str):
    try:
        return Account.from_key(private_key)
    except (ValueError, KeyValidationError) as exc:
        raise click.BadParameter(f"Invalid private key: {exc}") from exc


def _load_chain(ctx: click.Context) -> ChainState:
    storage: ChainStorage = ctx.obj["storage"]
    try:
        return storage.load()
    except StorageError as exc:
        if not storage.exists():
            raise click.ClickException(f"No chain at {storage.path}; run 'messagevault init' first") from exc
        raise


def _find_vault(chain: ChainState, vault: Optional[str]) -> str:
    """Resolve the vault to operate on; without --vault the chain must host exactly one."""
    if vault:
        address = normalize_address(vault)
        if not isinstance(chain.get_contract(address), MessageVault):
            raise click.ClickException(f"No MessageVault at {address}")
        return address

    vaults = [addr for addr, contract in chain.contracts.items() if isinstance(contract, MessageVault)]
    if len(vaults) != 1:
        raise click.ClickException(f"Found {len(vaults)} vaults; pass --vault to choose one")
    return vaults[0]


def _emit_json(data: Dict[str, Any]) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


# ============================================================================
# CLI Group
# ============================================================================

@click.group()
@click.option(
    "--state-file",
    type=click.Path(dir_okay=False),
    help="Chain snapshot file (defaults to MESSAGEVAULT_STATE_FILE)",
)
@click.option("--json-output", is_flag=True, help="Output raw JSON")
@click.option("--verbose", is_flag=True, help="Write JSON logs to stderr")
@click.version_option(__version__, prog_name="messagevault")
@click.pass_context
def cli(ctx: click.Context, state_file: Optional[str], json_output: bool, verbose: bool):
    """
    MessageVault CLI - ERC-4337 message vault on a local chain

    Deploys a single-owner message vault next to an EntryPoint and drives it
    with signed user operations, the way a wallet and bundler would.
    """
    ctx.ensure_object(dict)
    try:
        settings = VaultSettings.from_env()
    except MessageVaultError as exc:
        _handle_cli_error(exc)

    setup_logging(
        name="messagevault",
        log_file=settings.log_file,
        level=settings.log_level,
        environment=settings.network.value,
        enable_console=verbose,
    )

    ctx.obj["settings"] = settings
    ctx.obj["storage"] = ChainStorage(state_file or settings.state_file)
    ctx.obj["json_output"] = json_output


# ============================================================================
# Commands
# ============================================================================

@cli.command("init")
@click.option("--key", "private_key", envvar="MESSAGEVAULT_PRIVATE_KEY", required=True, help="Owner private key")
@click.option("--deposit", default="0", show_default=True, help="Initial EntryPoint deposit in ETH")
@click.option(
    "--fund",
    default=DEFAULT_OWNER_FUNDING_ETH,
    show_default=True,
    help="Native balance credited to the owner on the new chain, in ETH",
)
@click.option(
    "--dispatcher",
    type=click.Choice(["entrypoint", "stake-manager"]),
    default="entrypoint",
    show_default=True,
    help="EntryPoint flavour; stake-manager has no balanceOf and only answers getDepositInfo",
)
@click.option("--force", is_flag=True, help="Overwrite an existing chain snapshot")
@click.pass_context
def init_chain(ctx: click.Context, private_key: str, deposit: str, fund: str, dispatcher: str, force: bool):
    """
    Create a chain with an EntryPoint and a vault owned by --key.

    Example:
        messagevault init --key 0x... --deposit 0.5
    """
    settings: VaultSettings = ctx.obj["settings"]
    storage: ChainStorage = ctx.obj["storage"]

    try:
        if storage.exists() and not force:
            raise click.ClickException(f"{storage.path} already exists; pass --force to replace it")

        owner = _account(private_key).address
        chain = ChainState(chain_id=settings.chain_id)
        chain.set_balance(owner, _to_wei(fund))

        entry_point_cls = EntryPoint if dispatcher == "entrypoint" else StakeManager
        entry_point_kwargs = {"chain_id": settings.chain_id} if entry_point_cls is EntryPoint else {}
        entry_point = chain.deploy(
            entry_point_cls(**entry_point_kwargs),
            deployer=owner,
            address=settings.entry_point_address,
        )
        vault = setup_vault(chain, owner, entry_point.address, deposit=_to_wei(deposit))
        storage.save(chain)

        if ctx.obj["json_output"]:
            _emit_json({"vault": vault.address, "entry_point": entry_point.address, "owner": owner})
            return

        table = Table(show_header=False, box=box.ROUNDED)
        table.add_row("[bold cyan]Vault", vault.address)
        table.add_row("[bold cyan]Owner", owner)
        table.add_row("[bold cyan]EntryPoint", f"{entry_point.address} ({type(entry_point).__name__})")
        table.add_row("[bold cyan]Chain ID", str(chain.chain_id))
        table.add_row("[bold cyan]Deposit", _format_eth(_to_wei(deposit)))
        table.add_row("[bold cyan]State File", storage.path)
        console.print(Panel(table, title="[bold green]Vault Deployed", border_style="green"))

    except CLI_ERRORS as exc:
        _handle_cli_error(exc)


@cli.command("send")
@click.argument("content")
@click.option("--key", "private_key", envvar="MESSAGEVAULT_PRIVATE_KEY", required=True, help="Signer private key")
@click.option("--vault", help="Vault address (defaults to the only vault on the chain)")
@click.pass_context
def send_message(ctx: click.Context, content: str, private_key: str, vault: Optional[str]):
    """
    Store CONTENT in the vault through a signed user operation.

    Any key may sign a message; the signer is recorded as the actor.

    Example:
        messagevault send "hello" --key 0x...
    """
    try:
        signer = _account(private_key).address
        chain = _load_chain(ctx)
        client = VaultClient(chain, _find_vault(chain, vault))

        receipt = client.send_message(private_key, content)
        # handleOps commits the nonce even when execution fails
        ctx.obj["storage"].save(chain)

        stored = receipt.events("MessageStored")
        reverted = receipt.events("UserOperationRevertReason")

        if ctx.obj["json_output"]:
            _emit_json({
                "signer": signer,
                "stored": [log.args for log in stored],
                "reverted": [log.args.get("revert_reason") for log in reverted],
            })
        elif stored:
            args = stored[0].args
            console.print(f"[bold green]Message stored[/] #{args['id']} by [cyan]{args['actor']}[/]")
        if reverted:
            raise click.ClickException(f"Operation reverted: {reverted[0].args.get('revert_reason')}")

    except CLI_ERRORS as exc:
        _handle_cli_error(exc)


@cli.command("messages")
@click.option("--vault", help="Vault address (defaults to the only vault on the chain)")
@click.pass_context
def list_messages(ctx: click.Context, vault: Optional[str]):
    """List the vault's stored messages in id order."""
    try:
        chain = _load_chain(ctx)
        records = VaultClient(chain, _find_vault(chain, vault)).messages()

        if ctx.obj["json_output"]:
            _emit_json({"messages": [asdict(record) for record in records]})
            return

        if not records:
            console.print("[yellow]No messages stored[/]")
            return

        table = Table(title="Stored Messages", box=box.ROUNDED)
        table.add_column("ID", style="cyan", justify="right")
        table.add_column("Actor", style="magenta")
        table.add_column("Content", style="white")
        for record in records:
            table.add_row(str(record.id), record.actor, record.content)
        console.print(table)

    except CLI_ERRORS as exc:
        _handle_cli_error(exc)


@cli.command("deposit")
@click.argument("amount")
@click.option("--key", "private_key", envvar="MESSAGEVAULT_PRIVATE_KEY", required=True, help="Funding private key")
@click.option("--vault", help="Vault address (defaults to the only vault on the chain)")
@click.pass_context
def add_deposit(ctx: click.Context, amount: str, private_key: str, vault: Optional[str]):
    """Add AMOUNT ETH to the vault's EntryPoint deposit."""
    try:
        sender = _account(private_key).address
        chain = _load_chain(ctx)
        vault_address = _find_vault(chain, vault)

        chain.transact(sender, vault_address, "add_deposit", value=_to_wei(amount))
        ctx.obj["storage"].save(chain)
        balance = chain.static_call(vault_address, "entry_point_balance")

        if ctx.obj["json_output"]:
            _emit_json({"vault": vault_address, "deposit": balance})
            return
        console.print(f"[bold green]Deposit added.[/] EntryPoint balance: [cyan]{_format_eth(balance)}[/]")

    except CLI_ERRORS as exc:
        _handle_cli_error(exc)


@cli.command("withdraw-all")
@click.option("--key", "private_key", envvar="MESSAGEVAULT_PRIVATE_KEY", required=True, help="Owner private key")
@click.option("--to", "recipient", help="Recipient address (defaults to the owner)")
@click.option("--vault", help="Vault address (defaults to the only vault on the chain)")
@click.pass_context
def withdraw_deposit(ctx: click.Context, private_key: str, recipient: Optional[str], vault: Optional[str]):
    """Withdraw the vault's whole EntryPoint deposit."""
    try:
        signer = _account(private_key).address
        chain = _load_chain(ctx)
        vault_address = _find_vault(chain, vault)

        amount = withdraw_all(chain, vault_address, signer, recipient)
        if amount:
            ctx.obj["storage"].save(chain)

        if ctx.obj["json_output"]:
            _emit_json({"vault": vault_address, "withdrawn": amount})
        elif amount:
            console.print(f"[bold green]Withdrew[/] [cyan]{_format_eth(amount)}[/] to {recipient or signer}")
        else:
            console.print("[yellow]No deposit to withdraw[/]")

    except CLI_ERRORS as exc:
        _handle_cli_error(exc)


@cli.command("check")
@click.option("--vault", help="Vault address (defaults to the only vault on the chain)")
@click.pass_context
def check_vault(ctx: click.Context, vault: Optional[str]):
    """Check deployment, deposit, nonce and chain id of the vault."""
    settings: VaultSettings = ctx.obj["settings"]
    try:
        chain = _load_chain(ctx)
        report = check_requirements(chain, _find_vault(chain, vault), settings)

        if ctx.obj["json_output"]:
            _emit_json(report.to_dict())
            return

        def status(ok: bool) -> str:
            return "[green]OK[/]" if ok else "[red]FAIL[/]"

        table = Table(title="Vault Requirements", box=box.ROUNDED)
        table.add_column("Check", style="cyan")
        table.add_column("Value", style="white")
        table.add_column("Status")
        table.add_row("Deployed", report.vault, status(report.deployed))
        table.add_row("EntryPoint", report.entry_point, "")
        table.add_row(
            "Deposit",
            f"{_format_eth(report.deposit)} (min {_format_eth(report.min_deposit)})",
            status(report.deposit_sufficient),
        )
        table.add_row("Nonce (key 0)", str(report.nonce), "")
        table.add_row("Native Balance", _format_eth(report.native_balance), "")
        table.add_row(
            "Chain ID",
            f"{report.chain_id} (expected {report.expected_chain_id})",
            status(report.chain_id_ok),
        )
        console.print(table)
        if report.ready:
            console.print("[bold green]Vault is ready for user operations[/]")
        else:
            console.print("[bold yellow]Vault is not ready for user operations[/]")

    except CLI_ERRORS as exc:
        _handle_cli_error(exc)


# ============================================================================
# Main Entry Point
# ============================================================================

def main():
    """Main CLI entry point"""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/]")
        sys.exit(130)


if __name__ == "__main__":
    main()
