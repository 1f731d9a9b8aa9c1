# anchor/cli/main.py
"""
CLI for registering file fingerprints on the ledger and verifying them.
"""

from contextlib import contextmanager
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from anchor.config import AnchorConfig
from anchor.core.canon import canonical_json_str
from anchor.core.errors import ConfigurationError, TransientNetworkError, ValidationError, sanitize_error
from anchor.core.log import setup_logging
from anchor.core.types import StatusCode, VerificationResult
from anchor.chain.fees import describe_quote
from anchor.service import AnchorService

app = typer.Typer(
    name="fingerprint-anchor",
    help="Anchor file fingerprints to a public ledger and verify them",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

STATUS_STYLE = {
    StatusCode.CONFIRMED: "green",
    StatusCode.SUBMITTED_UNCONFIRMED: "yellow",
    StatusCode.NOT_CONFIRMED: "yellow",
    StatusCode.FAIL_UNREADABLE: "yellow",
    StatusCode.UNKNOWN: "red",
}


def build_service(config: AnchorConfig) -> AnchorService:
    return AnchorService(config)


@contextmanager
def cli_errors(config: AnchorConfig):
    """Map client errors to messages and exit codes (2 = bad input, 1 = failure)."""
    try:
        yield
    except ValidationError as e:
        console.print(f"[red]Invalid input: {e}[/]", soft_wrap=True)
        raise typer.Exit(2)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {sanitize_error(e, config.secrets)}[/]", soft_wrap=True)
        console.print("[yellow]Check ANCHOR_RPC_URL, ANCHOR_CONTRACT_ADDRESS, ANCHOR_CHAIN_ID "
                      "and ANCHOR_PRIVATE_KEY (or the matching flags).[/]")
        raise typer.Exit(1)
    except TransientNetworkError as e:
        console.print(f"[red]Ledger unavailable: {sanitize_error(e, config.secrets)}[/]", soft_wrap=True)
        raise typer.Exit(1)


def print_result(result: VerificationResult, as_json: bool) -> None:
    if as_json:
        typer.echo(canonical_json_str(result))
    else:
        style = STATUS_STYLE[result.status_code]
        console.print(f"[bold {style}]{result.status_code.value}[/] {result.fingerprint}", soft_wrap=True)
        console.print(f"  {result.explanatory_text}", soft_wrap=True)
        if result.confirmed_at_unix:
            console.print(f"  Confirmed at (unix): {result.confirmed_at_unix}")
        if result.observed_block_number is not None:
            console.print(f"  Observed at block:   {result.observed_block_number}")
        if result.submission:
            console.print(f"  Submission:          {result.submission.tx_ref}", soft_wrap=True)
        if result.error:
            console.print(f"  [red]{result.error}[/]", soft_wrap=True)

    if not result.ok:
        raise typer.Exit(1)


@app.callback()
def main(
    ctx: typer.Context,
    rpc_url: Optional[str] = typer.Option(None, "--rpc-url", help="Ledger RPC endpoint (overrides ANCHOR_RPC_URL)"),
    contract: Optional[str] = typer.Option(None, "--contract", help="Contract address (overrides ANCHOR_CONTRACT_ADDRESS)"),
    chain_id: Optional[int] = typer.Option(None, "--chain-id", help="Expected network id (overrides ANCHOR_CHAIN_ID)"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (overrides ANCHOR_LOG_LEVEL)"),
):
    """Register and verify file fingerprints."""
    try:
        config = AnchorConfig.from_env(
            rpc_url=rpc_url, contract_address=contract, chain_id=chain_id, log_level=log_level
        )
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/]")
        raise typer.Exit(1)
    setup_logging(config.log_level)
    ctx.obj = config


@app.command()
def register(
    ctx: typer.Context,
    fingerprint: str = typer.Argument(..., help="0x + 64 hex digest of the file"),
    as_json: bool = typer.Option(False, "--json", help="Print canonical JSON"),
):
    """Register a fingerprint (no-op if it is already confirmed)."""
    config: AnchorConfig = ctx.obj
    with cli_errors(config):
        result = build_service(config).register(fingerprint)
    print_result(result, as_json)


@app.command()
def verify(
    ctx: typer.Context,
    fingerprint: str = typer.Argument(..., help="0x + 64 hex digest of the file"),
    tx: Optional[str] = typer.Option(None, "--tx", help="Submission reference from an earlier registration"),
    as_json: bool = typer.Option(False, "--json", help="Print canonical JSON"),
):
    """Check whether a confirmed ledger record exists for a fingerprint."""
    config: AnchorConfig = ctx.obj
    with cli_errors(config):
        result = build_service(config).verify(fingerprint, tx)
    print_result(result, as_json)


@app.command("tx")
def tx_status(
    ctx: typer.Context,
    tx_ref: str = typer.Argument(..., help="Submission reference (transaction hash)"),
    as_json: bool = typer.Option(False, "--json", help="Print canonical JSON"),
):
    """Show whether a submission is mined, pending or unknown."""
    config: AnchorConfig = ctx.obj
    with cli_errors(config):
        status = build_service(config).lookup_submission(tx_ref)

    if as_json:
        typer.echo(canonical_json_str(status))
        return
    console.print(f"[bold]{status.state.upper()}[/] {status.tx_ref}", soft_wrap=True)
    if status.state == "mined":
        console.print(f"  Receipt status: {status.receipt_status}")
        console.print(f"  Block:          {status.block_number}")
        console.print(f"  Confirmations:  {status.confirmations if status.confirmations is not None else '—'}")


@app.command()
def fees(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Print canonical JSON"),
):
    """Show the fee quote a registration would use right now."""
    config: AnchorConfig = ctx.obj
    with cli_errors(config):
        quote = build_service(config).quote_fees()
    view = describe_quote(quote)

    if as_json:
        typer.echo(canonical_json_str(view))
        return

    table = Table(title="Fee quote (gwei)")
    table.add_column("Field")
    table.add_column("Picked")
    table.add_column("Network estimate")
    table.add_row("maxFeePerGas", str(view["picked"]["maxFeePerGas"]), str(view["estimate"]["maxFeePerGas"] or "—"))
    table.add_row(
        "maxPriorityFeePerGas",
        str(view["picked"]["maxPriorityFeePerGas"]),
        str(view["estimate"]["maxPriorityFeePerGas"] or "—"),
    )
    console.print(table)
    console.print(
        f"  bounds: cap={view['picked']['capGwei']} tipCap={view['picked']['tipCapGwei']} "
        f"minTip={view['picked']['minTipGwei']}"
    )
    if view["estimate"]["error"]:
        console.print(f"[yellow]  estimate failed, fallbacks used: {view['estimate']['error']}[/]", soft_wrap=True)


@app.command()
def diag(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Print canonical JSON"),
):
    """Check network identity, contract deployment and signer."""
    config: AnchorConfig = ctx.obj
    with cli_errors(config):
        report = build_service(config).diagnose()

    if as_json:
        typer.echo(canonical_json_str(report))
        return

    table = Table(title="Deployment diagnostics")
    table.add_column("Check")
    table.add_column("Value")
    for key in ("rpcChainId", "expectedChainId", "contractAddress", "contractShape",
                "bytecodePresent", "bytecodeSize", "signerAddress", "signerBalanceWei"):
        value = report.get(key)
        table.add_row(key, "—" if value is None else str(value))
    console.print(table)
    if not report.get("bytecodePresent"):
        console.print("[red]No contract bytecode at the configured address.[/]")
        raise typer.Exit(1)


@app.command()
def serve(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port"),
):
    """Run the HTTP API."""
    import uvicorn
    from anchor.api.app import create_app

    config: AnchorConfig = ctx.obj
    console.print(f"[green]Serving on http://{host}:{port}[/] (chain {config.chain_id})")
    uvicorn.run(create_app(config), host=host, port=port, log_config=None)


if __name__ == "__main__":
    app()
