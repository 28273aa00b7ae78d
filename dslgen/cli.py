"""Command-line interface for dslgen."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from dslgen.config.schemas import PipelineConfig

app = typer.Typer(
    name="dslgen",
    help="dslgen: retrieval-augmented code generation for DSL dialects",
    add_completion=False,
)

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Trace records are JSON lines; keep them out of the console unless asked
    if not verbose:
        logging.getLogger("dslgen.trace").setLevel(logging.WARNING)


def load_config(config: Optional[Path]) -> PipelineConfig:
    """Load configuration from a YAML file, or from the environment when none is given."""
    if config is None:
        return PipelineConfig.from_env()

    if not config.exists():
        console.print(f"[red]Error: Config file not found: {config}[/red]")
        raise typer.Exit(1)

    return PipelineConfig.from_yaml(config)


@app.command()
def generate(
    prompt: str = typer.Argument(..., help="What the program should do"),
    dialect: str = typer.Option(..., "--dialect", "-l", help="Dialect identifier, e.g. 0002"),
    code_file: Optional[Path] = typer.Option(
        None, "--code", help="File with current code to change incrementally",
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to pipeline configuration YAML file",
    ),
    account: Optional[str] = typer.Option(None, "--account", "-a", help="Account billed for the run"),
    plan: Optional[str] = typer.Option(None, "--plan", help="Plan tier of the account"),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="DSLGEN_AUTH_TOKEN",
        help="Compiler access token; without it the code is not verified",
    ),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model for the first attempt"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the code to a file"),
    as_json: bool = typer.Option(False, "--json", help="Print the full response as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Generate dialect code for a natural-language request."""
    setup_logging(verbose)

    from dslgen.exceptions import DSLGenError
    from dslgen.pipeline.request import GenerationOptions, GenerationRequest
    from dslgen.pipeline.runner import CodeGenerationPipeline

    pipeline_config = load_config(config)

    current_code = None
    if code_file is not None:
        if not code_file.exists():
            console.print(f"[red]Error: Code file not found: {code_file}[/red]")
            raise typer.Exit(1)
        current_code = code_file.read_text()

    try:
        request = GenerationRequest(
            user_prompt=prompt,
            dialect=dialect,
            current_code=current_code,
            options=GenerationOptions(model=model),
            account_id=account,
            auth_token=token,
            plan=plan,
        )
        pipeline = CodeGenerationPipeline(pipeline_config)
        response = asyncio.run(pipeline.generate_code(request))
    except (DSLGenError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        if verbose:
            import traceback
            traceback.print_exc()
        raise typer.Exit(1)

    if as_json:
        console.print_json(json.dumps(response.to_dict(), default=str))
    else:
        console.print(Syntax(response.code, "text", line_numbers=False))
        if response.description:
            console.print(f"\n[italic]{response.description}[/italic]")

        status_style = {"success": "green", "error": "red"}.get(response.status, "yellow")
        console.print(f"\n[bold {status_style}]Status: {response.status}[/bold {status_style}]")
        console.print(f"  Request: {response.request_id}")
        console.print(f"  Models: {', '.join(response.models_used) or response.model}")
        console.print(f"  Fix attempts: {response.fix_attempts}")
        console.print(
            f"  Tokens: {response.usage.input_tokens} in / {response.usage.output_tokens} out"
        )
        if response.error:
            console.print(f"  [yellow]Generation error: {response.error}[/yellow]")

        if response.verification is not None and not response.verification.is_success:
            from dslgen.verification.classifier import format_errors

            console.print(f"\n[red]{format_errors(response.verification)}[/red]")

    if output is not None:
        output.write_text(response.code)
        console.print(f"[green]Code saved to: {output}[/green]")

    if response.status == "error":
        raise typer.Exit(2)


@app.command()
def usage(
    account_id: str = typer.Argument(..., help="Account to show"),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of recent runs"),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to pipeline configuration YAML file",
    ),
) -> None:
    """Show an account's billed units for the current month."""
    from dslgen.accounting.accountant import UsageAccountant, current_period
    from dslgen.accounting.pricing import format_cost
    from dslgen.storage.database import create_session_factory

    pipeline_config = load_config(config)
    accountant = UsageAccountant(
        session_factory=create_session_factory(pipeline_config.logging.database_url),
        billing=pipeline_config.billing,
    )

    total = asyncio.run(accountant.get_current_usage(account_id))
    records = asyncio.run(accountant.recent_usage(account_id, limit))

    console.print(f"[bold blue]Usage for {account_id} ({current_period()}):[/bold blue] {total} units")

    if not records:
        console.print("[yellow]No runs recorded.[/yellow]")
        return

    table = Table(show_header=True, title="Recent Runs")
    table.add_column("Request", style="cyan")
    table.add_column("When")
    table.add_column("Tokens", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Units", justify="right")
    table.add_column("Fixes", justify="right")
    table.add_column("Models")

    for record in records:
        table.add_row(
            record.request_id[:12],
            record.timestamp.strftime("%Y-%m-%d %H:%M"),
            str(record.total_tokens),
            format_cost(record.cost_usd),
            str(record.billed_units),
            str(record.fix_attempts),
            ", ".join(record.models_used),
        )

    console.print(table)


@app.command("init-db")
def init_db_command(
    database_url: Optional[str] = typer.Option(
        None, "--database-url", help="SQLAlchemy URL, defaults to DATABASE_URL or dslgen.db",
    ),
) -> None:
    """Create the usage and generation tables."""
    from dslgen.storage.database import get_database_url, init_db

    url = database_url or get_database_url()
    init_db(url)
    console.print(f"[green]Database initialized: {url}[/green]")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port for API"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Start the API server."""
    import uvicorn

    from dslgen.api.main import create_app

    setup_logging(verbose)
    console.print("[bold blue]Starting dslgen API...[/bold blue]")
    console.print(f"  API: http://{host}:{port}")

    uvicorn.run(create_app(), host=host, port=port)


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
