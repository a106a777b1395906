import asyncio
import json
import logging

from typer import Typer, Option, Argument, Exit
from typing import Annotated
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import RagSettings
from .errors import RagError, error_kind
from .models import CompareResult, SearchResult
from .service import RagService, build_service

app = Typer(help="Hybrid semantic + BM25 search over tarot cards.")
console = Console()

DbPathOption = Annotated[
    str | None,
    Option("--db-path", help="DuckDB index path (defaults to TAROT_RAG_DB_PATH)."),
]
CatalogOption = Annotated[
    str | None,
    Option("--catalog", "-c", help="Card catalog JSON (defaults to TAROT_RAG_CATALOG_PATH)."),
]


@app.callback()
def configure(
    verbose: Annotated[
        bool, Option("--verbose", "-v", help="Enable debug logging.")
    ] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def make_service(db_path: str | None, catalog: str | None) -> RagService:
    return build_service(RagSettings.from_env(db_path=db_path, catalog_path=catalog))


def _results_table(title: str, results: list[SearchResult]) -> Table:
    table = Table(title=title, title_justify="left")
    table.add_column("Rank", justify="right")
    table.add_column("Card")
    table.add_column("Type")
    table.add_column("Score", justify="right")
    for result in results:
        card = result.card
        card_type = f"{card.arcana} {card.suit}" if card.suit else card.arcana
        table.add_row(
            str(result.rank),
            f"{card.name_native} ({card.name_en})",
            card_type,
            f"{result.score:.4f}",
        )
    return table


async def run_status(service: RagService) -> None:
    try:
        await service.initialize()
    except RagError as exc:
        console.print(f"[bold yellow]Not initialized:[/] {exc}")
    status = service.status()
    console.print(
        Panel(
            f"state: [bold]{status.state}[/]\ndocuments: {status.document_count}",
            title="Index status",
            title_align="left",
            border_style="bold cyan",
        )
    )


async def run_index(service: RagService) -> None:
    await service.initialize()
    with console.status(status="Indexing cards..."):
        result = await service.reindex()
    if result.skipped:
        message = (
            f"{result.documents} cards already indexed; "
            f"refitted BM25 generation {result.generation}"
        )
    else:
        message = (
            f"Indexed {result.points_written} cards "
            f"({result.embedding_calls} embedding calls, BM25 generation {result.generation})"
        )
    console.print(
        Panel(message, title="Indexing", title_align="left", border_style="bold green")
    )


async def run_search(
    service: RagService, query: str, mode: str, limit: int, as_json: bool
) -> None:
    await service.initialize()
    outcome = await service.search(query, mode, limit)
    if as_json:
        if isinstance(outcome, CompareResult):
            console.print_json(json.dumps(outcome.to_dict(), ensure_ascii=False))
        else:
            payload = [result.to_dict() for result in outcome]
            console.print_json(json.dumps(payload, ensure_ascii=False))
        return

    if isinstance(outcome, CompareResult):
        timing = outcome.timing
        console.print(_results_table(f"semantic ({timing.semantic_ms:.0f} ms)", outcome.semantic))
        console.print(_results_table(f"sparse ({timing.sparse_ms:.0f} ms)", outcome.sparse))
        console.print(_results_table(f"hybrid ({timing.hybrid_ms:.0f} ms)", outcome.hybrid))
        return
    if not outcome:
        console.print("[bold yellow]No matching cards[/]")
        return
    console.print(_results_table(f"{mode}: {query}", outcome))


def _fail(exc: RagError) -> None:
    console.print(f"[bold red]{error_kind(exc)}:[/] {exc}")
    raise Exit(code=1)


@app.command()
def status(db_path: DbPathOption = None, catalog: CatalogOption = None) -> None:
    """Show whether the index is ready and how many cards it holds."""
    service = make_service(db_path, catalog)
    try:
        asyncio.run(run_status(service))
    finally:
        service.close()


@app.command()
def index(db_path: DbPathOption = None, catalog: CatalogOption = None) -> None:
    """Embed and index every card in the catalog."""
    service = make_service(db_path, catalog)
    try:
        asyncio.run(run_index(service))
    except RagError as exc:
        _fail(exc)
    finally:
        service.close()


@app.command()
def search(
    query: Annotated[str, Argument(help="Natural-language query.")],
    mode: Annotated[
        str, Option("--mode", "-m", help="semantic, sparse, hybrid or compare.")
    ] = "hybrid",
    limit: Annotated[int, Option("--limit", "-n", help="Number of results (1-20).")] = 5,
    as_json: Annotated[bool, Option("--json", help="Print raw JSON.")] = False,
    db_path: DbPathOption = None,
    catalog: CatalogOption = None,
) -> None:
    """Search the indexed cards."""
    service = make_service(db_path, catalog)
    try:
        asyncio.run(run_search(service, query, mode, limit, as_json))
    except RagError as exc:
        _fail(exc)
    finally:
        service.close()


@app.command()
def serve(
    host: Annotated[str, Option("--host", help="Bind address.")] = "127.0.0.1",
    port: Annotated[int, Option("--port", help="Bind port.")] = 8000,
) -> None:
    """Run the HTTP API."""
    from .server import run_server

    run_server(host=host, port=port)
