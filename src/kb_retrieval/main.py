import logging
from contextlib import contextmanager
from typing import Annotated, Iterator

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from typer import Argument, Exit, Option, Typer

from .context import RetrievalContext
from .errors import RetrievalError
from .logging_config import setup_logging
from .repository import DuckDBRepository

app = Typer(help="Hybrid keyword and semantic retrieval over a local document catalog.")
console = Console()

IndexDirOption = Annotated[
    str | None,
    Option("--index-dir", help="Vector index directory (default: KB_RETRIEVAL_INDEX_DIR)."),
]
DbPathOption = Annotated[
    str | None,
    Option("--db-path", help="DuckDB catalog path (default: KB_RETRIEVAL_DB_PATH)."),
]


@app.callback()
def configure(
    verbose: Annotated[
        bool, Option("--verbose", "-v", help="Show debug logging on stderr.")
    ] = False,
) -> None:
    setup_logging(logging.DEBUG if verbose else logging.WARNING)


@contextmanager
def open_context(index_dir: str | None, db_path: str | None) -> Iterator[RetrievalContext]:
    """Open a context for one command and turn engine errors into exit code 1."""
    context: RetrievalContext | None = None
    try:
        context = RetrievalContext.from_env(index_dir=index_dir, db_path=db_path)
        yield context
    except (RetrievalError, ValueError) as exc:
        console.print(f"[bold red]Error:[/] {exc}")
        raise Exit(code=1) from exc
    finally:
        if context is not None:
            context.close()


@app.command()
def catalog(
    folder: Annotated[str, Argument(help="Folder of text documents to catalog.")],
    collection: Annotated[
        str | None,
        Option("--collection", "-c", help="Collection name (default: folder name)."),
    ] = None,
    index_dir: IndexDirOption = None,
    db_path: DbPathOption = None,
) -> None:
    """Add or refresh a folder of documents in the catalog."""
    with open_context(index_dir, db_path) as context:
        repository = context.repository
        if not isinstance(repository, DuckDBRepository):
            raise ValueError("Cataloging requires the DuckDB repository.")
        result = repository.catalog_folder(folder, collection=collection)
        console.print(
            Panel(
                f"Collection: [bold]{result.collection}[/]\n"
                f"Cataloged documents: {result.cataloged}\n"
                f"Removed documents: {result.removed}",
                title="Catalog updated",
                title_align="left",
                border_style="bold green",
            )
        )


@app.command()
def index(
    collection: Annotated[
        str | None, Argument(help="Only index this collection.")
    ] = None,
    force: Annotated[
        bool, Option("--force", help="Re-embed every document.")
    ] = False,
    index_dir: IndexDirOption = None,
    db_path: DbPathOption = None,
) -> None:
    """Build or incrementally update the semantic index."""
    with open_context(index_dir, db_path) as context:
        with console.status("Indexing...") as status:

            def on_progress(message: str) -> None:
                status.update(message)
                console.print(f"[dim]{message}[/]")

            stats = context.build_index(
                collection=collection, force=force, on_progress=on_progress
            )

        border = "bold yellow" if stats.errors else "bold green"
        console.print(
            Panel(
                f"Documents found: {stats.total_documents}\n"
                f"Indexed: {stats.indexed_documents}\n"
                f"Skipped (up to date): {stats.skipped_documents}\n"
                f"Empty: {stats.empty_documents}\n"
                f"Removed: {stats.removed_documents}\n"
                f"Errors: {stats.errors}\n"
                f"Total chunks: {stats.total_chunks}\n"
                f"Duration: {stats.duration_ms / 1000:.1f}s",
                title="Index updated",
                title_align="left",
                border_style=border,
            )
        )


@app.command()
def status(
    index_dir: IndexDirOption = None,
    db_path: DbPathOption = None,
) -> None:
    """Show metadata for the current index."""
    with open_context(index_dir, db_path) as context:
        meta = context.get_index_status()
        if meta is None:
            console.print("[bold yellow]No index found.[/] Run `kb-retrieval index` first.")
            return

        console.print(
            Panel(
                f"Embedding: {meta.embedding_provider}/{meta.embedding_model} "
                f"({meta.dimensions} dims)\n"
                f"Documents: {meta.total_documents}\n"
                f"Chunks: {meta.total_chunks}\n"
                f"Last updated: {meta.last_updated}",
                title=f"Index at {context.index_dir}",
                title_align="left",
                border_style="bold cyan",
            )
        )


@app.command()
def search(
    query: Annotated[str, Argument(help="Search query.")],
    collection: Annotated[
        str | None,
        Option("--collection", "-c", help="Limit keyword search to one collection."),
    ] = None,
    top_k: Annotated[int, Option("--top-k", "-k", min=1, help="Results to return.")] = 10,
    no_semantic: Annotated[
        bool, Option("--no-semantic", help="Skip the semantic path.")
    ] = False,
    no_related: Annotated[
        bool, Option("--no-related", help="Skip the related-documents path.")
    ] = False,
    index_dir: IndexDirOption = None,
    db_path: DbPathOption = None,
) -> None:
    """Hybrid search across keyword, semantic and related paths."""
    with open_context(index_dir, db_path) as context:
        response = context.hybrid_search(
            query,
            collection=collection,
            top_k=top_k,
            enable_semantic=not no_semantic,
            enable_related=not no_related,
        )

        if not response.index_available and not no_semantic:
            console.print(
                "[yellow]No semantic index; showing keyword results only.[/]"
            )
        if not response.results:
            console.print("[bold]No results.[/]")
            return

        table = Table(title=f"Results for {query!r}", title_justify="left")
        table.add_column("#", justify="right")
        table.add_column("Document")
        table.add_column("Collection")
        table.add_column("Score", justify="right")
        table.add_column("Matched by")
        for rank, result in enumerate(response.results, start=1):
            table.add_row(
                str(rank),
                result.name,
                result.collection,
                f"{result.score:.3f}",
                ", ".join(result.matched_by),
            )
        console.print(table)
        console.print(f"[dim]Paths: {', '.join(response.search_paths) or 'none'}[/]")


@app.command()
def semantic(
    query: Annotated[str, Argument(help="Search query.")],
    top_k: Annotated[int, Option("--top-k", "-k", min=1, help="Chunks to return.")] = 10,
    index_dir: IndexDirOption = None,
    db_path: DbPathOption = None,
) -> None:
    """Vector-only search returning the best matching chunks."""
    with open_context(index_dir, db_path) as context:
        response = context.semantic_search_only(query, top_k=top_k)
        if not response.index_available:
            console.print("[bold yellow]No index found.[/] Run `kb-retrieval index` first.")
            return

        for hit in response.results:
            console.print(
                Panel(
                    Markdown(hit.text),
                    title=f"{hit.document_name} · chunk {hit.chunk_index} · {hit.score:.3f}",
                    title_align="left",
                    border_style="bold magenta",
                )
            )


@app.command()
def serve(
    host: Annotated[str, Option("--host", help="Bind address.")] = "127.0.0.1",
    port: Annotated[int, Option("--port", help="Bind port.")] = 8000,
    index_dir: IndexDirOption = None,
    db_path: DbPathOption = None,
) -> None:
    """Run the HTTP API."""
    from .server import run_server

    with open_context(index_dir, db_path) as context:
        run_server(context, host=host, port=port)
