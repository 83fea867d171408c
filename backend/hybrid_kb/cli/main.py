"""CLI entrypoint for hybrid-kb."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

import orjson
import typer
from pydantic import ValidationError

from hybrid_kb.core.config import Settings, get_settings
from hybrid_kb.core.errors import HybridKBError, NotFoundError
from hybrid_kb.core.logging import configure_logging
from hybrid_kb.core.metrics import render_metrics
from hybrid_kb.factory import build_retriever
from hybrid_kb.ingest.embeddings import has_api_key
from hybrid_kb.ingest.hashed import HashedEmbedder
from hybrid_kb.models.entities import NewDocument, SearchMethod
from hybrid_kb.retrieval.search import HybridRetriever, results_to_dicts
from hybrid_kb.utils.text import format_bytes, truncate

app = typer.Typer(name="hkb", help="Hybrid keyword + vector knowledge base")

DIRECT_INPUT_URL = "direct-input"
PREVIEW_CHARS = 200


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", envvar="HKB_LOG_LEVEL", help="Logging level"),
    plain_logs: bool = typer.Option(False, "--plain-logs", help="Human-readable log lines instead of JSON"),
) -> None:
    configure_logging(log_level.upper(), use_json=not plain_logs)


def _echo_json(payload: Any) -> None:
    typer.echo(orjson.dumps(payload, option=orjson.OPT_INDENT_2, default=str).decode("utf-8"))


def _load_settings() -> Settings:
    try:
        return get_settings()
    except ValidationError as exc:
        typer.echo(f"Error: invalid configuration: {exc}", err=True)
        raise typer.Exit(code=1)


@contextmanager
def _open_retriever(settings: Settings, needs_embeddings: bool = True) -> Iterator[HybridRetriever]:
    """Build a retriever from settings and map library errors to exit codes.

    Commands that never embed text get an offline embedder so they work
    without an API key.
    """
    retriever: HybridRetriever | None = None
    try:
        embedder = None if needs_embeddings else HashedEmbedder(settings.embedding_dimension)
        retriever = build_retriever(settings, embedder=embedder)
        yield retriever
    except NotFoundError as exc:
        typer.echo(f"Not found: {exc}", err=True)
        raise typer.Exit(code=1)
    except HybridKBError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        if retriever is not None:
            retriever.close()


@app.command()
def ingest(
    text: Optional[str] = typer.Option(None, "--text", help="Document content to ingest"),
    file: Optional[Path] = typer.Option(None, "--file", help="Local UTF-8 text or markdown file"),
    url: Optional[str] = typer.Option(None, "--url", help="Unique document key"),
    title: Optional[str] = typer.Option(None, "--title", help="Document title"),
    framework: Optional[str] = typer.Option(None, "--framework", help="Framework tag"),
) -> None:
    """Chunk, embed and index a document."""
    if (text is None) == (file is None):
        typer.echo("Provide exactly one of --text or --file", err=True)
        raise typer.Exit(code=2)
    if file is not None:
        path = file.expanduser()
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            typer.echo(f"Cannot read {path}: {exc}", err=True)
            raise typer.Exit(code=1)
        url = url or path.resolve().as_uri()
        title = title or path.stem
    else:
        content = text or ""
        url = url or DIRECT_INPUT_URL

    with _open_retriever(_load_settings()) as retriever:
        doc_id = retriever.add_document(NewDocument(url=url, content=content, title=title, framework=framework))
        stats = retriever.stats()
    typer.echo(f"Indexed document {doc_id} ({url}); {stats.vector_count} vectors in index")


@app.command()
def query(
    q: str = typer.Argument(..., help="Query text"),
    limit: int = typer.Option(5, "--limit", "-n", help="Number of results to return"),
    mode: SearchMethod = typer.Option(SearchMethod.HYBRID, "--mode", help="hybrid, keyword or vector"),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON"),
) -> None:
    """Search the knowledge base."""
    with _open_retriever(_load_settings(), needs_embeddings=mode is not SearchMethod.KEYWORD) as retriever:
        if mode is SearchMethod.KEYWORD:
            results = retriever.search_keyword_only(q, limit)
        elif mode is SearchMethod.VECTOR:
            results = retriever.search_vector_only(q, limit)
        else:
            results = retriever.search(q, limit)

    if as_json:
        _echo_json(results_to_dicts(results))
        return
    if not results:
        typer.echo("No results.")
        return
    for idx, result in enumerate(results, start=1):
        typer.echo(f"{idx}. [{result.method.value}] {result.title or result.url} (score {result.rrf_score:.4f})")
        if result.title:
            typer.echo(f"   {result.url}")
        preview = result.chunk_text or result.snippet
        if preview:
            typer.echo(f"   {truncate(preview, PREVIEW_CHARS)}")


@app.command("list")
def list_documents(
    framework: Optional[str] = typer.Option(None, "--framework", help="Only documents with this tag"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of documents"),
    as_json: bool = typer.Option(False, "--json", help="Print documents as JSON"),
) -> None:
    """List indexed documents, newest first."""
    with _open_retriever(_load_settings(), needs_embeddings=False) as retriever:
        documents = retriever.list_documents(limit, framework)

    if as_json:
        _echo_json(
            [
                {
                    "id": doc.id,
                    "url": doc.url,
                    "title": doc.title,
                    "framework": doc.framework,
                    "created_at": doc.created_at.isoformat(),
                    "size": len(doc.content),
                }
                for doc in documents
            ]
        )
        return
    if not documents:
        typer.echo("No documents.")
        return
    for doc in documents:
        typer.echo(f"{doc.id}\t{doc.framework or '-'}\t{doc.title or '-'}\t{doc.url}")


@app.command()
def delete(
    doc_id: Optional[int] = typer.Option(None, "--id", help="Document id"),
    url: Optional[str] = typer.Option(None, "--url", help="Document url"),
) -> None:
    """Delete a document and its vectors."""
    if (doc_id is None) == (url is None):
        typer.echo("Provide exactly one of --id or --url", err=True)
        raise typer.Exit(code=2)
    with _open_retriever(_load_settings(), needs_embeddings=False) as retriever:
        if url is not None:
            doc_id = retriever.delete_by_url(url)
        elif not retriever.delete_document(doc_id):
            raise NotFoundError(f"Document not found: {doc_id}")
    typer.echo(f"Deleted document {doc_id}")


@app.command()
def status() -> None:
    """Show storage location, API key presence and index sizes."""
    settings = _load_settings()
    with _open_retriever(settings, needs_embeddings=False) as retriever:
        stats = retriever.stats()
    typer.echo(f"Data directory:  {settings.data_dir}")
    typer.echo(f"Storage backend: {settings.storage_backend}")
    typer.echo(f"Embeddings:      {settings.embedding_provider} ({settings.embedding_dimension} dims)")
    typer.echo(f"API key:         {'configured' if has_api_key(settings.embedding_api_key) else 'missing'}")
    typer.echo(f"Documents:       {stats.document_count}")
    typer.echo(f"Vectors:         {stats.vector_count}")
    typer.echo(f"Content size:    {format_bytes(stats.total_content_chars)}")


@app.command()
def metrics() -> None:
    """Print Prometheus metrics collected in this process."""
    typer.echo(render_metrics())


if __name__ == "__main__":
    app()
