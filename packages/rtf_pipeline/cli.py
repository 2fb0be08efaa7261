from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import click

from rag_agents.chat_client import ChatClient, ChatCompletionError
from rag_agents.history import ConversationHistory
from rag_agents.qa_agent import QuestionAnsweringAgent
from retrieval_core.chunking import ChunkingStrategy
from retrieval_core.embeddings import OllamaEmbedder
from retrieval_core.errors import EmbeddingError, RetrievalError
from retrieval_core.retrieval import NoRelevantResults, RetrievalPipeline, StoreError, index_document
from retrieval_core.vector_store import VectorStore

from .config import RagSettings, get_settings
from .parser import extract_text

_log = logging.getLogger(__name__)

PREVIEW_CHARS = 200


def _make_embedder(settings: RagSettings) -> OllamaEmbedder:
    return OllamaEmbedder(
        base_url=settings.ollama_url,
        model=settings.embedding_model,
        timeout=settings.embedding_timeout,
    )


def _make_chat_client(settings: RagSettings) -> ChatClient:
    return ChatClient(
        api_key=settings.openrouter_api_key,
        model=settings.chat_model,
        base_url=settings.openrouter_base_url,
        timeout=settings.chat_timeout,
    )


def _load_store(index_path: Path) -> VectorStore:
    try:
        return VectorStore.from_file(index_path)
    except RetrievalError as exc:
        raise click.ClickException(f"Error loading index: {exc}") from exc


def _format_stats(store: VectorStore) -> str:
    stats = store.stats()
    return (
        "Index Statistics:\n"
        f"  Total entries: {stats['total_entries']}\n"
        f"  Dimension: {stats['dimension']}\n"
        f"  Index size: ~{stats['size_mb']} MB"
    )


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log debug output.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Index RTF documents into a vector index and answer questions against it."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.obj = get_settings()


@main.command("index")
@click.argument("document", type=click.Path(path_type=Path))
@click.option("--index-path", type=click.Path(path_type=Path), default=None, help="Output index file.")
@click.option(
    "--strategy",
    type=click.Choice([s.value for s in ChunkingStrategy]),
    default=None,
    help="Segmentation strategy.",
)
@click.option("--chunk-size", type=int, default=None, help="Sliding window size in characters.")
@click.option("--overlap", type=int, default=None, help="Sliding window overlap in characters.")
@click.option("--max-chunk-size", type=int, default=None, help="Paragraph strategy upper bound.")
@click.option("--min-chunk-size", type=int, default=None, help="Paragraph strategy lower bound.")
@click.pass_obj
def index_cmd(
    settings: RagSettings,
    document: Path,
    index_path: Optional[Path],
    strategy: Optional[str],
    chunk_size: Optional[int],
    overlap: Optional[int],
    max_chunk_size: Optional[int],
    min_chunk_size: Optional[int],
) -> None:
    """Extract DOCUMENT, embed its chunks and save the vector index."""
    overrides = {
        "chunk_strategy": strategy,
        "chunk_size": chunk_size,
        "chunk_overlap": overlap,
        "max_chunk_size": max_chunk_size,
        "min_chunk_size": min_chunk_size,
    }
    try:
        settings = RagSettings(
            **{**settings.model_dump(), **{k: v for k, v in overrides.items() if v is not None}}
        )
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    index_path = index_path or settings.index_path
    _log.debug("Indexing with settings: %s", settings.model_dump(exclude={"openrouter_api_key"}))

    click.echo(f"Processing document: {document}")
    click.echo(f"  Strategy: {settings.chunk_strategy.value} {settings.chunk_params()}")
    click.echo(f"  Index output: {index_path}")

    try:
        text = extract_text(document)
    except (FileNotFoundError, ValueError) as exc:
        raise click.ClickException(f"Error reading document: {exc}") from exc
    click.echo(f"Extracted {len(text)} characters")

    def _progress(done: int, total: int) -> None:
        click.echo(f"\rProgress: {done}/{total} chunks processed", nl=done == total)

    store = VectorStore()
    embedder = _make_embedder(settings)
    try:
        report = index_document(
            text,
            embedder,
            store,
            strategy=settings.chunk_strategy,
            chunk_params=settings.chunk_params(),
            source=str(document),
            failure_policy=settings.embedding_failure_policy,
            dimension=settings.embedding_dimension,
            on_progress=_progress,
        )
    except RetrievalError as exc:
        raise click.ClickException(f"Error building index: {exc}") from exc
    finally:
        embedder.close()

    if not report.chunks:
        raise click.ClickException("No chunks created. The document might be empty.")

    if report.embeddings.has_placeholders:
        click.echo(
            f"Warning: {len(report.embeddings.failed)} of {len(report.chunks)} chunks could not be embedded "
            f"and were stored with zero vectors (chunks {report.embeddings.failed})",
            err=True,
        )

    store.save(index_path)
    click.echo(f"Index created with {store.size()} entries and saved to {index_path}")
    click.echo(_format_stats(store))


@main.command("search")
@click.argument("index_path", type=click.Path(path_type=Path))
@click.argument("query")
@click.option("-k", "--top-k", type=click.IntRange(min=1), default=None, help="Number of results.")
@click.option("--min-score", type=float, default=None, help="Minimum relevance score.")
@click.pass_obj
def search_cmd(
    settings: RagSettings,
    index_path: Path,
    query: str,
    top_k: Optional[int],
    min_score: Optional[float],
) -> None:
    """Search INDEX_PATH for passages similar to QUERY."""
    store = _load_store(index_path)
    pipeline = RetrievalPipeline(top_k=settings.top_k, min_relevance_score=settings.min_relevance_score)

    embedder = _make_embedder(settings)
    try:
        query_embedding = embedder.embed(query)
    except EmbeddingError as exc:
        raise click.ClickException(f"Error generating query embedding: {exc}") from exc
    finally:
        embedder.close()

    outcome = pipeline.search(store, query_embedding, k=top_k, min_relevance_score=min_score)
    if isinstance(outcome, NoRelevantResults):
        click.echo(
            f"No results found (best score {outcome.best_score:.4f} below threshold {outcome.threshold:.4f})."
        )
        return
    if isinstance(outcome, StoreError):
        click.echo(f"No results found: {outcome.message}")
        return
    results = outcome.results

    click.echo("Results:\n")
    for idx, result in enumerate(results, 1):
        preview = result.text[:PREVIEW_CHARS] + ("..." if len(result.text) > PREVIEW_CHARS else "")
        click.echo(f"{idx}. Score: {result.score:.4f}")
        click.echo(f"   Text: {preview}")
        click.echo(f"   Metadata: {result.metadata}")
        click.echo("")


@main.command("stats")
@click.argument("index_path", type=click.Path(path_type=Path))
def stats_cmd(index_path: Path) -> None:
    """Show statistics about the index at INDEX_PATH."""
    store = _load_store(index_path)
    click.echo(_format_stats(store))


@main.command("ask")
@click.argument("index_path", type=click.Path(path_type=Path))
@click.argument("question")
@click.option("-k", "--top-k", type=click.IntRange(min=1), default=None, help="Number of passages to retrieve.")
@click.option("--min-score", type=float, default=None, help="Minimum relevance score.")
@click.option("--no-rag", is_flag=True, help="Ask without retrieved context.")
@click.option(
    "--history",
    "history_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Conversation history file to continue and update.",
)
@click.pass_obj
def ask_cmd(
    settings: RagSettings,
    index_path: Path,
    question: str,
    top_k: Optional[int],
    min_score: Optional[float],
    no_rag: bool,
    history_path: Optional[Path],
) -> None:
    """Answer QUESTION using passages retrieved from INDEX_PATH."""
    store = _load_store(index_path) if not no_rag else VectorStore()

    history = ConversationHistory()
    if history_path is not None and history_path.exists():
        try:
            history.load(history_path)
        except ValueError as exc:
            raise click.ClickException(f"Error loading history: {exc}") from exc

    pipeline = RetrievalPipeline(
        top_k=top_k if top_k is not None else settings.top_k,
        min_relevance_score=min_score if min_score is not None else settings.min_relevance_score,
    )
    embedder = _make_embedder(settings)
    chat = _make_chat_client(settings)
    agent = QuestionAnsweringAgent(store=store, embedder=embedder, chat=chat, pipeline=pipeline, history=history)
    try:
        result = agent.ask(question, use_rag=not no_rag)
    except ChatCompletionError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        embedder.close()
        chat.close()

    if result.fallback_reason and not no_rag:
        click.echo(f"Note: answered without retrieved context ({result.fallback_reason})", err=True)
    click.echo(result.answer)
    click.echo(history.format_sources(history.turns[-1].sources))

    if history_path is not None:
        history.save(history_path)


if __name__ == "__main__":
    main()
