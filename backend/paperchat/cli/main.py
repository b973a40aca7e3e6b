"""CLI entrypoint for paperchat."""

from __future__ import annotations

import json
import signal
from pathlib import Path
from typing import Optional

import typer

from paperchat.chat.service import ChatService
from paperchat.core.config import PROFILE_KEYS, Settings, get_settings
from paperchat.core.errors import LLMRequestError, PaperchatError
from paperchat.ingest.embeddings import HashedEmbeddingModel
from paperchat.ingest.types import RetrievalQuery
from paperchat.llm.cancellation import CancellationToken
from paperchat.llm.client import LLMClient
from paperchat.llm.profiles import default_level, detect_provider, reasoning_options, supports_reasoning
from paperchat.llm.types import ReasoningEvent
from paperchat.retrieval import ContextAssembler, DocumentRegistry, EmbeddingCache

app = typer.Typer(name="pchat", help="Ask questions about a document with a remote language model")


def _load_settings(config: Optional[Path]) -> Settings:
    if config is not None:
        return Settings.from_yaml(config)
    return get_settings()


def _read_document(path: Path) -> str:
    try:
        return path.expanduser().read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        typer.echo(f"Cannot read {path}: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _check_profile(profile: str) -> None:
    if profile not in PROFILE_KEYS:
        typer.echo(f"Unknown profile '{profile}' (expected one of {', '.join(PROFILE_KEYS)})", err=True)
        raise typer.Exit(code=2)


@app.command()
def ask(
    file: Path = typer.Argument(..., help="Plain-text document to ask about"),
    question: str = typer.Argument(..., help="Question text"),
    profile: str = typer.Option("primary", "--profile", help="Model profile to use"),
    reasoning: Optional[str] = typer.Option(None, "--reasoning", help="Reasoning level (default, low, high, ...)"),
    title: Optional[str] = typer.Option(None, "--title", help="Document title; defaults to the file name"),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to a YAML config file"),
) -> None:
    """Stream an answer to stdout; reasoning goes to stderr."""
    _check_profile(profile)
    settings = _load_settings(config)
    registry = DocumentRegistry(settings)
    client = LLMClient(settings=settings)
    service = ChatService(
        settings=settings,
        registry=registry,
        assembler=ContextAssembler(settings, EmbeddingCache(settings.embedding_batch_size)),
        client=client,
    )
    document_id = str(file.expanduser().resolve())
    registry.get_or_create(document_id, _read_document(file), title or file.stem)

    cancel = CancellationToken()
    previous = signal.signal(signal.SIGINT, lambda *_: cancel.cancel())

    def on_reasoning(event: ReasoningEvent) -> None:
        typer.echo(event.summary or event.details or "", err=True, nl=False)

    try:
        outcome = service.ask(
            question,
            document_id=document_id,
            profile_key=profile,
            reasoning_level=reasoning,
            on_delta=lambda delta: typer.echo(delta, nl=False),
            on_reasoning=on_reasoning,
            cancel=cancel,
        )
    finally:
        signal.signal(signal.SIGINT, previous)
    typer.echo("")
    if outcome.status == "error":
        typer.echo(outcome.text, err=True)
        raise typer.Exit(code=1)
    if outcome.status == "cancelled":
        typer.echo(outcome.text, err=True)
        raise typer.Exit(code=130)


@app.command()
def context(
    file: Path = typer.Argument(..., help="Plain-text document"),
    question: str = typer.Argument(..., help="Question used to rank passages"),
    image: bool = typer.Option(False, "--image", help="Pretend an image is attached (smaller budget)"),
    hashed: bool = typer.Option(False, "--hashed-embeddings", help="Add semantic scores from local hashed embeddings"),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to a YAML config file"),
) -> None:
    """Print the context string that would be sent for QUESTION."""
    settings = _load_settings(config)
    registry = DocumentRegistry(settings)
    index = registry.get_or_create(str(file), _read_document(file), file.stem)
    assembler = ContextAssembler(settings)
    embedding_model = HashedEmbeddingModel() if hashed else None
    text, stats = assembler.build(
        index, RetrievalQuery(raw_text=question, has_image=image), embedding_model=embedding_model
    )
    typer.echo(text)
    typer.echo(
        json.dumps(
            {
                "mode": stats.mode,
                "selected": stats.selected,
                "total_chunks": stats.total_chunks,
                "used_embeddings": stats.used_embeddings,
            }
        ),
        err=True,
    )


@app.command("reasoning-options")
def reasoning_options_command(model: str = typer.Argument(..., help="Model name")) -> None:
    """Show the reasoning levels available for MODEL."""
    provider = detect_provider(model)
    level = default_level(provider, model)
    payload = {
        "model": model,
        "provider": provider.value,
        "supports_reasoning": supports_reasoning(provider, model),
        "default_level": level.value if level else None,
        "options": [
            {"level": option.level.value, "label": option.label, "enabled": option.enabled}
            for option in reasoning_options(provider, model)
        ],
    }
    typer.echo(json.dumps(payload, indent=2))


@app.command("test-connection")
def test_connection(
    profile: str = typer.Option("primary", "--profile", help="Model profile to test"),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to a YAML config file"),
) -> None:
    """Send a tiny prompt to a configured profile."""
    _check_profile(profile)
    settings = _load_settings(config)
    model_profile = settings.profile(profile)
    try:
        reply = LLMClient(settings=settings).test_connection(model_profile)
    except LLMRequestError as exc:
        typer.echo(f"Failed: {exc.short_message()}", err=True)
        raise typer.Exit(code=1) from exc
    except PaperchatError as exc:
        typer.echo(f"Failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f'Success! Model {model_profile.model} says: "{reply}"')


if __name__ == "__main__":
    app()
