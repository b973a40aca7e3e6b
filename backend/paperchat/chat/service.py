"""Question answering over a registered document."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Sequence

from paperchat.core.config import Settings
from paperchat.core.errors import LLMRequestError, PaperchatError, RequestCancelled
from paperchat.core.logging import get_logger
from paperchat.ingest.embeddings import EmbeddingModel, RemoteEmbeddingModel
from paperchat.ingest.types import RetrievalQuery
from paperchat.llm.cancellation import CancellationToken, is_cancelled
from paperchat.llm.client import LLMClient
from paperchat.llm.profiles import select_reasoning
from paperchat.llm.types import (
    ChatRequest,
    ChatTurn,
    DeltaCallback,
    ReasoningCallback,
    ReasoningEvent,
    ReasoningLevel,
)
from paperchat.retrieval.context import ContextAssembler
from paperchat.retrieval.documents import DocumentRegistry
from paperchat.utils.text import build_question_with_selected_text, normalize_selected_text, sanitize_text

logger = get_logger(__name__)

CANCELLED_TEXT = "[Cancelled]"
EMPTY_ANSWER_TEXT = "No response."

OutcomeStatus = Literal["completed", "cancelled", "error"]


@dataclass(slots=True)
class ChatOutcome:
    status: OutcomeStatus
    text: str
    model: str = ""
    reasoning_summary: str = ""
    reasoning_details: str = ""
    error: str | None = None
    context_mode: str = ""
    selected_chunks: list[int] = field(default_factory=list)


class _ReasoningAccumulator:
    def __init__(self, forward: ReasoningCallback | None) -> None:
        self.summary = ""
        self.details = ""
        self._forward = forward

    def __call__(self, event: ReasoningEvent) -> None:
        if event.summary:
            self.summary += sanitize_text(event.summary)
        if event.details:
            self.details += sanitize_text(event.details)
        if self._forward is not None:
            self._forward(event)


class ChatService:
    """Resolve profile and reasoning, build the context, stream the answer."""

    def __init__(
        self,
        settings: Settings,
        registry: DocumentRegistry,
        assembler: ContextAssembler,
        client: LLMClient,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.assembler = assembler
        self.client = client

    def ask(
        self,
        question: str,
        document_id: str | None = None,
        history: Sequence[ChatTurn] = (),
        images: Sequence[str] = (),
        profile_key: str = "primary",
        reasoning_level: ReasoningLevel | str | None = None,
        selected_text: str = "",
        on_delta: DeltaCallback | None = None,
        on_reasoning: ReasoningCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> ChatOutcome:
        profile = self.settings.profile(profile_key)
        reasoning = select_reasoning(profile.model, reasoning_level)
        prompt = sanitize_text(question).strip()
        selection = normalize_selected_text(selected_text) if selected_text else ""
        if selection:
            prompt = build_question_with_selected_text(selection, prompt)
        images = [image for image in images if image]

        accumulator = _ReasoningAccumulator(on_reasoning)
        streamed: list[str] = []

        def _collect(delta: str) -> None:
            streamed.append(sanitize_text(delta))
            if on_delta is not None:
                on_delta(delta)

        outcome = ChatOutcome(status="completed", text="", model=profile.model)
        try:
            context = ""
            index = self.registry.get(document_id) if document_id else None
            if index is not None:
                embedding_model = self._embedding_model(profile, cancel) if profile.api_base else None
                context, stats = self.assembler.build(
                    index,
                    RetrievalQuery(raw_text=prompt, has_image=bool(images)),
                    embedding_model=embedding_model,
                )
                outcome.context_mode = stats.mode
                outcome.selected_chunks = list(stats.selected)
            elif document_id:
                logger.warning("Unknown document %s, answering without context", document_id)

            request = ChatRequest(
                prompt=prompt,
                profile=profile,
                system_prompt=self.settings.effective_system_prompt,
                context=context,
                history=tuple(history)[-self.settings.max_history_messages :]
                if self.settings.max_history_messages > 0
                else (),
                images=tuple(images),
                reasoning=reasoning,
            )
            answer = self.client.stream(request, on_delta=_collect, on_reasoning=accumulator, cancel=cancel)
        except RequestCancelled:
            return _cancelled(outcome)
        except LLMRequestError as exc:
            if is_cancelled(cancel):
                return _cancelled(outcome)
            logger.warning("Chat request failed: %s", exc.short_message(), extra={"ctx_model": profile.model})
            return _failed(outcome, exc.short_message())
        except PaperchatError as exc:
            if is_cancelled(cancel):
                return _cancelled(outcome)
            logger.warning("Chat request failed: %s", exc, extra={"ctx_model": profile.model})
            return _failed(outcome, str(exc))

        if is_cancelled(cancel):
            return _cancelled(outcome)
        outcome.text = sanitize_text(answer) or "".join(streamed) or EMPTY_ANSWER_TEXT
        outcome.reasoning_summary = accumulator.summary
        outcome.reasoning_details = accumulator.details
        return outcome

    def _embedding_model(self, profile, cancel: CancellationToken | None) -> EmbeddingModel:
        return RemoteEmbeddingModel(self.client, profile, self.settings.embedding_model, cancel=cancel)


def _cancelled(outcome: ChatOutcome) -> ChatOutcome:
    outcome.status = "cancelled"
    outcome.text = CANCELLED_TEXT
    outcome.reasoning_summary = ""
    outcome.reasoning_details = ""
    return outcome


def _failed(outcome: ChatOutcome, message: str) -> ChatOutcome:
    outcome.status = "error"
    outcome.text = f"Error: {message}"
    outcome.error = message
    return outcome


__all__ = ["CANCELLED_TEXT", "EMPTY_ANSWER_TEXT", "ChatOutcome", "ChatService"]
