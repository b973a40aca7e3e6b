"""Tests for chat orchestration."""

from __future__ import annotations

from paperchat.chat.service import CANCELLED_TEXT, EMPTY_ANSWER_TEXT, ChatService
from paperchat.llm.cancellation import CancellationToken
from paperchat.llm.client import LLMClient
from paperchat.llm.types import ChatTurn
from paperchat.retrieval import ContextAssembler, DocumentRegistry, EmbeddingCache


def _service(settings, session) -> tuple[ChatService, DocumentRegistry]:
    registry = DocumentRegistry(settings)
    service = ChatService(
        settings=settings,
        registry=registry,
        assembler=ContextAssembler(settings, EmbeddingCache()),
        client=LLMClient(session=session, settings=settings),
    )
    return service, registry


def test_ask_streams_answer_with_document_context(settings, fake_session, make_response, make_sse) -> None:
    body = make_sse(
        {"choices": [{"delta": {"reasoning_content": "look at section 2"}}]},
        {"choices": [{"delta": {"content": "BM25 ranks passages."}}]},
    )
    session = fake_session(lambda url, payload: make_response(200, [body]))
    service, registry = _service(settings, session)
    registry.get_or_create("paper-1", "BM25 is a ranking function.\n\nIt uses term frequency.", "BM25 Notes")

    history = [ChatTurn("user", f"q{idx}") for idx in range(20)]
    outcome = service.ask("What is BM25?", document_id="paper-1", history=history)

    assert outcome.status == "completed"
    assert outcome.text == "BM25 ranks passages."
    assert outcome.reasoning_details == "look at section 2"
    assert outcome.context_mode == "full"
    messages = session.calls[0]["json"]["messages"]
    assert messages[0]["content"] == settings.effective_system_prompt
    assert messages[1]["content"].startswith("Document Context:\nTitle: BM25 Notes")
    assert len(messages) == 2 + settings.max_history_messages + 1
    assert messages[2]["content"] == "q8"


def test_selected_text_is_wrapped_into_prompt(settings, fake_session, make_response, make_sse) -> None:
    session = fake_session(lambda url, payload: make_response(200, [make_sse({"choices": [{"delta": {"content": "x"}}]})]))
    service, _ = _service(settings, session)
    service.ask("", selected_text="  a   highlighted\x00 passage ")
    prompt = session.calls[0]["json"]["messages"][-1]["content"]
    assert '"""\na highlighted passage\n"""' in prompt
    assert prompt.endswith("Please explain this selected text.")


def test_empty_answer_becomes_placeholder(settings, fake_session, make_response, make_sse) -> None:
    session = fake_session(lambda url, payload: make_response(200, [make_sse()]))
    service, _ = _service(settings, session)
    assert service.ask("hello").text == EMPTY_ANSWER_TEXT


def test_http_error_becomes_error_outcome(settings, fake_session, make_response) -> None:
    session = fake_session(lambda url, payload: make_response(500, [b"x" * 400], "text/plain", "Server Error"))
    service, _ = _service(settings, session)
    outcome = service.ask("hello")
    assert outcome.status == "error"
    assert outcome.error.startswith("HTTP 500: ")
    assert len(outcome.error) <= len("HTTP 500: ") + 300


def test_missing_endpoint_becomes_error_outcome(settings, fake_session) -> None:
    session = fake_session(lambda url, payload: None)
    service, _ = _service(settings, session)
    outcome = service.ask("hello", profile_key="secondary")
    assert outcome.status == "error"
    assert "API URL is missing" in outcome.error


def test_cancelled_outcome_is_distinct(settings, fake_session, make_response, make_sse) -> None:
    cancel = CancellationToken()
    chunks = [make_sse({"choices": [{"delta": {"content": "partial"}}]}, done=False)] * 3
    session = fake_session(lambda url, payload: make_response(200, list(chunks)))
    service, _ = _service(settings, session)
    outcome = service.ask("hello", on_delta=lambda _: cancel.cancel(), cancel=cancel)
    assert outcome.status == "cancelled"
    assert outcome.text == CANCELLED_TEXT
    assert outcome.error is None
