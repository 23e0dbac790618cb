from types import SimpleNamespace

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder

from supportdesk.core.config import settings
from supportdesk.core.exceptions import GenerationError
from supportdesk.models.chat_message import ChatRole
from supportdesk.services import response_generator
from supportdesk.services.response_generator import (
    REGENERATE_HINT,
    TONE_GUIDES,
    LangChainResponseGenerator,
    build_system_prompt,
    invoke_with_fallback,
    provider_order,
    to_prompt_messages,
)


def _msg(role, content):
    return SimpleNamespace(role=role, content=content)


def _conversation():
    return [
        _msg(ChatRole.USER, "my wallet is locked"),
        _msg(ChatRole.ASSISTANT, "Have you tried resetting your PIN?"),
        _msg(ChatRole.USER, "yes, twice"),
    ]


def _prompt():
    return ChatPromptTemplate.from_messages([("system", "{system_prompt}"), MessagesPlaceholder("history")])


def _unavailable(**kwargs):
    raise RuntimeError("provider unavailable")


# ----------------------------------------------------------------------
# Prompt building
# ----------------------------------------------------------------------


def test_prompt_messages_map_roles():
    assert to_prompt_messages(_conversation(), limit=10) == [
        ("human", "my wallet is locked"),
        ("ai", "Have you tried resetting your PIN?"),
        ("human", "yes, twice"),
    ]


def test_prompt_messages_keep_most_recent():
    assert to_prompt_messages(_conversation(), limit=2) == [
        ("ai", "Have you tried resetting your PIN?"),
        ("human", "yes, twice"),
    ]


def test_prompt_messages_without_limit_keep_everything():
    assert len(to_prompt_messages(_conversation(), limit=0)) == 3


def test_system_prompt_defaults():
    prompt = build_system_prompt()

    assert "customer support assistant for our company." in prompt
    assert TONE_GUIDES["professional"] in prompt
    assert "Additional instructions" not in prompt
    assert REGENERATE_HINT not in prompt


def test_system_prompt_with_company_tone_and_instructions():
    prompt = build_system_prompt("Acme Wallet", tone="friendly", instructions="Never ask for the PIN.")

    assert "customer support assistant for Acme Wallet." in prompt
    assert TONE_GUIDES["friendly"] in prompt
    assert "Additional instructions: Never ask for the PIN." in prompt


def test_unknown_tone_falls_back_to_professional():
    assert TONE_GUIDES["professional"] in build_system_prompt(tone="pirate")


def test_regenerating_adds_hint_last():
    prompt = build_system_prompt(regenerating=True)
    assert prompt.endswith(REGENERATE_HINT)


# ----------------------------------------------------------------------
# LangChainResponseGenerator
# ----------------------------------------------------------------------


def test_generate_passes_trimmed_history(monkeypatch):
    seen = {}

    def fake_invoke(prompt, variables, **kwargs):
        seen.update(variables=variables, kwargs=kwargs)
        return "  Try the recovery phrase.  ", "vertex"

    monkeypatch.setattr(response_generator, "invoke_with_fallback", fake_invoke)
    generator = LangChainResponseGenerator(company_name="Acme Wallet", history_limit=2, max_output_tokens=64)

    reply = generator.generate(_conversation(), regenerating=True)

    assert reply == "Try the recovery phrase."
    assert seen["variables"]["history"] == [
        ("ai", "Have you tried resetting your PIN?"),
        ("human", "yes, twice"),
    ]
    assert seen["variables"]["system_prompt"].endswith(REGENERATE_HINT)
    assert seen["kwargs"]["max_output_tokens"] == 64


@pytest.mark.parametrize("text", ["", "   \n"])
def test_empty_reply_is_generation_error(monkeypatch, text):
    monkeypatch.setattr(response_generator, "invoke_with_fallback", lambda *a, **k: (text, "vertex"))

    with pytest.raises(GenerationError):
        LangChainResponseGenerator().generate(_conversation())


def test_provider_exception_is_generation_error(monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("socket closed")

    monkeypatch.setattr(response_generator, "invoke_with_fallback", broken)

    with pytest.raises(GenerationError) as exc_info:
        LangChainResponseGenerator().generate(_conversation())
    assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_system_prompt_braces_are_not_template_fields(monkeypatch):
    monkeypatch.setattr(response_generator, "_vertex_chat_llm", lambda **k: FakeListChatModel(responses=["ok"]))
    generator = LangChainResponseGenerator(instructions="Quote order ids as {ORDER-123}.")

    assert generator.generate(_conversation()) == "ok"


# ----------------------------------------------------------------------
# Provider fallback
# ----------------------------------------------------------------------


def test_provider_order():
    assert provider_order() == ["vertex", "groq"]
    assert provider_order("vertex") == ["vertex", "groq"]
    assert provider_order("groq") == ["groq", "vertex"]


def test_falls_back_to_groq(monkeypatch):
    monkeypatch.setattr(response_generator, "_vertex_chat_llm", _unavailable)
    monkeypatch.setattr(response_generator, "_groq_chat_llm", lambda **k: FakeListChatModel(responses=["hi"]))

    text, provider = invoke_with_fallback(_prompt(), {"system_prompt": "be nice", "history": [("human", "hello")]})

    assert (text, provider) == ("hi", "groq")


def test_groq_preference_tries_groq_first(monkeypatch):
    monkeypatch.setattr(response_generator, "_vertex_chat_llm", lambda **k: FakeListChatModel(responses=["vertex"]))
    monkeypatch.setattr(response_generator, "_groq_chat_llm", lambda **k: FakeListChatModel(responses=["groq"]))

    _, provider = invoke_with_fallback(
        _prompt(), {"system_prompt": "be nice", "history": []}, provider_preference="groq"
    )

    assert provider == "groq"


def test_all_providers_failing(monkeypatch):
    monkeypatch.setattr(response_generator, "_vertex_chat_llm", _unavailable)
    monkeypatch.setattr(response_generator, "_groq_chat_llm", _unavailable)

    with pytest.raises(GenerationError, match="vertex, groq"):
        invoke_with_fallback(_prompt(), {"system_prompt": "be nice", "history": []})


def test_unconfigured_providers_refuse(monkeypatch):
    monkeypatch.setattr(settings, "GROQ_API_KEY", None)
    monkeypatch.setattr(settings, "GCP_PROJECT_ID", "")

    with pytest.raises(RuntimeError, match="GROQ_API_KEY"):
        response_generator._groq_chat_llm(max_output_tokens=16, temperature=0.0)
    with pytest.raises(RuntimeError, match="GCP_PROJECT_ID"):
        response_generator._vertex_chat_llm(max_output_tokens=16, temperature=0.0)
