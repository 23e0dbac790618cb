from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Literal, Protocol, Sequence, Tuple

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder

from supportdesk.core.config import settings
from supportdesk.core.exceptions import GenerationError
from supportdesk.models.chat_message import ChatRole

logger = logging.getLogger(__name__)

Provider = Literal["vertex", "groq"]
ProviderPreference = Literal["auto", "vertex", "groq"]

TONE_GUIDES = {
    "professional": "Maintain a professional, courteous tone.",
    "friendly": "Be warm, friendly, and approachable while remaining helpful.",
    "casual": "Use a casual, conversational tone.",
}

REGENERATE_HINT = (
    "The customer was not satisfied with your previous answer to their last message. "
    "Give a different, more helpful answer."
)


class ResponseGenerator(Protocol):
    """Turns an ordered chat history into the assistant's next reply.

    Implementations raise GenerationError on any failure, timeouts included.
    """

    def generate(self, history: Sequence[Any], *, regenerating: bool = False) -> str:
        ...


@lru_cache(maxsize=8)
def _vertex_chat_llm(*, max_output_tokens: int, temperature: float) -> Any:
    if not settings.GCP_PROJECT_ID or settings.GCP_PROJECT_ID == "your-project-id":
        raise RuntimeError("GCP_PROJECT_ID is not set; Vertex AI is unavailable.")

    from langchain_google_vertexai import ChatVertexAI

    return ChatVertexAI(
        model_name=settings.VERTEX_LLM_MODEL,
        project=settings.GCP_PROJECT_ID,
        location=settings.GCP_LOCATION,
        temperature=temperature,
        max_output_tokens=max_output_tokens,
        timeout=float(settings.LLM_REQUEST_TIMEOUT_SECONDS),
    )


@lru_cache(maxsize=8)
def _groq_chat_llm(*, max_output_tokens: int, temperature: float) -> Any:
    if not settings.GROQ_API_KEY:
        raise RuntimeError("GROQ_API_KEY is not set; Groq fallback is unavailable.")

    from langchain_groq import ChatGroq

    return ChatGroq(
        model=settings.GROQ_FALLBACK_MODEL,
        api_key=settings.GROQ_API_KEY,
        temperature=temperature,
        max_tokens=max_output_tokens,
        timeout=float(settings.LLM_REQUEST_TIMEOUT_SECONDS),
    )


def provider_order(preference: ProviderPreference = "auto") -> list[Provider]:
    """Providers to try, preferred first. Only an explicit "groq" puts Groq ahead."""
    if preference == "groq":
        return ["groq", "vertex"]
    return ["vertex", "groq"]


def _chat_model(provider: Provider, *, max_output_tokens: int, temperature: float) -> Any:
    if provider == "vertex":
        return _vertex_chat_llm(max_output_tokens=max_output_tokens, temperature=temperature)
    return _groq_chat_llm(max_output_tokens=max_output_tokens, temperature=temperature)


def invoke_with_fallback(
    prompt: ChatPromptTemplate,
    variables: dict,
    *,
    max_output_tokens: int = 500,
    temperature: float = 0.7,
    provider_preference: ProviderPreference = "auto",
) -> Tuple[str, Provider]:
    """Run `prompt` through each provider in turn until one answers.

    Any provider failure, timeouts included, moves on to the next provider.

    Returns: (text, provider_used)
    Raises: GenerationError naming the providers tried once all have failed.
    """
    tried: list[str] = []
    last_err: Exception | None = None
    for provider in provider_order(provider_preference):
        tried.append(provider)
        try:
            llm = _chat_model(provider, max_output_tokens=max_output_tokens, temperature=temperature)
            chain = prompt | llm | StrOutputParser()
            return chain.invoke(variables), provider
        except Exception as e:
            last_err = e
            logger.warning("chat reply via %s failed; trying next provider. error=%s", provider, str(e))

    raise GenerationError(f"All configured LLM providers failed ({', '.join(tried)}).") from last_err


def build_system_prompt(
    company_name: str | None = None,
    tone: str = "professional",
    instructions: str | None = None,
    regenerating: bool = False,
) -> str:
    company = company_name or "our company"
    parts = [
        f"You are a helpful customer support assistant for {company}.",
        TONE_GUIDES.get(tone, TONE_GUIDES["professional"]),
        "Your goal is to help customers with their questions and issues.",
        "If you cannot resolve an issue, suggest that the customer create a support ticket.",
        "Keep responses concise and helpful.",
        "Do not make up information; say so if you don't know something.",
    ]
    if instructions:
        parts.append(f"Additional instructions: {instructions}")
    if regenerating:
        parts.append(REGENERATE_HINT)
    return "\n".join(parts)


def to_prompt_messages(history: Sequence[Any], limit: int) -> list[tuple[str, str]]:
    """Map stored chat messages to (role, text) pairs, keeping the most recent `limit`."""
    recent = list(history)[-limit:] if limit else list(history)
    return [("ai" if m.role == ChatRole.ASSISTANT else "human", m.content) for m in recent]


class LangChainResponseGenerator:
    """Default generator: Vertex AI first, Groq as fallback."""

    def __init__(
        self,
        *,
        company_name: str | None = None,
        tone: str | None = None,
        instructions: str | None = None,
        history_limit: int | None = None,
        max_output_tokens: int | None = None,
        provider_preference: ProviderPreference = "auto",
    ):
        self.company_name = company_name if company_name is not None else settings.CHAT_COMPANY_NAME
        self.tone = tone or settings.CHAT_TONE
        self.instructions = instructions if instructions is not None else settings.CHAT_SYSTEM_INSTRUCTIONS
        self.history_limit = history_limit or settings.CHAT_HISTORY_LIMIT
        self.max_output_tokens = max_output_tokens or settings.LLM_MAX_OUTPUT_TOKENS
        self.provider_preference = provider_preference
        # System text goes in as a variable so braces in operator instructions are not parsed as placeholders.
        self.prompt = ChatPromptTemplate.from_messages(
            [("system", "{system_prompt}"), MessagesPlaceholder("history")]
        )

    def generate(self, history: Sequence[Any], *, regenerating: bool = False) -> str:
        variables = {
            "system_prompt": build_system_prompt(self.company_name, self.tone, self.instructions, regenerating),
            "history": to_prompt_messages(history, self.history_limit),
        }
        try:
            text, provider = invoke_with_fallback(
                self.prompt,
                variables,
                max_output_tokens=self.max_output_tokens,
                provider_preference=self.provider_preference,
            )
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(str(e)) from e

        text = (text or "").strip()
        if not text:
            raise GenerationError("Model returned an empty response")
        logger.debug("chat reply generated via %s (%d chars)", provider, len(text))
        return text


@lru_cache(maxsize=1)
def get_response_generator() -> ResponseGenerator:
    return LangChainResponseGenerator()
