"""Draft and revision generation through the hosted language model."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage, SystemMessage

from guidance_agent._logging import logged_call
from guidance_agent.config import Settings, get_settings
from guidance_agent.config_data.loader import Prompts, get_prompts
from guidance_agent.verification.models import Chunk, VerificationRequest

logger = logging.getLogger(__name__)


class AnswerGenerator(Protocol):
    """Produces answer text from a prompt and its retrieval context. May raise."""

    async def generate(self, prompt: str, context: str) -> str: ...


def _extract_text(content: Any) -> str:
    """Extract plain text from AI content (string or content blocks)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for block in content:
            if isinstance(block, dict):
                parts.append(str(block.get("text", "")))
            elif isinstance(block, str):
                parts.append(block)
        return "".join(parts)
    return str(content)


def format_chunks_as_context(chunks: list[Chunk]) -> str:
    """Render retrieved chunks as numbered sources for the model."""
    blocks = []
    for idx, chunk in enumerate(chunks, start=1):
        source = chunk.metadata.get("source")
        header = f"[Source {idx}]" + (f" ({source})" if source else "")
        blocks.append(f"{header}\n{chunk.text}")
    return "RETRIEVED SOURCES:\n" + "\n\n".join(blocks)


def build_draft_prompt(request: VerificationRequest, prompts: Prompts) -> str:
    """Fill the draft template from the (already sanitised) student profile."""
    profile = request.student_profile
    subjects = profile.get("subjects") or []
    subject_names = [
        str(s.get("name", "")) if isinstance(s, dict) else str(s) for s in subjects
    ]
    return prompts.draft_prompt_template.format(
        grade=profile.get("grade") or "unknown",
        curriculum=profile.get("curriculum") or "unknown",
        subjects=", ".join(n for n in subject_names if n) or "not specified",
        query=request.query,
        disclaimer=prompts.disclaimer_block.strip(),
    )


class AnthropicGenerator:
    """AnswerGenerator backed by Claude through LangChain."""

    def __init__(
        self,
        settings: Settings | None = None,
        prompts: Prompts | None = None,
        llm: ChatAnthropic | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._prompts = prompts or get_prompts()
        self._llm = llm or ChatAnthropic(
            model=self._settings.model_name,
            temperature=0,
            max_tokens=self._settings.max_tokens,
            api_key=self._settings.anthropic_api_key,
        )

    async def generate(self, prompt: str, context: str) -> str:
        return await _generate(
            self._llm,
            self._prompts.generator_system_prompt,
            prompt=prompt,
            context=context,
        )


@logged_call
async def _generate(
    llm: ChatAnthropic,
    system_prompt: str,
    *,
    prompt: str,
    context: str,
) -> str:
    messages = [
        SystemMessage(content=system_prompt),
        HumanMessage(content=f"{context}\n\n{prompt}"),
    ]
    response = await llm.ainvoke(messages)
    text = _extract_text(response.content).strip()
    if not text:
        raise ValueError("Model returned an empty response")
    return text
