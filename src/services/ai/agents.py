"""pydantic-ai agents for the non-streaming rephrase features."""

from __future__ import annotations

import logging

import openai
from pydantic import BaseModel, Field
from pydantic_ai import Agent
from pydantic_ai.exceptions import AgentRunError
from pydantic_ai.models import Model

from core.exceptions import EmptyModelOutputError
from schemas.rephrase import ParagraphMapping, RephraseRequest
from services.ai.exceptions import ModelInvocationError
from services.ai.model_factory import get_text_model
from services.ai.models import OutputMode
from services.ai.prompts import RephrasePromptBuilder, normalize_paragraph_breaks
from services.ai.record_extractor import strip_reasoning


logger = logging.getLogger(__name__)


MAPPING_PROMPT = """You are an expert text analysis AI. Map the paragraphs of a \
rephrased text back to the paragraphs of the original text they were derived from.

The original text is inside <originalText></originalText> and the rephrased text \
inside <rephrasedText></rephrasedText>.

Each rephrased paragraph may combine one or more original paragraphs. For every \
rephrased paragraph, in order, list the original paragraphs that contributed to it, \
copied verbatim from the original text. Never list rephrased text as an original \
paragraph. If no original paragraph clearly matches, return an empty list."""


class MappedParagraph(BaseModel):
    rephrased_paragraph_index: int
    rephrased_paragraph_content: str
    original_paragraph_contents: list[str] | None = Field(default=None)


class ParagraphMappingResult(BaseModel):
    """Structured output of the mapping agent."""

    rephrased_paragraphs: list[MappedParagraph]


def create_rephrase_agent(system_prompt: str, model: Model | None = None) -> Agent:
    return Agent(
        model or get_text_model(),
        system_prompt=system_prompt,
        output_type=str,
    )


def create_mapping_agent(model: Model | None = None) -> Agent:
    return Agent(
        model or get_text_model(),
        system_prompt=MAPPING_PROMPT,
        output_type=ParagraphMappingResult,
    )


async def rephrase_text(request: RephraseRequest, model: Model | None = None) -> str:
    """Rephrase the request in one call and return the cleaned text.

    Raises:
        ModelInvocationError: the provider call failed.
        EmptyModelOutputError: the model returned nothing once reasoning
            blocks are removed.
    """
    builder = RephrasePromptBuilder(request)
    agent = create_rephrase_agent(builder.system_prompt(OutputMode.TEXT), model)
    try:
        result = await agent.run(builder.user_prompt(builder.paragraphs))
    except (AgentRunError, openai.OpenAIError) as err:
        model_name = getattr(agent.model, "model_name", "rephrase-agent")
        raise ModelInvocationError(model_name, err.__class__.__name__) from err
    text = normalize_paragraph_breaks(strip_reasoning(str(result.output)))
    if not text:
        raise EmptyModelOutputError("Rephrase returned no text")
    return text


def _fallback_mapping(rephrased_text: str) -> list[ParagraphMapping]:
    return [
        ParagraphMapping(
            rephrased_paragraph=normalize_paragraph_breaks(rephrased_text),
            original_paragraph="",
        )
    ]


async def map_rephrased_to_original(
    original_paragraphs: list[str],
    rephrased_text: str,
    model: Model | None = None,
) -> list[ParagraphMapping]:
    """Pair each rephrased paragraph with the original text it came from.

    Mapping is best effort: any agent failure yields a single mapping that
    holds the whole rephrased text and an empty original.
    """
    original_text = "\n\n".join(original_paragraphs)
    user_prompt = (
        f"<originalText>\n{original_text}\n</originalText>\n\n"
        f"<rephrasedText>\n{rephrased_text}\n</rephrasedText>"
    )
    try:
        result = await create_mapping_agent(model).run(user_prompt)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Paragraph mapping failed, returning unmapped text: %s", exc)
        return _fallback_mapping(rephrased_text)

    output: ParagraphMappingResult = result.output
    if not output.rephrased_paragraphs:
        return _fallback_mapping(rephrased_text)
    return [
        ParagraphMapping(
            rephrased_paragraph=normalize_paragraph_breaks(p.rephrased_paragraph_content),
            original_paragraph=normalize_paragraph_breaks(
                "\n\n".join(p.original_paragraph_contents or [])
            ),
        )
        for p in output.rephrased_paragraphs
    ]
