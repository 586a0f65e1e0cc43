"""Tests for prompt construction and continuation prompts."""

from __future__ import annotations

from schemas.rephrase import DiffCheckRequest, PromptContext, RephraseRequest
from services.ai.models import OutputMode
from services.ai.prompts import (
    JSON_OUTPUT_SECTION,
    REPHRASE_TEXT_OUTPUT_SECTION,
    DiffPromptBuilder,
    RephrasePromptBuilder,
    normalize_paragraph_breaks,
    split_into_paragraphs,
)


def test_split_into_paragraphs_drops_blank_entries():
    text = "First line.\r\n\r\nSecond.\n\n\n\n  \n\nThird.  "
    assert split_into_paragraphs(text) == ["First line.", "Second.", "Third."]


def test_normalize_paragraph_breaks_collapses_runs():
    assert normalize_paragraph_breaks("\nA\n\n\n\nB\n") == "A\n\nB"


def test_rephrase_system_prompt_includes_context(three_paragraph_request):
    request = three_paragraph_request.model_copy(
        update={
            "prompt_contexts": [
                PromptContext(context_type="character", id="c1", prompt="Mara is a pilot")
            ]
        }
    )
    system = RephrasePromptBuilder(request).system_prompt(OutputMode.JSON)

    assert "Keep it melancholic." in system
    assert "<textBefore>\nChapter one ended at dusk.\n</textBefore>" in system
    assert "<textAfter>\nNone\n</textAfter>" in system
    assert "Type: character, ID: c1, Prompt: Mara is a pilot" in system
    assert system.endswith(JSON_OUTPUT_SECTION)


def test_output_section_depends_on_mode(three_paragraph_request):
    builder = RephrasePromptBuilder(three_paragraph_request)
    assert builder.system_prompt(OutputMode.TEXT).endswith(REPHRASE_TEXT_OUTPUT_SECTION)
    assert "Other Context:\nNone" in builder.system_prompt(OutputMode.TEXT)


def test_rephrase_user_prompt_wraps_paragraphs(three_paragraph_request):
    prompts = RephrasePromptBuilder(three_paragraph_request).build(OutputMode.JSON)
    assert prompts.user_prompt == (
        "<originalText>The rain fell on the harbour.\n\n"
        "Mara watched the ships come in.\n\n"
        "Nobody spoke of the storm.</originalText>"
    )


def test_continuation_covers_unprocessed_suffix(three_paragraph_request):
    builder = RephrasePromptBuilder(three_paragraph_request)
    assert builder.continuation(1) == (
        "<originalText>Mara watched the ships come in.\n\n"
        "Nobody spoke of the storm.</originalText>"
    )
    assert builder.continuation(0) == builder.build(OutputMode.JSON).user_prompt


def test_continuation_is_none_when_everything_was_processed(three_paragraph_request):
    builder = RephrasePromptBuilder(three_paragraph_request)
    assert builder.continuation(3) is None
    assert builder.continuation(5) is None


def test_response_schema_uses_camel_case_names(three_paragraph_request):
    schema = RephrasePromptBuilder(three_paragraph_request).response_schema()
    assert "rephrasedParagraphs" in schema["properties"]


def test_text_record_wraps_whole_response(three_paragraph_request):
    record = RephrasePromptBuilder(three_paragraph_request).text_record("All of it.")
    assert record.rephrased_paragraph_index == 1
    assert record.rephrased_paragraph_content == "All of it."
    assert record.original_paragraph_contents == list(
        three_paragraph_request.text_to_rephrase
    )


def test_diff_builder_resends_original_with_remaining_paragraphs():
    request = DiffCheckRequest(
        original_text="Old one.\n\nOld two.",
        new_text="New one.\n\nNew two.\n\nNew three.",
    )
    builder = DiffPromptBuilder(request)

    assert builder.paragraphs == ["New one.", "New two.", "New three."]
    continuation = builder.continuation(2)
    assert continuation == (
        "<originalText>\nOld one.\n\nOld two.\n</originalText>\n\n"
        "<newText>\nNew three.\n</newText>"
    )


def test_diff_text_record_uses_whole_texts():
    request = DiffCheckRequest(original_text="Before.", new_text="After.")
    record = DiffPromptBuilder(request).text_record("Changed one word.")
    assert record.model_dump(by_alias=True) == {
        "newParagraph": "After.",
        "originalParagraph": "Before.",
        "diff": "Changed one word.",
        "done": False,
    }


def test_request_accepts_camel_case_payload():
    request = RephraseRequest.model_validate(
        {"textToRephrase": ["One."], "customInstructions": "Short."}
    )
    assert request.text_to_rephrase == ["One."]
    assert request.custom_instructions == "Short."
