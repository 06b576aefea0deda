"""LLM judge — materialises message classifications and note alignment.

The judge is the only part of scoring that talks to a model. It runs before
the engine, and its results are handed to the engine as plain values.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Literal

import anthropic
import openai
import redis.asyncio as redis
from pydantic import BaseModel, Field, ValidationError

from app.config import settings
from app.evaluation.errors import ClassificationUnavailableError
from app.evaluation.prompts import SYSTEM_PROMPT, build_classification_prompt, build_note_prompt
from app.evaluation.rubrics import RUBRIC_VERSION
from app.evaluation.schemas import (
    CaseContext,
    CAUClassification,
    DimensionName,
    Message,
    NoteAlignment,
)
from app.services.cache_service import (
    get_cached_judgement,
    judgement_key,
    set_cached_judgement,
)

logger = logging.getLogger(__name__)


# ── Pydantic models for OpenAI structured output ─────────────────────────────


class MessageClassificationOutput(BaseModel):
    id: int
    is_question: bool
    is_instruction: bool
    is_action: bool
    is_acknowledgement_only: bool
    question_quality: Literal["targeted", "poorly_formed"] | None
    redundant: bool
    closed_loop: bool
    shares_rationale: bool


class ClassificationOutput(BaseModel):
    classifications: list[MessageClassificationOutput]


class NoteAlignmentOutput(BaseModel):
    alignment: Literal["none", "partial", "aligned"]
    rationale: str


# ── Tool schemas for Claude tool_use ─────────────────────────────────────────

_FLAG = {"type": "boolean"}

CLASSIFY_TOOL = {
    "name": "submit_classifications",
    "description": "Submit one classification for every physician message id.",
    "input_schema": {
        "type": "object",
        "properties": {
            "classifications": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "integer"},
                        "is_question": _FLAG,
                        "is_instruction": _FLAG,
                        "is_action": _FLAG,
                        "is_acknowledgement_only": _FLAG,
                        "question_quality": {
                            "type": ["string", "null"],
                            "enum": ["targeted", "poorly_formed", None],
                        },
                        "redundant": _FLAG,
                        "closed_loop": _FLAG,
                        "shares_rationale": _FLAG,
                    },
                    "required": [
                        "id",
                        "is_question",
                        "is_instruction",
                        "is_action",
                        "is_acknowledgement_only",
                        "question_quality",
                        "redundant",
                        "closed_loop",
                        "shares_rationale",
                    ],
                },
            },
        },
        "required": ["classifications"],
    },
}

NOTE_TOOL = {
    "name": "submit_note_alignment",
    "description": "Submit how well the student note aligns with the reference note.",
    "input_schema": {
        "type": "object",
        "properties": {
            "alignment": {"type": "string", "enum": ["none", "partial", "aligned"]},
            "rationale": {"type": "string"},
        },
        "required": ["alignment", "rationale"],
    },
}


class Judgement(BaseModel):
    """Materialised collaborator results for one transcript."""

    classifications: dict[str, CAUClassification] = Field(
        default_factory=dict, description="Keyed by the exact student message text"
    )
    note_alignment: NoteAlignment
    model_used: str
    token_usage: dict = Field(default_factory=dict)


async def _call_claude(prompt: str, tool: dict) -> tuple[dict, dict]:
    client = anthropic.AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)

    response = await client.messages.create(
        model=settings.ANTHROPIC_MODEL,
        max_tokens=4096,
        system=SYSTEM_PROMPT,
        tools=[tool],
        tool_choice={"type": "tool", "name": tool["name"]},
        messages=[{"role": "user", "content": prompt}],
    )

    token_usage = {
        "input_tokens": response.usage.input_tokens,
        "output_tokens": response.usage.output_tokens,
    }

    for block in response.content:
        if block.type == "tool_use" and block.name == tool["name"]:
            return block.input, token_usage

    raise ValueError("Claude did not return a tool_use response")


async def _call_gpt4o(prompt: str, output_model: type[BaseModel]) -> tuple[dict, dict]:
    client = openai.AsyncOpenAI(api_key=settings.OPENAI_API_KEY)

    response = await client.responses.parse(
        model=settings.OPENAI_MODEL,
        instructions=SYSTEM_PROMPT,
        input=[{"role": "user", "content": prompt}],
        text_format=output_model,
    )

    parsed = response.output_parsed
    if parsed is None:
        raise ValueError("GPT-4o returned empty parsed response")

    token_usage = {
        "input_tokens": response.usage.input_tokens if response.usage else 0,
        "output_tokens": response.usage.output_tokens if response.usage else 0,
    }
    return parsed.model_dump(), token_usage


async def _ask(
    prompt: str,
    tool: dict,
    output_model: type[BaseModel],
    provider: str,
    **details,
) -> tuple[dict, str, dict]:
    """Call the preferred provider, falling back from Claude to GPT-4o once."""
    try:
        if provider == "claude":
            try:
                data, usage = await _call_claude(prompt, tool)
                return data, "claude", usage
            except Exception:
                logger.warning("Claude judge failed, falling back to GPT-4o", exc_info=True)
        data, usage = await _call_gpt4o(prompt, output_model)
        return data, "gpt-4o", usage
    except Exception as exc:
        raise ClassificationUnavailableError(
            "LLM judge unavailable", component="judge", provider=provider, **details
        ) from exc


def unique_student_texts(messages: Sequence[Message]) -> list[str]:
    texts: list[str] = []
    for message in sorted(messages, key=lambda m: m.position):
        if message.role == "student" and message.text not in texts:
            texts.append(message.text)
    return texts


async def classify_messages(
    texts: Sequence[str], context: CaseContext, provider: str
) -> tuple[dict[str, CAUClassification], str, dict]:
    if not texts:
        return {}, "none", {}

    prompt = build_classification_prompt(texts, context)
    data, model_used, usage = await _ask(
        prompt, CLASSIFY_TOOL, ClassificationOutput, provider, message_count=len(texts)
    )

    by_id: dict[int, dict] = {}
    for item in data.get("classifications", []):
        by_id[int(item["id"])] = item

    results: dict[str, CAUClassification] = {}
    for i, text in enumerate(texts):
        if i not in by_id:
            raise ClassificationUnavailableError(
                "Judge skipped a message", component="judge", index=i
            )
        fields = {k: v for k, v in by_id[i].items() if k != "id"}
        try:
            results[text] = CAUClassification.model_validate(fields)
        except ValidationError as exc:
            raise ClassificationUnavailableError(
                "Judge returned an unclassifiable message", component="judge", index=i
            ) from exc
    return results, model_used, usage


async def compare_note(
    student_note: str, reference_note: str, context: CaseContext, provider: str
) -> tuple[NoteAlignment, str, dict]:
    if not student_note.strip():
        return NoteAlignment.NONE, "none", {}

    prompt = build_note_prompt(student_note, reference_note, context)
    data, model_used, usage = await _ask(
        prompt,
        NOTE_TOOL,
        NoteAlignmentOutput,
        provider,
        dimension=DimensionName.NOTE_THOUGHT_PROCESS.value,
    )
    try:
        return NoteAlignment(data.get("alignment")), model_used, usage
    except ValueError:
        raise ClassificationUnavailableError(
            "Judge returned an unclassifiable note alignment",
            component="judge",
            dimension=DimensionName.NOTE_THOUGHT_PROCESS.value,
        ) from None


async def judge_transcript(
    messages: Sequence[Message],
    context: CaseContext,
    student_note: str,
    *,
    provider: str | None = None,
    r: redis.Redis | None = None,
) -> Judgement:
    provider = provider or settings.JUDGE_PROVIDER
    texts = unique_student_texts(messages)
    key = judgement_key(
        "\x1f".join(texts),
        context.model_dump_json(),
        student_note,
        provider,
        RUBRIC_VERSION,
    )

    cached = await get_cached_judgement(r, key)
    if cached:
        logger.info("Cache hit for %s", key)
        return Judgement.model_validate(cached)

    classifications, classify_model, classify_usage = await classify_messages(
        texts, context, provider
    )
    alignment, note_model, note_usage = await compare_note(
        student_note, context.reference_note, context, provider
    )

    models = [m for m in (classify_model, note_model) if m != "none"]
    judgement = Judgement(
        classifications=classifications,
        note_alignment=alignment,
        model_used=models[-1] if models else "none",
        token_usage={
            "input_tokens": classify_usage.get("input_tokens", 0)
            + note_usage.get("input_tokens", 0),
            "output_tokens": classify_usage.get("output_tokens", 0)
            + note_usage.get("output_tokens", 0),
        },
    )
    await set_cached_judgement(r, key, judgement.model_dump(mode="json"))
    return judgement
