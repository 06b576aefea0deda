"""Prompt templates for the LLM judge that classifies messages and compares notes."""

from __future__ import annotations

from collections.abc import Sequence

from app.evaluation.rubrics import DEFAULT_REGISTRY
from app.evaluation.schemas import CaseContext, DimensionName


def _format_messages(texts: Sequence[str]) -> str:
    """Number each unique student message for the judge to refer back to."""
    return "\n".join(f'<message id="{i}">{text}</message>' for i, text in enumerate(texts))


def _format_dimension(dimension: DimensionName) -> str:
    rubric = DEFAULT_REGISTRY.rubric(dimension)
    anchors = "\n".join(
        f'  <anchor points="{e.points}">{e.criteria}: {e.description}</anchor>'
        for e in DEFAULT_REGISTRY.all_entries(dimension)
    )
    return f"""<dimension>
  <name>{rubric.label}</name>
  <description>{rubric.description}</description>
{anchors}
</dimension>"""


def _format_case(context: CaseContext) -> str:
    sections = [f"<difficulty>{context.difficulty.value}</difficulty>"]
    if context.case_goals:
        sections.append(f"<case_goals>{context.case_goals}</case_goals>")
    if context.expected_diagnosis:
        sections.append(f"<expected_diagnosis>{context.expected_diagnosis}</expected_diagnosis>")
    if context.expected_treatment:
        sections.append(
            f"<expected_treatment>{', '.join(context.expected_treatment)}</expected_treatment>"
        )
    if context.instability_present:
        sections.append("<instability>Red flags or hemodynamic instability present</instability>")
    return "\n".join(sections)


SYSTEM_PROMPT = """You are a physician educator helping grade a physician's text messages to a \
nurse and their progress note. You do NOT assign scores; a deterministic rubric engine does that \
from your classifications.

IMPORTANT INSTRUCTIONS:
1. You only ever see the physician's outgoing messages. Nurse messages are excluded by design.
2. Classify each message on its own. A message that could have been merged with its neighbour \
is still its own message.
3. Pure acknowledgements and etiquette ("ok", "thanks", "got it", "please keep me posted") are \
acknowledgement-only and carry no clinical flags.
4. Do not favour verbose messages. A targeted question is short, high-yield and answerable by a \
nurse at the bedside in real workflow.
5. Be consistent: identical inputs must receive identical classifications."""


def build_classification_prompt(texts: Sequence[str], context: CaseContext) -> str:
    """Ask the judge for one classification per unique student message."""
    return f"""<classification_task>
Classify every physician message below as clinical action units.
</classification_task>

<case>
{_format_case(context)}
</case>

<messages>
{_format_messages(texts)}
</messages>

<rubric_context>
{_format_dimension(DimensionName.INFORMATION_SHARING)}
{_format_dimension(DimensionName.RESPONSIVE_COMMUNICATION)}
</rubric_context>

<instructions>
For each message id return:
- is_question: asks for clinical information (history, vitals, meds, exam, response to treatment)
- is_instruction: directs nursing care (monitoring, reassessment, giving a medication)
- is_action: places or announces an order, consult, transfer, bedside evaluation or escalation
- is_acknowledgement_only: true only when none of the three above apply
- question_quality: "targeted" or "poorly_formed" when is_question, otherwise null
- redundant: asks again for information already provided earlier in the conversation
- closed_loop: an instruction paired with an explicit request to confirm or report back
- shares_rationale: gives brief reasoning or treats the nurse as a teammate
</instructions>"""


def build_note_prompt(student_note: str, reference_note: str, context: CaseContext) -> str:
    return f"""<comparison_task>
Compare the student's progress note with the reference physician note for this case,
allowing reasonable alternative approaches.
</comparison_task>

<case>
{_format_case(context)}
</case>

<reference_note>
{reference_note}
</reference_note>

<student_note>
{student_note}
</student_note>

<rubric_context>
{_format_dimension(DimensionName.NOTE_THOUGHT_PROCESS)}
</rubric_context>

<instructions>
Return exactly one alignment:
- "aligned": identifies the main clinical problem and priorities consistent with the reference
- "partial": visible reasoning but the core problem or key priority is missed
- "none": no coherent understanding, or the plan is unrelated or unsafe
</instructions>"""
