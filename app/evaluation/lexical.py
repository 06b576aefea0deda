"""Deterministic lexical collaborators for running without an LLM.

These are rough stand-ins for the LLM judge: good enough for offline scoring,
demos and tests, not a substitute for the judge's reading of the transcript.
"""

from __future__ import annotations

import re

from app.evaluation.schemas import CaseContext, CAUClassification, NoteAlignment, QuestionQuality

ACKNOWLEDGEMENT = re.compile(
    r"^\s*(ok(ay)?|k|thanks?( you)?|thx|ty|got it|will do|sounds good|roger( that)?|"
    r"understood|sure|great|perfect|no problem|appreciate it|"
    r"(please )?keep me (posted|updated)|noted)[\s.!,]*"
    r"(thanks?( you)?)?[\s.!]*$",
    re.IGNORECASE,
)

QUESTION_OPENERS = re.compile(
    r"^\s*(what|when|where|who|why|how|which|is|are|was|were|do|does|did|has|have|"
    r"can|could|any|should)\b",
    re.IGNORECASE,
)

WH_OPENER = re.compile(r"^\s*(what|when|where|who|why|how|which)\b", re.IGNORECASE)

POLITE_REQUEST = re.compile(r"^\s*(can|could|would|will) you\b|\bplease\b", re.IGNORECASE)

INSTRUCTION_VERBS = re.compile(
    r"\b(give|start|recheck|re-check|check|monitor|hold|place|put|draw|repeat|"
    r"administer|push|bolus|titrate|continue|stop|discontinue|increase|decrease|"
    r"keep|make sure|get|send|obtain|notify|call|page|reassess|elevate|apply)\b",
    re.IGNORECASE,
)

ACTION_PHRASES = re.compile(
    r"\b(i('ll| will| am|'m) (order|come|be there|head|see)|ordered|ordering|"
    r"on my way|coming to (the )?bedside|rapid response|escalat\w*|consult\w*|"
    r"transfer\w*|icu|stat)\b",
    re.IGNORECASE,
)

CLOSED_LOOP = re.compile(
    r"\b(let me know|call me|page me|message me|text me|update me|tell me|"
    r"report back|notify me|keep me (posted|updated)|get back to me)\b",
    re.IGNORECASE,
)

RATIONALE = re.compile(
    r"\b(because|given|since|so that|concerned|worried|i think|likely|"
    r"to rule out|r/o|in case|what do you think|your impression|does (he|she|they) look)\b",
    re.IGNORECASE,
)

TARGETED_MAX_WORDS = 30
TARGETED_MAX_QUESTION_MARKS = 3


class LexicalCAUClassifier:
    """Pattern-based CAU classification of a single student message."""

    def __call__(self, text: str) -> CAUClassification:
        stripped = text.strip()
        if not stripped or ACKNOWLEDGEMENT.match(stripped):
            return CAUClassification(is_acknowledgement_only=True)

        has_verb = bool(INSTRUCTION_VERBS.search(stripped))
        # "Can you give 4mg Zofran?" is a request, not a question.
        is_request = has_verb and bool(POLITE_REQUEST.search(stripped))
        is_question = not is_request and (
            "?" in stripped or bool(QUESTION_OPENERS.match(stripped))
        )
        is_action = bool(ACTION_PHRASES.search(stripped))
        is_instruction = has_verb and not WH_OPENER.match(stripped)

        if not (is_question or is_instruction or is_action):
            return CAUClassification(is_acknowledgement_only=True)

        quality = None
        if is_question:
            words = len(stripped.split())
            targeted = (
                words <= TARGETED_MAX_WORDS
                and stripped.count("?") <= TARGETED_MAX_QUESTION_MARKS
            )
            quality = QuestionQuality.TARGETED if targeted else QuestionQuality.POORLY_FORMED

        directive = is_instruction or is_action
        return CAUClassification(
            is_question=is_question,
            is_instruction=is_instruction,
            is_action=is_action,
            question_quality=quality,
            closed_loop=directive and bool(CLOSED_LOOP.search(stripped)),
            shares_rationale=directive and bool(RATIONALE.search(stripped)),
        )


def _mentions(note: str, phrase: str) -> bool:
    words = [w for w in re.findall(r"[a-z0-9]+", phrase.lower()) if len(w) > 2]
    if not words:
        return False
    note_lower = note.lower()
    return all(w in note_lower for w in words)


class KeywordNoteComparator:
    """Compare a student note to the case by diagnosis and treatment keywords.

    ``aligned`` needs the expected diagnosis plus at least half of the expected
    treatment steps; ``partial`` needs either one of them.
    """

    def __call__(self, student_note: str, reference_note: str, context: CaseContext) -> NoteAlignment:
        if not student_note.strip():
            return NoteAlignment.NONE

        diagnosis_hit = bool(context.expected_diagnosis) and _mentions(
            student_note, context.expected_diagnosis
        )
        steps = context.expected_treatment
        step_hits = sum(1 for step in steps if _mentions(student_note, step))
        treatment_ok = not steps or step_hits * 2 >= len(steps)

        if diagnosis_hit and treatment_ok:
            return NoteAlignment.ALIGNED
        if diagnosis_hit or step_hits:
            return NoteAlignment.PARTIAL
        return NoteAlignment.NONE
