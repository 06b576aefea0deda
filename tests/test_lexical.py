"""Tests for the offline pattern-based collaborators."""

from __future__ import annotations

import pytest

from app.evaluation.lexical import KeywordNoteComparator, LexicalCAUClassifier
from app.evaluation.schemas import CaseContext, NoteAlignment, QuestionQuality

classify = LexicalCAUClassifier()


class TestLexicalCAUClassifier:
    @pytest.mark.parametrize("text", ["ok", "Thanks!", "got it, thank you", "please keep me posted", ""])
    def test_acknowledgements(self, text):
        result = classify(text)
        assert result.is_acknowledgement_only
        assert not result.is_cau

    def test_targeted_question(self):
        result = classify("What is his blood pressure?")
        assert result.is_question_only
        assert result.question_quality == QuestionQuality.TARGETED

    def test_rambling_question_poorly_formed(self):
        text = "How is he? Is he ok? Anything new? What about the labs? " + "and " * 30 + "?"
        assert classify(text).question_quality == QuestionQuality.POORLY_FORMED

    def test_polite_request_is_instruction(self):
        result = classify("Can you check a BMP?")
        assert result.is_instruction
        assert not result.is_question

    def test_wh_question_with_verb_is_question(self):
        result = classify("When did you last check his sugar?")
        assert result.is_question
        assert not result.is_instruction

    def test_closed_loop_instruction(self):
        result = classify("Give 1L LR bolus and let me know the repeat BP")
        assert result.is_instruction
        assert result.closed_loop
        assert not result.shares_rationale

    def test_rationale(self):
        result = classify("Start broad spectrum antibiotics because I'm worried about sepsis, call me with the lactate")
        assert result.closed_loop
        assert result.shares_rationale

    def test_action(self):
        result = classify("I'm coming to the bedside now")
        assert result.is_action
        assert result.is_directive

    def test_non_clinical_chatter(self):
        assert classify("Busy night huh").is_acknowledgement_only


class TestKeywordNoteComparator:
    compare = KeywordNoteComparator()

    def test_empty_note(self, case_context):
        assert self.compare("", "ref", case_context) == NoteAlignment.NONE

    def test_aligned(self, case_context):
        note = "Septic shock, likely urinary. Fluid bolus given, blood cultures drawn."
        assert self.compare(note, "ref", case_context) == NoteAlignment.ALIGNED

    def test_diagnosis_only_is_partial(self, case_context):
        assert self.compare("Septic shock. Will monitor.", "ref", case_context) == NoteAlignment.PARTIAL

    def test_treatment_only_is_partial(self, case_context):
        assert self.compare("Gave a fluid bolus.", "ref", case_context) == NoteAlignment.PARTIAL

    def test_unrelated_note(self, case_context):
        assert self.compare("Anxiety, reassurance.", "ref", case_context) == NoteAlignment.NONE

    def test_no_expected_treatment(self):
        context = CaseContext(expected_diagnosis="Hypoglycemia")
        assert self.compare("Hypoglycemia after insulin", "", context) == NoteAlignment.ALIGNED
