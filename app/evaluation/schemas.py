"""Pydantic models for the scoring engine."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ── Enums ────────────────────────────────────────────────────────────────────


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


DIFFICULTY_ALIASES = {
    "easy": Difficulty.BEGINNER,
    "medium": Difficulty.INTERMEDIATE,
    "hard": Difficulty.ADVANCED,
}


class NecessityTier(str, Enum):
    MUST = "must"
    SHOULD = "should"
    COULD = "could"
    SHOULDNT = "shouldnt"
    MUSTNT = "mustnt"


class OrderCategory(str, Enum):
    LAB = "lab"
    MEDICATION = "medication"
    IMAGING = "imaging"
    CONSULT = "consult"
    ESCALATION = "escalation"
    BEDSIDE = "bedside"
    NURSING = "nursing"
    PROCEDURE = "procedure"
    OTHER = "other"


class QuestionQuality(str, Enum):
    TARGETED = "targeted"
    POORLY_FORMED = "poorly_formed"


class NoteAlignment(str, Enum):
    NONE = "none"
    PARTIAL = "partial"
    ALIGNED = "aligned"


class DimensionName(str, Enum):
    INFORMATION_SHARING = "information_sharing"
    RESPONSIVE_COMMUNICATION = "responsive_communication"
    EFFICIENCY_DEDUCTION = "efficiency_deduction"
    LABS_ORDERS_QUALITY = "labs_orders_quality"
    NOTE_THOUGHT_PROCESS = "note_thought_process"
    SAFETY_DEDUCTION = "safety_deduction"


class Composite(str, Enum):
    COMMUNICATION = "communication"
    MEDICAL_DECISION_MAKING = "medical_decision_making"


# ── Input Models ─────────────────────────────────────────────────────────────


class Message(BaseModel):
    """One turn of the messaging transcript. Nurse turns use ``counterpart``."""

    model_config = ConfigDict(frozen=True)

    role: Literal["student", "counterpart"]
    text: str
    position: int = Field(ge=0)


class Order(BaseModel):
    """A clinical order placed by the student during the case."""

    model_config = ConfigDict(frozen=True)

    name: str
    category: OrderCategory = OrderCategory.OTHER
    necessity_tier: NecessityTier
    position: int = Field(ge=0, description="Index on the shared event timeline")
    time_offset_minutes: float | None = Field(None, ge=0)
    contraindicated: bool = Field(False, description="Flagged unsafe for this patient")
    status_change_justified: bool = Field(
        False, description="A patient status change justifies repeating this order"
    )


class OrderKeyItem(BaseModel):
    """An order the case author expects, with its necessity tier."""

    model_config = ConfigDict(frozen=True)

    name: str
    category: OrderCategory | None = None
    necessity_tier: NecessityTier


class CaseContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    expected_diagnosis: str = ""
    expected_treatment: list[str] = Field(default_factory=list)
    case_goals: str = ""
    difficulty: Difficulty = Difficulty.INTERMEDIATE
    reference_note: str = ""
    instability_present: bool = False
    order_key: list[OrderKeyItem] = Field(default_factory=list)

    @field_validator("difficulty", mode="before")
    @classmethod
    def accept_legacy_difficulty(cls, v):
        if isinstance(v, str) and v.lower() in DIFFICULTY_ALIASES:
            return DIFFICULTY_ALIASES[v.lower()]
        return v


# ── Collaborator results ─────────────────────────────────────────────────────


class CAUClassification(BaseModel):
    """What the text classifier says about one outgoing student message."""

    model_config = ConfigDict(frozen=True)

    is_question: bool = False
    is_instruction: bool = False
    is_action: bool = False
    is_acknowledgement_only: bool = False
    question_quality: QuestionQuality | None = None
    redundant: bool = False
    closed_loop: bool = False
    shares_rationale: bool = Field(
        False, description="Explains intent or treats the nurse as a teammate"
    )

    @model_validator(mode="after")
    def check_consistent(self) -> CAUClassification:
        clinical = self.is_question or self.is_instruction or self.is_action
        if clinical and self.is_acknowledgement_only:
            raise ValueError("acknowledgement-only message cannot carry clinical content")
        if not clinical and not self.is_acknowledgement_only:
            raise ValueError("message is neither clinical nor an acknowledgement")
        return self

    @property
    def is_cau(self) -> bool:
        return self.is_question or self.is_instruction or self.is_action

    @property
    def is_directive(self) -> bool:
        return self.is_instruction or self.is_action

    @property
    def is_question_only(self) -> bool:
        return self.is_question and not self.is_directive


class ClassifiedMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int = Field(description="Index of the message in the submitted transcript")
    position: int
    classification: CAUClassification


class PositionedClassification(BaseModel):
    """A caller-supplied classification for the student message at ``position``."""

    position: int = Field(ge=0)
    classification: CAUClassification


# ── Output Models ────────────────────────────────────────────────────────────


class DimensionScore(BaseModel):
    """The single point value selected for one dimension in one run."""

    model_config = ConfigDict(frozen=True)

    dimension: DimensionName
    points: int
    criteria: str
    feedback: str


class DimensionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    points: int
    criteria: str
    feedback: str


class ScoreReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    communication_score: int = Field(ge=0, le=5)
    mdm_score: int = Field(ge=0, le=5)
    communication_raw: int
    mdm_raw: int
    zero_override: bool = False
    dimensions: dict[DimensionName, DimensionResult]
    summary: str
    recommendations: list[str]


# ── Request / Response ───────────────────────────────────────────────────────


class ScoringRequest(BaseModel):
    """Transcript, orders and case metadata for one student assignment."""

    messages: list[Message]
    orders: list[Order] = Field(default_factory=list)
    case_context: CaseContext
    student_note: str = ""
    session_id: str | None = None
    model: Literal["claude", "gpt-4o"] | None = None


class PrecomputedScoringRequest(ScoringRequest):
    """Scoring request carrying already-materialised collaborator results."""

    classifications: list[PositionedClassification]
    note_alignment: NoteAlignment


class ScoringResponse(BaseModel):
    report: ScoreReport
    feedback_text: str
    model_used: str
    timestamp: datetime
    token_usage: dict = Field(default_factory=dict)
    evaluation_id: str | None = None
