"""Rubric registry: dimensions, point values, criteria and feedback text.

The registry is an immutable value built once at import time
(``DEFAULT_REGISTRY``) and validated on construction, so a missing point value
or difficulty profile fails at startup rather than mid-evaluation.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from app.evaluation.errors import RubricConfigurationError
from app.evaluation.schemas import Composite, Difficulty, DimensionName

RUBRIC_VERSION = "2.0"

POINT_RANGES: dict[DimensionName, tuple[int, ...]] = {
    DimensionName.INFORMATION_SHARING: (0, 1, 2),
    DimensionName.RESPONSIVE_COMMUNICATION: (0, 1, 2, 3),
    DimensionName.EFFICIENCY_DEDUCTION: (-2, -1, 0),
    DimensionName.LABS_ORDERS_QUALITY: (0, 1, 2, 3),
    DimensionName.NOTE_THOUGHT_PROCESS: (0, 1, 2),
    DimensionName.SAFETY_DEDUCTION: (-2, -1, 0),
}


class RubricEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    points: int
    criteria: str
    description: str
    feedback: str
    # Only the efficiency dimension words its criteria per difficulty.
    difficulty_criteria: dict[Difficulty, str] = Field(default_factory=dict)


class DimensionRubric(BaseModel):
    model_config = ConfigDict(frozen=True)

    dimension: DimensionName
    label: str
    composite: Composite
    description: str
    entries: tuple[RubricEntry, ...]


class EfficiencyThresholds(BaseModel):
    """Numeric efficiency bands for one difficulty tier.

    ``*_mild`` is the first value that costs one point, ``*_major`` the first
    that costs two. ``None`` means the signal is not judged at this tier.
    """

    model_config = ConfigDict(frozen=True)

    cau_count_mild: int | None = None
    cau_count_major: int | None = None
    # At or above this many CAUs, any repeated question costs a point.
    consolidation_cau_count: int | None = None
    redundant_questions_mild: int | None = None
    redundant_questions_major: int | None = None
    caus_before_order_mild: int | None = None
    caus_before_order_major: int | None = None
    question_streak_mild: int | None = None
    question_streak_major: int | None = None
    # Escalation bands apply only when the case presents instability.
    caus_before_escalation_mild: int | None = None
    caus_before_escalation_major: int | None = None


class LabsOrdersThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    high_quality_must_coverage: float = 0.9
    high_quality_should_coverage: float = 0.5
    high_quality_max_could_share: float = 0.25
    mixed_must_coverage: float = 0.5


class RubricRegistry(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: str
    dimensions: tuple[DimensionRubric, ...]
    efficiency: dict[Difficulty, EfficiencyThresholds]
    labs_orders: LabsOrdersThresholds = LabsOrdersThresholds()

    @model_validator(mode="after")
    def check_complete(self) -> RubricRegistry:
        seen = {d.dimension for d in self.dimensions}
        missing = set(DimensionName) - seen
        if missing:
            raise ValueError(f"missing dimensions: {sorted(m.value for m in missing)}")
        for rubric in self.dimensions:
            points = sorted(e.points for e in rubric.entries)
            if tuple(points) != POINT_RANGES[rubric.dimension]:
                raise ValueError(
                    f"{rubric.dimension.value} has points {points}, "
                    f"expected {list(POINT_RANGES[rubric.dimension])}"
                )
        missing_tiers = set(Difficulty) - set(self.efficiency)
        if missing_tiers:
            raise ValueError(
                f"missing efficiency thresholds for: {sorted(t.value for t in missing_tiers)}"
            )
        return self

    def rubric(self, dimension: DimensionName) -> DimensionRubric:
        for rubric in self.dimensions:
            if rubric.dimension == dimension:
                return rubric
        raise RubricConfigurationError("Unknown dimension", dimension=str(dimension))

    def all_entries(self, dimension: DimensionName) -> tuple[RubricEntry, ...]:
        """Entries for ``dimension`` ordered from highest to lowest points."""
        entries = self.rubric(dimension).entries
        return tuple(sorted(entries, key=lambda e: e.points, reverse=True))

    def lookup(self, dimension: DimensionName, points: int) -> RubricEntry:
        for entry in self.rubric(dimension).entries:
            if entry.points == points:
                return entry
        raise RubricConfigurationError(
            "No rubric entry for point value", dimension=dimension.value, points=points
        )

    def efficiency_thresholds(self, difficulty: Difficulty | str) -> EfficiencyThresholds:
        try:
            return self.efficiency[Difficulty(difficulty)]
        except (KeyError, ValueError):
            raise RubricConfigurationError(
                "Unrecognised case difficulty", difficulty=str(difficulty)
            ) from None

    def max_points(self, dimension: DimensionName) -> int:
        return self.all_entries(dimension)[0].points


# ── Authored rubric ──────────────────────────────────────────────────────────

INFORMATION_SHARING = DimensionRubric(
    dimension=DimensionName.INFORMATION_SHARING,
    label="Information Sharing",
    composite=Composite.COMMUNICATION,
    description=(
        "The student's question quality: are they asking the right questions to "
        "extract key data, efficiently?"
    ),
    entries=(
        RubricEntry(
            points=0,
            criteria="No meaningful questions",
            description=(
                'Replies like "OK," "Thanks," "Got it," "Will do," without requesting any '
                "clarifying information, or jumping straight to orders without confirming "
                "key missing context (vitals, symptom onset, meds given, exam findings)."
            ),
            feedback=(
                "You responded without asking for key clarifying information. Next time, "
                "ask 1–2 high-yield questions (vitals/trend, timing, meds given, bedside "
                "change) before moving to orders."
            ),
        ),
        RubricEntry(
            points=1,
            criteria="Questions asked, but poorly formed",
            description=(
                "Overly verbose, low-yield or unfocused, too complex for a nurse to answer "
                "quickly in real workflow, or redundant with information already provided."
            ),
            feedback=(
                "When trying to be efficient, recognize being simple but also direct with "
                "your questions is important. Try to make sure your questions are things "
                "that a nurse can answer quickly and are not too complex or repetitive."
            ),
        ),
        RubricEntry(
            points=2,
            criteria="Targeted, necessary, concise questions",
            description=(
                "Short, high-yield questions that close key information gaps and map to the "
                "likely differential and next steps, bundled into 1–2 short texts rather "
                "than many micro-texts."
            ),
            feedback=(
                "Excellent job asking targeted, high-yield questions that closed key "
                "information gaps quickly. Keep bundling essentials into 1–2 concise "
                "messages to support safe, efficient decision-making."
            ),
        ),
    ),
)

RESPONSIVE_COMMUNICATION = DimensionRubric(
    dimension=DimensionName.RESPONSIVE_COMMUNICATION,
    label="Responsive Communication",
    composite=Composite.COMMUNICATION,
    description=(
        "How well the student uses nurse messaging to drive the case toward goals "
        "with closed-loop communication."
    ),
    entries=(
        RubricEntry(
            points=0,
            criteria="Not goal-directed / no follow-through",
            description=(
                "Questions are asked but not acted on. Orders are not confirmed, "
                "instructions are vague or mismatched, nurse concerns are not prioritized."
            ),
            feedback=(
                "Your messages didn't move the case forward with clear next steps or "
                "follow-through. Aim to give specific actions and request a timed update "
                "(e.g., 'do X now, recheck Y in 15 min, message me results')."
            ),
        ),
        RubricEntry(
            points=1,
            criteria="Some progress, but weak execution",
            description=(
                "Key information is eventually gathered but follow-up is missed, "
                "instructions are unclear, or significant nurse prompting is required."
            ),
            feedback=(
                "You made some progress, but the plan required extra prompting or lacked "
                "clarity. Try using clearer instructions and a follow-up checkpoint so the "
                "nurse knows exactly what to do and what to report back."
            ),
        ),
        RubricEntry(
            points=2,
            criteria="Closed-loop communication, but limited explanation",
            description=(
                "Clear instructions with confirmation of completion, but no reasoning "
                "shared and the nurse is not aligned as part of the plan."
            ),
            feedback=(
                "Good closed-loop communication with clear tasks and confirmation of "
                "completion. Next time, add a brief 'why' when helpful so the nurse "
                "understands priorities and escalation triggers."
            ),
        ),
        RubricEntry(
            points=3,
            criteria="Team-based, closed-loop, and transparent reasoning",
            description=(
                "Clear, respectful, efficient closed loop plus brief rationale. Treats the "
                "nurse as a teammate and confirms understanding and escalation thresholds."
            ),
            feedback=(
                "Excellent teamwork and closed-loop communication with concise rationale "
                "and clear escalation thresholds. Keep acknowledging nurse input and using "
                "time-bound reassessments to drive the plan."
            ),
        ),
    ),
)

EFFICIENCY_DEDUCTION = DimensionRubric(
    dimension=DimensionName.EFFICIENCY_DEDUCTION,
    label="Efficiency Deduction",
    composite=Composite.COMMUNICATION,
    description=(
        "Whether the student moves the case forward efficiently, measured in clinical "
        "action units (outgoing messages carrying a clinical question, instruction or "
        "order/action)."
    ),
    entries=(
        RubricEntry(
            points=0,
            criteria="Efficient (no deduction)",
            description="Message economy appropriate to the case difficulty.",
            feedback=(
                "Great message economy, your communication stayed within a reasonable "
                "number of texts without sacrificing clarity. Keep bundling related "
                "questions/orders into fewer, higher-yield messages."
            ),
            difficulty_criteria={
                Difficulty.BEGINNER: (
                    "CAUs = 5–10 with mostly necessary questions, or 11–12 with no "
                    "repeated questions and no delay to the action plan."
                ),
                Difficulty.INTERMEDIATE: (
                    "First meaningful order within the first 1–3 CAUs, targeted questions, "
                    "no long question-only streaks."
                ),
                Difficulty.ADVANCED: (
                    "With red flags or instability, bedside evaluation or escalation within "
                    "1–2 CAUs and critical orders placed immediately."
                ),
            },
        ),
        RubricEntry(
            points=-1,
            criteria="Mild inefficiency",
            description="More messages or questioning than needed before acting.",
            feedback=(
                "You used more messages than needed, which can slow workflow and fragment "
                "the plan. Try combining questions and actions into one concise text and "
                "avoid multiple back-to-back micro-messages."
            ),
            difficulty_criteria={
                Difficulty.BEGINNER: (
                    "CAUs = 13–15, or 2 or more clearly unnecessary questions, or "
                    "confirming everything instead of acting."
                ),
                Difficulty.INTERMEDIATE: (
                    "First meaningful order after 4–5 CAUs, or 3 consecutive question-only "
                    "CAUs, or delayed basic labs/monitoring."
                ),
                Difficulty.ADVANCED: (
                    "Bedside evaluation or escalation after 3–4 CAUs, or several questions "
                    "before urgent orders."
                ),
            },
        ),
        RubricEntry(
            points=-2,
            criteria="Major inefficiency",
            description="Interviewing without moving to a plan.",
            feedback=(
                "Your message count was far above target and significantly reduced "
                "efficiency. Focus on bundling essentials, avoiding repeats, and using a "
                "structured pattern: ask → act → confirm → reassess."
            ),
            difficulty_criteria={
                Difficulty.BEGINNER: (
                    "CAUs of 16 or more, or repeated/looping questions that do not change "
                    "management."
                ),
                Difficulty.INTERMEDIATE: (
                    "6 or more CAUs before any meaningful order, or 4 or more consecutive "
                    "question-only CAUs."
                ),
                Difficulty.ADVANCED: (
                    "Interview mode despite instability: 5 or more CAUs without bedside "
                    "evaluation or escalation."
                ),
            },
        ),
    ),
)

LABS_ORDERS_QUALITY = DimensionRubric(
    dimension=DimensionName.LABS_ORDERS_QUALITY,
    label="Labs/Orders Quality",
    composite=Composite.MEDICAL_DECISION_MAKING,
    description=(
        "The overall ordering pattern against the Must / Should / Could / Shouldn't / "
        "Mustn't order types."
    ),
    entries=(
        RubricEntry(
            points=0,
            criteria="Inadequate ordering",
            description=(
                "Fails to order clearly Must do / Should do items, or orders are largely "
                "irrelevant."
            ),
            feedback=(
                "The orders did not address the key priorities needed to diagnose/stabilize "
                "the patient. Next time, anchor to Must-do items first, then add Should-do "
                "only if they change management."
            ),
        ),
        RubricEntry(
            points=1,
            criteria="Partial: some correct orders, but insufficient priorities",
            description=(
                "A few helpful Must/Should items, but multiple Must do items missed or "
                "essentials crowded out by Could do extras."
            ),
            feedback=(
                "You placed some helpful orders, but key priorities were missing or "
                "delayed. Use the Must/Should/Could framework to ensure essentials come "
                "first and avoid 'shotgun' extras."
            ),
        ),
        RubricEntry(
            points=2,
            criteria="Mixed: good core but notable gaps or inappropriate extras",
            description=(
                "Most Must do items, but some Should do missed, or Must do placed after "
                "Should do."
            ),
            feedback=(
                "Your core direction was reasonable, but there were notable gaps or "
                "inappropriate add-ons that slowed care. Tighten prioritization: Must-do "
                "early, then selective Should-do, and limit Could-do to situations where "
                "it truly adds value."
            ),
        ),
        RubricEntry(
            points=3,
            criteria="High-quality, appropriate ordering",
            description=(
                "All or nearly all Must do items, most relevant Should do items, Could do "
                "used sparingly."
            ),
            feedback=(
                "Excellent ordering pattern, prioritized essentials and avoided low-yield "
                "testing. Keep using the Must/Should/Could structure to stay focused and "
                "clinically efficient."
            ),
        ),
    ),
)

NOTE_THOUGHT_PROCESS = DimensionRubric(
    dimension=DimensionName.NOTE_THOUGHT_PROCESS,
    label="Progress Note Thought Process",
    composite=Composite.MEDICAL_DECISION_MAKING,
    description="The student's progress note compared with the case's reference note.",
    entries=(
        RubricEntry(
            points=0,
            criteria="No coherent understanding",
            description=(
                "The note does not reflect an accurate understanding of the clinical "
                "problem, or the assessment/plan is unrelated to the case."
            ),
            feedback=(
                "Your note did not reflect a clear or accurate understanding of the main "
                "clinical problem. Next time, start with a one-sentence problem "
                "representation, then list top priorities and a coherent plan tied to "
                "that frame."
            ),
        ),
        RubricEntry(
            points=1,
            criteria="Some reasoning, but case grasp is incomplete",
            description=(
                "Visible rationale that misses the key diagnosis or priority, or is aimed "
                "at the wrong target."
            ),
            feedback=(
                "You showed some reasoning, but the core problem framing or priorities "
                "were incomplete. Strengthen your assessment by explicitly naming the "
                "leading diagnosis/concern, key supporting data, and the next best steps."
            ),
        ),
        RubricEntry(
            points=2,
            criteria="Correct framing and reasoning",
            description=(
                "Identifies the main clinical problem and priorities in line with the "
                "reference note's intent."
            ),
            feedback=(
                "Strong clinical framing, your assessment and plan align with the key "
                "priorities and show clear reasoning. Keep linking your differential and "
                "next steps to the highest-risk problems first."
            ),
        ),
    ),
)

SAFETY_DEDUCTION = DimensionRubric(
    dimension=DimensionName.SAFETY_DEDUCTION,
    label="Safety Deduction",
    composite=Composite.MEDICAL_DECISION_MAKING,
    description="At most one safety deduction per case, the most severe that applies.",
    entries=(
        RubricEntry(
            points=0,
            criteria="No unsafe actions",
            description="No Shouldn't/Mustn't behaviors with meaningful patient risk.",
            feedback=(
                "No unsafe actions identified, your plan stayed within safe clinical "
                "boundaries. Keep doing quick safety checks (allergies, contraindications, "
                "renal/hepatic dosing, interactions) before finalizing orders."
            ),
        ),
        RubricEntry(
            points=-1,
            criteria="Shouldn't occur (low/moderate risk or inefficiency)",
            description=(
                "Unnecessary repeat labs, low-yield imaging, mild contraindication without "
                "clear harm, redundant meds already ordered."
            ),
            feedback=(
                "Some orders were low-yield or mildly risky/redundant and added "
                "inefficiency or avoidable risk. Next time, pause to confirm necessity and "
                "avoid repeating or duplicating meds/labs already in motion."
            ),
        ),
        RubricEntry(
            points=-2,
            criteria="Mustn't occur (unsafe/harmful)",
            description=(
                "Contraindicated medication or dose with clear harm potential, or orders "
                "that significantly worsen the patient's condition."
            ),
            feedback=(
                "An unsafe order or action created a meaningful risk of patient harm. Next "
                "time, explicitly verify contraindications, dose limits, and high-risk "
                "interactions, and when uncertain, choose the safer alternative while "
                "escalating early."
            ),
        ),
    ),
)

EFFICIENCY_THRESHOLDS: dict[Difficulty, EfficiencyThresholds] = {
    Difficulty.BEGINNER: EfficiencyThresholds(
        cau_count_mild=13,
        cau_count_major=16,
        consolidation_cau_count=11,
        redundant_questions_mild=2,
        redundant_questions_major=4,
    ),
    Difficulty.INTERMEDIATE: EfficiencyThresholds(
        caus_before_order_mild=4,
        caus_before_order_major=6,
        question_streak_mild=3,
        question_streak_major=4,
    ),
    Difficulty.ADVANCED: EfficiencyThresholds(
        caus_before_order_mild=4,
        caus_before_order_major=6,
        question_streak_mild=3,
        caus_before_escalation_mild=3,
        caus_before_escalation_major=5,
    ),
}


def build_default_registry() -> RubricRegistry:
    try:
        return RubricRegistry(
            version=RUBRIC_VERSION,
            dimensions=(
                INFORMATION_SHARING,
                RESPONSIVE_COMMUNICATION,
                EFFICIENCY_DEDUCTION,
                LABS_ORDERS_QUALITY,
                NOTE_THOUGHT_PROCESS,
                SAFETY_DEDUCTION,
            ),
            efficiency=EFFICIENCY_THRESHOLDS,
        )
    except ValidationError as exc:
        raise RubricConfigurationError("Invalid rubric registry", errors=str(exc)) from exc


DEFAULT_REGISTRY = build_default_registry()


def get_rubric(dimension: DimensionName | str) -> DimensionRubric:
    """Return the default rubric for one dimension."""
    try:
        return DEFAULT_REGISTRY.rubric(DimensionName(dimension))
    except ValueError:
        raise RubricConfigurationError("Unknown dimension", dimension=str(dimension)) from None
