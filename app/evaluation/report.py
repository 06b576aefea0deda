"""Report assembler — maps selected points to rubric feedback and formats the report."""

from __future__ import annotations

from app.evaluation.rubrics import DEFAULT_REGISTRY, RubricRegistry
from app.evaluation.schemas import (
    CaseContext,
    DimensionName,
    DimensionResult,
    DimensionScore,
    ScoreReport,
)
from app.evaluation.scorer import COMMUNICATION_DIMENSIONS, MDM_DIMENSIONS, CompositeScores


def _learning_objective(context: CaseContext) -> str:
    if context.case_goals:
        return context.case_goals.strip()
    if context.expected_diagnosis:
        return f"Recognize and manage {context.expected_diagnosis.strip()}."
    return "Gather key information, act promptly, and communicate a safe plan."


def _shortfall(registry: RubricRegistry, score: DimensionScore) -> int:
    return registry.max_points(score.dimension) - score.points


def build_summary(
    scores: dict[DimensionName, DimensionScore],
    composites: CompositeScores,
    context: CaseContext,
    registry: RubricRegistry,
) -> str:
    objective = _learning_objective(context)
    if composites.zero_override:
        return (
            f"{objective} No meaningful clinical questions, instructions or orders were "
            "recorded, so both scores are 0."
        )

    ranked = sorted(
        DimensionName, key=lambda d: (_shortfall(registry, scores[d]), list(DimensionName).index(d))
    )
    strongest = registry.rubric(ranked[0])
    weakest_name = max(
        DimensionName,
        key=lambda d: (_shortfall(registry, scores[d]), -list(DimensionName).index(d)),
    )
    parts = [objective, f"Strongest area: {strongest.label} ({scores[ranked[0]].criteria})."]
    if _shortfall(registry, scores[weakest_name]) > 0:
        weakest = registry.rubric(weakest_name)
        parts.append(f"Main gap: {weakest.label} ({scores[weakest_name].criteria}).")
    return " ".join(parts)


def build_recommendations(
    scores: dict[DimensionName, DimensionScore], registry: RubricRegistry
) -> list[str]:
    """Feedback for every dimension below its maximum, largest shortfall first."""
    order = list(DimensionName)
    lacking = [d for d in order if _shortfall(registry, scores[d]) > 0]
    lacking.sort(key=lambda d: (-_shortfall(registry, scores[d]), order.index(d)))
    return [scores[d].feedback for d in lacking]


def assemble_report(
    scores: dict[DimensionName, DimensionScore],
    composites: CompositeScores,
    context: CaseContext,
    registry: RubricRegistry = DEFAULT_REGISTRY,
) -> ScoreReport:
    # Re-resolve against the registry so a stale or foreign score cannot leak through.
    dimensions: dict[DimensionName, DimensionResult] = {}
    for dimension in DimensionName:
        entry = registry.lookup(dimension, scores[dimension].points)
        dimensions[dimension] = DimensionResult(
            points=entry.points, criteria=entry.criteria, feedback=entry.feedback
        )

    return ScoreReport(
        communication_score=composites.communication_score,
        mdm_score=composites.mdm_score,
        communication_raw=composites.communication_raw,
        mdm_raw=composites.mdm_raw,
        zero_override=composites.zero_override,
        dimensions=dimensions,
        summary=build_summary(scores, composites, context, registry),
        recommendations=build_recommendations(scores, registry),
    )


def render_feedback_text(report: ScoreReport, registry: RubricRegistry = DEFAULT_REGISTRY) -> str:
    """Plain-text feedback in the fixed student-facing template."""

    def block(title: str, score: int, dims: tuple[DimensionName, ...]) -> list[str]:
        lines = [f"{title} {score}"]
        for d in dims:
            result = report.dimensions[d]
            lines.append(f"{registry.rubric(d).label}: {result.points} {result.feedback}")
        return lines

    lines = ["Learning objectives:", report.summary, ""]
    lines += block("Communication Score", report.communication_score, COMMUNICATION_DIMENSIONS)
    lines.append("")
    lines += block("Medical Decision Making Score", report.mdm_score, MDM_DIMENSIONS)
    return "\n".join(lines)
