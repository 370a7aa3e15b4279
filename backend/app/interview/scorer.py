import logging
from typing import Iterable, List

from app.interview.models import Answer, PerformanceSummary, Question

logger = logging.getLogger("interview_scorer")

MAX_FEEDBACK_POINTS = 10


def _safe_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except Exception:
        return default


def _category_key(category: str) -> str:
    return str(category or "general").strip().lower().replace("-", "_").replace(" ", "_")


def _collect_unique(target: List[str], values: Iterable) -> None:
    for value in list(values or []):
        text = str(value or "").strip()
        if text and text not in target:
            target.append(text)


def build_performance_summary(
    questions: List[Question],
    answers: List[Answer],
) -> PerformanceSummary:
    """
    Aggregate evaluated answers into a session summary.
    Unanswered questions count toward `total_questions` only.
    """
    summary = PerformanceSummary(
        answered_questions=len(answers),
        total_questions=len(questions),
    )
    if not answers:
        return summary

    by_id = {q.question_id: q for q in questions}
    total_score = 0.0
    scored = 0
    category_totals: dict[str, float] = {}
    category_counts: dict[str, int] = {}
    strengths: List[str] = []
    weaknesses: List[str] = []
    recommendations: List[str] = []

    for answer in answers:
        question = by_id.get(answer.question_id)
        if question is None:
            logger.warning("Answer for unknown question skipped: %s", answer.question_id)
            continue

        score = max(0.0, min(100.0, _safe_float(answer.evaluation.score)))
        if score <= 0:
            continue

        scored += 1
        total_score += score
        key = _category_key(question.category)
        category_totals[key] = category_totals.get(key, 0.0) + score
        category_counts[key] = category_counts.get(key, 0) + 1

        feedback = answer.evaluation.feedback or {}
        _collect_unique(strengths, feedback.get("strengths"))
        _collect_unique(weaknesses, feedback.get("weaknesses"))
        _collect_unique(recommendations, feedback.get("suggestions"))

    summary.overall_score = int(round(total_score / scored)) if scored else 0
    summary.category_scores = {
        key: int(round(category_totals[key] / category_counts[key]))
        for key in category_totals
    }

    total_time = sum(max(0.0, answer.time_spent_sec) for answer in answers)
    summary.total_time = int(round(total_time))
    summary.average_time_per_question = int(round(total_time / len(answers)))

    summary.strengths = strengths[:MAX_FEEDBACK_POINTS]
    summary.weaknesses = weaknesses[:MAX_FEEDBACK_POINTS]
    summary.recommendations = recommendations[:MAX_FEEDBACK_POINTS]
    return summary
