from app.interview.models import Answer, Evaluation, Question
from app.interview.scorer import build_performance_summary


def _answer(question_id: str, score: int, seconds: float = 60.0, **feedback) -> Answer:
    return Answer(
        question_id=question_id,
        text="answer",
        evaluation=Evaluation(score=score, feedback=feedback),
        time_spent_sec=seconds,
    )


QUESTIONS = [
    Question(question_id="q1", prompt="a", category="technical"),
    Question(question_id="q2", prompt="b", category="System Design"),
    Question(question_id="q3", prompt="c", category="technical"),
]


def test_summary_averages_scored_answers_by_category():
    summary = build_performance_summary(
        QUESTIONS,
        [_answer("q1", 80, 30), _answer("q2", 60, 90), _answer("q3", 70, 60)],
    )

    assert summary.overall_score == 70
    assert summary.category_scores == {"technical": 75, "system_design": 60}
    assert summary.answered_questions == 3
    assert summary.total_questions == 3
    assert summary.total_time == 180
    assert summary.average_time_per_question == 60


def test_zero_scores_are_excluded_from_averages():
    summary = build_performance_summary(QUESTIONS, [_answer("q1", 0), _answer("q2", 90)])

    assert summary.overall_score == 90
    assert "technical" not in summary.category_scores


def test_feedback_points_are_unique_and_capped():
    answers = [
        _answer("q1", 70, strengths=["clear", "clear"], weaknesses=["vague"], suggestions=[f"tip {i}" for i in range(8)]),
        _answer("q2", 70, strengths=["clear", "structured"], suggestions=[f"tip {i}" for i in range(4, 12)]),
    ]

    summary = build_performance_summary(QUESTIONS, answers)

    assert summary.strengths == ["clear", "structured"]
    assert summary.weaknesses == ["vague"]
    assert len(summary.recommendations) == 10


def test_empty_answers_give_empty_summary():
    summary = build_performance_summary(QUESTIONS, [])

    assert summary.overall_score == 0
    assert summary.answered_questions == 0
    assert summary.total_questions == 3
