import pytest

from app.interview.evaluator import HeuristicAnswerEvaluator, OpenAIAnswerEvaluator, _extract_json_dict
from app.interview.models import Question


QUESTION = Question(
    question_id="q1",
    prompt="Design a rate limiter",
    category="system-design",
    expected_keywords=("token", "bucket", "window"),
)


class _Responses:
    def __init__(self, output_text: str = "", error: Exception | None = None):
        self.output_text = output_text
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return type("Response", (), {"output_text": self.output_text})()


class _Client:
    def __init__(self, responses: _Responses):
        self.responses = responses


def test_extract_json_dict_handles_fenced_and_embedded_json():
    assert _extract_json_dict('```json\n{"technical": 70}\n```') == {"technical": 70}
    assert _extract_json_dict('Sure! {"clarity": 60} hope that helps') == {"clarity": 60}
    assert _extract_json_dict("no json here") is None


@pytest.mark.asyncio
async def test_openai_evaluator_scores_mean_of_dimensions():
    responses = _Responses('{"technical": 80, "communication": 70, "confidence": 60, "clarity": 90, "feedback": "Solid", "strengths": ["structure"], "suggestions": "mention sliding windows"}')
    evaluator = OpenAIAnswerEvaluator(client=_Client(responses), model="test-model")

    evaluation = await evaluator.evaluate(QUESTION, "Use a token bucket per client.")

    assert evaluation.score == 75
    assert evaluation.feedback["summary"] == "Solid"
    assert evaluation.feedback["strengths"] == ["structure"]
    assert evaluation.feedback["suggestions"] == ["mention sliding windows"]
    assert responses.calls[0]["model"] == "test-model"
    assert "Use a token bucket per client." in responses.calls[0]["input"]


@pytest.mark.asyncio
async def test_openai_evaluator_falls_back_on_unparseable_output():
    evaluator = OpenAIAnswerEvaluator(client=_Client(_Responses("I cannot grade this.")))

    evaluation = await evaluator.evaluate(QUESTION, "anything")

    assert evaluation.score == 50
    assert "fallback" in evaluation.feedback["summary"]


@pytest.mark.asyncio
async def test_openai_evaluator_propagates_transport_errors():
    evaluator = OpenAIAnswerEvaluator(client=_Client(_Responses(error=RuntimeError("rate limited"))))

    with pytest.raises(RuntimeError):
        await evaluator.evaluate(QUESTION, "anything")


@pytest.mark.asyncio
async def test_heuristic_evaluator_rewards_keyword_coverage():
    evaluator = HeuristicAnswerEvaluator()

    thorough = await evaluator.evaluate(QUESTION, "A token bucket refills per window; each request takes one token.")
    thin = await evaluator.evaluate(QUESTION, "I would add a limit.")

    assert thorough.score > thin.score
    assert thin.feedback["weaknesses"] == [
        "Did not mention token",
        "Did not mention bucket",
        "Did not mention window",
    ]
