import json
import logging
import re
from typing import Protocol

from openai import AsyncOpenAI

from core.config import MODEL_NAME, OPENAI_API_KEY
from app.interview.models import Evaluation, Question

logger = logging.getLogger("interview_evaluator")

_DIMENSIONS = ("technical", "communication", "confidence", "clarity")


class AnswerEvaluator(Protocol):
    async def evaluate(self, question: Question, answer_text: str) -> Evaluation:
        ...


def _clamp_score(value, default=50):
    try:
        return max(0, min(100, int(value)))
    except Exception:
        return default


def _string_list(value) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item).strip() for item in value if str(item or "").strip()]


def _normalize_eval(data: dict, fallback_feedback: str = "") -> Evaluation:
    scores = {name: _clamp_score(data.get(name), 50) for name in _DIMENSIONS}
    overall = int(round(sum(scores.values()) / len(scores)))
    feedback = {
        **scores,
        "summary": str(data.get("feedback") or fallback_feedback or "Evaluation generated."),
        "strengths": _string_list(data.get("strengths")),
        "weaknesses": _string_list(data.get("weaknesses")),
        "suggestions": _string_list(data.get("suggestions")),
    }
    return Evaluation(score=overall, feedback=feedback)


def _extract_json_dict(text: str) -> dict | None:
    text = (text or "").strip()
    if not text:
        return None

    try:
        parsed = json.loads(text)
        return parsed if isinstance(parsed, dict) else None
    except Exception:
        pass

    fenced = re.search(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```", text, re.IGNORECASE)
    if fenced:
        try:
            parsed = json.loads(fenced.group(1))
            return parsed if isinstance(parsed, dict) else None
        except Exception:
            pass

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        try:
            parsed = json.loads(text[start:end + 1])
            return parsed if isinstance(parsed, dict) else None
        except Exception:
            return None

    return None


class OpenAIAnswerEvaluator:
    """
    Scores one answer with the Responses API. Transport errors propagate.
    """

    def __init__(self, client: AsyncOpenAI | None = None, model: str = MODEL_NAME):
        self.client = client or AsyncOpenAI(api_key=OPENAI_API_KEY)
        self.model = model

    async def evaluate(self, question: Question, answer_text: str) -> Evaluation:
        prompt = f"""
You are a senior interviewer.

Question ({question.category}, {question.difficulty}):
{question.prompt}

Candidate Answer:
{answer_text}

Give evaluation strictly in JSON:
{{
  "technical": 0-100,
  "communication": 0-100,
  "confidence": 0-100,
  "clarity": 0-100,
  "feedback": "short feedback",
  "strengths": ["..."],
  "weaknesses": ["..."],
  "suggestions": ["..."]
}}
"""

        res = await self.client.responses.create(
            model=self.model,
            input=prompt,
        )

        parsed = _extract_json_dict(getattr(res, "output_text", ""))
        if isinstance(parsed, dict):
            return _normalize_eval(parsed)

        logger.warning("Unparseable evaluation output for question %s", question.question_id)
        return _normalize_eval(
            {},
            "Could not parse structured model output, so a neutral fallback evaluation was used.",
        )


class HeuristicAnswerEvaluator:
    """
    Deterministic offline scoring for QA mode: length and expected-keyword coverage.
    """

    async def evaluate(self, question: Question, answer_text: str) -> Evaluation:
        text = str(answer_text or "").lower()
        words = text.split()
        expected = [k.lower() for k in question.expected_keywords]
        found = [k for k in expected if k in text]
        missing = [k for k in expected if k not in text]

        coverage = (len(found) / len(expected)) if expected else 1.0
        length_score = min(len(words), 60) / 60.0
        technical = int(round(40 + 60 * coverage))
        communication = int(round(40 + 60 * length_score))

        data = {
            "technical": technical,
            "communication": communication,
            "confidence": communication,
            "clarity": communication,
            "feedback": "Offline heuristic evaluation.",
            "strengths": [f"Mentioned {k}" for k in found],
            "weaknesses": [f"Did not mention {k}" for k in missing],
            "suggestions": ["Structure the answer as situation, approach, result."] if length_score < 0.5 else [],
        }
        return _normalize_eval(data)
