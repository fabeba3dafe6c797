"""
LLM-backed review provider: writes review questions for a source text and
grades free-text answers.

Model replies are parsed in two stages. The strict stage decodes the whole
reply as JSON and validates it; if that fails, the fallback stage pulls the
outermost JSON object/array out of surrounding prose and validates that.
Generation raises GenerationError when both stages fail; evaluation returns
a neutral "unable to evaluate" result instead.
"""
from __future__ import annotations

import json
import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from recall.models.ai_review import (
    AiReviewEvaluation,
    AiReviewMode,
    AiReviewQuestionType,
    AnswerEvaluation,
    EvaluationRequest,
    GenerationRequest,
    QuestionDraft,
)
from recall.services import llm_service
from recall.services.question_types import (
    DIFFICULTY_DESCRIPTIONS,
    QUESTION_TYPE_CONFIGS,
    QuestionTypeConfig,
    select_question_types,
)

logger = logging.getLogger(__name__)

ChatFn = Callable[..., Awaitable[str]]

MAX_CONTENT_CHARS = 12000

_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_TYPE_VALUES = {t.value for t in AiReviewQuestionType}

_GRADED = {AiReviewEvaluation.CORRECT, AiReviewEvaluation.PARTIAL, AiReviewEvaluation.INCORRECT}
_DEFAULT_SCORES = {
    AiReviewEvaluation.CORRECT: 100,
    AiReviewEvaluation.PARTIAL: 50,
    AiReviewEvaluation.INCORRECT: 0,
}

GENERATION_PROMPT = (
    "You are an educational assessment expert. Create {count} high-quality review "
    "questions based on the provided content.\n\n"
    "Difficulty level: {difficulty}\n\n"
    "Question types to use, one per question, in this order:\n{types}\n\n"
    "Mode: {mode}\n\n"
    "Rules:\n"
    "- Create exactly {count} questions.\n"
    "- Each question should test a different aspect of the content.\n"
    "- Questions must be clear, specific and answerable from the content.\n"
    "- Include an options array only for multiple choice and matching types.\n"
    "Respond ONLY with valid JSON in exactly this structure:\n"
    '{{"questions": [{{"question_type": "type_from_list", "question": "string", '
    '"options": ["a", "b", "c", "d"], "correct_answer": "string"}}]}}'
)

EVALUATION_PROMPT = (
    "You are an educational assessment expert evaluating a student's answer.\n\n"
    "Question type: {type_name} ({type_value}): {type_description}\n\n"
    "Grade on accuracy, completeness, understanding and clarity:\n"
    '- "correct": accurate, complete and shows understanding\n'
    '- "partial": some correct elements but incomplete or with minor errors\n'
    '- "incorrect": largely wrong or missing the key points\n'
    "Be encouraging and constructive. When the answer is partial or incorrect, "
    "explain what the correct answer should include.\n"
    "Respond ONLY with valid JSON in exactly this structure:\n"
    '{{"evaluation": "correct", "score": 0, "message": "string", '
    '"suggestions": ["string"], "correctAnswer": "string"}}\n\n'
    "Source content:\n{content}"
)

SUMMARY_PROMPT = (
    "You are an expert at creating concise, comprehensive summaries of educational "
    "content. Create a clear, well-structured summary of the main points and key "
    "concepts in 150-300 words. Respond with plain text only."
)

TAKEAWAYS_PROMPT = (
    "Extract 3-7 key takeaways from the provided content. Each takeaway is one or "
    "two sentences. Respond ONLY with valid JSON in exactly this structure:\n"
    '{"takeaways": ["string"]}'
)

NEUTRAL_EVALUATION = AnswerEvaluation(
    evaluation=AiReviewEvaluation.INCORRECT,
    score=0,
    message="Unable to evaluate answer automatically. Please review your response.",
    suggestions=["Please review the question and try again"],
)


class GenerationError(Exception):
    """The provider could not produce the requested questions."""


def _loads_with_fallback(raw: str, pattern: re.Pattern[str], what: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        match = pattern.search(raw)
        if match is None:
            raise
        logger.warning("Strict JSON parse of %s failed, using extracted block", what)
        return json.loads(match.group(0))


def _drafts_from(data: Any, expected_types: list[AiReviewQuestionType]) -> list[QuestionDraft]:
    if isinstance(data, dict):
        data = data.get("questions")
    if not isinstance(data, list):
        raise GenerationError("Model reply does not contain a question list")

    drafts: list[QuestionDraft] = []
    for index, entry in enumerate(data):
        if not isinstance(entry, dict):
            continue
        if entry.get("question_type") not in _TYPE_VALUES:
            entry = {**entry, "question_type": None}
        try:
            draft = QuestionDraft.model_validate(entry)
        except ValidationError as e:
            logger.warning("Dropping malformed question draft %d: %s", index, e)
            continue
        if not draft.question.strip():
            continue
        if draft.question_type is None:
            fallback = expected_types[index] if index < len(expected_types) else None
            draft.question_type = fallback or AiReviewQuestionType.FACT_BASED
        drafts.append(draft)
    return drafts


def parse_question_drafts(
    raw: str, expected_types: list[AiReviewQuestionType]
) -> list[QuestionDraft]:
    try:
        data = _loads_with_fallback(raw, _ARRAY_RE, "question list")
    except json.JSONDecodeError as e:
        # An array nested in a wrapper object is matched by the object pattern
        match = _OBJECT_RE.search(raw)
        if match is None:
            raise GenerationError("Failed to parse AI response as valid JSON") from e
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            raise GenerationError("Failed to parse AI response as valid JSON") from e
        logger.warning("Strict JSON parse of question list failed, using extracted object")
    return _drafts_from(data, expected_types)


def normalize_evaluation(data: Any) -> AnswerEvaluation:
    if not isinstance(data, dict) or not data.get("evaluation") or not data.get("message"):
        raise ValueError("Invalid evaluation format")

    try:
        evaluation = AiReviewEvaluation(str(data["evaluation"]).lower())
    except ValueError:
        evaluation = AiReviewEvaluation.INCORRECT
    if evaluation not in _GRADED:
        evaluation = AiReviewEvaluation.INCORRECT

    score = data.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not 0 <= score <= 100:
        score = _DEFAULT_SCORES[evaluation]

    suggestions = data.get("suggestions") or []
    if not isinstance(suggestions, list):
        suggestions = [str(suggestions)]

    correct_answer = data.get("correctAnswer", data.get("correct_answer"))
    return AnswerEvaluation(
        evaluation=evaluation,
        score=int(round(score)),
        message=str(data["message"]),
        suggestions=[str(s) for s in suggestions],
        correct_answer=str(correct_answer) if correct_answer else None,
    )


def parse_evaluation(raw: str) -> AnswerEvaluation:
    """Parse a grading reply; never raises."""
    try:
        return normalize_evaluation(json.loads(raw))
    except (json.JSONDecodeError, ValueError) as strict_error:
        match = _OBJECT_RE.search(raw)
        if match is not None:
            try:
                result = normalize_evaluation(json.loads(match.group(0)))
                logger.warning("Strict JSON parse of evaluation failed, using extracted block")
                return result
            except (json.JSONDecodeError, ValueError):
                pass
        logger.error("Failed to parse evaluation response: %s", strict_error)
        return NEUTRAL_EVALUATION.model_copy(
            update={"message": "Unable to parse evaluation result automatically."}
        )


def _type_line(config: QuestionTypeConfig) -> str:
    instruction = config.prompt_template.format(topic="the provided content")
    return f"- {config.name} ({config.type.value}): {config.description}. {instruction}"


class LLMReviewProvider:
    name = "llm"

    def __init__(self, chat: ChatFn | None = None) -> None:
        self._chat = chat or llm_service.chat

    async def generate_questions(self, request: GenerationRequest) -> list[QuestionDraft]:
        types = request.types or select_question_types(request.difficulty, request.count)
        type_lines = "\n".join(_type_line(QUESTION_TYPE_CONFIGS[t]) for t in types)
        system_prompt = GENERATION_PROMPT.format(
            count=request.count,
            difficulty=DIFFICULTY_DESCRIPTIONS[request.difficulty],
            types=type_lines,
            mode=(
                "Single comprehensive test"
                if request.mode == AiReviewMode.MONO_TEST
                else "Separate individual questions"
            ),
        )
        raw = await self._chat(system_prompt, request.content[:MAX_CONTENT_CHARS])
        drafts = parse_question_drafts(raw, types)
        if len(drafts) < request.count:
            raise GenerationError(
                f"Expected {request.count} questions, model returned {len(drafts)}"
            )
        return drafts[: request.count]

    async def evaluate_answer(self, request: EvaluationRequest) -> AnswerEvaluation:
        config = QUESTION_TYPE_CONFIGS[request.question_type]
        system_prompt = EVALUATION_PROMPT.format(
            type_name=config.name,
            type_value=config.type.value,
            type_description=config.description,
            content=(request.content or "")[:MAX_CONTENT_CHARS],
        )
        user_prompt = f"Question: {request.question}\nStudent's Answer: {request.answer}"
        raw = await self._chat(system_prompt, user_prompt, max_tokens=800)
        return parse_evaluation(raw)

    async def summarize_content(self, content: str) -> str:
        raw = await self._chat(
            SUMMARY_PROMPT, content[:MAX_CONTENT_CHARS],
            max_tokens=500, temperature=0.3, json_mode=False,
        )
        return raw.strip()

    async def extract_key_takeaways(self, content: str) -> list[str]:
        raw = await self._chat(
            TAKEAWAYS_PROMPT, content[:MAX_CONTENT_CHARS], max_tokens=800, temperature=0.3
        )
        try:
            data = _loads_with_fallback(raw, _OBJECT_RE, "takeaways")
        except json.JSONDecodeError:
            logger.warning("Key takeaways reply was not JSON, returning none")
            return []
        if isinstance(data, dict):
            data = data.get("takeaways") or []
        return [str(t).strip() for t in data if str(t).strip()] if isinstance(data, list) else []
