"""Question generation from study text via Google Gemini."""
import json
import logging
from enum import Enum
from typing import Protocol

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from quiz_master.config import DEFAULT_MODELS, MIN_TEXT_LENGTH
from quiz_master.errors import GenerationError, QuizMasterError, ValidationError
from quiz_master.models import Question

logger = logging.getLogger(__name__)


class Language(str, Enum):
    PRIMARY = "en"
    SECONDARY = "zh"


PROMPTS = {
    Language.PRIMARY: """
Based on the following text, create a series of multiple-choice quiz questions.
Identify if a question has single or multiple correct answers based on the source text (e.g., "Answer: ABDE" implies multiple answers).
For each question, provide a list of options, the correct answer(s), and a brief explanation.
Respond with a JSON object of the form
{{"questions": [{{"question": str, "options": [str], "answer": [str], "explanation": str}}]}}.
The 'answer' field MUST ALWAYS be an array of strings copied exactly from 'options', even for single-answer questions.

Text:
---
{text}
---
""",
    Language.SECONDARY: """
请根据以下文本，创建一系列多项选择题。
根据源文本判断问题是单选还是多选（例如，“答案：ABDE”意味着多选）。
对于每个问题，提供一个选项列表、正确答案和简要解释。
以 JSON 对象回复，格式为
{{"questions": [{{"question": str, "options": [str], "answer": [str], "explanation": str}}]}}。
'answer' 字段必须始终是一个字符串数组，且与 'options' 中的文本完全一致，即使对于单选题也是如此。
所有的问题、选项和解释都必须是中文。

文本：
---
{text}
---
""",
}

GENERATION_CONFIG = {
    "temperature": 0.3,
    "top_p": 0.95,
    "top_k": 64,
    "response_mime_type": "application/json",
}


class QuestionGenerator(Protocol):
    def generate(self, text: str, language: Language) -> list[Question]:
        ...


def validate_source_text(text: str, min_length: int = MIN_TEXT_LENGTH) -> str:
    """Return the stripped text, or raise ValidationError if it is too short."""
    stripped = (text or "").strip()
    if len(stripped) < min_length:
        raise ValidationError(
            f"Please provide at least {min_length} characters to generate a quiz."
        )
    return stripped


def build_prompt(text: str, language: Language) -> str:
    return PROMPTS[Language(language)].format(text=text)


def parse_questions(payload: str) -> list[Question]:
    """Parse a model response into Questions.

    Accepts ``{"questions": [...]}`` or a bare list. A scalar ``answer`` is
    normalized to a one-element set. Any malformed question fails the whole
    payload.
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise GenerationError(f"Could not parse quiz questions from the response: {e}") from e
    items = data.get("questions") if isinstance(data, dict) else data
    if not isinstance(items, list):
        raise GenerationError("Could not parse quiz questions from the response.")
    questions = []
    for i, item in enumerate(items, 1):
        if not isinstance(item, dict):
            raise GenerationError(f"Question {i} is not an object.")
        try:
            questions.append(Question.from_dict(item))
        except (KeyError, TypeError, QuizMasterError) as e:
            raise GenerationError(f"Question {i} is malformed: {e}") from e
    return questions


class GeminiQuestionGenerator:
    """Calls the configured Gemini models in order until one answers."""

    def __init__(self, api_key: str, models: list | None = None,
                 min_text_length: int = MIN_TEXT_LENGTH):
        if not api_key:
            raise GenerationError("GEMINI_API_KEY is not set.")
        self.api_key = api_key
        self.models = list(models or DEFAULT_MODELS)
        self.min_text_length = min_text_length
        genai.configure(api_key=api_key)

    def _call(self, model_name: str, prompt: str) -> str:
        model = genai.GenerativeModel(model_name, generation_config=GENERATION_CONFIG)
        response = model.generate_content(prompt)
        if not response.parts:
            return ""
        return response.text.strip()

    def generate(self, text: str, language: Language = Language.PRIMARY) -> list[Question]:
        try:
            text = validate_source_text(text, self.min_text_length)
        except ValidationError as e:
            raise GenerationError(str(e)) from e
        prompt = build_prompt(text, language)
        last_error = "No models configured"
        for model_name in self.models:
            try:
                payload = self._call(model_name, prompt)
            except google_exceptions.GoogleAPIError as e:
                logger.warning("Gemini model %s failed: %s", model_name, e)
                last_error = str(e)
                continue
            except Exception as e:
                # e.g. blocked prompts or an unreadable response.text
                logger.error("Gemini model %s raised %s: %s", model_name, type(e).__name__, e,
                             exc_info=True)
                last_error = str(e)
                continue
            if not payload:
                logger.warning("Gemini model %s returned an empty response", model_name)
                last_error = "Empty response"
                continue
            questions = parse_questions(payload)
            if not questions:
                raise GenerationError(
                    "Could not generate a quiz from the provided text. "
                    "The content might not be suitable."
                )
            logger.info("Generated %d questions with %s", len(questions), model_name)
            return questions
        raise GenerationError(f"AI model failed to generate quiz: {last_error}")
