"""
AI content service.

Financial advice, lessons with quizzes, and news come from a pluggable
provider. Provider failures degrade to fixed placeholder content.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from engine.models import Transaction
from services.errors import ProviderUnavailableError

logger = logging.getLogger(__name__)

QUIZ_LENGTH = 3
QUIZ_OPTIONS = 4
ADVICE_HISTORY_LIMIT = 20

FALLBACK_ADVICE = "Offline Mode: Great job tracking! Connect to the net for AI insights."
EMPTY_ADVICE = "Keep tracking your spending to unlock insights! 🚀"
FALLBACK_LESSON = "Could not load lesson. Check connection."


@dataclass
class QuizQuestion:
    question: str
    options: List[str]
    correct_index: int

    def __post_init__(self):
        if len(self.options) != QUIZ_OPTIONS:
            raise ValueError(f"Quiz questions need exactly {QUIZ_OPTIONS} options")
        if not 0 <= self.correct_index < len(self.options):
            raise ValueError("correct_index out of range")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "options": list(self.options),
            "correctAnswerIndex": self.correct_index,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuizQuestion":
        return cls(
            question=str(data["question"]),
            options=[str(o) for o in data["options"]],
            correct_index=int(data["correctAnswerIndex"]),
        )


@dataclass
class Lesson:
    topic: str
    content: str
    quiz: List[QuizQuestion] = field(default_factory=list)

    def to_dict(self, include_answers: bool = False) -> Dict[str, Any]:
        quiz = [q.to_dict() for q in self.quiz]
        if not include_answers:
            for row in quiz:
                row.pop("correctAnswerIndex")
        return {"topic": self.topic, "content": self.content, "quiz": quiz}


@dataclass
class NewsItem:
    id: str
    title: str
    summary: str
    tag: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "summary": self.summary, "tag": self.tag}


@dataclass
class QuizResult:
    correct: int
    total: int

    @property
    def passed(self) -> bool:
        """Only a perfect score passes; an empty quiz never does."""
        return self.total > 0 and self.correct == self.total


FALLBACK_NEWS = [
    NewsItem("1", "Live Data Unavailable", "Could not fetch real-time news. Check your connection.", "Error"),
    NewsItem("2", "Market Watch", "Keep an eye on Bitcoin and Tech stocks today.", "Crypto"),
]


def grade_quiz(lesson: Lesson, answers: Sequence[int]) -> QuizResult:
    """
    Score quiz answers.

    Args:
        lesson: Lesson holding the quiz
        answers: Chosen option index per question, in order

    Returns:
        QuizResult
    """
    if len(answers) != len(lesson.quiz):
        raise ValueError(f"Expected {len(lesson.quiz)} answers, got {len(answers)}")
    correct = sum(1 for q, a in zip(lesson.quiz, answers) if q.correct_index == a)
    return QuizResult(correct=correct, total=len(lesson.quiz))


class ContentProvider(ABC):
    """Abstract AI content provider. Failures raise ProviderUnavailableError."""

    @abstractmethod
    def financial_advice(self, transactions: Sequence[Transaction]) -> str:
        pass

    @abstractmethod
    def lesson(self, topic: str) -> Lesson:
        pass

    @abstractmethod
    def news(self) -> List[NewsItem]:
        pass

    def close(self) -> None:
        return None


class OfflineContentProvider(ContentProvider):
    """Provider used when no AI credentials are configured."""

    def financial_advice(self, transactions: Sequence[Transaction]) -> str:
        raise ProviderUnavailableError("AI content is not configured")

    def lesson(self, topic: str) -> Lesson:
        raise ProviderUnavailableError("AI content is not configured")

    def news(self) -> List[NewsItem]:
        raise ProviderUnavailableError("AI content is not configured")


class ContentService:
    """
    Fallback-aware front for a ContentProvider.

    Lessons are cached per quest so the quiz graded on submit is the one the
    player was shown.
    """

    def __init__(self, provider: Optional[ContentProvider] = None):
        self.provider = provider or OfflineContentProvider()
        self._lessons: Dict[str, Lesson] = {}
        self._lock = threading.Lock()

    def advice(self, transactions: Sequence[Transaction]) -> str:
        recent = list(transactions)[:ADVICE_HISTORY_LIMIT]
        try:
            text = self.provider.financial_advice(recent)
        except ProviderUnavailableError as exc:
            logger.warning("Advice unavailable: %s", exc)
            return FALLBACK_ADVICE
        return text.strip() or EMPTY_ADVICE

    def news(self) -> List[NewsItem]:
        try:
            items = self.provider.news()
        except ProviderUnavailableError as exc:
            logger.warning("News unavailable: %s", exc)
            return list(FALLBACK_NEWS)
        return items or list(FALLBACK_NEWS)

    def lesson_for(self, quest_id: str, topic: str, refresh: bool = False) -> Lesson:
        """Lesson for a quest, fetched once and cached unless ``refresh``."""
        with self._lock:
            cached = self._lessons.get(quest_id)
        if cached is not None and not refresh:
            return cached
        try:
            lesson = self.provider.lesson(topic)
        except ProviderUnavailableError as exc:
            logger.warning("Lesson unavailable for %s: %s", topic, exc)
            return Lesson(topic=topic, content=FALLBACK_LESSON, quiz=[])
        with self._lock:
            self._lessons[quest_id] = lesson
        return lesson

    def cached_lesson(self, quest_id: str) -> Optional[Lesson]:
        with self._lock:
            return self._lessons.get(quest_id)

    def forget_lesson(self, quest_id: str) -> None:
        with self._lock:
            self._lessons.pop(quest_id, None)

    def clear(self) -> None:
        with self._lock:
            self._lessons.clear()
