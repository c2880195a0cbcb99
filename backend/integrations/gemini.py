"""
Gemini Content Integration.

Implements the ContentProvider interface over the Generative Language REST
API (``models/{model}:generateContent``). Lessons and news are requested in
JSON response mode and validated before use.
"""

from typing import Any, Dict, List, Optional, Sequence
import json
import logging

import httpx

from engine.models import Transaction
from services.content import QUIZ_LENGTH, ContentProvider, Lesson, NewsItem, QuizQuestion
from services.errors import ProviderUnavailableError

logger = logging.getLogger(__name__)

ADVICE_PROMPT = """You are a cool, gamified financial mentor for a teenager named "MoneyVerse AI".
Analyze these recent transactions: {transactions}.

Give 3 short, punchy, emoji-filled bullet points of advice.
Focus on spending habits, saving opportunities, or kudos for good behavior.
Keep it under 100 words total."""

LESSON_PROMPT = """Explain "{topic}" to a teenager in under 150 words. Use analogies (gaming, food, sports). Make it fun.
Then write a quiz of exactly {count} multiple-choice questions about the explanation, each with 4 options.

Return JSON: {{"content": "...", "quiz": [{{"question": "...", "options": ["a", "b", "c", "d"], "correctAnswerIndex": 0}}]}}"""

NEWS_PROMPT = """Find 3 trending financial news stories relevant to teens (crypto, big tech stocks, economy).

Return a JSON array of objects:
[{"id": "unique_string_id", "title": "Short Headline",
  "summary": "One sentence explanation for a teenager (under 20 words)",
  "tag": "Category (Crypto, Tech, or Economy)"}]"""


class GeminiContentClient(ContentProvider):
    """
    Gemini provider.

    Configuration:
        - api_key: Generative Language API key
        - model: Model id (default gemini-2.5-flash)
        - timeout: Request timeout in seconds
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        if not api_key:
            raise ValueError("Gemini API key is required")
        self.model = model
        self._headers = {"x-goog-api-key": api_key, "Content-Type": "application/json"}
        self._owns_client = client is None
        self.client = client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)

    def financial_advice(self, transactions: Sequence[Transaction]) -> str:
        summary = json.dumps([tx.to_dict() for tx in transactions])
        return self._generate(ADVICE_PROMPT.format(transactions=summary))

    def lesson(self, topic: str) -> Lesson:
        data = self._generate_json(LESSON_PROMPT.format(topic=topic, count=QUIZ_LENGTH))
        try:
            quiz = [QuizQuestion.from_dict(row) for row in data["quiz"]]
            content = str(data["content"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ProviderUnavailableError(f"Malformed lesson response: {exc}") from exc
        if len(quiz) != QUIZ_LENGTH:
            raise ProviderUnavailableError(f"Lesson quiz had {len(quiz)} questions, expected {QUIZ_LENGTH}")
        return Lesson(topic=topic, content=content, quiz=quiz)

    def news(self) -> List[NewsItem]:
        data = self._generate_json(NEWS_PROMPT)
        if not isinstance(data, list):
            raise ProviderUnavailableError("News response was not a list")
        items = []
        for idx, row in enumerate(data):
            if not isinstance(row, dict) or not row.get("title"):
                continue
            items.append(NewsItem(
                id=str(row.get("id") or idx + 1),
                title=str(row["title"]),
                summary=str(row.get("summary", "")),
                tag=str(row.get("tag", "Economy")),
            ))
        return items

    def _generate_json(self, prompt: str) -> Any:
        text = self._generate(prompt, response_mime_type="application/json")
        try:
            return json.loads(text)
        except ValueError as exc:
            raise ProviderUnavailableError("Content response was not valid JSON") from exc

    def _generate(self, prompt: str, response_mime_type: Optional[str] = None) -> str:
        payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        if response_mime_type:
            payload["generationConfig"] = {"responseMimeType": response_mime_type}
        try:
            response = self.client.post(
                f"/models/{self.model}:generateContent", json=payload, headers=self._headers,
            )
        except httpx.HTTPError as exc:
            logger.warning("Gemini request failed: %s", exc)
            raise ProviderUnavailableError(f"AI content unreachable: {exc}") from exc

        if response.status_code == 429:
            raise ProviderUnavailableError("AI content rate limited")
        if response.status_code != 200:
            logger.error("Gemini error: %s - %s", response.status_code, response.text[:300])
            raise ProviderUnavailableError(f"AI content error (HTTP {response.status_code})")

        try:
            data = response.json()
            parts = data["candidates"][0]["content"]["parts"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ProviderUnavailableError("Unexpected AI content response shape") from exc
        return "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
