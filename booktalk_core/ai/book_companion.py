# =============================================================================
# booktalk_core/ai/book_companion.py
# AI Companion: the Book Talks Back
# =============================================================================
"""
Optional natural-language helpers backed by the OpenAI chat API.

Every call degrades to a deterministic default when no API key is configured
or the request fails, so the journal never waits on AI availability.
"""

from __future__ import annotations
import asyncio
import json
from typing import List, Optional, Sequence

import openai

from booktalk_core.logging import get_logger
from booktalk_core.models import Book, Message, Sender

logger = get_logger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
HISTORY_LIMIT = 10
MAX_KEYWORDS = 3

NO_KEY_CHAT_REPLY = "I need an API Key to answer that! (Check your settings.)"
ERROR_CHAT_REPLY = "Sorry, I'm having trouble reading the pages right now. Try again later."

CHAT_SYSTEM_PROMPT = """You are the book "{title}" by {author}.
Your persona is friendly, knowledgeable, and helpful.
You are chatting with a reader who is currently reading you.
Answer their questions about your plot, characters, themes, or author.
If they ask for a summary, give a brief one.
If they share a quote, appreciate it.
Keep your responses concise (under 100 words) and conversational, like a chat message."""


class BookCompanion:
    """
    Generates welcome lines, chat replies and quote keywords.

    Usage:
        companion = BookCompanion(api_key=settings.openai_api_key)
        text = await companion.generate_welcome("Dune", "Frank Herbert")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        client: Optional[openai.OpenAI] = None,
    ):
        self.api_key = api_key
        self.model = model
        self._client = client

    @property
    def available(self) -> bool:
        return self._client is not None or bool(self.api_key)

    def _get_client(self) -> Optional[openai.OpenAI]:
        if self._client is None and self.api_key:
            self._client = openai.OpenAI(api_key=self.api_key)
        return self._client

    async def _complete(self, messages: List[dict], max_tokens: int, **kwargs) -> Optional[str]:
        client = self._get_client()
        if client is None:
            return None
        response = await asyncio.to_thread(
            client.chat.completions.create,
            model=self.model,
            messages=messages,
            max_tokens=max_tokens,
            **kwargs,
        )
        return response.choices[0].message.content

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def generate_welcome(self, title: str, author: str) -> str:
        """One-sentence greeting from the book, for a newly added title."""
        if not self.available:
            return f"Welcome to your reading log for {title}."

        prompt = (
            f'I am starting to read the book "{title}" by {author}. Write a short, friendly, '
            "1-sentence welcome message as if you are the book welcoming me to read you. Be charming."
        )
        try:
            text = await self._complete([{"role": "user", "content": prompt}], max_tokens=80, temperature=0.8)
        except Exception as e:
            logger.warning(f"Welcome generation failed: {e}")
            return f"Welcome to {title}."
        return (text or "").strip() or f"Welcome to {title}."

    async def chat(self, book: Book, history: Sequence[Message], user_text: str) -> str:
        """Reply in the voice of ``book``, given the recent conversation."""
        if not self.available:
            return NO_KEY_CHAT_REPLY

        messages = [{"role": "system", "content": CHAT_SYSTEM_PROMPT.format(title=book.title, author=book.author)}]
        for message in list(history)[-HISTORY_LIMIT:]:
            role = "user" if message.sender == Sender.USER else "assistant"
            messages.append({"role": role, "content": message.text})
        messages.append({"role": "user", "content": user_text})

        try:
            text = await self._complete(messages, max_tokens=200, temperature=0.7)
        except Exception as e:
            logger.warning(f"Chat reply failed: {e}")
            return ERROR_CHAT_REPLY
        return (text or "").strip() or "..."

    async def extract_keywords(self, text: str) -> List[str]:
        """Up to three short themes for a quote. Empty when unavailable."""
        if not self.available:
            return []

        prompt = (
            "Analyze this book quote and extract exactly 3 short, relevant keywords or themes "
            '(e.g. Love, War, Regret). Respond with a JSON object {"keywords": [...]}. '
            f'Quote: "{text}"'
        )
        try:
            raw = await self._complete(
                [{"role": "user", "content": prompt}],
                max_tokens=60,
                temperature=0.2,
                response_format={"type": "json_object"},
            )
            keywords = json.loads(raw or "{}").get("keywords", [])
        except Exception as e:
            logger.warning(f"Keyword extraction failed: {e}")
            return []

        if not isinstance(keywords, list):
            return []
        return [str(k).strip() for k in keywords if str(k).strip()][:MAX_KEYWORDS]
