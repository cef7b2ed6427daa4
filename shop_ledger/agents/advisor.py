"""
Business Advisory Agent

CRITICAL BOUNDARIES:
- The model only sees a bounded digest of the shop's own transactions
  (at most 50 lines). It never sees ids or user ids.
- The model's answer is advice text for display. It is never parsed,
  never stored in the ledger, never used to change data.
- A model failure NEVER breaks the app. The user gets a fixed
  fallback message and everything else keeps working.
"""

from typing import Any, Iterable, Optional

import google.generativeai as genai

from shop_ledger.config import get_settings
from shop_ledger.logger import get_logger
from shop_ledger.models.transaction import Transaction


logger = get_logger(__name__)

MAX_DIGEST_LINES = 50

NO_DATA_MESSAGE = "There is no data for this month."
NO_INSIGHT_MESSAGE = "Sorry, no insight could be generated."
FALLBACK_MESSAGE = "The AI is not working right now. Please try again later."

PROMPT_TEMPLATE = """You are a business consultant for a small shop owner.
Analyze the following recent transactions and provide 2-3 short, actionable bullet points in {language} for the shop owner to improve profit or manage expenses.
Be encouraging and concise.

Transactions Data:
{digest}

Response should be entirely in {language}. Max 3 sentences."""


def format_digest_line(transaction: Transaction) -> str:
    """date: description - type - amount"""
    return (
        f"{transaction.date}: {transaction.description} - "
        f"{transaction.type.value} - {transaction.amount}"
    )


def build_digest(
    transactions: Iterable[Transaction],
    limit: int = MAX_DIGEST_LINES,
) -> str:
    """The first `limit` transactions, one line each (limit capped at 50)."""
    limit = max(0, min(limit, MAX_DIGEST_LINES))
    lines = []
    for transaction in transactions:
        if len(lines) >= limit:
            break
        lines.append(format_digest_line(transaction))
    return "\n".join(lines)


def build_prompt(digest: str, language: str) -> str:
    return PROMPT_TEMPLATE.format(digest=digest, language=language)


class AdvisoryAgent:
    """
    Turns a month of transactions into a short piece of advice.

    RESPONSIBILITIES:
    - Build the digest and prompt
    - Call Gemini
    - Map every failure to fallback text
    """

    def __init__(self, model: Optional[Any] = None):
        self._settings = get_settings().gemini
        self._model = model
        if self._model is None:
            self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    async def analyze(self, transactions: Iterable[Transaction]) -> str:
        """
        Advice for the given transactions.

        Always returns text; never raises.
        """
        transactions = list(transactions)
        if not transactions:
            return NO_DATA_MESSAGE

        digest = build_digest(transactions, self._settings.digest_limit)
        prompt = build_prompt(digest, self._settings.target_language)

        try:
            response = await self._model.generate_content_async(prompt)
            text = (response.text or "").strip()
        except Exception as e:
            logger.error(
                "advisory_request_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return FALLBACK_MESSAGE

        if not text:
            logger.warning("advisory_empty_response")
            return NO_INSIGHT_MESSAGE

        logger.info(
            "advisory_generated",
            digest_lines=digest.count("\n") + 1,
            response_chars=len(text),
        )
        return text
