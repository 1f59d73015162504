"""AI-written budget summaries, tips and ledger Q&A (OpenAI Responses API).

Enrichment only: every public helper recovers from a failed model call by
logging a warning and returning ``None`` (summaries) or ``""`` (tips and
answers). Numbers computed elsewhere are never touched here.

The model name comes from ``FAMLEDGER_AI_MODEL`` (default ``gpt-4o``); the
SDK reads ``OPENAI_API_KEY`` itself.
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from datetime import date, timedelta

from openai import OpenAI

from .errors import AIProviderError
from .logging_setup import get_logger
from .models import BudgetRecommendation
from .persistence import LedgerRepository, TransactionFilters

_logger = get_logger("famledger.insights")

_DEFAULT_MODEL = "gpt-4o"
QA_LOOKBACK_DAYS = 90
QA_MAX_TRANSACTIONS = 100

_BUDGET_INSTRUCTIONS = (
    "You are a family finance assistant. Explain budget recommendations in plain, "
    "encouraging language. For every category, write exactly one line formatted as "
    "'<category name>: <one-sentence explanation>'. After the category lines, add a "
    "short overall summary paragraph."
)
_TIPS_INSTRUCTIONS = (
    "You are a family finance assistant. Give at most five short, practical tips to "
    "stay within the budgets below. One tip per line, no preamble."
)
_QA_INSTRUCTIONS = (
    "You are a family finance assistant. Answer the question using only the "
    "transactions provided. If the data does not contain the answer, say so."
)


def _model() -> str:
    return os.getenv("FAMLEDGER_AI_MODEL") or _DEFAULT_MODEL


def _create_client() -> OpenAI:
    return OpenAI()


def complete(prompt: str, instructions: str) -> str:
    """Return the model's text for ``prompt``.

    Raises
    ------
    AIProviderError
        Missing API key, any SDK/network failure, or an empty response.
    """

    if not os.getenv("OPENAI_API_KEY"):
        raise AIProviderError("OPENAI_API_KEY is not set")
    try:
        client = _create_client()
        resp = client.responses.create(model=_model(), instructions=instructions, input=prompt)
    except Exception as exc:  # noqa: BLE001
        raise AIProviderError(f"{exc.__class__.__name__}: {exc}") from exc
    text = (getattr(resp, "output_text", None) or "").strip()
    if not text:
        raise AIProviderError("model returned no text")
    return text


def _budget_lines(recommendations: Sequence[BudgetRecommendation]) -> str:
    return "\n".join(
        f"- {r.category_name}: average {r.average_monthly_spend}/month, "
        f"recommended budget {r.recommended_budget}/month"
        for r in recommendations
    )


def summarize_budget(recommendations: Sequence[BudgetRecommendation]) -> str | None:
    if not recommendations:
        return None
    prompt = "Monthly budget recommendations:\n" + _budget_lines(recommendations)
    try:
        return complete(prompt, _BUDGET_INSTRUCTIONS)
    except AIProviderError as exc:
        _logger.warning("budget summary unavailable: %s", exc)
        return None


def budget_tips(recommendations: Sequence[BudgetRecommendation]) -> str:
    if not recommendations:
        return ""
    prompt = "Budgets:\n" + _budget_lines(recommendations)
    try:
        return complete(prompt, _TIPS_INSTRUCTIONS)
    except AIProviderError as exc:
        _logger.warning("budget tips unavailable: %s", exc)
        return ""


def answer_question(
    repo: LedgerRepository,
    family_id: str,
    question: str,
    *,
    today: date | None = None,
) -> str:
    """Answer ``question`` from the family's recent reconciled transactions.

    Context is the newest :data:`QA_MAX_TRANSACTIONS` reconciled rows of the
    last :data:`QA_LOOKBACK_DAYS` days. Returns ``""`` when the model is
    unavailable.
    """

    today = today or date.today()
    rows = repo.list_transactions(
        family_id,
        TransactionFilters(
            status="RECONCILED",
            date_from=today - timedelta(days=QA_LOOKBACK_DAYS),
            date_to=today,
            limit=QA_MAX_TRANSACTIONS,
            order="desc",
        ),
    )
    names = repo.category_names(family_id, {r.category_id for r in rows if r.category_id})
    context = "\n".join(
        f"{r.date.isoformat()} | {r.direction} | {r.amount} {r.currency} | {r.merchant} | "
        f"{names.get(r.category_id or '', 'Uncategorized')}"
        for r in rows
    )
    prompt = f"Transactions (newest first):\n{context or '(none)'}\n\nQuestion: {question}"
    try:
        return complete(prompt, _QA_INSTRUCTIONS)
    except AIProviderError as exc:
        _logger.warning("question answering unavailable: %s", exc)
        return ""


__all__ = [
    "QA_LOOKBACK_DAYS",
    "QA_MAX_TRANSACTIONS",
    "answer_question",
    "budget_tips",
    "complete",
    "summarize_budget",
]
