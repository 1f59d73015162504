# ruff: noqa: I001
"""CLI for the ``famledger`` package.

Command handlers (``cmd_*``) hold the logic and return a process exit code;
the Typer commands below only parse options and delegate. Environment
variables (``DATABASE_URL``, ``OPENAI_API_KEY``, provider credentials) are
loaded from a local ``.env`` with ``python-dotenv`` before any command runs.
Errors are written to stderr as ``Error: ...`` and exit with status 1.
"""

from __future__ import annotations

import json
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, cast

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .logging_setup import configure_logging
from .models import PROVIDERS, Provider


def _err(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def _check_provider(provider: str) -> Provider | None:
    if provider not in PROVIDERS:
        return None
    return cast(Provider, provider)


def _load_import_batches(
    path: Path, provider: Provider
) -> list[tuple[list[dict[str, Any]], bool | None]]:
    """Read a provider JSON export into ``(records, pending)`` batches.

    Accepted shapes: a bare list of records; Plaid's ``{"transactions": [...]}``;
    GoCardless's ``{"transactions": {"booked": [...], "pending": [...]}}``.
    """

    from .providers.gocardless import split_transactions_payload

    with path.open("r", encoding="utf-8") as f:
        payload = json.load(f)

    if isinstance(payload, list):
        return [(payload, False if provider == "gocardless" else None)]
    if provider == "gocardless":
        batch = split_transactions_payload(payload)
        return [(batch.booked, False), (batch.pending, True)]
    if isinstance(payload, dict) and isinstance(payload.get("transactions"), list):
        return [(payload["transactions"], None)]
    raise ValueError("expected a list of transactions or a {'transactions': [...]} object")


def cmd_import_file(
    path: str,
    *,
    family_id: str,
    account_id: str,
    provider: str,
    database_url: str | None = None,
) -> int:
    """Import a saved provider payload into one account and print the counts."""

    from ledger_db.client import session_scope

    from .ledger import import_transactions
    from .models import ImportSummary
    from .persistence import LedgerRepository

    checked = _check_provider(provider)
    if checked is None:
        return _err(f"unknown provider {provider!r}; expected one of {', '.join(PROVIDERS)}")

    try:
        batches = _load_import_batches(Path(path), checked)
    except FileNotFoundError:
        return _err(f"File not found: {path}")
    except PermissionError:
        return _err(f"Permission denied: {path}")
    except (ValueError, json.JSONDecodeError) as e:
        return _err(f"Failed to parse {path}: {e}")

    total = ImportSummary()
    try:
        with session_scope(database_url=database_url) as session:
            repo = LedgerRepository(session)
            account = next(
                (a for a in repo.list_accounts(family_id) if a.id == account_id), None
            )
            if account is None:
                return _err(f"account {account_id} not found for family {family_id}")
            remote_id = account.provider_account_id or account.id
            for records, pending in batches:
                summary = import_transactions(
                    repo,
                    records,
                    account_id=account_id,
                    family_id=family_id,
                    provider_account_id=remote_id,
                    provider=checked,
                    pending=pending,
                )
                total.inserted += summary.inserted
                total.duplicates += summary.duplicates
                total.skipped += summary.skipped
    except Exception as e:
        return _err(f"import failed: {e}")

    print(f"inserted={total.inserted} duplicates={total.duplicates} skipped={total.skipped}")
    return 0


def cmd_sync(*, family_id: str, provider: str, database_url: str | None = None) -> int:
    """Sync every account of ``provider`` for the family; non-zero on any failure."""

    from ledger_db.client import session_scope

    from .persistence import LedgerRepository
    from .providers import GoCardlessClient, PlaidClient
    from .sync import sync_gocardless, sync_plaid

    checked = _check_provider(provider)
    if checked is None:
        return _err(f"unknown provider {provider!r}; expected one of {', '.join(PROVIDERS)}")

    try:
        client: GoCardlessClient | PlaidClient = (
            GoCardlessClient.from_env() if checked == "gocardless" else PlaidClient.from_env()
        )
    except ValueError as e:
        return _err(str(e))

    try:
        with client, session_scope(database_url=database_url) as session:
            repo = LedgerRepository(session)
            if isinstance(client, GoCardlessClient):
                report = sync_gocardless(repo, client, family_id)
            else:
                report = sync_plaid(repo, client, family_id)
    except Exception as e:
        return _err(f"sync failed: {e}")

    for result in report.accounts:
        if result.summary is not None:
            s = result.summary
            print(
                f"{result.account_id}\tinserted={s.inserted} "
                f"duplicates={s.duplicates} skipped={s.skipped}"
            )
        else:
            print(f"{result.account_id}\terror={result.error}")
    if report.unmatched:
        print(f"unmatched={report.unmatched}")
    print(f"balances_updated={report.balances_updated}")
    return 1 if report.failed else 0


def cmd_budget(
    *,
    family_id: str,
    months: int = 3,
    summarize: bool = True,
    tips: bool = False,
    today: date | None = None,
    database_url: str | None = None,
) -> int:
    from ledger_db.client import session_scope

    from .budgets import recommend_budgets
    from .insights import budget_tips
    from .persistence import LedgerRepository

    try:
        with session_scope(database_url=database_url) as session:
            result = recommend_budgets(
                LedgerRepository(session),
                family_id,
                months=months,
                today=today,
                summarize=summarize,
            )
    except Exception as e:
        return _err(f"budget failed: {e}")

    for r in result.recommendations:
        line = f"{r.category_name}\t{r.average_monthly_spend}\t{r.recommended_budget}"
        print(f"{line}\t{r.explanation}" if r.explanation else line)
    if result.monthly_goal_allocation:
        print(f"goal_allocation\t{result.monthly_goal_allocation}")
    if result.summary:
        print()
        print(result.summary)
    if tips:
        text = budget_tips(result.recommendations)
        if text:
            print()
            print(text)
    return 0


def cmd_anomalies(
    *,
    family_id: str,
    months: int = 3,
    today: date | None = None,
    database_url: str | None = None,
) -> int:
    from ledger_db.client import session_scope

    from .anomalies import detect_anomalies
    from .persistence import LedgerRepository

    try:
        with session_scope(database_url=database_url) as session:
            found = detect_anomalies(
                LedgerRepository(session), family_id, months=months, today=today
            )
    except Exception as e:
        return _err(f"anomaly scan failed: {e}")

    for a in found:
        print(f"{a.transaction_id}\t{a.category_name}\t{a.amount}\t{a.reason}")
    return 0


def cmd_forecast(
    *,
    family_id: str,
    months: int = 6,
    today: date | None = None,
    database_url: str | None = None,
) -> int:
    from ledger_db.client import session_scope

    from .forecast import forecast_spending
    from .persistence import LedgerRepository

    try:
        with session_scope(database_url=database_url) as session:
            records = forecast_spending(
                LedgerRepository(session), family_id, months=months, today=today
            )
    except Exception as e:
        return _err(f"forecast failed: {e}")

    for r in records:
        print(f"{r.category_name}\t{r.projected_next_month}")
    return 0


def cmd_trends(
    *,
    family_id: str,
    months: int = 6,
    today: date | None = None,
    database_url: str | None = None,
) -> int:
    from ledger_db.client import session_scope

    from .persistence import LedgerRepository
    from .trends import account_balances, cash_flow_summary, goal_progress, spending_trends

    try:
        with session_scope(database_url=database_url) as session:
            repo = LedgerRepository(session)
            monthly = spending_trends(repo, family_id, months=months, today=today)
            flow = cash_flow_summary(repo, family_id, today=today)
            goals = goal_progress(repo, family_id)
            balances = account_balances(repo, family_id)
    except Exception as e:
        return _err(f"trends failed: {e}")

    for m in monthly:
        print(f"{m.month}\tincome={m.income}\texpenses={m.expenses}\tsavings={m.savings}")
    print(
        f"this_month\tincome={flow.income}\texpenses={flow.expenses}"
        f"\tsavings_rate={flow.savings_rate}%"
    )
    for g in goals:
        print(f"goal\t{g.name}\t{g.current_amount}/{g.target_amount}\t{g.progress_percentage}%")
    print(
        f"balances\tchecking={balances.checking}\tsavings={balances.savings}"
        f"\tcredit_card={balances.credit_card}\tnet_worth={balances.net_worth}"
    )
    return 0


def cmd_ask(
    question: str,
    *,
    family_id: str,
    today: date | None = None,
    database_url: str | None = None,
) -> int:
    from ledger_db.client import session_scope

    from .insights import answer_question
    from .persistence import LedgerRepository

    try:
        with session_scope(database_url=database_url) as session:
            answer = answer_question(LedgerRepository(session), family_id, question, today=today)
    except Exception as e:
        return _err(f"ask failed: {e}")

    if not answer:
        return _err("the AI assistant is unavailable (see logs)")
    print(answer)
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import Plaid/GoCardless transactions into the family ledger and report on it. "
        "Loads DATABASE_URL, OPENAI_API_KEY and provider credentials from a local .env."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter defaults).
FAMILY_ID_OPTION: OptionInfo = typer.Option(..., "--family-id", help="Family to operate on.")
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
AS_OF_OPTION: OptionInfo = typer.Option(
    None, "--as-of", formats=["%Y-%m-%d"], help="Treat this date as today (YYYY-MM-DD)."
)


def _as_date(value: datetime | None) -> date | None:
    return value.date() if value is not None else None


@app.command("import-file")
def import_file_cmd(
    path: Path = typer.Argument(..., dir_okay=False, help="Provider JSON export to import."),
    *,
    family_id: str = FAMILY_ID_OPTION,
    account_id: str = typer.Option(..., "--account-id", help="Ledger account receiving rows."),
    provider: str = typer.Option(..., "--provider", help="plaid or gocardless."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Import a saved provider payload (idempotent)."""

    raise typer.Exit(
        cmd_import_file(
            str(path),
            family_id=family_id,
            account_id=account_id,
            provider=provider,
            database_url=database_url,
        )
    )


@app.command("sync")
def sync_cmd(
    *,
    family_id: str = FAMILY_ID_OPTION,
    provider: str = typer.Option(..., "--provider", help="plaid or gocardless."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Fetch recent transactions from the aggregator for every linked account."""

    raise typer.Exit(cmd_sync(family_id=family_id, provider=provider, database_url=database_url))


@app.command("budget")
def budget_cmd(
    *,
    family_id: str = FAMILY_ID_OPTION,
    months: int = typer.Option(3, min=1, help="Look-back window in calendar months."),
    summary: bool = typer.Option(True, "--summary/--no-summary", help="Request an AI summary."),
    tips: bool = typer.Option(False, "--tips", help="Also print AI budgeting tips."),
    as_of: datetime | None = AS_OF_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Recommend per-category monthly budgets."""

    raise typer.Exit(
        cmd_budget(
            family_id=family_id,
            months=months,
            summarize=summary,
            tips=tips,
            today=_as_date(as_of),
            database_url=database_url,
        )
    )


@app.command("anomalies")
def anomalies_cmd(
    *,
    family_id: str = FAMILY_ID_OPTION,
    months: int = typer.Option(3, min=1, help="Look-back window in calendar months."),
    as_of: datetime | None = AS_OF_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """List expenses far above their category's usual range."""

    raise typer.Exit(
        cmd_anomalies(
            family_id=family_id, months=months, today=_as_date(as_of), database_url=database_url
        )
    )


@app.command("forecast")
def forecast_cmd(
    *,
    family_id: str = FAMILY_ID_OPTION,
    months: int = typer.Option(6, min=1, help="History window in calendar months."),
    as_of: datetime | None = AS_OF_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Project next month's spending per category."""

    raise typer.Exit(
        cmd_forecast(
            family_id=family_id, months=months, today=_as_date(as_of), database_url=database_url
        )
    )


@app.command("trends")
def trends_cmd(
    *,
    family_id: str = FAMILY_ID_OPTION,
    months: int = typer.Option(6, min=1, help="History window in calendar months."),
    as_of: datetime | None = AS_OF_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Monthly income/expenses, this month's cash flow, goals and net worth."""

    raise typer.Exit(
        cmd_trends(
            family_id=family_id, months=months, today=_as_date(as_of), database_url=database_url
        )
    )


@app.command("ask")
def ask_cmd(
    question: str = typer.Argument(..., help="Question about recent spending."),
    *,
    family_id: str = FAMILY_ID_OPTION,
    as_of: datetime | None = AS_OF_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Ask the AI assistant about the last 90 days of transactions."""

    raise typer.Exit(
        cmd_ask(question, family_id=family_id, today=_as_date(as_of), database_url=database_url)
    )


@app.callback()
def _root() -> None:
    """Load ``.env`` (without overriding the environment) and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m famledger.cli`
    app()
