#!/usr/bin/env python3
from __future__ import annotations

import asyncio
import json
from datetime import date
from typing import Any, Optional
from uuid import UUID

import click
from rich.console import Console
from rich.table import Table

from circulation.core.config import settings
from circulation.db.session import get_engine, get_session
from circulation.exceptions import CirculationError
from circulation.services import BorrowWorkflow, FineService, MembershipLedger

# -----------------------------------------------------------------------------
# Globals
# -----------------------------------------------------------------------------
console = Console()


def show_json(obj: Any) -> None:
    console.print_json(json.dumps(obj, default=str))


def show_table(items: list[dict[str, Any]], columns: list[str], title: Optional[str] = None) -> None:
    t = Table(title=title, show_lines=False)
    for col in columns:
        t.add_column(col)
    for it in items:
        t.add_row(*(str(it.get(c, "")) for c in columns))
    console.print(t)


def _run(coro):
    """Run one async command and turn circulation errors into a clean abort."""
    async def _wrapped():
        try:
            return await coro
        finally:
            await get_engine().dispose()

    try:
        return asyncio.run(_wrapped())
    except CirculationError as e:
        console.print(f"[red]{e.error_code}[/]: {e.message}")
        raise click.Abort()


def _request_row(r, today: date) -> dict[str, Any]:
    return {
        "id": r.id,
        "card_id": r.card_id,
        "status": r.status.value,
        "due_date": r.due_date,
        "days_overdue": max(0, (today - r.due_date).days),
        "open_copies": len(r.open_details),
    }


REQUEST_COLUMNS = ["id", "card_id", "status", "due_date", "days_overdue", "open_copies"]


# ------------------------------
# Root CLI
# ------------------------------
@click.group(help="Library circulation maintenance commands")
def cli() -> None:
    """Top-level command group."""


@cli.command("init-db", help="Create all tables directly (development databases only).")
def init_db() -> None:
    async def _go():
        import circulation.db.models  # noqa: F401
        from circulation.db.base import Base

        async with get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    _run(_go())
    console.print(f"[green]schema created[/] on {settings.DATABASE_URL}")


@cli.command("sweep-overdue", help="Mark past-due loans overdue, expire lapsed cards, send reminders.")
@click.option("--today", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="Override the sweep date")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
def sweep_overdue(today, as_json: bool) -> None:
    day = today.date() if today else date.today()

    async def _go():
        async with get_session() as session:
            workflow = BorrowWorkflow(session, settings.policy(), today=lambda: day)
            swept = await workflow.sweep_overdue(day)
            return [_request_row(r, day) for r in swept]

    rows = _run(_go())
    if as_json:
        show_json(rows)
        return
    show_table(rows, REQUEST_COLUMNS, title=f"Swept {len(rows)} request(s) as of {day}")


@cli.command("list-overdue", help="List overdue loans, including ones not swept yet.")
@click.option("--today", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
@click.option("--json", "as_json", is_flag=True)
def list_overdue(today, as_json: bool) -> None:
    day = today.date() if today else date.today()

    async def _go():
        async with get_session() as session:
            workflow = BorrowWorkflow(session, settings.policy(), today=lambda: day)
            return [_request_row(r, day) for r in await workflow.list_overdue(day)]

    rows = _run(_go())
    if as_json:
        show_json(rows)
        return
    show_table(rows, REQUEST_COLUMNS, title="Overdue loans")


@cli.command("card-balance", help="Deposit balance and borrowing eligibility of a card.")
@click.argument("card_id", type=click.UUID)
def card_balance(card_id: UUID) -> None:
    async def _go():
        async with get_session() as session:
            ledger = MembershipLedger(session, settings.policy())
            return {
                "card_id": card_id,
                "balance": await ledger.compute_deposit_balance(card_id),
                "active_loans": await ledger.active_loan_count(card_id),
                "can_borrow": await ledger.can_borrow(card_id),
            }

    show_json(_run(_go()))


@cli.command("fines-summary", help="Pending and paid fine totals, optionally for one card.")
@click.option("--card-id", type=click.UUID, default=None)
def fines_summary(card_id: Optional[UUID]) -> None:
    async def _go():
        async with get_session() as session:
            return await FineService(session, settings.policy()).summarize(card_id)

    summary = _run(_go())
    show_table(
        [{"pending": summary.pending, "paid": summary.paid, "total": summary.total}],
        ["pending", "paid", "total"],
        title="Fines",
    )


def _main():
    cli()


if __name__ == "__main__":
    _main()
