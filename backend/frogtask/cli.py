from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, List, Optional, Sequence

import typer

from . import catalog, services
from .errors import FrogTaskError
from .models import AccountCreate
from .timeutils import now_utc

app = typer.Typer(help="FrogTask operator console")


@app.callback()
def main_callback(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _render_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    if not headers:
        return ""

    widths = [len(header) for header in headers]
    for row in rows:
        for idx, cell in enumerate(row):
            widths[idx] = max(widths[idx], len(cell))

    border = "+".join([""] + ["-" * (width + 2) for width in widths] + [""])

    def build_row(cells: Sequence[str]) -> str:
        content = "|".join(f" {cells[idx].ljust(widths[idx])} " for idx in range(len(headers)))
        return f"|{content}|"

    return "\n".join([border, build_row(headers), border, *(build_row(row) for row in rows), border])


def _stringify(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:.3f}".rstrip("0").rstrip(".")
    if isinstance(value, dict):
        return ", ".join(f"{key}={_stringify(item)}" for key, item in value.items()) or "-"
    if isinstance(value, list):
        return ", ".join(_stringify(item) for item in value) or "-"
    return str(value)


def _fail(exc: FrogTaskError) -> None:
    typer.echo(f"Error: {exc.message}", err=True)
    raise typer.Exit(code=1) from exc


@app.command("create-account")
def create_account(
    name: str = typer.Argument(..., help="Display name for the new account."),
    timezone: str = typer.Option("UTC", "--timezone", "-z", help="IANA zone used for local days and reminders."),
) -> None:
    """Create an account with a full frog and an empty wallet."""

    account = services.create_account(AccountCreate(name=name, timezone=timezone))
    typer.echo(account.id)


@app.command("account-state")
def account_state(
    account_id: str,
    fields: List[str] = typer.Option([], "--field", "-f", help="Specific account keys to include."),
) -> None:
    """Show the stored record for one account."""

    try:
        state = services.get_account(account_id).model_dump(mode="json")
    except FrogTaskError as exc:
        _fail(exc)

    if fields:
        missing = [field for field in fields if field not in state]
        if missing:
            typer.echo(f"Unknown field(s): {', '.join(sorted(set(missing)))}", err=True)
            raise typer.Exit(code=1)
        state = {key: state[key] for key in fields}

    rows = [[key, _stringify(value)] for key, value in state.items()]
    typer.echo(_render_table(["Field", "Value"], rows))


@app.command("settle")
def settle(account_id: str) -> None:
    """Apply hunger decay up to now and print the result."""

    try:
        status = services.settle_hunger(account_id)
    except FrogTaskError as exc:
        _fail(exc)

    rows = [[key, _stringify(value)] for key, value in status.model_dump(mode="json").items()]
    typer.echo(_render_table(["Field", "Value"], rows))


@app.command("grant-premium")
def grant_premium(
    account_id: str,
    days: int = typer.Option(30, min=0, help="Premium length from now; 0 revokes."),
) -> None:
    """Set or clear the premium window for an account."""

    until = now_utc() + timedelta(days=days) if days else None
    try:
        account = services.set_premium_until(account_id, until)
    except FrogTaskError as exc:
        _fail(exc)
    typer.echo(f"premium_until: {_stringify(account.premium_until)}")


@app.command("sweep")
def sweep(
    budget: float = typer.Option(50.0, min=1.0, help="Wall-clock budget in seconds."),
    show_skipped: bool = typer.Option(False, "--show-skipped", help="Include accounts that were not nudged."),
) -> None:
    """Run one reminder sweep now."""

    report = services.run_reminder_sweep(budget_seconds=budget)
    typer.echo(f"Processed {report.processed}, sent {report.sent}")
    if report.budget_exhausted:
        typer.echo("Budget exhausted before every account was visited.", err=True)

    results = [result for result in report.results if show_skipped or result.sent]
    if not results:
        return
    rows = [
        [result.account_id, _stringify(result.sent), _stringify(result.reason), str(result.pruned_tokens)]
        for result in results
    ]
    typer.echo(_render_table(["Account", "Sent", "Reason", "Pruned"], rows))


@app.command("catalog")
def show_catalog(
    rarity: Optional[str] = typer.Option(None, "--rarity", "-r", help="Only show one rarity tier."),
) -> None:
    """List wardrobe items ordered by rarity."""

    items = catalog.sorted_by_rarity(catalog.CATALOG)
    if rarity:
        items = [item for item in items if item.rarity.value == rarity.lower()]
    rows = [
        [item.id, item.name, item.slot.value, item.rarity.value, _stringify(item.price)]
        for item in items
    ]
    typer.echo(_render_table(["Id", "Name", "Slot", "Rarity", "Price"], rows))


if __name__ == "__main__":
    app()
