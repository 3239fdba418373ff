"""Remote FrogTask console for inspecting a deployed backend over HTTP."""

from __future__ import annotations

import json
import os
import shlex
import sys
from typing import Any, List, Sequence
import urllib.error
import urllib.parse
import urllib.request

import typer
from typer.testing import CliRunner

DEFAULT_BASE_URL = "http://localhost:8000"

app = typer.Typer(help="FrogTask remote operator console")


class RemoteError(Exception):
    """Raised when the remote API returns an error response."""


class RemoteClient:
    def __init__(self, base_url: str, cron_secret: str = "") -> None:
        self.base_url = base_url.rstrip("/") or DEFAULT_BASE_URL
        self.cron_secret = cron_secret

    def request(self, method: str, path: str, *, payload: dict[str, Any] | None = None, headers: dict[str, str] | None = None) -> Any:
        url = urllib.parse.urljoin(self.base_url + "/", path.lstrip("/"))
        merged = {"Accept": "application/json", **(headers or {})}
        data: bytes | None = None
        if payload is not None:
            merged["Content-Type"] = "application/json"
            data = json.dumps(payload).encode("utf-8")

        request = urllib.request.Request(url=url, data=data, headers=merged, method=method.upper())
        try:
            with urllib.request.urlopen(request, timeout=60) as response:
                body = response.read()
                if not body:
                    return None
                return json.loads(body.decode("utf-8"))
        except urllib.error.HTTPError as exc:
            detail = exc.reason
            try:
                detail = json.loads(exc.read().decode("utf-8")).get("detail", detail)
            except (ValueError, AttributeError):
                pass
            raise RemoteError(f"{exc.code} {exc.reason}: {detail}") from exc
        except urllib.error.URLError as exc:
            raise RemoteError(f"Failed to contact {self.base_url}: {exc.reason}") from exc

    def _expect_dict(self, data: Any, label: str) -> dict[str, Any]:
        if not isinstance(data, dict):
            raise RemoteError(f"Unexpected response payload for {label}")
        return data

    def get_account(self, account_id: str) -> dict[str, Any]:
        return self._expect_dict(self.request("GET", f"/accounts/{account_id}"), "account")

    def get_hunger(self, account_id: str) -> dict[str, Any]:
        return self._expect_dict(self.request("GET", f"/accounts/{account_id}/hunger"), "hunger")

    def run_sweep(self) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.cron_secret}"} if self.cron_secret else {}
        return self._expect_dict(self.request("POST", "/cron/send-reminders", headers=headers), "reminder sweep")


@app.callback()
def main_callback(ctx: typer.Context, base_url: str | None = typer.Option(None, "--base-url", help="Override the remote API base URL.")) -> None:
    resolved = base_url or os.environ.get("FROGTASK_REMOTE_BASE_URL") or DEFAULT_BASE_URL
    ctx.obj = RemoteClient(resolved, os.environ.get("FROGTASK_CRON_SECRET", ""))


def _render_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    if not headers:
        return ""

    widths = [len(header) for header in headers]
    for row in rows:
        for idx, cell in enumerate(row):
            widths[idx] = max(widths[idx], len(cell))

    border = "+".join([""] + ["-" * (width + 2) for width in widths] + [""])

    def build_row(cells: Sequence[str]) -> str:
        return "|" + "|".join(f" {cells[idx].ljust(widths[idx])} " for idx in range(len(headers))) + "|"

    return "\n".join([border, build_row(headers), border, *(build_row(row) for row in rows), border])


def _stringify(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


@app.command("state")
def state(
    ctx: typer.Context,
    account_id: str,
    fields: List[str] = typer.Option([], "--field", "-f", help="Specific account keys to include."),
) -> None:
    """Show an account record together with its settled hunger."""

    client: RemoteClient = ctx.obj
    try:
        record = client.get_account(account_id)
        record.update(client.get_hunger(account_id))
    except RemoteError as exc:
        typer.echo(f"Error fetching account: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if fields:
        missing = [field for field in fields if field not in record]
        if missing:
            typer.echo(f"Unknown field(s): {', '.join(sorted(set(missing)))}", err=True)
            raise typer.Exit(code=1)
        record = {key: record[key] for key in fields}

    rows = [[key, _stringify(value)] for key, value in record.items()]
    typer.echo(_render_table(["Field", "Value"], rows))


@app.command("sweep")
def sweep(ctx: typer.Context) -> None:
    """Trigger the reminder sweep on the server."""

    client: RemoteClient = ctx.obj
    try:
        report = client.run_sweep()
    except RemoteError as exc:
        typer.echo(f"Sweep failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"Processed {report.get('processed', 0)}, sent {report.get('sent', 0)}")
    if report.get("budget_exhausted"):
        typer.echo("Server ran out of time before visiting every account.")
    rows = [
        [str(item.get("account_id")), _stringify(item.get("sent")), _stringify(item.get("reason"))]
        for item in report.get("results", [])
        if isinstance(item, dict)
    ]
    if rows:
        typer.echo(_render_table(["Account", "Sent", "Reason"], rows))


def _print_help(base_url: str) -> None:
    message = (
        "\nFrogTask Remote Console\n"
        f"Target API base URL: {base_url}\n"
        "Available commands:\n"
        "  state ACCOUNT_ID [--field field ...]   Show account and hunger\n"
        "  sweep                                  Run the reminder sweep\n"
        "Other utilities:\n"
        "  help                                   Show this message\n"
        "  exit | quit                            Leave the console\n"
    )
    print(message)


def main() -> None:
    base_url = os.environ.get("FROGTASK_REMOTE_BASE_URL", "").strip()
    if not base_url:
        try:
            base_url = input(f"API base URL [{DEFAULT_BASE_URL}]: ").strip() or DEFAULT_BASE_URL
        except (EOFError, KeyboardInterrupt):
            print()
            sys.exit(1)
    env = {**os.environ, "FROGTASK_REMOTE_BASE_URL": base_url}

    runner = CliRunner()
    _print_help(base_url)

    while True:
        try:
            raw = input("frog> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break

        if not raw:
            continue
        if raw.lower() in {"exit", "quit"}:
            break
        if raw.lower() == "help":
            _print_help(base_url)
            continue

        result = runner.invoke(app, shlex.split(raw), env=env)
        if result.output:
            print(result.output, end="")
        if result.exit_code != 0:
            print(f"Command exited with status {result.exit_code}")


if __name__ == "__main__":
    main()
