"""Cadence CLI — talks to the daemon over HTTP."""

import json
from typing import List, Optional

import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import print as rprint

from cadence import __version__
from cadence.core.config import get_client_settings

app = typer.Typer(
    name="cadence",
    help="Interval schedule claim queue",
    no_args_is_help=True,
)
schedule_app = typer.Typer(help="Manage schedules", no_args_is_help=True)
workflow_app = typer.Typer(help="Manage workflows and their schedule links", no_args_is_help=True)
app.add_typer(schedule_app, name="schedule")
app.add_typer(workflow_app, name="workflow")

console = Console()


def _client() -> httpx.Client:
    settings = get_client_settings()
    return httpx.Client(
        base_url=settings.host,
        headers={"Authorization": f"Bearer {settings.api_key}"},
        timeout=60,
    )


def _api(method: str, path: str, **kwargs) -> dict | None:
    """Make an API call to the daemon."""
    with _client() as client:
        try:
            resp = client.request(method, f"/api/v1{path}", **kwargs)
        except httpx.ConnectError:
            settings = get_client_settings()
            console.print(f"[red]Error:[/red] Cannot connect to Cadence daemon at {settings.host}")
            console.print("Start the daemon with: [bold]cadenced[/bold]")
            raise typer.Exit(1)

        if resp.status_code >= 400:
            is_json = resp.headers.get("content-type", "").startswith("application/json")
            body = resp.json() if is_json else {}
            detail = body.get("detail", resp.text) if is_json else resp.text
            console.print(f"[red]Error {resp.status_code}:[/red] {detail}")
            if body.get("retryable"):
                console.print("[dim]This error is transient; retry later.[/dim]")
            raise typer.Exit(1)

        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()


def _parse_metadata(metadata: Optional[str]) -> Optional[dict]:
    if metadata is None:
        return None
    try:
        return json.loads(metadata)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] --metadata is not valid JSON: {e}")
        raise typer.Exit(1)


# ─── Schedule Commands ───


@schedule_app.command("create")
def create_schedule(
    owner: str = typer.Option(..., "--owner", "-o", help="Owning workspace id"),
    interval: int = typer.Option(..., "--interval", "-i", min=1, help="Seconds between runs"),
    metadata: Optional[str] = typer.Option(None, "--metadata", "-m", help="JSON metadata"),
):
    """Create a schedule."""
    data = {"owner_id": owner, "update_interval": interval}
    parsed = _parse_metadata(metadata)
    if parsed is not None:
        data["metadata"] = parsed
    result = _api("POST", "/schedules", json=data)
    console.print(f"[green]✓[/green] Created schedule [bold]{result['id']}[/bold] (every {interval}s)")


@schedule_app.command("show")
def show_schedule(schedule_id: str = typer.Argument(..., help="Schedule id")):
    """Show schedule details."""
    result = _api("GET", f"/schedules/{schedule_id}")
    rprint(Panel(json.dumps(result, indent=2, default=str), title=f"Schedule: {schedule_id}"))


@schedule_app.command("list")
def list_schedules(owner: str = typer.Option(..., "--owner", "-o", help="Owning workspace id")):
    """List live schedules of an owner."""
    result = _api("GET", "/schedules", params={"owner_id": owner})
    schedules = result["schedules"]

    if not schedules:
        console.print("[dim]No schedules[/dim]")
        return

    table = Table(title=f"Schedules ({owner})", show_lines=False)
    table.add_column("Id", style="bold")
    table.add_column("Interval")
    table.add_column("Last Touched")
    table.add_column("Due")

    for s in schedules:
        table.add_row(s["id"], f"{s['update_interval']}s", s["updated_at"], s["due_at"])

    console.print(table)


@schedule_app.command("update")
def update_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule id"),
    interval: Optional[int] = typer.Option(None, "--interval", "-i", min=1, help="Seconds between runs"),
    metadata: Optional[str] = typer.Option(None, "--metadata", "-m", help="JSON metadata"),
):
    """Update a schedule's interval and/or metadata."""
    data = {}
    if interval is not None:
        data["update_interval"] = interval
    parsed = _parse_metadata(metadata)
    if parsed is not None:
        data["metadata"] = parsed
    _api("PATCH", f"/schedules/{schedule_id}", json=data)
    console.print(f"[green]✓[/green] Updated schedule [bold]{schedule_id}[/bold]")


@schedule_app.command("delete")
def delete_schedule(schedule_id: str = typer.Argument(..., help="Schedule id")):
    """Soft-delete a schedule."""
    _api("DELETE", f"/schedules/{schedule_id}")
    console.print(f"[green]✓[/green] Deleted schedule [bold]{schedule_id}[/bold]")


# ─── Workflow Commands ───


@workflow_app.command("create")
def create_workflow(
    name: str = typer.Argument(..., help="Workflow name"),
    owner: str = typer.Option(..., "--owner", "-o", help="Owning workspace id"),
):
    """Register a workflow."""
    result = _api("POST", "/workflows", json={"owner_id": owner, "name": name})
    console.print(f"[green]✓[/green] Created workflow [bold]{result['id']}[/bold] ({name})")


@workflow_app.command("delete")
def delete_workflow(workflow_id: str = typer.Argument(..., help="Workflow id")):
    """Soft-delete a workflow and the schedules only it uses."""
    _api("DELETE", f"/workflows/{workflow_id}")
    console.print(f"[green]✓[/green] Deleted workflow [bold]{workflow_id}[/bold]")


@workflow_app.command("link")
def link_schedules(
    workflow_id: str = typer.Argument(..., help="Workflow id"),
    schedule_ids: Optional[List[str]] = typer.Argument(None, help="Schedule ids (replaces the current set)"),
):
    """Replace the set of schedules that trigger a workflow."""
    result = _api("PUT", f"/workflows/{workflow_id}/schedules", json={"schedule_ids": schedule_ids or []})
    console.print(
        f"[green]✓[/green] Workflow [bold]{workflow_id}[/bold] linked to {len(result['schedule_ids'])} schedule(s)"
    )


@workflow_app.command("links")
def list_links(workflow_id: str = typer.Argument(..., help="Workflow id")):
    """List the schedules linked to a workflow."""
    result = _api("GET", f"/workflows/{workflow_id}/schedules")
    if not result["schedule_ids"]:
        console.print("[dim]No linked schedules[/dim]")
        return
    for schedule_id in result["schedule_ids"]:
        console.print(schedule_id)


# ─── Queue Commands ───


@app.command()
def claim(batch: int = typer.Option(10, "--batch", "-b", min=1, help="Max items to claim")):
    """Claim due schedules now (JSON output)."""
    result = _api("POST", "/claims", json={"max_batch_size": batch})
    console.print_json(json.dumps(result, default=str))


@app.command()
def version():
    """Show Cadence version."""
    console.print(f"cadence v{__version__}")


@app.command()
def status():
    """Show daemon status."""
    with _client() as client:
        try:
            resp = client.get("/health")
            data = resp.json()
            console.print(f"[green]●[/green] Cadence daemon v{data['version']} — running")
            db = data.get("database") or {}
            console.print(f"  Database: {db.get('backend', '—')} (max {db.get('max_connections', '—')} connections)")
            poller = data.get("poller")
            if poller and poller.get("running"):
                console.print(
                    f"  Poller: every {poller['poll_interval']}s, "
                    f"{poller['claimed']} claimed, {poller['failures']} failed, next: {poller.get('next_run') or '—'}"
                )
            else:
                console.print("  Poller: stopped")
        except httpx.ConnectError:
            settings = get_client_settings()
            console.print(f"[red]●[/red] Daemon not running at {settings.host}")


if __name__ == "__main__":
    app()
