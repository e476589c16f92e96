"""LabBook CLI.

Commands:
- init: Initialize database schema
- create-user: Create a portal account
- verify-user: Activate a pending account and release its held bookings
- purge-drafts: Delete expired drafts
- complete-workspace: Complete bench-only bookings past their end date
- stats: Show booking statistics
- web serve: Run the API server
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import typer
from rich.console import Console
from rich.table import Table

from labbook.booking.repository import BookingRepository
from labbook.booking.service import BookingService
from labbook.config import get_config
from labbook.core.audit_logger import AuditLogger
from labbook.db.connection import close_db, get_session, get_session_factory, init_db
from labbook.db.models import UserModel
from labbook.db.unit_of_work import unit_of_work_factory
from labbook.db.users import UserRepository
from labbook.documents.storage import LocalFileStorage
from labbook.models import UserRole, UserStatus
from labbook.notifications.notifier import BookingNotifier
from labbook.samples.service import SampleService
from labbook.utils.clock import utcnow
from labbook.web.auth import hash_password

app = typer.Typer(
    name="labbook",
    help="LabBook - Lab service booking portal",
    no_args_is_help=True,
)

web_cli = typer.Typer(help="Web API")
app.add_typer(web_cli, name="web")

console = Console()


def _booking_service() -> BookingService:
    session_factory = get_session_factory()
    return BookingService(
        unit_of_work_factory(session_factory),
        AuditLogger(session_factory),
        BookingNotifier(session_factory),
    )


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")

    async def _init():
        if drop:
            console.print("[yellow]Dropping existing tables...[/yellow]")
        await init_db(drop=drop)
        await close_db()

    asyncio.run(_init())
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command(name="create-user")
def create_user(
    email: str = typer.Argument(..., help="Login email"),
    first_name: str = typer.Option(..., "--first-name"),
    last_name: str = typer.Option(..., "--last-name"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
    role: UserRole = typer.Option(UserRole.USER, "--role"),
    status: UserStatus = typer.Option(UserStatus.PENDING, "--status"),
    user_type: str = typer.Option("internal_member", "--user-type", help="Price list to apply"),
    organization: str | None = typer.Option(None, "--organization"),
):
    """Create a portal account with a bcrypt password hash."""

    async def _create():
        try:
            async with get_session() as session:
                if await UserRepository(session).get_by_email(email):
                    console.print(f"[red]✗[/red] {email} already exists")
                    raise typer.Exit(code=1)
                user = UserModel(
                    email=email.lower(),
                    first_name=first_name,
                    last_name=last_name,
                    password_hash=hash_password(password),
                    role=role.value,
                    status=status.value,
                    user_type=user_type,
                    organization_name=organization,
                )
                session.add(user)
                await session.flush()
                return user.id
        finally:
            await close_db()

    user_id = asyncio.run(_create())
    console.print(f"[bold green]✓[/bold green] Created {role.value} {email} ({user_id})")


@app.command(name="verify-user")
def verify_user(email: str = typer.Argument(..., help="Account email")):
    """Activate an account; its bookings awaiting verification go to review."""

    async def _verify():
        try:
            async with get_session() as session:
                user = await UserRepository(session).get_by_email(email)
            if user is None:
                console.print(f"[red]✗[/red] No account for {email}")
                raise typer.Exit(code=1)
            return await _booking_service().on_user_verified(None, user.id)
        finally:
            await close_db()

    released = asyncio.run(_verify())
    console.print(f"[bold green]✓[/bold green] {email} verified; {released} booking(s) released for review")


@app.command(name="purge-drafts")
def purge_drafts(
    days: int | None = typer.Option(None, "--days", help="Retention window (default from config)"),
):
    """Delete drafts not updated within the retention window."""
    ttl = days if days is not None else get_config().booking.draft_ttl_days
    cutoff = utcnow() - timedelta(days=ttl)
    console.print(f"[bold]Purging drafts idle since before:[/bold] {cutoff.isoformat()}")

    async def _purge():
        try:
            return await _booking_service().purge_expired_drafts(cutoff)
        finally:
            await close_db()

    deleted = asyncio.run(_purge())
    console.print(f"[bold green]✓[/bold green] Deleted {deleted} draft(s)")


@app.command(name="complete-workspace")
def complete_workspace():
    """Complete approved bench-only bookings whose end date has passed."""

    async def _complete():
        session_factory = get_session_factory()
        service = SampleService(
            unit_of_work_factory(session_factory),
            LocalFileStorage(get_config().storage.root),
            AuditLogger(session_factory),
            BookingNotifier(session_factory),
        )
        try:
            return await service.complete_finished_workspace_bookings()
        finally:
            await close_db()

    completed = asyncio.run(_complete())
    console.print(f"[bold green]✓[/bold green] Completed {completed} booking(s)")


@app.command()
def stats():
    """Show booking counts per status."""

    async def _stats():
        try:
            async with get_session() as session:
                return await BookingRepository(session).count_by_status()
        finally:
            await close_db()

    counts = asyncio.run(_stats())

    table = Table(title="Bookings")
    table.add_column("Status", style="cyan")
    table.add_column("Count", justify="right", style="green")
    for status_name, count in counts.items():
        table.add_row(status_name, str(count))
    console.print(table)


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8000, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the FastAPI booking API."""
    import uvicorn

    typer.echo(f"Starting LabBook API on http://{host}:{port}")
    uvicorn.run("labbook.web.app:app", host=host, port=port, reload=reload, workers=1)


if __name__ == "__main__":
    app()
