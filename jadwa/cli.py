"""Jadwa CLI.

Commands:
- init: Initialize database schema
- create-user: Add a client, consultant or admin account
- issue-token: Mint an access token for an existing user
- web serve: Run the API server
"""

from __future__ import annotations

import asyncio
from uuid import UUID

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy import select

from jadwa.config import get_config
from jadwa.core.identity import create_access_token
from jadwa.db.connection import close_db, get_session, init_db
from jadwa.db.models import UserModel
from jadwa.models import Role, UserStatus

app = typer.Typer(
    name="jadwa",
    help="Jadwa - consultation and study engagement engine",
    no_args_is_help=True,
)

web_cli = typer.Typer(help="Web API")
app.add_typer(web_cli, name="web")

console = Console()


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
        console.print("[green]Creating tables...[/green]")
        await init_db(drop=drop)
        await close_db()

    asyncio.run(_init())
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command(name="create-user")
def create_user_cmd(
    email: str = typer.Argument(..., help="Login email"),
    full_name: str = typer.Argument(..., help="Display name"),
    role: Role = typer.Option(Role.CLIENT, "--role", help="client, consultant or admin"),
    status: UserStatus = typer.Option(UserStatus.ACTIVE, "--status", help="active, pending or suspended"),
):
    """Create a user account."""

    async def _create() -> UserModel | None:
        try:
            async with get_session() as session:
                existing = await session.execute(select(UserModel).where(UserModel.email == email))
                if existing.scalars().first():
                    return None
                user = UserModel(
                    email=email,
                    full_name=full_name,
                    role=role.value,
                    status=status.value,
                )
                session.add(user)
                await session.flush()
            return user
        finally:
            await close_db()

    user = asyncio.run(_create())
    if user is None:
        console.print(f"[red]✗[/red] A user with email {email} already exists")
        raise typer.Exit(1)

    table = Table(title="User created")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("id", str(user.id))
    table.add_row("email", user.email)
    table.add_row("name", user.full_name)
    table.add_row("role", user.role)
    table.add_row("status", user.status)
    console.print(table)


@app.command(name="issue-token")
def issue_token_cmd(
    user_id: UUID = typer.Argument(..., help="User id"),
    minutes: int | None = typer.Option(None, "--minutes", help="Token lifetime (default from config)"),
):
    """Issue a bearer token for a user (development and support use)."""

    async def _load() -> UserModel | None:
        try:
            async with get_session() as session:
                return await session.get(UserModel, user_id)
        finally:
            await close_db()

    user = asyncio.run(_load())
    if user is None:
        console.print(f"[red]✗[/red] User {user_id} not found")
        raise typer.Exit(1)

    token = create_access_token(user.id, user.role, expires_minutes=minutes)
    console.print(f"[bold]{user.full_name}[/bold] ({user.role})")
    console.print(token, soft_wrap=True)


@web_cli.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port"),
    reload: bool = typer.Option(False, "--reload"),
):
    """Run the API (HTTP + WebSocket relay) with uvicorn."""
    import uvicorn

    console.print(f"[bold]Serving Jadwa API on[/bold] http://{host}:{port}")
    uvicorn.run("jadwa.web.app:create_app", factory=True, host=host, port=port, reload=reload, workers=1)


if __name__ == "__main__":
    app()
