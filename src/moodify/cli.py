"""
CLI entrypoint for Moodify.

Commands:
- recommend: resolve a mood into tracks and print a styled table.
- moods: list the supported moods and their seed genres.
- serve: run the FastAPI service.
"""

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
import uvicorn

from .moods import MOOD_PROFILES, UnknownMoodError
from .resolver import build_resolver
from .spotify import SpotifyError


app = typer.Typer(help="Moodify – mood-based music recommendations from Spotify.")


def _duration(seconds: int) -> str:
    return f"{seconds // 60}:{seconds % 60:02d}"


@app.command("recommend")
def recommend(
    mood: str = typer.Argument(..., help="Mood label, e.g. 'happy' or 'focus'"),
    limit: int = typer.Option(
        10,
        "--limit",
        "-n",
        min=1,
        max=50,
        help="Number of tracks (1–50).",
    ),
    token: Optional[str] = typer.Option(
        None,
        "--token",
        help="Spotify user access token; uses the recommendations endpoint when given.",
    ),
    save: bool = typer.Option(True, "--save/--no-save", help="Store returned tracks locally."),
) -> None:
    """
    Resolve a mood into tracks and render a table.
    """
    console = Console()
    resolver = build_resolver()
    try:
        with console.status(f"[bold cyan]Finding {mood} music...[/bold cyan]"):
            try:
                tracks = resolver.recommend(mood, limit=limit, user_token=token)
            except UnknownMoodError as exc:
                console.print(f"[bold red]{exc}[/bold red]")
                raise typer.Exit(1)
            except SpotifyError as exc:
                console.print(f"[bold red]Spotify error:[/bold red] {exc}")
                raise typer.Exit(1)

        if not tracks:
            console.print("[bold yellow]No tracks found for that mood.[/bold yellow]")
            raise typer.Exit(0)

        table = Table(title=f"Moodify – {mood.strip().lower()}", show_lines=False)
        table.add_column("#", justify="right", style="cyan", no_wrap=True)
        table.add_column("Track", style="bold")
        table.add_column("Artist", style="magenta")
        table.add_column("Album")
        table.add_column("Time", justify="right")
        table.add_column("Preview", justify="center")

        for idx, track in enumerate(tracks, start=1):
            table.add_row(
                str(idx),
                track.name,
                track.artist,
                track.album,
                _duration(track.duration),
                "[green]✓[/green]" if track.has_preview else "[dim]–[/dim]",
            )
        console.print(table)

        if save:
            outcome = resolver.persist(tracks)
            if outcome.ok:
                console.print(f"[dim]Stored {outcome.inserted} new tracks.[/dim]")
            else:
                console.print(f"[yellow]Could not store tracks:[/yellow] {outcome.error}")
    finally:
        resolver.close()


@app.command("moods")
def moods() -> None:
    """
    List the supported moods.
    """
    console = Console()
    table = Table(title="Supported moods")
    table.add_column("Mood", style="bold cyan")
    table.add_column("Seed genres", style="magenta")
    table.add_column("Search phrases", style="dim")
    for mood, profile in MOOD_PROFILES.items():
        table.add_row(mood.value, ", ".join(profile.seed_genres), "; ".join(profile.queries))
    console.print(table)


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind the Moodify API server to."),
    port: int = typer.Option(3001, help="Port to bind the Moodify API server to."),
    reload: bool = typer.Option(False, help="Enable auto-reload (development only)."),
) -> None:
    """
    Run the Moodify FastAPI service.

    Example:
        moodify serve --host 0.0.0.0 --port 3001
    """
    uvicorn.run(
        "moodify.api:app",
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    app()
