"""CLI commands for SpeakUp.

Commands:
- init-db: Create the SQLite schema
- seed: Write the built-in A1 catalog
- progress: Show a learner's dashboard summary
- practice: Interactive practice session in the terminal
- serve: Run the Web API
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from speakup.config.app_config import load_app_config
from speakup.core.engine import AnswerCorrect, AnswerIdle, AnswerWrong, ProgressEngine
from speakup.core.errors import PersistenceFailureError, SubscriptionFailureError
from speakup.core.models import UserProgress
from speakup.core.projection import SessionProjection, project
from speakup.core.seed import SEED_EXERCISES
from speakup.db.database import init_db as do_init_db
from speakup.store import ContentStore, SqliteContentStore, create_store

app = typer.Typer(
    name="speakup",
    help="Language practice sessions with XP and level progression.",
    no_args_is_help=True,
)

console = Console()

DB_OPTION_HELP = "Ruta a la base de datos SQLite (override de config)"


def _open_store(db: Path | None) -> ContentStore:
    """Open the store given on the command line, or the configured one."""
    if db is not None:
        return SqliteContentStore(db)
    return create_store(load_app_config().store)


def _print_summary(user_id: str, summary: SessionProjection) -> None:
    table = Table(title=f"Progreso de {user_id}", show_header=False)
    table.add_row("Nivel", f"{summary.level_label} (tier {summary.level_tier})")
    table.add_row("XP", str(summary.xp_points))
    table.add_row(
        "Ejercicios completados",
        f"{summary.completed_count}/{summary.total_exercises_in_level}",
    )
    table.add_row("Progreso del nivel", f"{summary.level_progress_ratio:.0%}")
    table.add_row("Minutos de práctica", str(summary.completed_minutes))
    console.print(table)


# =============================================================================
# SETUP COMMANDS
# =============================================================================


@app.command(name="init-db")
def init_db(
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """Create the SQLite schema if it does not exist."""
    path = do_init_db(db or Path(load_app_config().store.db_path))
    console.print(f"[green]✓ Base de datos lista:[/green] {path}")


@app.command()
def seed(
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """Write the built-in A1 exercises to the catalog."""
    store = _open_store(db)
    try:
        asyncio.run(store.batch_write_exercises(SEED_EXERCISES))
    except PersistenceFailureError as e:
        console.print(f"[red]✗ Seed falló: {e.reason}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ {len(SEED_EXERCISES)} ejercicios escritos[/green]")


@app.command()
def progress(
    user_id: str = typer.Argument(..., help="ID del usuario"),
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """Show a learner's level, XP and level progress."""
    store = _open_store(db)

    async def _load() -> SessionProjection:
        current = await store.get_user_progress(user_id) or UserProgress(user_id=user_id)
        exercises = await store.get_exercises(current.level_label)
        return project(current, len(exercises))

    try:
        summary = asyncio.run(_load())
    except SubscriptionFailureError as e:
        console.print(f"[red]✗ Error al cargar progreso: {e.reason}[/red]")
        raise typer.Exit(code=1)

    _print_summary(user_id, summary)


# =============================================================================
# PRACTICE
# =============================================================================


async def _ask(text: str, default: str | None = None) -> str:
    """Prompt without blocking the event loop, so store pushes keep flowing."""
    return await asyncio.to_thread(typer.prompt, text, default=default, show_default=False)


async def _practice(user_id: str, store: ContentStore) -> int:
    config = load_app_config()
    engine = ProgressEngine(
        store,
        xp_per_correct=config.progression.xp_per_correct,
        level_up_threshold=config.progression.level_up_threshold,
    )

    try:
        await engine.load_for_user(user_id)
        await engine.wait_until_loaded(config.api.load_timeout_seconds)
        state = engine.state

        if state.error_message:
            console.print(f"[red]✗ {state.error_message}[/red]")
            return 1

        if state.total_exercises_in_level == 0:
            console.print(
                f"[yellow]⚠ No hay ejercicios para el nivel {state.user_progress.level_label}.[/yellow]\n"
                "  Ejecuta: speakup seed"
            )
            return 0

        while not state.is_finished:
            exercise = state.current_exercise
            if exercise is None:
                break

            console.print(
                f"\n[bold]{exercise.prompt}[/bold] [dim]({exercise.level}, {exercise.kind.value})[/dim]"
            )
            for number, option in enumerate(exercise.options, start=1):
                console.print(f"  {number}. {option}")

            raw = (await _ask("Tu respuesta (número, q para salir)")).strip().lower()
            if raw == "q":
                break
            if not raw.isdigit() or int(raw) < 1:
                console.print("[yellow]Introduce el número de una opción.[/yellow]")
                continue

            engine.submit_answer(int(raw) - 1)
            answer = state.answer_state
            if isinstance(answer, AnswerCorrect):
                console.print(f"[green]✓ ¡Correcto! +{engine.xp_per_correct} XP[/green]")
                console.print(f"  [dim]{answer.explanation}[/dim]")
            elif isinstance(answer, AnswerWrong):
                console.print("[red]✗ Incorrecto[/red]")
                console.print(f"  [dim]{answer.explanation}[/dim]")

            if state.error_message:
                console.print(f"[yellow]⚠ {state.error_message}[/yellow]")
                engine.clear_error()

            raw = (await _ask("Enter para continuar, q para salir", default="")).strip().lower()
            if raw == "q":
                break

            # A confirmed write reloads the catalog and already moved on
            if not isinstance(state.answer_state, AnswerIdle):
                engine.advance()

        if state.is_finished:
            console.print("\n[green]✓ ¡Has completado todos los ejercicios pendientes![/green]")

        await engine.flush()
        _print_summary(user_id, state.projection)
        return 0
    finally:
        await engine.close()


@app.command()
def practice(
    user_id: str = typer.Argument(..., help="ID del usuario"),
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """Practice the pending exercises of the learner's current level."""
    store = _open_store(db)
    code = asyncio.run(_practice(user_id, store))
    if code:
        raise typer.Exit(code=code)


# =============================================================================
# WEB API
# =============================================================================


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Host (override de config)"),
    port: int | None = typer.Option(None, "--port", help="Puerto (override de config)"),
) -> None:
    """Run the Web API with uvicorn."""
    import uvicorn

    config = load_app_config()
    uvicorn.run(
        "speakup.web.api:app",
        host=host or config.api.host,
        port=port or config.api.port,
    )


if __name__ == "__main__":
    app()
