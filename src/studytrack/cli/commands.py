"""CLI commands for the study tracker.

Commands:
- add-subject / add-chapter / add-section / add-sub-exercise: build the tree
- generate / reset: (re)create a section's question list
- toggle: mark a question done or pending
- delete-chapter: remove a chapter
- show / dashboard: inspect progress
- serve: run the Web API

Every command binds a SyncController to --user, applies its mutation and
waits for the document write before exiting.
"""

import asyncio
from typing import Callable, TypeVar

import typer
from rich.console import Console
from rich.table import Table
from rich.tree import Tree as RichTree

from studytrack.config.app_config import load_app_config
from studytrack.core.hierarchy import (
    Chapter,
    ExerciseSection,
    Question,
    Section,
    Subject,
    Tree,
    find_chapter,
    find_subject,
)
from studytrack.core.progress import (
    dashboard_summary,
    question_list_progress,
    section_progress,
)
from studytrack.sync.controller import Identity, SyncController
from studytrack.sync.store import build_store
from studytrack.utils.validators import (
    AmbiguousReferenceError,
    ReferenceNotFoundError,
    normalize_question_ref,
    resolve_reference,
)

T = TypeVar("T")

app = typer.Typer(
    name="track",
    help="Study progress tracker for subjects, chapters and questions.",
    no_args_is_help=True,
)

console = Console()


# =============================================================================
# HELPERS
# =============================================================================


def _run(user: str | None, action: Callable[[SyncController], T]) -> T:
    """Run an action against a controller bound to the user, then flush writes."""
    config = load_app_config()
    user_id = user or config.tracker.default_user_id

    async def runner() -> T:
        controller = SyncController(build_store(config), config.app_id)
        controller.start(Identity(id=user_id))
        try:
            result = action(controller)
            await controller.flush()
            return result
        finally:
            controller.stop()

    return asyncio.run(runner())


def _resolve_or_exit(ref: str, candidates: list[tuple[str, str]], kind: str) -> str:
    """Resolve a reference to an id, or exit with a helpful error."""
    try:
        return resolve_reference(ref, candidates, kind)
    except ReferenceNotFoundError as e:
        console.print(f"[red]✗ {e}[/red]")
        if candidates:
            console.print(f"\nAvailable {kind}s:")
            for entity_id, name in candidates:
                console.print(f"  - {name} [dim]({entity_id[:8]})[/dim]")
        raise typer.Exit(code=1)
    except AmbiguousReferenceError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)


def _subject_or_exit(tree: Tree, ref: str) -> Subject:
    subject_id = _resolve_or_exit(ref, [(s.id, s.name) for s in tree], "subject")
    return find_subject(tree, subject_id)


def _chapter_or_exit(tree: Tree, subject_ref: str, chapter_ref: str) -> tuple[Subject, Chapter]:
    subject = _subject_or_exit(tree, subject_ref)
    chapter_id = _resolve_or_exit(
        chapter_ref, [(c.id, c.name) for c in subject.chapters], "chapter"
    )
    return subject, find_chapter(tree, subject.id, chapter_id)


def _section_or_exit(
    tree: Tree, subject_ref: str, chapter_ref: str, section_ref: str
) -> tuple[Subject, Chapter, Section]:
    subject, chapter = _chapter_or_exit(tree, subject_ref, chapter_ref)
    section_id = _resolve_or_exit(
        section_ref, [(s.id, s.label) for s in chapter.sections.values()], "section"
    )
    return subject, chapter, chapter.sections[section_id]


def _render_questions(questions: tuple[Question, ...]) -> str:
    if not questions:
        return "[dim]no questions[/dim]"
    marks = "".join("[green]■[/green]" if q.completed else "[dim]□[/dim]" for q in questions)
    done = sum(1 for q in questions if q.completed)
    return f"{marks} {done}/{len(questions)}"


def _render_chapter(node: RichTree, chapter: Chapter) -> None:
    branch = node.add(
        f"[bold]{chapter.name}[/bold] [cyan]{chapter.progress}%[/cyan] [dim]({chapter.id[:8]})[/dim]"
    )
    for section in chapter.sections.values():
        label = (
            f"{section.label} [dim]{section.kind}[/dim] "
            f"[cyan]{section_progress(section)}%[/cyan] [dim]({section.id[:8]})[/dim]"
        )
        if isinstance(section, ExerciseSection):
            sec_node = branch.add(label)
            if not section.sub_exercises:
                sec_node.add("[dim]no sub-exercises[/dim]")
            for sub in section.sub_exercises.values():
                sec_node.add(
                    f"{sub.name} [cyan]{question_list_progress(sub.questions)}%[/cyan] "
                    f"[dim]({sub.id[:8]})[/dim] {_render_questions(sub.questions)}"
                )
        else:
            branch.add(f"{label} {_render_questions(section.questions)}")


def _print_subject(subject: Subject) -> None:
    root = RichTree(f"[bold magenta]{subject.name}[/bold magenta] [dim]({subject.id[:8]})[/dim]")
    if not subject.chapters:
        root.add("[dim]no chapters[/dim]")
    for chapter in subject.chapters:
        _render_chapter(root, chapter)
    console.print(root)


# =============================================================================
# TREE COMMANDS
# =============================================================================


@app.command(name="add-subject")
def add_subject(
    name: str = typer.Argument(..., help="Subject name (e.g., 'Mathematics')"),
    user: str | None = typer.Option(None, "--user", "-u", help="User id (default: from config)"),
) -> None:
    """Create a new subject."""
    if not name.strip():
        console.print("[red]✗ Subject name cannot be empty[/red]")
        raise typer.Exit(code=1)

    tree = _run(user, lambda c: c.add_subject(name))
    console.print(f"[green]✓ Subject created:[/green] {name} [dim]({tree[-1].id[:8]})[/dim]")


@app.command(name="add-chapter")
def add_chapter(
    subject: str = typer.Argument(..., help="Subject name or id prefix"),
    name: str = typer.Argument(..., help="Chapter name"),
    section: list[str] = typer.Option(
        None, "--section", "-s", help="Section kind (repeatable; default from config)"
    ),
    user: str | None = typer.Option(None, "--user", "-u", help="User id (default: from config)"),
) -> None:
    """Add a chapter with one empty section per kind."""
    kinds = section or load_app_config().tracker.default_section_kinds

    def action(controller: SyncController) -> Chapter:
        target = _subject_or_exit(controller.tree, subject)
        tree = controller.add_chapter(target.id, name, kinds)
        return find_subject(tree, target.id).chapters[-1]

    chapter = _run(user, action)
    console.print(
        f"[green]✓ Chapter created:[/green] {chapter.name} [dim]({chapter.id[:8]})[/dim] "
        f"sections: {', '.join(kinds) or 'none'}"
    )


@app.command(name="add-section")
def add_section(
    subject: str = typer.Argument(..., help="Subject name or id prefix"),
    chapter: str = typer.Argument(..., help="Chapter name or id prefix"),
    label: str = typer.Argument(..., help="Section label"),
    user: str | None = typer.Option(None, "--user", "-u", help="User id (default: from config)"),
) -> None:
    """Add a custom section to a chapter."""
    label = label.upper()

    def action(controller: SyncController) -> None:
        s, c = _chapter_or_exit(controller.tree, subject, chapter)
        controller.add_generic_section(s.id, c.id, label)

    _run(user, action)
    console.print(f"[green]✓ Section added:[/green] {label}")


@app.command(name="add-sub-exercise")
def add_sub_exercise(
    subject: str = typer.Argument(..., help="Subject name or id prefix"),
    chapter: str = typer.Argument(..., help="Chapter name or id prefix"),
    section: str = typer.Argument(..., help="Exercise section label or id prefix"),
    name: str = typer.Argument(..., help="Sub-exercise name (e.g., 'Set A')"),
    count: int = typer.Argument(..., min=0, help="Number of questions"),
    user: str | None = typer.Option(None, "--user", "-u", help="User id (default: from config)"),
) -> None:
    """Add a sub-exercise with COUNT questions to an exercise section."""

    def action(controller: SyncController) -> int:
        s, c, sec = _section_or_exit(controller.tree, subject, chapter, section)
        if not isinstance(sec, ExerciseSection):
            console.print(f"[red]✗ Section '{sec.label}' is not an exercise section[/red]")
            raise typer.Exit(code=1)
        tree = controller.add_sub_exercise(s.id, c.id, sec.id, name, count)
        return find_chapter(tree, s.id, c.id).progress

    progress = _run(user, action)
    console.print(f"[green]✓ Sub-exercise added:[/green] {name} ({count} questions)")
    console.print(f"  [dim]chapter progress:[/dim] {progress}%")


@app.command()
def generate(
    subject: str = typer.Argument(..., help="Subject name or id prefix"),
    chapter: str = typer.Argument(..., help="Chapter name or id prefix"),
    section: str = typer.Argument(..., help="Section label or id prefix"),
    count: int = typer.Argument(..., min=0, help="Number of questions"),
    user: str | None = typer.Option(None, "--user", "-u", help="User id (default: from config)"),
) -> None:
    """Replace a section's questions with COUNT fresh ones.

    Existing completion state for the section is discarded.
    """

    def action(controller: SyncController) -> int:
        s, c, sec = _section_or_exit(controller.tree, subject, chapter, section)
        if isinstance(sec, ExerciseSection):
            console.print(
                f"[red]✗ Section '{sec.label}' holds sub-exercises; "
                "use add-sub-exercise instead[/red]"
            )
            raise typer.Exit(code=1)
        tree = controller.generate_questions(s.id, c.id, sec.id, count)
        return find_chapter(tree, s.id, c.id).progress

    progress = _run(user, action)
    console.print(f"[green]✓ {count} questions generated[/green]")
    console.print(f"  [dim]chapter progress:[/dim] {progress}%")


@app.command()
def reset(
    subject: str = typer.Argument(..., help="Subject name or id prefix"),
    chapter: str = typer.Argument(..., help="Chapter name or id prefix"),
    section: str = typer.Argument(..., help="Section label or id prefix"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    user: str | None = typer.Option(None, "--user", "-u", help="User id (default: from config)"),
) -> None:
    """Remove every question of a section."""
    if not yes:
        confirm = typer.confirm("Reset section? Its questions and completion marks are lost")
        if not confirm:
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(code=0)

    def action(controller: SyncController) -> None:
        s, c, sec = _section_or_exit(controller.tree, subject, chapter, section)
        controller.generate_questions(s.id, c.id, sec.id, 0)

    _run(user, action)
    console.print("[green]✓ Section reset[/green]")


@app.command()
def toggle(
    subject: str = typer.Argument(..., help="Subject name or id prefix"),
    chapter: str = typer.Argument(..., help="Chapter name or id prefix"),
    section: str = typer.Argument(..., help="Section label or id prefix"),
    question: str = typer.Argument(..., help="Question number or id (e.g., 3 or q-3)"),
    sub: str | None = typer.Option(
        None, "--sub", help="Sub-exercise name or id prefix (exercise sections)"
    ),
    user: str | None = typer.Option(None, "--user", "-u", help="User id (default: from config)"),
) -> None:
    """Mark a question done, or pending again."""
    question_id = normalize_question_ref(question)

    def action(controller: SyncController) -> tuple[bool, int]:
        s, c, sec = _section_or_exit(controller.tree, subject, chapter, section)

        sub_id = None
        if isinstance(sec, ExerciseSection):
            if sub is None:
                console.print("[red]✗ Exercise sections need --sub[/red]")
                raise typer.Exit(code=1)
            sub_id = _resolve_or_exit(
                sub, [(x.id, x.name) for x in sec.sub_exercises.values()], "sub-exercise"
            )
            questions = sec.sub_exercises[sub_id].questions
        else:
            questions = sec.questions

        if not any(q.id == question_id for q in questions):
            console.print(f"[red]✗ Question '{question}' not found[/red]")
            raise typer.Exit(code=1)

        tree = controller.toggle_question(s.id, c.id, sec.id, question_id, sub_id)
        updated = find_chapter(tree, s.id, c.id)
        target = updated.sections[sec.id]
        if isinstance(target, ExerciseSection):
            questions = target.sub_exercises[sub_id].questions
        else:
            questions = target.questions
        completed = next(q.completed for q in questions if q.id == question_id)
        return completed, updated.progress

    completed, progress = _run(user, action)
    state = "[green]done[/green]" if completed else "[yellow]pending[/yellow]"
    console.print(f"✓ {question_id} {state}")
    console.print(f"  [dim]chapter progress:[/dim] {progress}%")


@app.command(name="delete-chapter")
def delete_chapter(
    subject: str = typer.Argument(..., help="Subject name or id prefix"),
    chapter: str = typer.Argument(..., help="Chapter name or id prefix"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    user: str | None = typer.Option(None, "--user", "-u", help="User id (default: from config)"),
) -> None:
    """Delete a chapter with all its sections and questions."""
    if not yes:
        confirm = typer.confirm(f"Delete chapter '{chapter}'?")
        if not confirm:
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(code=0)

    def action(controller: SyncController) -> str:
        s, c = _chapter_or_exit(controller.tree, subject, chapter)
        controller.delete_chapter(s.id, c.id)
        return c.name

    name = _run(user, action)
    console.print(f"[green]✓ Chapter deleted:[/green] {name}")


# =============================================================================
# VIEW COMMANDS
# =============================================================================


@app.command()
def show(
    subject: str | None = typer.Argument(None, help="Subject name or id prefix (default: all)"),
    user: str | None = typer.Option(None, "--user", "-u", help="User id (default: from config)"),
) -> None:
    """Show the progress tree."""
    tree = _run(user, lambda c: c.tree)

    if not tree:
        console.print("[yellow]No subjects yet[/yellow]")
        console.print("  Use: track add-subject <name>")
        return

    if subject is not None:
        _print_subject(_subject_or_exit(tree, subject))
        return

    for s in tree:
        _print_subject(s)


@app.command()
def dashboard(
    user: str | None = typer.Option(None, "--user", "-u", help="User id (default: from config)"),
) -> None:
    """Overall progress and chapters in progress."""
    config = load_app_config()
    tree = _run(user, lambda c: c.tree)
    summary = dashboard_summary(tree, recent_limit=config.tracker.recent_limit)

    console.print(f"\n[bold]Overall progress:[/bold] [cyan]{summary.global_progress}%[/cyan]")
    console.print(
        f"  [dim]subjects:[/dim] {summary.subject_count}  "
        f"[dim]chapters:[/dim] {summary.chapter_count}\n"
    )

    if not summary.in_progress:
        console.print("[dim]No units in progress[/dim]")
        return

    table = Table(title="In progress")
    table.add_column("Subject")
    table.add_column("Chapter")
    table.add_column("Progress", justify="right")
    for ref in summary.in_progress:
        table.add_row(ref.subject_name, ref.chapter_name, f"{ref.progress}%")
    console.print(table)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", help="Bind port"),
) -> None:
    """Run the Web API."""
    import uvicorn

    console.print(f"[green]Serving on http://{host}:{port}[/green]")
    uvicorn.run("studytrack.web.api:app", host=host, port=port)


def main() -> None:
    """Console script entry point."""
    app()
