"""Task Tree CLI - command-line interface for the task repository."""

import re
from collections.abc import Iterator
from contextlib import contextmanager

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from tasktree.core.config import settings
from tasktree.core.errors import TaskTreeError
from tasktree.core.logging import setup_logging
from tasktree.models import Task, TaskCreate, TaskPatch, TaskStatus
from tasktree.services import TaskNode, TaskRepository
from tasktree.storage import create_storage
from tasktree.storage.patch import FilePatch, apply_patches, find

app = typer.Typer(help="Task Tree CLI")
task_app = typer.Typer(help="Task management commands")
file_app = typer.Typer(help="Raw file search and patch commands")
app.add_typer(task_app, name="task")
app.add_typer(file_app, name="file")

console = Console()


@app.callback()
def main():
    """Configure logging before running a command."""
    setup_logging(settings.log_level)


def get_repository() -> TaskRepository:
    """Build a repository on the configured storage backend."""
    return TaskRepository(create_storage(settings))


@contextmanager
def report_errors() -> Iterator[None]:
    """Turn task tree errors into a one line message and exit code 1."""
    try:
        yield
    except TaskTreeError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(1) from e


def print_task(task: Task) -> None:
    console.print(f"[bold]Task {task.id}[/bold]")
    console.print(f"  Title: {escape(task.title)}")
    console.print(f"  Status: {task.status.value}")
    if task.parent_id:
        console.print(f"  Parent: [dim]{task.parent_id}[/dim]")
    console.print(f"  Role: {escape(task.role)}")
    console.print(f"  Created: {task.created_at.isoformat()}")
    console.print(f"  Updated: {task.updated_at.isoformat()}")
    console.print(f"\n[bold]Summary:[/bold]\n{escape(task.summary)}")
    console.print(f"\n[bold]Description:[/bold]\n{escape(task.description)}")
    console.print(f"\n[bold]Prompt:[/bold]\n{escape(task.prompt)}")
    if task.contexts:
        console.print("\n[bold]Contexts:[/bold]")
        for context in task.contexts:
            console.print(f"  - {escape(context)}")


def compile_pattern(pattern: str, regex: bool, flags: int = 0) -> str | re.Pattern[str]:
    """Compile the pattern when --regex is given."""
    if not regex:
        return pattern
    try:
        return re.compile(pattern, flags)
    except re.error as e:
        console.print(f"[red]✗[/red] Invalid regular expression: {escape(str(e))}")
        raise typer.Exit(1) from e


@task_app.command("add")
def add_task(
    title: str = typer.Argument(..., help="Short title of the task"),
    summary: str = typer.Option("", "--summary", "-s", help="One line summary"),
    description: str = typer.Option("", "--description", "-d", help="Full description"),
    prompt: str = typer.Option("", "--prompt", "-p", help="Prompt for the agent"),
    role: str = typer.Option("", "--role", "-r", help="Responsible role, e.g. agent"),
    parent: str = typer.Option(None, "--parent", help="Parent task ID"),
    context: list[str] = typer.Option(None, "--context", "-c", help="Related file or URL"),
):
    """Create a new task."""
    with report_errors():
        task_id = get_repository().create(
            TaskCreate(
                title=title,
                summary=summary,
                description=description,
                prompt=prompt,
                role=role,
                parent_id=parent,
                contexts=list(context or []),
            )
        )

    console.print(f"[green]✓[/green] Task created: [bold]{task_id}[/bold]")
    if parent:
        console.print(f"  Parent: [dim]{parent}[/dim]")


@task_app.command("update")
def update_task(
    task_id: str = typer.Argument(..., help="Task ID"),
    title: str = typer.Option(None, "--title", help="New title"),
    summary: str = typer.Option(None, "--summary", "-s", help="New summary"),
    description: str = typer.Option(None, "--description", "-d", help="New description"),
    prompt: str = typer.Option(None, "--prompt", "-p", help="New prompt"),
    role: str = typer.Option(None, "--role", "-r", help="New role"),
    parent: str = typer.Option(None, "--parent", help="New parent task ID"),
    detach: bool = typer.Option(False, "--detach", help="Make the task top-level"),
    status: TaskStatus = typer.Option(None, "--status", help="New status"),
):
    """Update fields of a task."""
    if parent and detach:
        console.print("[red]✗[/red] Use either --parent or --detach, not both")
        raise typer.Exit(1)

    fields = {
        "title": title,
        "summary": summary,
        "description": description,
        "prompt": prompt,
        "role": role,
        "status": status,
    }
    values = {k: v for k, v in fields.items() if v is not None}
    if parent:
        values["parent_id"] = parent
    elif detach:
        values["parent_id"] = None
    patch = TaskPatch(**values)

    with report_errors():
        get_repository().update(task_id, patch)

    console.print(f"[green]✓[/green] Task updated: [bold]{task_id}[/bold]")


@task_app.command("complete")
def complete_task(task_id: str = typer.Argument(..., help="Task ID")):
    """Mark a task as done."""
    with report_errors():
        get_repository().complete(task_id)

    console.print(f"[green]✓[/green] Task completed: [bold]{task_id}[/bold]")


@task_app.command("remove")
def remove_task(
    task_id: str = typer.Argument(..., help="Task ID"),
    cascade: bool = typer.Option(False, "--cascade", help="Also remove all subtasks"),
):
    """Remove a task."""
    with report_errors():
        get_repository().remove(task_id, cascade=cascade)

    console.print(f"[green]✓[/green] Task removed: [bold]{task_id}[/bold]")


@task_app.command("list")
def list_tasks(
    parent: str = typer.Option(None, "--parent", help="List subtasks of this task"),
):
    """List pending tasks."""
    with report_errors():
        tasks = get_repository().list(parent)

    if not tasks:
        console.print("[yellow]No tasks found[/yellow]")
        return

    table = Table(title=f"Tasks ({len(tasks)})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Role", style="magenta")
    table.add_column("Created", style="dim")

    for task in tasks:
        table.add_row(
            task.id,
            escape(task.title),
            escape(task.role),
            task.created_at.date().isoformat(),
        )

    console.print(table)


@task_app.command("tree")
def show_tree():
    """Show pending tasks as a tree."""
    with report_errors():
        nodes = get_repository().get_tree()

    if not nodes:
        console.print("[yellow]No tasks found[/yellow]")
        return

    def add_nodes(branch: Tree, children: list[TaskNode]) -> None:
        for node in children:
            label = f"{escape(node.task.title)} [dim]{node.task.id}[/dim]"
            add_nodes(branch.add(label), node.children)

    root = Tree("[bold]Tasks[/bold]")
    add_nodes(root, nodes)
    console.print(root)


@task_app.command("first")
def first_task(
    parent: str = typer.Option(None, "--parent", help="Look among subtasks of this task"),
):
    """Show the first pending task."""
    with report_errors():
        task = get_repository().first_task(parent)

    if task is None:
        console.print("[yellow]No tasks found[/yellow]")
        return

    print_task(task)


@task_app.command("show")
def show_task(task_id: str = typer.Argument(..., help="Task ID")):
    """Show task details."""
    with report_errors():
        task = get_repository().find(task_id)

    if task is None:
        console.print(f"[red]✗[/red] Task not found: {escape(task_id)}")
        raise typer.Exit(1)

    print_task(task)


@file_app.command("find")
def find_in_file(
    path: str = typer.Argument(..., help="File to search"),
    pattern: str = typer.Argument(..., help="Text (or regular expression) to find"),
    regex: bool = typer.Option(False, "--regex", help="Treat the pattern as a regex"),
):
    """Print the first line (or regex match) containing the pattern."""
    with report_errors():
        match = find(path, compile_pattern(pattern, regex))

    if not match:
        console.print(f"[yellow]Not found:[/yellow] {escape(pattern)}")
        raise typer.Exit(1)

    console.print(escape(match))


@file_app.command("patch")
def patch_file(
    path: str = typer.Argument(..., help="File to edit"),
    original_text: str = typer.Argument(..., help="Text to replace"),
    edited_text: str = typer.Argument(..., help="Replacement text"),
    regex: bool = typer.Option(False, "--regex", help="Treat original text as a regex"),
):
    """Replace text in a file, appending the edited text if nothing matches."""
    pattern = compile_pattern(original_text, regex, re.MULTILINE)
    result = apply_patches([FilePatch(path, pattern, edited_text)])[0]

    if result.err is not None:
        console.print(f"[red]✗[/red] {escape(str(result.err))}")
        raise typer.Exit(1)

    if result.appended:
        console.print(f"[green]✓[/green] Appended to {escape(path)}")
    elif result.changed:
        console.print(f"[green]✓[/green] Updated {escape(path)}")
    else:
        console.print("[yellow]No changes made[/yellow]")


if __name__ == "__main__":
    app()
