"""init command — interactive setup for a repository.

Writes .reviewtask.yml with the repository slug, the classifier and the
task store, and keeps the local task directory out of git.
"""

from __future__ import annotations

from pathlib import Path

import click
import yaml
from rich.console import Console

from reviewtask_cli.context import AppContext
from reviewtask_core.config import CLASSIFIERS, RETENTION_POLICIES, STORES
from reviewtask_core.utils.git import detect_repo_from_git

console = Console()


@click.command("init")
@click.option("--repo", default=None, help="GitHub repository (owner/name). Auto-detected from git remote.")
@click.pass_obj
def init_cmd(app: AppContext, repo: str | None):
    """Create or update the reviewtask configuration for this repository."""
    console.print("\n[bold cyan]reviewtask init[/bold cyan] — repository setup\n")

    if repo is None:
        repo = detect_repo_from_git()
        if repo:
            console.print(f"[dim]Detected repository: {repo}[/dim]")
        else:
            repo = click.prompt("GitHub repository (owner/name)")

    console.print("\nHow review comments become tasks:")
    console.print("  [bold]conservative[/bold] — one task per actionable thread (default)")
    console.print("  [bold]structured[/bold]   — one task per item when a comment is a list")
    console.print("  [bold]anthropic[/bold]    — let Claude split comments (needs ANTHROPIC_API_KEY)")
    console.print("  [bold]openai[/bold]       — let GPT split comments (needs OPENAI_API_KEY)")
    classifier = click.prompt("Classifier", type=click.Choice(CLASSIFIERS), default="conservative")

    console.print("\nWhere tasks are stored:")
    console.print("  [bold]json[/bold]   — one tasks.json per PR under .pr-review/ (default)")
    console.print("  [bold]sqlite[/bold] — a single SQLite database")
    store_type = click.prompt("Store backend", type=click.Choice(STORES), default="json")

    config: dict = {"repo": repo, "classifier": classifier, "store": store_type}
    if store_type == "sqlite":
        db_path = click.prompt("SQLite database path", default=".pr-review/reviewtask.db")
        config["store_path"] = db_path
        storage_dir = str(Path(db_path).parent)
    else:
        storage_dir = click.prompt("Task directory", default=".pr-review")
        config["storage_dir"] = storage_dir

    retention = click.prompt(
        "When a review comment disappears, cancel or delete its task?",
        type=click.Choice(RETENTION_POLICIES),
        default="cancel",
    )
    config["retention"] = retention

    config_path = Path(app.config_path)
    _write_config(config_path, config)
    console.print(f"[green]Wrote {config_path}[/green]")

    if storage_dir not in ("", ".") and click.confirm(f"\nAdd {storage_dir}/ to .gitignore?", default=True):
        if _add_to_gitignore(Path(".gitignore"), storage_dir):
            console.print(f"[green]Added {storage_dir}/ to .gitignore[/green]")

    console.print("\n[bold green]Setup complete![/bold green]")
    console.print("Fetch review tasks with: [bold]reviewtask fetch[/bold]")


def _write_config(path: Path, config: dict) -> None:
    """Write or update the config file, preserving any existing keys."""
    existing: dict = {}
    if path.exists():
        existing = yaml.safe_load(path.read_text()) or {}
    existing.update(config)
    path.write_text(yaml.dump(existing, default_flow_style=False, sort_keys=False))


def _add_to_gitignore(path: Path, directory: str) -> bool:
    """Append `directory/` to .gitignore unless an entry already covers it."""
    entry = directory.rstrip("/") + "/"
    lines = path.read_text().splitlines() if path.exists() else []
    if entry in lines or entry.rstrip("/") in lines:
        return False
    prefix = "\n" if lines and lines[-1] != "" else ""
    with path.open("a") as fh:
        fh.write(f"{prefix}{entry}\n")
    return True
