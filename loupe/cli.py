"""Command-line interface for Loupe.

Provides a thin wrapper around the episode engine for command-line usage.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from loupe.config.models import ViewerConfig
from loupe.core.exceptions import LoupeError
from loupe.episode.assembler import EpisodeAssembler

app = typer.Typer(
    name="loupe",
    help="Loupe - Episode viewer engine for robotics datasets",
    add_completion=False,
)
console = Console()


def _make_assembler(config: ViewerConfig) -> EpisodeAssembler:
    """Create the assembler used by every command."""
    return EpisodeAssembler(config=config)


def _load_config(config_path: Path | None, dataset_url: str | None) -> ViewerConfig:
    if config_path is not None:
        config = ViewerConfig.from_yaml(config_path)
    else:
        config = ViewerConfig.from_env()
    if dataset_url:
        config.dataset_url = dataset_url.rstrip("/")
    return config


ConfigOption = typer.Option(None, "--config", "-c", help="YAML config file")
DatasetUrlOption = typer.Option(None, "--dataset-url", help="Dataset host base URL")


@app.command("resolve")
def resolve_cmd(
    repo: str = typer.Argument(..., help="Dataset (org/name or hf://org/name)"),
    config_path: Path | None = ConfigOption,
    dataset_url: str | None = DatasetUrlOption,
) -> None:
    """Resolve a dataset's format version and show its summary.

    Examples:
        loupe resolve lerobot/pusht
        loupe resolve hf://lerobot/aloha_static_cups_open
    """
    assembler = _make_assembler(_load_config(config_path, dataset_url))

    try:
        with console.status(f"[bold green]Resolving {repo}..."):
            info = asyncio.run(assembler.dataset_info(repo))
    except (LoupeError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print()
    console.print(f"[bold]Dataset:[/bold] {info.repo_id}")
    console.print(f"[bold]Version:[/bold] {info.codebase_version}")
    console.print(f"[bold]Robot:[/bold] {info.robot_type or '-'}")
    console.print(f"[bold]Episodes:[/bold] {info.total_episodes}")
    console.print(f"[bold]Frames:[/bold] {info.total_frames}")
    console.print(f"[bold]FPS:[/bold] {info.fps:g}")
    console.print(f"[bold]Tasks:[/bold] {info.total_tasks}")

    if info.cameras:
        table = Table(title="Cameras")
        table.add_column("Name", style="cyan")
        table.add_column("Resolution")
        for camera in info.cameras:
            table.add_row(camera.name, f"{camera.width}x{camera.height}")
        console.print(table)


@app.command("episode")
def episode_cmd(
    repo: str = typer.Argument(..., help="Dataset (org/name or hf://org/name)"),
    index: int = typer.Argument(..., help="Episode index"),
    output: str = typer.Option("text", "--output", "-o", help="Output format: text, json"),
    config_path: Path | None = ConfigOption,
    dataset_url: str | None = DatasetUrlOption,
) -> None:
    """Assemble one episode and show its charts and videos.

    Examples:
        loupe episode lerobot/pusht 0
        loupe episode lerobot/pusht 3 --output json
    """
    assembler = _make_assembler(_load_config(config_path, dataset_url))

    try:
        with console.status(f"[bold green]Loading episode {index}..."):
            data = asyncio.run(assembler.assemble(repo, index))
    except (LoupeError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if output == "json":
        typer.echo(json.dumps(data.to_dict(), indent=2))
        return

    console.print()
    console.print(data.summary())

    groups = Table(title="Chart Groups")
    groups.add_column("Group", style="cyan")
    groups.add_column("Series")
    groups.add_column("Points", justify="right")
    for group in data.chart_data_groups:
        groups.add_row(group.name, ", ".join(group.keys), str(len(group.timestamps)))
    console.print(groups)

    if data.videos_info:
        videos = Table(title="Videos")
        videos.add_column("Camera", style="cyan")
        videos.add_column("Segment")
        videos.add_column("URL", overflow="fold")
        for video in data.videos_info:
            segment = (
                f"{video.segment_start:.2f}-{video.segment_end:.2f}s"
                if video.is_segmented
                else "[dim]full[/dim]"
            )
            videos.add_row(video.filename, segment, video.url)
        console.print(videos)

    for warning in data.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")


@app.command("stats")
def stats_cmd(
    repo: str = typer.Argument(..., help="Dataset (org/name or hf://org/name)"),
    config_path: Path | None = ConfigOption,
    dataset_url: str | None = DatasetUrlOption,
) -> None:
    """Show episode length statistics for a dataset."""
    from loupe.episode.stats import load_episode_length_stats

    assembler = _make_assembler(_load_config(config_path, dataset_url))

    try:
        with console.status("[bold green]Loading episode lengths..."):
            stats = asyncio.run(load_episode_length_stats(assembler, repo))
    except (LoupeError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if stats is None:
        console.print("[yellow]No episode lengths available for this dataset.[/yellow]")
        raise typer.Exit(1)

    console.print()
    console.print(f"[bold]Episodes:[/bold] {len(stats.all_lengths)}")
    console.print(f"[bold]Mean:[/bold] {stats.mean:.2f}s")
    console.print(f"[bold]Median:[/bold] {stats.median:.2f}s")
    console.print(f"[bold]Std:[/bold] {stats.std:.2f}s")

    table = Table(title="Shortest / Longest")
    table.add_column("Shortest", style="cyan")
    table.add_column("Longest", style="magenta")
    for i in range(max(len(stats.shortest), len(stats.longest))):
        short = stats.shortest[i] if i < len(stats.shortest) else None
        long = stats.longest[i] if i < len(stats.longest) else None
        table.add_row(
            f"#{short.episode_index} ({short.seconds:.2f}s)" if short else "",
            f"#{long.episode_index} ({long.seconds:.2f}s)" if long else "",
        )
    console.print(table)


@app.command("formats")
def formats_cmd() -> None:
    """List supported format versions."""
    from loupe.formats import LayoutRegistry

    table = Table(title="Supported Versions")
    table.add_column("Version", style="cyan")
    table.add_column("Layout")
    for version in LayoutRegistry.list_versions():
        layout = "shared shards" if version.startswith("v3") else "per-episode files"
        table.add_row(version, layout)

    console.print()
    console.print(table)


@app.command("version")
def version_cmd() -> None:
    """Show Loupe version."""
    from loupe import __version__

    console.print(f"Loupe v{__version__}")


@app.callback()
def main() -> None:
    """Loupe - Episode viewer engine for robotics datasets.

    Resolves LeRobot v2.0/v2.1/v3.0 datasets and assembles chart-ready episodes.
    """
    pass


if __name__ == "__main__":
    app()
