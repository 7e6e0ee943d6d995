"""
CLI entry point for fretcore.
"""

# Standard library imports
import os
import time
from pathlib import Path
from typing import List, Optional

# Third-party imports
import typer
from rich.console import Console
from rich.table import Table

# Local application imports
from fretcore.calibration import calibration_thresholds, compute_baseline
from fretcore.config import DEFAULT_CONFIG, AdaptiveConfig, derive_scaled_config
from fretcore.constants import CALIBRATION_WARMUP_TRIALS
from fretcore.db.connection import MEMORY_PATH
from fretcore.db.database import LearnerDatabase
from fretcore.exceptions import StorageError
from fretcore.group_file import GroupFile, GroupFileError, load_group_file
from fretcore.models import GroupSummary
from fretcore.recommendations import (
    RecommendationResult,
    SortComparator,
    compute_recommendations,
    summarize_groups,
)
from fretcore.selector import AdaptiveSelector


console = Console()

app = typer.Typer(
    name="fretcore",
    help="Fretcore: adaptive drill engine for music-theory fundamentals.",
    add_completion=False,
    rich_markup_mode="markdown",
)

SORT_CHOICES = {
    "index": lambda a, b: a.index - b.index,
    "size": lambda a, b: a.total_count - b.total_count,
}


# ---------------------------------------------------------------------------
# Helpers for resolving the --db path (FRETCORE_DB envvar fallback)
# ---------------------------------------------------------------------------


def _resolve_db_path(db: Optional[Path]) -> Path:
    """Resolve db path from CLI flag or FRETCORE_DB envvar. Exits on missing."""
    if db is not None:
        return db
    env_val = os.environ.get("FRETCORE_DB")
    if env_val:
        return Path(env_val)
    console.print(
        "[bold red]Error: --db is required "
        "(or set the FRETCORE_DB environment variable).[/bold red]"
    )
    raise typer.Exit(code=1)


def _open_for_reading(db_path: Path) -> LearnerDatabase:
    """
    Open an existing learner database read-only. A database that does not
    exist yet reads as a fresh learner and is not created.
    """
    if db_path.exists():
        return LearnerDatabase(db_path=db_path, read_only=True)
    return LearnerDatabase(db_path=MEMORY_PATH)


_db_option = typer.Option(  # noqa: B008
    None,
    "--db",
    help="Path to the DuckDB database file. "
    "Falls back to FRETCORE_DB env var.",
    envvar="FRETCORE_DB",
)

_namespace_option = typer.Option(  # noqa: B008
    None,
    "--namespace",
    "-n",
    help="Storage namespace (one per quiz mode).",
)

_provider_option = typer.Option(  # noqa: B008
    "button",
    "--provider",
    help="Calibration provider whose motor baseline scales the timing thresholds.",
)


def _now_ms() -> float:
    return time.time() * 1000.0


def _load_config(db: LearnerDatabase, provider: str) -> AdaptiveConfig:
    """Default config, rescaled to the provider's stored baseline if any."""
    baseline = db.get_motor_baseline(provider)
    if baseline is None:
        return DEFAULT_CONFIG
    return derive_scaled_config(baseline)


def _build_selector(
    db: LearnerDatabase,
    namespace: str,
    provider: str,
    item_ids: Optional[List[str]] = None,
) -> AdaptiveSelector:
    storage = db.storage(namespace)
    if item_ids:
        storage.preload(item_ids)
    return AdaptiveSelector(storage, config=_load_config(db, provider))


def _load_groups_or_exit(groups: Path) -> GroupFile:
    try:
        return load_group_file(groups)
    except GroupFileError as e:
        console.print(f"[bold red]Group file error:[/bold red] {e}")
        raise typer.Exit(code=1)


def _resolve_namespace(
    namespace: Optional[str], group_file: Optional[GroupFile]
) -> str:
    if namespace:
        return namespace
    if group_file is not None:
        return group_file.namespace
    console.print(
        "[bold red]Error: --namespace is required "
        "when no --groups file is given.[/bold red]"
    )
    raise typer.Exit(code=1)


def _fmt(value: Optional[float], pattern: str = "{:.2f}") -> str:
    return "-" if value is None else pattern.format(value)


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


def _display_item_stats(
    cons: Console, selector: AdaptiveSelector, item_ids: List[str], now_ms: float
) -> None:
    """
    Render one row per item: responses, EWMA, stability, recall and
    automaticity at ``now_ms``.
    """
    table = Table(title="Item Stats")
    table.add_column("Item", style="cyan")
    table.add_column("Responses", style="magenta")
    table.add_column("EWMA (ms)")
    table.add_column("Stability (h)")
    table.add_column("Recall", style="yellow")
    table.add_column("Automaticity", style="green")
    for item_id in item_ids:
        stats = selector.get_stats(item_id)
        if stats is None:
            table.add_row(item_id, "0", "-", "-", "-", "-")
            continue
        table.add_row(
            item_id,
            str(stats.count),
            _fmt(stats.ewma, "{:.0f}"),
            _fmt(stats.stability, "{:.1f}"),
            _fmt(selector.get_recall(item_id, now_ms)),
            _fmt(selector.get_automaticity(item_id, now_ms)),
        )
    cons.print(table)


def _display_group_stats(cons: Console, summaries: List[GroupSummary]) -> None:
    """Render per-group due/unseen/mastered counts."""
    table = Table(title="Groups")
    table.add_column("Index", style="cyan")
    table.add_column("Label")
    table.add_column("Items", style="magenta")
    table.add_column("Due", style="yellow")
    table.add_column("Unseen")
    table.add_column("Mastered", style="green")
    for s in summaries:
        table.add_row(
            str(s.index),
            s.label or "",
            str(s.total_count),
            str(s.due_count),
            str(s.unseen_count),
            str(s.mastered_count),
        )
    cons.print(table)


@app.command()
def stats(
    db: Optional[Path] = _db_option,
    namespace: Optional[str] = _namespace_option,
    groups: Optional[Path] = typer.Option(  # noqa: B008
        None, "--groups", "-g", help="YAML group-definition file."
    ),
    provider: str = _provider_option,
):
    """
    Show learning statistics for a namespace.

    Without a group file, lists every item that has stored stats. With one,
    shows per-group progress and the consolidation ratio across started
    groups.
    """
    db_path = _resolve_db_path(db)
    group_file = _load_groups_or_exit(groups) if groups else None
    ns = _resolve_namespace(namespace, group_file)
    now = _now_ms()

    try:
        with _open_for_reading(db_path) as database:
            if group_file is None:
                item_ids = database.get_item_ids(ns)
                if not item_ids:
                    console.print(
                        f"[yellow]No stats recorded for namespace '{ns}'.[/yellow]"
                    )
                    return
                selector = _build_selector(database, ns, provider, item_ids)
                _display_item_stats(console, selector, item_ids, now)
                return

            selector = _build_selector(
                database, ns, provider, group_file.all_item_ids
            )
            summaries = summarize_groups(
                selector, group_file.groups, selector.get_config(), now
            )
            _display_group_stats(console, summaries)
            started = [s for s in summaries if s.is_started]
            seen = sum(s.seen_count for s in started)
            if seen:
                mastered = sum(s.mastered_count for s in started)
                console.print(
                    f"Consolidation: [bold]{mastered}/{seen}[/bold] "
                    f"seen items retained ({mastered / seen:.0%})."
                )
    except StorageError as e:
        console.print(f"[bold red]Database Error:[/bold red] {e}")
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# Recommend
# ---------------------------------------------------------------------------


def _display_recommendations(
    cons: Console, result: RecommendationResult, group_file: GroupFile
) -> None:
    labels = {g.index: g.label or f"Group {g.index}" for g in group_file.groups}
    if not result.recommended:
        cons.print("[yellow]No groups to recommend.[/yellow]")
        return
    if result.enabled is not None:
        cons.print(
            f"[bold green]Start with:[/bold green] {labels[result.expand_index]} "
            f"({result.expand_new_count} new items)"
        )
        return
    for index in result.consolidate_indices:
        cons.print(f"- [cyan]Consolidate[/cyan] {labels[index]}")
    cons.print(
        f"  {result.consolidate_due_count} items due or unseen in these groups."
    )
    if result.expand_index is not None:
        cons.print(
            f"- [green]Expand[/green] to {labels[result.expand_index]} "
            f"({result.expand_new_count} new items)"
        )
    elif result.consolidation_ratio is not None:
        cons.print(
            f"[dim]Retention {result.consolidation_ratio:.0%} is below the "
            "expansion threshold; keep consolidating.[/dim]"
        )


@app.command()
def recommend(
    groups: Path = typer.Option(  # noqa: B008
        ..., "--groups", "-g", help="YAML group-definition file."
    ),
    db: Optional[Path] = _db_option,
    namespace: Optional[str] = _namespace_option,
    sort: str = typer.Option(
        "index",
        "--sort",
        help="Order for picking a new group: 'index' or 'size' (smallest first).",
    ),
    provider: str = _provider_option,
):
    """
    Suggest which groups to practise next: consolidate what is in progress,
    and expand to one new group once enough seen items are retained.
    """
    db_path = _resolve_db_path(db)
    if sort not in SORT_CHOICES:
        console.print(
            f"[bold red]Error: --sort must be one of {sorted(SORT_CHOICES)}.[/bold red]"
        )
        raise typer.Exit(code=1)
    sort_unstarted: SortComparator = SORT_CHOICES[sort]
    group_file = _load_groups_or_exit(groups)
    ns = _resolve_namespace(namespace, group_file)

    try:
        with _open_for_reading(db_path) as database:
            selector = _build_selector(
                database, ns, provider, group_file.all_item_ids
            )
            result = compute_recommendations(
                selector,
                group_file.groups,
                selector.get_config(),
                _now_ms(),
                sort_unstarted=sort_unstarted,
            )
    except StorageError as e:
        console.print(f"[bold red]Database Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    _display_recommendations(console, result, group_file)


# ---------------------------------------------------------------------------
# Calibrate
# ---------------------------------------------------------------------------


@app.command()
def calibrate(
    times: List[float] = typer.Argument(  # noqa: B008
        ..., help="Tap times in ms from a calibration run, in order."
    ),
    db: Optional[Path] = _db_option,
    provider: str = _provider_option,
    warmup: int = typer.Option(
        CALIBRATION_WARMUP_TRIALS,
        "--warmup",
        help="Number of leading warm-up taps to discard.",
    ),
):
    """
    Compute and store a motor baseline from calibration tap times, then show
    the speed bands it implies.
    """
    db_path = _resolve_db_path(db)
    try:
        baseline = compute_baseline(times, warmup_trials=warmup)
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    try:
        with LearnerDatabase(db_path=db_path) as database:
            database.save_motor_baseline(provider, baseline)
    except StorageError as e:
        console.print(f"[bold red]Database Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    console.print(
        f"Your baseline response time: [bold]{baseline}ms[/bold] "
        f"(provider '{provider}')"
    )
    table = Table(title="Speed Bands")
    table.add_column("Band", style="cyan")
    table.add_column("Up to", style="magenta")
    table.add_column("Meaning")
    for band in calibration_thresholds(baseline):
        table.add_row(
            band.label,
            f"{band.max_ms}ms" if band.max_ms is not None else "-",
            band.meaning,
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------


@app.command()
def record(
    item: str = typer.Argument(..., help="Item id that was answered."),
    time_ms: float = typer.Option(
        ..., "--time-ms", "-t", help="Response time in ms."
    ),
    correct: bool = typer.Option(
        True, "--correct/--wrong", help="Whether the answer was correct."
    ),
    db: Optional[Path] = _db_option,
    namespace: Optional[str] = _namespace_option,
    provider: str = _provider_option,
):
    """
    Record one response, e.g. for practice done away from the app.
    """
    db_path = _resolve_db_path(db)
    ns = _resolve_namespace(namespace, None)
    try:
        with LearnerDatabase(db_path=db_path) as database:
            selector = _build_selector(database, ns, provider)
            updated = selector.record_response(item, time_ms, correct)
            if selector.has_unsaved(item):
                console.print(
                    f"[bold red]Database Error:[/bold red] Failed to save stats for "
                    f"{ns}/{item}; the response was not recorded."
                )
                raise typer.Exit(code=1)
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)
    except StorageError as e:
        console.print(f"[bold red]Database Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    console.print(
        f"Recorded {'correct' if correct else 'wrong'} answer for "
        f"[cyan]{item}[/cyan]: {updated.count} responses, "
        f"EWMA {updated.ewma:.0f}ms, stability {_fmt(updated.stability, '{:.1f}')}h"
    )


if __name__ == "__main__":
    app()
