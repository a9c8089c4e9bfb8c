#!/usr/bin/env python
"""
Compute evaluation metrics for one or more saved test-pass payloads.

Each payload file is a JSON batch payload (one test set). With several
files, per-test-set records are averaged into a combined record.
"""

import json
import logging
from pathlib import Path
from typing import Any

import matplotlib.pyplot as plt
import typer
from rich.console import Console
from rich.table import Table

from scoring_service.core.exceptions import ScoringError
from scoring_service.metrics import (
    BatchPayload,
    MetricRequest,
    aggregate_multiple_testsets,
    measure,
)
from scoring_service.metrics.classification import multiclass_f1
from scoring_service.metrics.plotting import plot_confusion_matrix

logging.getLogger("matplotlib").setLevel(logging.WARNING)
logging.getLogger("PIL").setLevel(logging.WARNING)
logging.getLogger("scoring_service").setLevel(logging.WARNING)

console = Console(force_terminal=True)
app = typer.Typer()


def load_payload(path: Path) -> BatchPayload:
    with open(path) as f:
        data = json.load(f)
    return BatchPayload.from_api(data)


def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.6g}"
    if isinstance(value, list):
        return f"[{len(value)} values]"
    if isinstance(value, dict):
        return f"{{{len(value)} fields}}"
    return str(value)


def print_record(record: dict[str, Any], title: str) -> None:
    table = Table(title=title)
    table.add_column("Measure", style="cyan")
    table.add_column("Value", justify="right")
    for key in sorted(record):
        table.add_row(key, _format_value(record[key]))
    console.print(table)


@app.command()
def main(
    payloads: list[Path] = typer.Argument(
        ..., help="JSON batch payload files, one per test set"
    ),
    measures: list[str] = typer.Option(
        ["acc", "f1"],
        "-m",
        "--measure",
        help="Metric token, repeatable (e.g. acc-5, f1full, kl-0.1)",
    ),
    output: Path | None = typer.Option(
        None,
        "-o",
        "--output",
        help="Write the measure output object to this JSON file",
    ),
    plot: Path | None = typer.Option(
        None,
        "--plot",
        help="Save the first test set's confusion matrix to this PNG file",
    ),
) -> None:
    """Compute metrics for saved batch payloads."""
    for path in payloads:
        if not path.exists():
            console.print(f"[red]Payload file not found: {path}[/red]")
            raise typer.Exit(1)

    request = MetricRequest.from_tokens(measures)
    out: dict[str, Any] = {}
    batches: list[BatchPayload] = []
    try:
        for test_id, path in enumerate(payloads):
            batch = load_payload(path)
            batches.append(batch)
            measure(batch, request, out, test_id=test_id, test_name=path.stem)
            console.print(f"[green]✓[/green] Measured {path.name}")
        if len(payloads) > 1:
            aggregate_multiple_testsets(out)
    except ScoringError as e:
        console.print(f"[red]Error ({e.kind}): {e.message}[/red]")
        raise typer.Exit(1) from e

    for record in out["measures"]:
        print_record(record, f"Test set {record['test_id']}: {record['test_name']}")
    if len(payloads) > 1:
        print_record(out["measure"], "Combined")

    if output is not None:
        with open(output, "w") as f:
            json.dump(out, f, indent=2)
        console.print(f"[green]✓[/green] Saved measures to {output}")

    if plot is not None:
        batch = batches[0]
        if batch.clnames is None:
            console.print("[red]Plotting requires clnames in the payload[/red]")
            raise typer.Exit(1)
        try:
            result = multiclass_f1(batch)
            fig = plot_confusion_matrix(result.conf_matrix, batch.clnames)
        except ScoringError as e:
            console.print(f"[red]Error ({e.kind}): {e.message}[/red]")
            raise typer.Exit(1) from e
        fig.savefig(plot, dpi=150)
        plt.close(fig)
        console.print(f"[green]✓[/green] Saved confusion matrix to {plot}")


if __name__ == "__main__":
    app()
