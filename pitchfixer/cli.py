"""Command-line interface for PitchFixer.

Provides commands for:
- analyze: Estimate the tuning reference of a recording
- correct: Export a copy retuned to A440
- info: Show audio file information
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, Iterator

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .core import (
    AnalysisConfig,
    AnalysisStatus,
    PitchAnalysisResult,
    OUTPUT_FORMATS,
    PitchFixerError,
)
from .core.constants import OUTPUT_SUFFIX
from .analysis import note_name

app = typer.Typer(
    name="pitchfixer",
    help="Retune recordings to a 440 Hz reference",
    rich_markup_mode="markdown",
)
console = Console()


@dataclass
class StageTimings:
    """Wall-clock time per pipeline stage, shown with ``correct -v``."""

    stages: Dict[str, float] = field(default_factory=dict)

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        started = time.perf_counter()
        try:
            yield
        finally:
            self.stages[name] = time.perf_counter() - started

    def print_summary(self) -> None:
        console.print("\n[bold]Timing Summary:[/bold]")
        for name, duration in self.stages.items():
            console.print(f"  {name}: {duration:.2f}s")
        console.print(f"  [bold]Total: {sum(self.stages.values()):.2f}s[/bold]")


def configure_logging(verbose: bool) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def default_output_path(input_file: Path, extension: str) -> Path:
    """``song.mp3`` -> ``song_440Hz.m4a`` next to the input."""
    return input_file.with_name(f"{input_file.stem}{OUTPUT_SUFFIX}{extension}")


def _check_input(input_file: Path) -> None:
    if not input_file.exists():
        console.print(f"[red]Error: File not found: {input_file}[/red]")
        raise typer.Exit(1)


def _analysis_config(anchor: Optional[str]) -> AnalysisConfig:
    if anchor is None:
        return AnalysisConfig()
    import librosa
    from librosa.util.exceptions import ParameterError

    try:
        anchor_note = int(round(librosa.note_to_midi(anchor)))
    except ParameterError:
        console.print(f"[red]Error: Invalid anchor note: {anchor}[/red]")
        raise typer.Exit(1)
    return AnalysisConfig(anchor_note=anchor_note)


def _result_to_dict(result: PitchAnalysisResult, config: AnalysisConfig) -> Dict[str, Any]:
    return {
        "status": result.status.value,
        "detected_hz": round(result.detected_hz, 3),
        "deviation_cents": round(-result.cents_offset, 3),
        "cents_offset": round(result.cents_offset, 3),
        "reliability": result.reliability,
        "spread_cents": round(result.spread_cents, 3),
        "reliable": result.is_reliable(config.min_reliable_count),
    }


def _show_result_table(result: PitchAnalysisResult, config: AnalysisConfig) -> None:
    table = Table(title="Tuning Analysis")
    table.add_column("Measure", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Reference pitch", f"{result.hz_label} ({note_name(result.detected_hz)})")
    table.add_row("Deviation from 440 Hz", f"{-result.cents_offset:+.1f} cents")
    table.add_row("Correction to apply", result.cents_label)
    reliability = str(result.reliability)
    if not result.is_reliable(config.min_reliable_count):
        reliability = f"[yellow]{reliability} (low)[/yellow]"
    table.add_row("Reliability (frames)", reliability)
    table.add_row("Spread (MAD)", f"{result.spread_cents:.1f} cents")

    console.print(table)


def _run_analysis(service, input_file: Path) -> PitchAnalysisResult:
    with console.status("Analyzing tuning..."):
        return service.analyze(input_file).result()


@app.command()
def analyze(
    input_file: Path = typer.Argument(..., help="Input audio file"),
    anchor: Optional[str] = typer.Option(
        None, "--anchor", help="Measure against this note (e.g. A4) instead of the nearest semitone"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Output results as JSON (for scripting)"
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose output"),
):
    """Estimate the tuning reference of a recording.

    **Examples:**

        pitchfixer analyze song.wav

        pitchfixer analyze song.mp3 --json
    """
    from .service import PitchCorrectionService

    configure_logging(verbose)
    _check_input(input_file)
    config = _analysis_config(anchor)

    with PitchCorrectionService(analysis_config=config) as service:
        result = _run_analysis(service, input_file)

    if json_output:
        data = {"input": str(input_file), **_result_to_dict(result, config)}
        console.print_json(data=data)
        return

    if result.status is AnalysisStatus.UNREADABLE:
        console.print(f"[red]Error: Cannot decode {input_file.name}[/red]")
        raise typer.Exit(1)
    if not result.has_pitch:
        console.print("[yellow]No usable pitch found in the analysis window.[/yellow]")
        raise typer.Exit(2)

    _show_result_table(result, config)


@app.command()
def correct(
    input_file: Path = typer.Argument(..., help="Input audio file"),
    output: Optional[Path] = typer.Option(
        None, "-o", "--output", help="Output file path (default: <name>_440Hz.m4a)"
    ),
    cents: Optional[float] = typer.Option(
        None, "--cents", "-c", help="Apply this shift instead of analyzing"
    ),
    output_format: str = typer.Option(
        "m4a", "--format", "-f", help="Output format: m4a (AAC 192 kbps) or wav"
    ),
    anchor: Optional[str] = typer.Option(
        None, "--anchor", help="Measure against this note (e.g. A4) instead of the nearest semitone"
    ),
    force: bool = typer.Option(
        False, "--force", help="Export even when the analysis is unreliable"
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose output"),
):
    """Export a copy of the recording retuned to A440.

    **Examples:**

        pitchfixer correct song.mp3

        pitchfixer correct song.wav -o fixed.wav --format wav --cents -31.8
    """
    from .service import PitchCorrectionService

    configure_logging(verbose)
    _check_input(input_file)

    fmt = OUTPUT_FORMATS.get(output_format.lower())
    if fmt is None:
        console.print(
            f"[red]Error: Unknown format '{output_format}'. "
            f"Valid: {', '.join(OUTPUT_FORMATS)}[/red]"
        )
        raise typer.Exit(1)

    if output is None:
        output = default_output_path(input_file, fmt.extension)
    config = _analysis_config(anchor)
    timings = StageTimings()

    with PitchCorrectionService(analysis_config=config) as service:
        if cents is None:
            with timings.stage("analysis"):
                result = _run_analysis(service, input_file)

            if result.status is AnalysisStatus.UNREADABLE:
                console.print(f"[red]Error: Cannot decode {input_file.name}[/red]")
                raise typer.Exit(1)
            if not result.has_pitch:
                console.print("[yellow]No usable pitch found; nothing to correct.[/yellow]")
                raise typer.Exit(2)

            _show_result_table(result, config)
            if not result.is_reliable(config.min_reliable_count) and not force:
                console.print(
                    "[yellow]Analysis is unreliable. Use --force to export anyway "
                    "or pass --cents explicitly.[/yellow]"
                )
                raise typer.Exit(2)
            cents = result.cents_offset

        console.print(f"[blue]Exporting[/blue] {cents:+.2f} cents -> {output}")
        with timings.stage("render"), console.status("Rendering..."):
            outcome = service.correct(input_file, cents, output, fmt).result()

    if not outcome.success:
        console.print(f"[red]Export failed: {outcome.error}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]Saved {outcome.destination}[/green]")
    if verbose:
        console.print(f"  Frames written: {outcome.frames_written:,}")
        timings.print_summary()


@app.command()
def info(
    input_file: Path = typer.Argument(..., help="Input audio file"),
):
    """Show information about an audio file."""
    from .input import AudioLoader

    _check_input(input_file)
    try:
        meta = AudioLoader().info(input_file)
    except (ValueError, PitchFixerError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold]Audio Info:[/bold] {input_file.name}")
    console.print(f"  Duration: {meta['duration']:.2f} seconds")
    console.print(f"  Sample rate: {meta['sample_rate']} Hz")
    console.print(f"  Channels: {meta['channels']}")
    console.print(f"  Frames: {meta['frames']:,}")


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
