"""Typer CLI: probe videos, detect cuts, and extract frames/clips per segment."""

import asyncio
import json
import signal
from dataclasses import asdict
from pathlib import Path

import typer
import yaml
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from scenecut.core.collaborators import Collaborators, get_library_importer
from scenecut.core.config import (
    ConfigLoader,
    ExtractionMethod,
    ImageFormat,
    Settings,
    resolve_tool_paths,
)
from scenecut.core.errors import ConfigurationError, ScenecutError
from scenecut.core.io_utils import format_file_size
from scenecut.core.logging import FlightLogger, dump_flight_log, setup_logging
from scenecut.core.progress import ProgressAggregator, ProgressEvent
from scenecut.models.entities import ProcessingResult
from scenecut.video.cut_refiner import refine_cut_points
from scenecut.video.probe import probe_video_info
from scenecut.video.processor import ExtractionMode, VideoProcessor
from scenecut.video.scene_detector import detect_scene_changes

app = typer.Typer(no_args_is_help=True, help="Scene-cut segmentation and frame/clip extraction.")
config_app = typer.Typer(help="Inspect configuration.")
app.add_typer(config_app, name="config")

CONFIG_OPTION_HELP = "Path to a scenecut YAML config (default: $SCENECUT_CONFIG or ./scenecut.yml)."


def _load_settings(config_path: Path | None) -> Settings:
    try:
        return ConfigLoader().load(config_path)
    except (FileNotFoundError, ConfigurationError) as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _fail(flight: FlightLogger, message: str, *, video_name: str | None = None) -> None:
    """Print a fatal error, dump the flight log, and exit 1."""
    typer.secho(message, fg=typer.colors.RED, err=True)
    dump_path = dump_flight_log(flight, video_name)
    if dump_path is not None:
        typer.echo(f"Flight log written to {dump_path}", err=True)
    raise typer.Exit(1)


def _install_signal_handlers(cancel_event: asyncio.Event) -> None:
    """SIGINT/SIGTERM request cooperative cancellation instead of killing the interpreter."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform/thread; default handling stays in place.
            pass


@app.command()
def probe(
    video: Path = typer.Argument(..., help="Video file to inspect"),
    as_json: bool = typer.Option(False, "--json", help="Print VideoInfo as JSON."),
    config: Path | None = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Print duration, dimensions, frame rate and codec of a video."""
    settings = _load_settings(config)
    flight = setup_logging(settings)
    try:
        tools = resolve_tool_paths(settings)
        info = asyncio.run(probe_video_info(video, ffprobe=tools.ffprobe))
    except (ScenecutError, OSError) as e:
        _fail(flight, str(e), video_name=video.stem)
        return
    if as_json:
        payload = asdict(info)
        payload["total_frames"] = info.total_frames
        typer.echo(json.dumps(payload, indent=2))
        return
    table = Table(title=str(video))
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Duration", f"{info.duration:.3f}s")
    table.add_row("Resolution", f"{info.width}x{info.height}")
    table.add_row("Frame rate", f"{info.frame_rate} ({info.fps:.3f} fps)")
    table.add_row("Total frames", str(info.total_frames))
    table.add_row("Codec", info.codec or "")
    table.add_row("Bitrate", str(info.bitrate) if info.bitrate is not None else "")
    Console().print(table)


@app.command()
def detect(
    video: Path = typer.Argument(..., help="Video file to analyze"),
    sensitivity: float | None = typer.Option(None, "--sensitivity", "-s", min=0.1, max=0.7, help="Scene threshold (lower = more cuts)."),
    in_handle: int | None = typer.Option(None, "--in-handle", min=0, help="Frames trimmed after each cut."),
    out_handle: int | None = typer.Option(None, "--out-handle", min=0, help="Frames trimmed before the next cut."),
    as_json: bool = typer.Option(False, "--json", help="Print cuts and segments as JSON."),
    config: Path | None = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log INFO to stdout."),
) -> None:
    """Detect scene cuts and print the refined segments."""
    settings = _load_settings(config)
    flight = setup_logging(settings, verbose=verbose)
    proc = settings.processing
    sensitivity = proc.sensitivity if sensitivity is None else sensitivity
    in_handle = proc.in_handle if in_handle is None else in_handle
    out_handle = proc.out_handle if out_handle is None else out_handle

    async def _run():
        tools = resolve_tool_paths(settings)
        info = await probe_video_info(video, ffprobe=tools.ffprobe)
        cuts = await detect_scene_changes(
            video,
            sensitivity,
            ffmpeg=tools.ffmpeg,
            min_gap=proc.min_gap_seconds,
            duration=info.duration,
        )
        segments = refine_cut_points(
            cuts, info, in_handle, out_handle, default_interval=proc.default_interval_seconds
        )
        return info, cuts, segments

    try:
        info, cuts, segments = asyncio.run(_run())
    except (ScenecutError, OSError) as e:
        _fail(flight, str(e), video_name=video.stem)
        return

    if as_json:
        typer.echo(
            json.dumps(
                {"video": asdict(info), "cuts": cuts, "segments": [asdict(s) for s in segments]},
                indent=2,
            )
        )
        return
    typer.echo(f"{len(cuts)} cuts -> {len(segments)} segments ({info.duration:.2f}s @ {info.fps:.3f} fps)")
    table = Table(title="Segments")
    table.add_column("#", justify="right")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Duration")
    table.add_column("Frames")
    for s in segments:
        frames = f"{s.in_frame}-{s.out_frame} ({s.frame_count})" if s.has_frame_bounds else ""
        table.add_row(str(s.index), f"{s.start_time:.3f}", f"{s.end_time:.3f}", f"{s.duration:.3f}", frames)
    Console().print(table)


def _apply_overrides(
    settings: Settings,
    *,
    output: Path | None,
    image_format: ImageFormat | None,
    quality: int | None,
    ratio_naming: bool | None,
    strategy: ExtractionMethod | None,
    smart_select: bool | None,
    target_frames: int | None,
    concurrency: int | None,
    kill_on_cancel: bool | None,
    import_to: Path | None,
) -> Settings:
    out_update: dict = {}
    if output is not None:
        out_update["root_dir"] = str(output)
    if image_format is not None:
        out_update["image_format"] = image_format
    if quality is not None:
        out_update["quality"] = quality
    if ratio_naming is not None:
        out_update["ratio_naming"] = ratio_naming
    perf_update: dict = {}
    if concurrency is not None:
        perf_update["max_concurrency"] = concurrency
    if kill_on_cancel is not None:
        perf_update["kill_on_cancel"] = kill_on_cancel
    proc_update: dict = {}
    if strategy is not None:
        proc_update["extraction_method"] = strategy
    if smart_select is not None:
        proc_update["smart_selection"] = smart_select
    if target_frames is not None:
        proc_update["target_frame_count"] = target_frames
    lib_update: dict = {}
    if import_to is not None:
        lib_update = {"importer": "copy", "catalog_dir": str(import_to)}
    return settings.model_copy(
        update={
            "output": settings.output.model_copy(update=out_update),
            "performance": settings.performance.model_copy(update=perf_update),
            "processing": settings.processing.model_copy(update=proc_update),
            "library": settings.library.model_copy(update=lib_update),
        }
    )


def _print_results(console: Console, results: list[ProcessingResult]) -> None:
    table = Table(title="Extraction")
    table.add_column("Video")
    table.add_column("Segments", justify="right")
    table.add_column("Kind")
    table.add_column("OK", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Output")
    for result in results:
        for report in result.reports:
            size = sum(a.file_size for a in report.successful)
            table.add_row(
                result.source_path.name,
                str(len(result.segments)),
                report.kind.value,
                str(len(report.successful)),
                str(report.failure_count),
                format_file_size(size),
                str(result.output_dir),
            )
    console.print(table)


@app.command()
def extract(
    videos: list[Path] = typer.Argument(..., help="One or more video files"),
    mode: ExtractionMode = typer.Option(ExtractionMode.frames, "--mode", "-m", help="What to extract per segment."),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output root directory."),
    image_format: ImageFormat | None = typer.Option(None, "--format", help="Frame image format."),
    quality: int | None = typer.Option(None, "--quality", "-q", min=1, max=10, help="Quality 1-10 (higher is better)."),
    ratio_naming: bool | None = typer.Option(None, "--ratio-naming/--sequence-naming", help="Name frames by time ratio."),
    strategy: ExtractionMethod | None = typer.Option(None, "--strategy", help="Frame extraction strategy."),
    smart_select: bool | None = typer.Option(None, "--smart-select/--no-smart-select", help="Copy representative frames into <output>/<video>/grouped."),
    target_frames: int | None = typer.Option(None, "--target-frames", min=1, help="How many representative frames to keep."),
    concurrency: int | None = typer.Option(None, "--concurrency", "-j", min=1, help="Override max parallel FFmpeg processes."),
    kill_on_cancel: bool | None = typer.Option(None, "--kill-on-cancel/--finish-on-cancel", help="Kill in-flight FFmpeg on Ctrl-C."),
    import_to: Path | None = typer.Option(None, "--import-to", help="Copy finished artifacts into this catalog directory."),
    config: Path | None = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log INFO to stdout."),
) -> None:
    """Segment each video at its scene cuts and extract one frame and/or clip per segment."""
    settings = _apply_overrides(
        _load_settings(config),
        output=output,
        image_format=image_format,
        quality=quality,
        ratio_naming=ratio_naming,
        strategy=strategy,
        smart_select=smart_select,
        target_frames=target_frames,
        concurrency=concurrency,
        kill_on_cancel=kill_on_cancel,
        import_to=import_to,
    )
    flight = setup_logging(settings, verbose=verbose)
    console = Console()
    try:
        importer = get_library_importer(settings.library.importer, catalog_dir=settings.library.catalog_dir)
    except ValueError as e:
        _fail(flight, str(e))
        return

    with Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>5.1f}%"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as bar:
        bar_task = bar.add_task("Starting", total=100)

        def on_event(event: ProgressEvent) -> None:
            prefix = ""
            if event.batch_total:
                prefix = f"[{min(event.batch_current + 1, event.batch_total)}/{event.batch_total}] "
            bar.update(bar_task, completed=event.percent, description=prefix + (event.message or ""))

        async def _run():
            cancel_event = asyncio.Event()
            _install_signal_handlers(cancel_event)
            processor = VideoProcessor(
                settings,
                collaborators=Collaborators(library_importer=importer),
                progress=ProgressAggregator(listeners=[on_event]),
                cancel_event=cancel_event,
            )
            return await processor.process_batch(videos, mode=mode)

        try:
            batch = asyncio.run(_run())
        except ConfigurationError as e:
            _fail(flight, str(e))
            return

    _print_results(console, batch.results)
    if any(r.cancelled for r in batch.results):
        typer.secho("Cancelled; partial output kept.", fg=typer.colors.YELLOW)
    selected = sum(len(r.selected_paths) for r in batch.results)
    if selected:
        typer.echo(f"Copied {selected} representative frames into grouped/ folders.")
    imported = sum(r.imported_count for r in batch.results)
    if imported:
        typer.echo(f"Imported {imported} artifacts into {settings.library.catalog_dir}.")
    if batch.errors:
        for handle, error in batch.errors.items():
            typer.secho(f"{handle}: {error}", fg=typer.colors.RED, err=True)
        _fail(flight, f"{len(batch.errors)} of {len(videos)} videos failed.", video_name=videos[0].stem if len(videos) == 1 else None)


@config_app.command("show")
def config_show(
    config: Path | None = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Print the effective configuration as YAML."""
    settings = _load_settings(config)
    typer.echo(yaml.safe_dump(settings.model_dump(mode="json"), sort_keys=False).rstrip())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
