from __future__ import annotations

import warnings
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer

from .debug_log import debug_log_session
from .paths import default_runtime_dir, strict_transitions_enabled
from .replay.analysis import AnalysedVideo, ReplayAnalysisError, analyse_video
from .replay.codec import ReplayFormatError, dump_video, dump_video_file, load_video, load_video_file
from .replay.cursor import ReplayDecodeError
from .replay.diff import compare_analysed_videos
from .replay.evf import ReplayEncodeError
from .replay.export import ReplayExportError, dump_summary_file, summary_from_analysis
from .replay.playback import VideoPlayback
from .replay.types import Video

app = typer.Typer(add_completion=False)

_FORMATS = ("avf", "evf")

_REPLAY_ERRORS = (
    ReplayDecodeError,
    ReplayFormatError,
    ReplayAnalysisError,
    ReplayEncodeError,
    ReplayExportError,
    OSError,
)

_STRICT_HELP = "abort on the first impossible transition (default: strict; MSREPLAY_STRICT_TRANSITIONS=0 for lenient)"
_RUNTIME_DIR_HELP = "base path for runtime files (default: per-user OS data dir; override with MSREPLAY_RUNTIME_DIR)"


def _fail(message: str) -> typer.Exit:
    typer.echo(message, err=True)
    return typer.Exit(code=1)


@contextmanager
def _debug_log_session(enabled: bool, runtime_dir: Path, command: str, replay: Path) -> Iterator[None]:
    if not enabled:
        yield
        return
    with debug_log_session(base_dir=runtime_dir, command=command, replay=replay) as path:
        typer.echo(f"debug log: {path}", err=True)
        yield


def _load(path: Path, fmt: str | None) -> Video:
    if fmt is not None and fmt not in _FORMATS:
        raise _fail(f"unknown --format {fmt!r} (expected avf or evf)")
    if not path.is_file():
        raise _fail(f"replay file not found: {path}")
    try:
        return load_video_file(path, fmt)  # type: ignore[arg-type]
    except _REPLAY_ERRORS as exc:
        raise _fail(f"failed to load {path}: {exc}") from exc


def _analyse(video: Video, strict: bool) -> AnalysedVideo:
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            analysed = analyse_video(video, strict=strict)
        except ReplayAnalysisError as exc:
            raise _fail(f"replay analysis failed: {exc}") from exc
    for warning in caught:
        typer.echo(f"warning: {warning.message}", err=True)
    return analysed


def _text(value: bytes) -> str:
    return value.decode("utf-8", errors="replace")


def _format_option() -> str | None:
    return typer.Option(None, "--format", help="replay format (avf or evf; default: from the file suffix)")


@app.command("info")
def cmd_info(
    replay_file: Path = typer.Argument(..., help="replay file (.avf or .evf)"),
    fmt: str | None = _format_option(),
    at: float | None = typer.Option(None, "--at", help="also report counters at this replay time (seconds)"),
    strict: bool = typer.Option(strict_transitions_enabled(), "--strict/--lenient", help=_STRICT_HELP),
    debug_log: bool = typer.Option(False, "--debug-log", help="write a trace file under <runtime-dir>/logs"),
    runtime_dir: Path = typer.Option(default_runtime_dir(), "--runtime-dir", help=_RUNTIME_DIR_HELP),
) -> None:
    """Print the header, board parameters and statistics of a replay."""
    with _debug_log_session(debug_log, runtime_dir, "info", replay_file):
        video = _load(replay_file, fmt)
        analysed = _analyse(video, strict)

    header = video.header
    static = analysed.static_params
    stats = analysed.stats
    typer.echo(f"format: {video.source_format}")
    typer.echo(f"software: {_text(header.software)}")
    typer.echo(f"player: {_text(header.player_identifier)}")
    typer.echo(f"board: {header.height}x{header.width} mines={header.mine_num} cell_pixel_size={header.cell_pixel_size}")
    typer.echo(f"3bv: {static.bbbv} (recorded {static.recorded_bbbv}) op={static.op} isl={static.isl}")
    typer.echo(f"cells: {' '.join(str(count) for count in static.cell_nums)}")
    typer.echo(f"events: {len(analysed.events)} snapshots: {len(analysed.snapshots)} skipped: {analysed.skipped_events}")
    typer.echo(f"result: {analysed.game_board_state.name.lower()} completed={analysed.is_completed}")
    typer.echo(
        f"time: {stats.rtime:.3f}s 3bv_solved={stats.bbbv_solved} 3bv/s={stats.bbbv_s:.3f} "
        f"stnb={stats.stnb:.3f} rqp={stats.rqp:.3f} qg={stats.qg:.3f} etime={stats.etime:.3f}"
    )
    typer.echo(
        f"clicks: left={stats.left} right={stats.right} double={stats.double} cl={stats.cl} "
        f"ce={stats.ce} flag={stats.flag} ioe={stats.ioe:.3f} corr={stats.corr:.3f} thrp={stats.thrp:.3f}"
    )
    typer.echo(f"path: {stats.path:.3f}")

    if at is not None:
        playback = VideoPlayback(analysed)
        playback.set_current_time(float(at))
        params = playback.key_dynamic_params
        typer.echo(
            f"at {playback.current_time:.3f}s: event={playback.current_event_id} "
            f"3bv_solved={params.bbbv_solved} ce={params.ce} left={params.left} right={params.right} "
            f"double={params.double} flag={params.flag} 3bv/s={playback.stats.bbbv_s:.3f}"
        )


@app.command("events")
def cmd_events(
    replay_file: Path = typer.Argument(..., help="replay file (.avf or .evf)"),
    fmt: str | None = _format_option(),
    limit: int | None = typer.Option(None, "--limit", help="print at most N events"),
    effective_only: bool = typer.Option(False, "--effective-only", help="only events that changed the board"),
    pix_size: int | None = typer.Option(None, "--pix-size", help="report pointer positions for this cell size"),
    strict: bool = typer.Option(strict_transitions_enabled(), "--strict/--lenient", help=_STRICT_HELP),
    debug_log: bool = typer.Option(False, "--debug-log", help="write a trace file under <runtime-dir>/logs"),
    runtime_dir: Path = typer.Option(default_runtime_dir(), "--runtime-dir", help=_RUNTIME_DIR_HELP),
) -> None:
    """Print the analysed event log, one event per line."""
    with _debug_log_session(debug_log, runtime_dir, "events", replay_file):
        video = _load(replay_file, fmt)
        analysed = _analyse(video, strict)

    playback = None
    if pix_size is not None:
        if pix_size <= 0:
            raise _fail(f"--pix-size must be positive, got {pix_size}")
        playback = VideoPlayback(analysed, pix_size=pix_size)

    printed = 0
    for record in analysed.events:
        if limit is not None and printed >= limit:
            break
        if effective_only and record.useful_level == 0:
            continue
        x, y = record.x, record.y
        if playback is not None:
            playback.set_current_event_id(record.index)
            x, y = playback.x_y
        params = record.key_dynamic_params
        line = (
            f"{record.index:5d} t={record.time:8.3f} {record.mouse:3s} x={x:5d} y={y:5d} "
            f"level={record.useful_level} board={record.prior_game_board_id}->{record.next_game_board_id} "
            f"state={record.mouse_state.name.lower()} left={params.left} right={params.right} "
            f"double={params.double} ce={params.ce} flag={params.flag} 3bv={params.bbbv_solved} "
            f"path={record.path:.3f}"
        )
        if record.skipped:
            line += " skipped"
        typer.echo(line)
        printed += 1


@app.command("convert")
def cmd_convert(
    replay_file: Path = typer.Argument(..., help="replay file (.avf or .evf)"),
    output: Path = typer.Argument(..., help="output path (.evf is appended; name(2).evf if taken)"),
    fmt: str | None = _format_option(),
    overwrite: bool = typer.Option(False, "--overwrite", help="replace an existing output file"),
) -> None:
    """Re-encode a replay in the open format."""
    video = _load(replay_file, fmt)
    try:
        target = dump_video_file(video, output, overwrite=overwrite)
    except _REPLAY_ERRORS as exc:
        raise _fail(f"failed to convert {replay_file}: {exc}") from exc
    typer.echo(f"wrote {target}")


@app.command("export")
def cmd_export(
    replay_file: Path = typer.Argument(..., help="replay file (.avf or .evf)"),
    output: Path = typer.Argument(..., help="JSON summary path"),
    fmt: str | None = _format_option(),
    events: bool = typer.Option(True, "--events/--no-events", help="include the per-event log"),
    strict: bool = typer.Option(strict_transitions_enabled(), "--strict/--lenient", help=_STRICT_HELP),
    debug_log: bool = typer.Option(False, "--debug-log", help="write a trace file under <runtime-dir>/logs"),
    runtime_dir: Path = typer.Option(default_runtime_dir(), "--runtime-dir", help=_RUNTIME_DIR_HELP),
) -> None:
    """Write header, statistics and the event log as JSON."""
    with _debug_log_session(debug_log, runtime_dir, "export", replay_file):
        video = _load(replay_file, fmt)
        analysed = _analyse(video, strict)
    summary = summary_from_analysis(analysed, include_events=events)
    try:
        dump_summary_file(summary, output)
    except OSError as exc:
        raise _fail(f"failed to write {output}: {exc}") from exc
    typer.echo(f"wrote {output} ({len(summary.events)} events)")


@app.command("verify")
def cmd_verify(
    replay_file: Path = typer.Argument(..., help="replay file (.avf or .evf)"),
    fmt: str | None = _format_option(),
    strict: bool = typer.Option(strict_transitions_enabled(), "--strict/--lenient", help=_STRICT_HELP),
    debug_log: bool = typer.Option(False, "--debug-log", help="write a trace file under <runtime-dir>/logs"),
    runtime_dir: Path = typer.Option(default_runtime_dir(), "--runtime-dir", help=_RUNTIME_DIR_HELP),
) -> None:
    """Check that re-encoding a replay reproduces the same analysis."""
    with _debug_log_session(debug_log, runtime_dir, "verify", replay_file):
        video = _load(replay_file, fmt)
        analysed = _analyse(video, strict)
        try:
            reloaded = load_video(dump_video(video), "evf")
        except _REPLAY_ERRORS as exc:
            raise _fail(f"re-encoding failed: {exc}") from exc
        reanalysed = _analyse(reloaded, strict)

    diff = compare_analysed_videos(analysed, reanalysed)
    if not diff.ok:
        failure = diff.failure
        if failure is None:
            raise _fail("re-analysis diverged")
        typer.echo(f"{failure.kind.replace('_', ' ')} at event={failure.event_index}", err=True)
        if failure.fields:
            typer.echo(f"  fields: {', '.join(failure.fields)}", err=True)
        typer.echo(f"  expected={failure.expected}", err=True)
        typer.echo(f"  actual={failure.actual}", err=True)
        raise typer.Exit(code=1)

    stats = analysed.stats
    typer.echo(
        f"ok: {diff.checked_count} events match; result={analysed.game_board_state.name.lower()} "
        f"3bv_solved={stats.bbbv_solved}/{analysed.static_params.bbbv}"
    )


def main(argv: list[str] | None = None) -> None:
    app(prog_name="msreplay", args=argv)


if __name__ == "__main__":
    main()
