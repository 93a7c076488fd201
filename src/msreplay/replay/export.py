from __future__ import annotations

from pathlib import Path

import msgspec

from .. import __version__
from .analysis import AnalysedVideo
from .evf import STRING_FIELDS
from .types import Video, VideoEvent, VideoHeader

SUMMARY_FORMAT_VERSION = 1


class ReplayExportError(ValueError):
    pass


class ExportHeader(msgspec.Struct, forbid_unknown_fields=True):
    height: int
    width: int
    mine_num: int
    cell_pixel_size: int = 16
    mode: int = 0
    bbbv: int = 0
    rtime_ms: int = 0
    is_completed: bool = False
    is_official: bool = False
    is_fair: bool = False
    # Byte strings are exported as latin-1 text so every byte survives.
    software: str = ""
    player_identifier: str = ""
    race_identifier: str = ""
    uniqueness_identifier: str = ""
    start_time: str = ""
    end_time: str = ""
    country: str = ""
    level: int = 0


class ExportEvent(msgspec.Struct, array_like=True, forbid_unknown_fields=True):
    time: float
    mouse: str
    x: int
    y: int
    useful_level: int = 0
    prior_game_board_id: int = 0
    next_game_board_id: int = 0
    left: int = 0
    right: int = 0
    double: int = 0
    ce: int = 0
    flag: int = 0
    bbbv_solved: int = 0
    path: float = 0.0


class ExportStatic(msgspec.Struct, forbid_unknown_fields=True):
    bbbv: int
    recorded_bbbv: int
    op: int
    isl: int
    cell_nums: list[int]


class ExportStats(msgspec.Struct, forbid_unknown_fields=True):
    rtime: float
    left: int
    right: int
    double: int
    cl: int
    flag: int
    ce: int
    bbbv_solved: int
    left_s: float
    right_s: float
    double_s: float
    cl_s: float
    flag_s: float
    ce_s: float
    bbbv_s: float
    rqp: float
    qg: float
    etime: float
    stnb: float
    ioe: float
    corr: float
    thrp: float
    path: float


class ReplaySummary(msgspec.Struct, tag_field="kind", tag="msreplay_summary", forbid_unknown_fields=True):
    format_version: int = SUMMARY_FORMAT_VERSION
    tool_version: str = ""
    source_format: str = "evf"
    header: ExportHeader | None = None
    board: list[list[int]] = msgspec.field(default_factory=list)
    checksum: str | None = None
    static: ExportStatic | None = None
    stats: ExportStats | None = None
    is_completed: bool = False
    delta_time: float = 0.0
    snapshot_count: int = 0
    events: list[ExportEvent] = msgspec.field(default_factory=list)


_SUMMARY_DECODER = msgspec.json.Decoder(type=ReplaySummary)


def _export_header(header: VideoHeader) -> ExportHeader:
    strings = {name: bytes(getattr(header, name)).decode("latin-1") for name in STRING_FIELDS}
    return ExportHeader(
        height=int(header.height),
        width=int(header.width),
        mine_num=int(header.mine_num),
        cell_pixel_size=int(header.cell_pixel_size),
        mode=int(header.mode),
        bbbv=int(header.bbbv),
        rtime_ms=int(header.rtime_ms),
        is_completed=bool(header.is_completed),
        is_official=bool(header.is_official),
        is_fair=bool(header.is_fair),
        level=int(header.level),
        **strings,
    )


def summary_from_analysis(analysed: AnalysedVideo, *, include_events: bool = True) -> ReplaySummary:
    video = analysed.video
    events: list[ExportEvent] = []
    if include_events:
        for record in analysed.events:
            params = record.key_dynamic_params
            events.append(
                ExportEvent(
                    time=record.time,
                    mouse=record.mouse,
                    x=record.x,
                    y=record.y,
                    useful_level=record.useful_level,
                    prior_game_board_id=record.prior_game_board_id,
                    next_game_board_id=record.next_game_board_id,
                    left=params.left,
                    right=params.right,
                    double=params.double,
                    ce=params.ce,
                    flag=params.flag,
                    bbbv_solved=params.bbbv_solved,
                    path=record.path,
                )
            )
    static = analysed.static_params
    return ReplaySummary(
        tool_version=str(__version__),
        source_format=video.source_format,
        header=_export_header(video.header),
        board=[list(row) for row in video.board],
        checksum=None if video.checksum is None else video.checksum.hex(),
        static=ExportStatic(
            bbbv=static.bbbv,
            recorded_bbbv=static.recorded_bbbv,
            op=static.op,
            isl=static.isl,
            cell_nums=list(static.cell_nums),
        ),
        stats=_stats_struct(analysed),
        is_completed=analysed.is_completed,
        delta_time=analysed.delta_time,
        snapshot_count=len(analysed.snapshots),
        events=events,
    )


def _stats_struct(analysed: AnalysedVideo) -> ExportStats:
    stats = analysed.stats
    return ExportStats(**{name: getattr(stats, name) for name in ExportStats.__struct_fields__})


def dumps_summary(summary: ReplaySummary) -> bytes:
    return msgspec.json.encode(summary)


def loads_summary(data: bytes) -> ReplaySummary:
    try:
        return _SUMMARY_DECODER.decode(data)
    except msgspec.DecodeError as exc:
        raise ReplayExportError(f"invalid replay summary: {exc}") from exc


def dump_summary_file(summary: ReplaySummary, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(dumps_summary(summary))


def load_summary_file(path: Path) -> ReplaySummary:
    return loads_summary(Path(path).read_bytes())


def video_from_summary(summary: ReplaySummary) -> Video:
    """Rebuild the recorded input (header, board, raw events) from a summary."""

    header_in = summary.header
    if header_in is None:
        raise ReplayExportError("replay summary has no header")
    if summary.source_format not in ("avf", "evf"):
        raise ReplayExportError(f"unknown source_format: {summary.source_format!r}")
    try:
        checksum = None if summary.checksum is None else bytes.fromhex(summary.checksum)
        strings = {name: str(getattr(header_in, name)).encode("latin-1") for name in STRING_FIELDS}
    except (ValueError, UnicodeEncodeError) as exc:
        raise ReplayExportError(f"invalid replay summary: {exc}") from exc
    header = VideoHeader(
        height=header_in.height,
        width=header_in.width,
        mine_num=header_in.mine_num,
        cell_pixel_size=header_in.cell_pixel_size,
        mode=header_in.mode,
        bbbv=header_in.bbbv,
        rtime_ms=header_in.rtime_ms,
        is_completed=header_in.is_completed,
        is_official=header_in.is_official,
        is_fair=header_in.is_fair,
        level=header_in.level,
        **strings,
    )
    return Video(
        header=header,
        board=tuple(tuple(int(value) for value in row) for row in summary.board),
        events=tuple(VideoEvent(time=event.time, mouse=event.mouse, x=event.x, y=event.y) for event in summary.events),
        checksum=checksum,
        source_format=summary.source_format,  # type: ignore[arg-type]
    )


__all__ = [
    "ExportEvent",
    "ExportHeader",
    "ExportStatic",
    "ExportStats",
    "ReplayExportError",
    "ReplaySummary",
    "SUMMARY_FORMAT_VERSION",
    "dump_summary_file",
    "dumps_summary",
    "load_summary_file",
    "loads_summary",
    "summary_from_analysis",
    "video_from_summary",
]
