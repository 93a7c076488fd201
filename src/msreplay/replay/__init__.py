from __future__ import annotations

from .analysis import (
    AnalysedVideo,
    EventRecord,
    ReplayAnalysisError,
    ReplayTracker,
    SnapshotStore,
    StaticParams,
    VideoStats,
    analyse_video,
    compute_stats,
)
from .checks import ReplayBbbvMismatchWarning, ReplayTransitionWarning, warn_on_bbbv_mismatch
from .codec import (
    ReplayFormatError,
    detect_format,
    dump_video,
    dump_video_file,
    load_video,
    load_video_file,
)
from .cursor import ByteCursor, DecodeErrorReason, ReplayDecodeError
from .diff import ReplayDiffFailure, ReplayDiffResult, compare_analysed_videos, compare_event_records
from .evf import ReplayEncodeError
from .playback import VideoPlayback
from .types import Video, VideoEvent, VideoHeader

__all__ = [
    "AnalysedVideo",
    "ByteCursor",
    "DecodeErrorReason",
    "EventRecord",
    "ReplayAnalysisError",
    "ReplayBbbvMismatchWarning",
    "ReplayDecodeError",
    "ReplayDiffFailure",
    "ReplayDiffResult",
    "ReplayEncodeError",
    "ReplayFormatError",
    "ReplayTracker",
    "ReplayTransitionWarning",
    "SnapshotStore",
    "StaticParams",
    "Video",
    "VideoEvent",
    "VideoHeader",
    "VideoPlayback",
    "VideoStats",
    "analyse_video",
    "compare_analysed_videos",
    "compare_event_records",
    "compute_stats",
    "detect_format",
    "dump_video",
    "dump_video_file",
    "load_video",
    "load_video_file",
    "warn_on_bbbv_mismatch",
]
