from __future__ import annotations

import warnings

from ..board import cal_bbbv
from .types import Video


class ReplayTransitionWarning(UserWarning):
    """A recorded event was rejected by the state machine and skipped."""


class ReplayBbbvMismatchWarning(UserWarning):
    """The 3BV written in the replay disagrees with the one computed from its board."""


def warn_on_bbbv_mismatch(
    video: Video,
    *,
    computed_bbbv: int | None = None,
    action: str = "analysis",
) -> bool:
    """Warn if `video.header.bbbv` doesn't match the board's actual 3BV.

    Returns True if a warning was emitted. A recorded 3BV of 0 means the
    writer did not store one and is not reported.
    """

    recorded = int(video.header.bbbv)
    if recorded == 0:
        return False
    expected = int(computed_bbbv) if computed_bbbv is not None else cal_bbbv(video.board)
    if recorded != expected:
        warnings.warn(
            f"Replay 3BV mismatch; {action} uses the computed value (replay={recorded}, computed={expected}).",
            category=ReplayBbbvMismatchWarning,
            stacklevel=2,
        )
        return True
    return False


__all__ = [
    "ReplayBbbvMismatchWarning",
    "ReplayTransitionWarning",
    "warn_on_bbbv_mismatch",
]
