from __future__ import annotations

from pathlib import Path

import pytest

from msreplay.debug_log import close_debug_log, debug_log, debug_log_path, debug_log_session, init_debug_log
from msreplay.replay import evf
from msreplay.replay.analysis import ReplayAnalysisError, analyse_video
from msreplay.replay.types import Video, VideoEvent, VideoHeader
from msreplay.state_machine import GameBoardState


def _video() -> Video:
    return Video(
        header=VideoHeader(height=1, width=2, mine_num=1, bbbv=1, rtime_ms=500),
        board=((-1, 1),),
        events=(
            VideoEvent(time=0.0, mouse="lc", x=24, y=8),
            VideoEvent(time=0.5, mouse="lr", x=24, y=8),
        ),
    )


def test_debug_log_writes_structured_lines(tmp_path: Path) -> None:
    close_debug_log()
    path = init_debug_log(base_dir=tmp_path, command="Info")

    debug_log("custom", value="a\nb", count=3)
    close_debug_log()
    debug_log("dropped")

    assert path.parent == tmp_path / "logs"
    assert path.name.startswith("msreplay-info-pid")
    text = path.read_text(encoding="utf-8")
    assert "event=init command=info" in text
    assert "event=custom count=3 value=a\\nb" in text
    assert "dropped" not in text
    assert debug_log_path() is None


def test_decode_and_analysis_are_traced(tmp_path: Path) -> None:
    close_debug_log()
    path = init_debug_log(base_dir=tmp_path)

    analyse_video(evf.loads(evf.dumps(_video())), strict=True)

    text = path.read_text(encoding="utf-8")
    assert "event=decode" in text
    assert "format=evf" in text
    assert "event=analyse" in text
    assert "phase=WIN" in text


def test_rejected_transitions_are_traced(tmp_path: Path) -> None:
    close_debug_log()
    path = init_debug_log(base_dir=tmp_path)
    video = Video(
        header=VideoHeader(height=1, width=2, mine_num=1),
        board=((-1, 1),),
        events=(VideoEvent(time=0.0, mouse="rr", x=24, y=8),),
    )

    with pytest.raises(ReplayAnalysisError):
        analyse_video(video, strict=True)

    text = path.read_text(encoding="utf-8")
    assert "event=transition_error" in text
    assert "tag=rr" in text


def test_values_are_rendered_on_one_line(tmp_path: Path) -> None:
    close_debug_log()
    path = init_debug_log(base_dir=tmp_path)

    debug_log("values", phase=GameBoardState.LOSS, name=b"Zo\xeb", rtime=1.25, note="a\rb")

    text = path.read_text(encoding="utf-8")
    assert "event=values name=Zoë note=a\\rb phase=LOSS rtime=1.250" in text


def test_session_closes_the_sink_on_error(tmp_path: Path) -> None:
    close_debug_log()

    with pytest.raises(RuntimeError):
        with debug_log_session(base_dir=tmp_path, command="verify", replay=tmp_path / "game.avf") as path:
            assert debug_log_path() == path
            raise RuntimeError("boom")

    assert debug_log_path() is None
    text = path.read_text(encoding="utf-8")
    assert "event=init command=verify replay=game.avf version=" in text
    assert "event=close command=verify" in text
