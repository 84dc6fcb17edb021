from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple

from beatmap_models import Chart, ChartMetadata, NoteEvent, NoteKind
from timing_model import default_timing


def taps(times: Iterable[float], lanes: Optional[Sequence[int]] = None) -> Tuple[NoteEvent, ...]:
    time_list = list(times)
    lane_list = list(lanes) if lanes is not None else [0] * len(time_list)
    return tuple(NoteEvent(time_seconds=float(t), lane=int(lane)) for t, lane in zip(time_list, lane_list))


def hold(start: float, end: float, lane: int) -> NoteEvent:
    return NoteEvent(time_seconds=start, lane=lane, kind=NoteKind.HOLD, end_time_seconds=end)


def make_chart(
    notes: Iterable[NoteEvent],
    *,
    key_count: int = 4,
    gamemode: str = "dance-single",
    bpm: float = 60.0,
    title: str = "Test Song",
    source_path: Optional[Path] = None,
    **changes,
) -> Chart:
    return Chart(
        notes=tuple(notes),
        key_count=key_count,
        gamemode=gamemode,
        timing=default_timing(bpm),
        metadata=ChartMetadata(title=title, source_path=source_path),
        **changes,
    )


SIMPLE_SIMFILE = """#TITLE:Little Song;
#ARTIST:Someone;
#MUSIC:song.ogg;
#OFFSET:0.000;
#BPMS:0.000=120.000;
#STOPS:;

#NOTES:
     dance-single:
     :
     Easy:
     3:
     0.000,0.000,0.000,0.000,0.000:
1000
0100
2000
0000
,
3010
0000
0001
0000
;

#NOTES:
     dance-single:
     :
     Hard:
     7:
     0.000,0.000,0.000,0.000,0.000:
1001
0110
1001
0110
;
"""
