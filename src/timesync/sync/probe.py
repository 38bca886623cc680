"""Four-timestamp probe math and best-sample selection.

    t1  client send time        (local clock)
    t2  responder receipt time  (reference clock)
    t3  responder send time     (reference clock)
    t4  client receive time     (local clock)

    rtt    = (t4 - t1) - (t3 - t2)
    offset = ((t2 - t1) + (t3 - t4)) / 2

All timestamps are milliseconds since the epoch. ``offset`` is what has to
be added to local time to approximate reference time.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional


class ProbeTimeoutError(Exception):
    """No response arrived for an outstanding probe in time."""


@dataclass(frozen=True)
class Probe:
    t1: float
    t2: float
    t3: float
    t4: float

    @property
    def rtt(self) -> float:
        return (self.t4 - self.t1) - (self.t3 - self.t2)

    @property
    def offset(self) -> float:
        return ((self.t2 - self.t1) + (self.t3 - self.t4)) / 2


@dataclass(frozen=True)
class SyncEstimate:
    """Current offset estimate. Replaced as a whole, never mutated."""

    offset: float = 0.0
    rtt: float = math.inf
    synced: bool = False

    @classmethod
    def from_probe(cls, probe: Probe) -> "SyncEstimate":
        return cls(offset=probe.offset, rtt=probe.rtt, synced=True)


def select_best(probes: Iterable[Probe]) -> Optional[Probe]:
    """Return the probe with the smallest RTT; the earliest one wins ties.

    The lowest-RTT sample has the least room for path asymmetry, which is
    the dominant error term of the offset.
    """
    best: Optional[Probe] = None
    for probe in probes:
        if best is None or probe.rtt < best.rtt:
            best = probe
    return best
