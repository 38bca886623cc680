"""Tests for probe math and best-sample selection."""

import math

from timesync.sync.probe import Probe, SyncEstimate, select_best


def _probe(rtt, offset, t1=0.0):
    # zero responder processing time: t2 == t3
    t2 = t1 + rtt / 2 + offset
    return Probe(t1=t1, t2=t2, t3=t2, t4=t1 + rtt)


class TestProbe:
    """Test probe round-trip and offset math"""

    def test_rtt_and_offset(self):
        """Test rtt and offset from the four timestamps"""
        probe = Probe(t1=1000, t2=1050, t3=1055, t4=1120)

        assert probe.rtt == 115
        assert probe.offset == -7.5

    def test_responder_processing_time_excluded_from_rtt(self):
        """Test that responder hold time is not counted as network delay"""
        probe = Probe(t1=0, t2=100, t3=130, t4=50)
        assert probe.rtt == 20

    def test_symmetric_path_recovers_offset(self):
        """Test offset recovery on a symmetric path"""
        probe = _probe(rtt=40, offset=250, t1=10_000)
        assert probe.rtt == 40
        assert probe.offset == 250


class TestSelectBest:
    """Test best-probe selection"""

    def test_minimum_rtt_earliest_wins_ties(self):
        """Test minimum rtt wins and the earliest probe wins ties"""
        probes = [
            _probe(40, 5),
            _probe(15, 7),
            _probe(60, 5),
            _probe(15, 9),
            _probe(100, 5),
        ]

        best = select_best(probes)

        assert best is probes[1]
        assert best.offset == 7
        assert best.rtt == 15

    def test_single_probe_is_selected(self):
        """Test selection from a single probe"""
        only = _probe(500, -3)
        assert select_best([only]) is only

    def test_no_probes(self):
        """Test selection with no successful probes"""
        assert select_best([]) is None

    def test_negative_rtt_is_not_rejected(self):
        """Test that a negative rtt is accepted as measured"""
        odd = Probe(t1=0, t2=10, t3=30, t4=5)
        assert odd.rtt < 0
        assert select_best([_probe(10, 1), odd]) is odd


class TestSyncEstimate:
    """Test the sync estimate value"""

    def test_defaults(self):
        """Test initial estimate"""
        estimate = SyncEstimate()
        assert estimate.offset == 0.0
        assert math.isinf(estimate.rtt)
        assert estimate.synced is False

    def test_from_probe(self):
        """Test estimate built from a probe"""
        estimate = SyncEstimate.from_probe(Probe(t1=1000, t2=1050, t3=1055, t4=1120))
        assert estimate == SyncEstimate(offset=-7.5, rtt=115, synced=True)
