import threading

from prometheus_client import CollectorRegistry
import pytest

from qbittorrent_collector.client import (
    ServerProfile,
    StatusError,
    TorrentRecord,
    TransportError,
    UnexpectedError,
)
from qbittorrent_collector.registry import TorrentMetrics
from qbittorrent_collector.scheduler import IDLE, SCRAPING, Scheduler, fan_out


class FakeClient:
    def __init__(self, hostname, torrents=None, error=None, before=None):
        self.profile = ServerProfile.from_dict({"hostname": hostname})
        self._torrents = torrents or []
        self._error = error
        self._before = before

    def torrents(self):
        if self._before is not None:
            self._before()
        if self._error is not None:
            raise self._error
        return list(self._torrents)


def record(name, ratio=1.0):
    return TorrentRecord(
        name=name,
        state="uploading",
        tracker="https://t.example.com/announce",
        ratio=ratio,
        uploaded=1,
        size=None,
    )


def ratio(registry, host, name):
    return registry.get_sample_value(
        "qbittorrent_torrent_seed_ratio",
        {"host": host, "name": name, "tracker": "t.example.com"},
    )


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def torrent_metrics(registry):
    tm = TorrentMetrics()
    registry.register(tm)
    return tm


def test_fan_out_applies_every_success(registry, torrent_metrics):
    clients = [
        FakeClient("host-A", [record("a1"), record("a2")]),
        FakeClient("host-B", [record("b1")]),
    ]

    results = fan_out(clients, torrent_metrics)

    assert sorted(r.profile.hostname for r in results) == ["host-A", "host-B"]
    assert ratio(registry, "host-A", "a2") == 1.0
    assert ratio(registry, "host-B", "b1") == 1.0


def test_fan_out_failure_is_isolated(registry, torrent_metrics):
    torrent_metrics.apply("host-B", [record("b1", ratio=0.5)])
    clients = [
        FakeClient("host-A", [record("a1")]),
        FakeClient("host-B", error=StatusError(500)),
        FakeClient("host-C", error=TransportError("refused")),
    ]

    results = fan_out(clients, torrent_metrics)

    errors = {r.profile.hostname: r.error for r in results}
    assert errors["host-A"] is None
    assert isinstance(errors["host-B"], StatusError)
    assert isinstance(errors["host-C"], TransportError)
    assert ratio(registry, "host-A", "a1") == 1.0
    # Previous values for the failed server stay in place.
    assert ratio(registry, "host-B", "b1") == 0.5
    assert torrent_metrics.series_count("host-C") == 0


def test_fan_out_runs_concurrently(torrent_metrics):
    barrier = threading.Barrier(3)
    clients = [
        FakeClient(h, [record(h)], before=lambda: barrier.wait(timeout=5))
        for h in ("host-A", "host-B", "host-C")
    ]

    results = fan_out(clients, torrent_metrics)

    assert len(results) == 3
    assert all(r.error is None for r in results)


def test_fan_out_survives_unexpected_exception(registry, torrent_metrics):
    def explode():
        raise RuntimeError("bug")

    clients = [
        FakeClient("host-A", [record("a1")], before=explode),
        FakeClient("host-B", [record("b1")]),
    ]

    seen = {}

    def on_result(result):
        seen[result.profile.hostname] = result.error

    results = fan_out(clients, torrent_metrics, on_result=on_result)

    errors = {r.profile.hostname: r.error for r in results}
    assert isinstance(errors["host-A"], UnexpectedError)
    assert errors["host-A"].kind == "unexpected"
    assert errors["host-B"] is None
    assert isinstance(seen["host-A"], UnexpectedError)
    assert torrent_metrics.series_count("host-A") == 0
    assert ratio(registry, "host-B", "b1") == 1.0


def test_fan_out_reports_results(torrent_metrics):
    seen = []

    def on_result(result):
        seen.append(result.profile.hostname)
        raise ValueError("reporting failures are not fatal")

    results = fan_out(
        [FakeClient("host-A"), FakeClient("host-B", error=StatusError(502))],
        torrent_metrics,
        on_result=on_result,
    )

    assert sorted(seen) == ["host-A", "host-B"]
    assert len(results) == 2


def test_fan_out_no_clients(torrent_metrics):
    assert fan_out([], torrent_metrics) == []


def test_run_once_state_transitions():
    states = []
    scheduler = Scheduler(lambda: states.append(scheduler.state), 30)

    assert scheduler.state == IDLE
    scheduler.run_once()

    assert states == [SCRAPING]
    assert scheduler.state == IDLE
    assert scheduler.cycles == 1


def test_run_once_swallows_cycle_errors():
    errors = []
    durations = []

    def cycle():
        raise RuntimeError("boom")

    scheduler = Scheduler(
        cycle, 30, on_cycle=durations.append, on_error=lambda: errors.append(1)
    )
    scheduler.run_once()

    assert errors == [1]
    assert len(durations) == 1
    assert scheduler.state == IDLE


@pytest.mark.parametrize(
    "interval,duration,expected",
    [(30, 0.5, 29.5), (30, 30, 0.0), (30, 45, 0.0), (10, 0, 10)],
)
def test_next_delay_fixed_rate(interval, duration, expected):
    assert Scheduler(None, interval).next_delay(duration) == pytest.approx(expected)


def test_run_until_stopped():
    stop = threading.Event()
    calls = []

    def cycle():
        calls.append(1)
        if len(calls) == 3:
            stop.set()

    Scheduler(cycle, 0.01).run(stop)

    assert len(calls) == 3


def test_start_and_stop():
    ran = threading.Event()
    scheduler = Scheduler(ran.set, 60)

    thread = scheduler.start()
    assert ran.wait(timeout=5)
    scheduler.stop(timeout=5)

    assert not thread.is_alive()
    assert scheduler.cycles == 1
    assert scheduler.state == IDLE
