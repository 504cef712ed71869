# SPDX-FileComment: qbittorrent-collector
# SPDX-FileCopyrightText: Copyright (C) 2024 qbittorrent-collector contributors
# SPDX-License-Identifier: MPL-2.0

import collections
import logging
import threading

from prometheus_client.core import GaugeMetricFamily

from .trackers import tracker_hostname


logger = logging.getLogger(__name__)

ACTIVE_STATES = frozenset(["uploading", "stalledUP"])

Series = collections.namedtuple(
    "Series", ["state", "active", "ratio", "uploaded", "size", "last_seen"]
)


def activity(state):
    return 1.0 if state in ACTIVE_STATES else 0.0


class TorrentMetrics:
    """Per-torrent gauges for every scraped server.

    Each server's series live in their own mapping, which is rebuilt on
    every apply and swapped in whole.  Readers therefore see a server's
    previous torrent list or its new one, never a mixture.

    With stale_cycles at 0, torrents that vanish upstream keep their last
    values indefinitely.  Otherwise a series is dropped once its server
    has been applied stale_cycles times without reporting it.
    """

    def __init__(self, prefix="qbittorrent", stale_cycles=0):
        self.prefix = prefix
        self.stale_cycles = stale_cycles
        self._lock = threading.Lock()
        self._servers = {}
        self._cycles = {}

    def apply(self, hostname, torrents):
        with self._lock:
            cycle = self._cycles.get(hostname, 0) + 1
            previous = self._servers.get(hostname, {})

        series = {}
        if self.stale_cycles:
            for key, s in previous.items():
                if cycle - s.last_seen < self.stale_cycles:
                    series[key] = s
        else:
            series.update(previous)

        for torrent in torrents:
            key = (torrent.name, tracker_hostname(torrent.tracker))
            series[key] = Series(
                state=torrent.state,
                active=activity(torrent.state),
                ratio=float(torrent.ratio),
                uploaded=float(torrent.uploaded),
                size=None if torrent.size is None else float(torrent.size),
                last_seen=cycle,
            )

        dropped = len(previous.keys() - series.keys())
        if dropped:
            logger.debug(
                "Dropped {} stale torrent series for {}".format(dropped, hostname)
            )

        with self._lock:
            self._servers[hostname] = series
            self._cycles[hostname] = cycle

    def forget(self, hostname):
        with self._lock:
            self._servers.pop(hostname, None)
            self._cycles.pop(hostname, None)

    def series_count(self, hostname):
        with self._lock:
            return len(self._servers.get(hostname, {}))

    def collect(self):
        with self._lock:
            servers = dict(self._servers)

        torrent_labels = ["host", "name", "tracker"]
        status = GaugeMetricFamily(
            "{}_torrent_status".format(self.prefix),
            "Current status of torrents (1 for actively seeding, 0 otherwise)",
            labels=torrent_labels + ["state"],
        )
        seed_ratio = GaugeMetricFamily(
            "{}_torrent_seed_ratio".format(self.prefix),
            "Seed ratio of torrents",
            labels=torrent_labels,
        )
        uploaded = GaugeMetricFamily(
            "{}_torrent_uploaded_bytes".format(self.prefix),
            "Total data uploaded in bytes per torrent",
            labels=torrent_labels,
        )
        size = GaugeMetricFamily(
            "{}_torrent_size_bytes".format(self.prefix),
            "Size of the torrent's data in bytes",
            labels=torrent_labels,
        )

        for hostname in sorted(servers):
            for (name, tracker), s in servers[hostname].items():
                labels = [hostname, name, tracker]
                status.add_metric(labels + [s.state], s.active)
                seed_ratio.add_metric(labels, s.ratio)
                uploaded.add_metric(labels, s.uploaded)
                if s.size is not None:
                    size.add_metric(labels, s.size)

        yield status
        yield seed_ratio
        yield uploaded
        yield size
