# SPDX-FileComment: qbittorrent-collector
# SPDX-FileCopyrightText: Copyright (C) 2024 qbittorrent-collector contributors
# SPDX-License-Identifier: MPL-2.0

# Sample qbittorrent.yaml (every key optional when the environment
# supplies the servers):
#
# servers:
# - hostname: qbt.example.lan
#   protocol: http
#   port: 8080
#   auth_type: cookie
#   username: admin
#   password: secret
# stale_cycles: 10
# timeout: 10

import os
import sys
import time

from prometheus_client import Counter

from . import BaseMetrics, ConfigError
from . import config as qbt_config
from .client import DEFAULT_TIMEOUT, QbittorrentClient
from .registry import TorrentMetrics
from .scheduler import fan_out


class Metrics(BaseMetrics):
    prefix = "qbittorrent"
    interval = qbt_config.DEFAULT_RECHECK_INTERVAL

    def __init__(self, registry=None, environ=None):
        super().__init__(registry=registry)
        self.environ = os.environ if environ is None else environ

    def metrics_args(self, parser):
        parser.add_argument(
            "--stale-cycles",
            type=int,
            default=None,
            help="Drop torrent series not reported for this many successful "
            "scrapes of their server, 0 to keep them forever "
            "(default: stale_cycles from the config file, or 0)",
            metavar="CYCLES",
        )
        parser.set_defaults(
            interval=qbt_config.recheck_interval(
                self.environ.get("QBITTORRENT_RECHECK_INTERVAL")
            ),
        )
        try:
            parser.set_defaults(
                port=qbt_config.exporter_port(
                    self.environ.get("QBITTORRENT_EXPORTER_PORT")
                )
            )
        except ConfigError as e:
            parser.error(str(e))

    def setup(self):
        if self.interval <= 0:
            self.logger.warning(
                "Ignoring interval {}, using {}".format(
                    self.interval, qbt_config.DEFAULT_RECHECK_INTERVAL
                )
            )
            self.interval = qbt_config.DEFAULT_RECHECK_INTERVAL

        stale_cycles = self.args.stale_cycles
        if stale_cycles is None:
            stale_cycles = self.config.get("stale_cycles", 0)
        if (
            isinstance(stale_cycles, bool)
            or not isinstance(stale_cycles, int)
            or stale_cycles < 0
        ):
            raise ConfigError("stale_cycles must be a non-negative integer")
        timeout = self.config.get("timeout", DEFAULT_TIMEOUT)
        if (
            isinstance(timeout, bool)
            or not isinstance(timeout, (int, float))
            or not timeout > 0
        ):
            raise ConfigError("timeout must be a positive number of seconds")

        self.profiles = qbt_config.load_servers(self.environ, self.config)
        self.clients = [
            QbittorrentClient(profile, timeout=timeout) for profile in self.profiles
        ]
        self.torrent_metrics = TorrentMetrics(
            prefix=self.prefix, stale_cycles=stale_cycles
        )
        self.registry.register(self.torrent_metrics)

    def report_result(self, result):
        labels = {"host": result.profile.hostname}
        self.metric(
            "scrape_duration_seconds",
            labels,
            "Duration of the last scrape of the server",
        ).set(result.duration)
        if result.error is not None:
            self.metric(
                "up", labels, "1 if the last scrape of the server succeeded"
            ).set(0)
            self.metric(
                "scrape_errors_total",
                {"host": result.profile.hostname, "error": result.error.kind},
                "Failed scrapes by error class",
                data_type=Counter,
            ).inc()
            return
        self.metric("up", labels, "1 if the last scrape of the server succeeded").set(1)
        self.metric(
            "last_success_time_seconds",
            labels,
            "Time of the last successful scrape, seconds since epoch",
        ).set(time.time())
        self.metric(
            "torrents", labels, "Torrents reported by the last successful scrape"
        ).set(len(result.torrents))

    def collect_metrics(self):
        results = fan_out(
            self.clients, self.torrent_metrics, on_result=self.report_result
        )
        failed = [r.profile.hostname for r in results if r.error is not None]
        if failed:
            self.logger.info(
                "Scraped {} of {} servers, failed: {}".format(
                    len(results) - len(failed), len(self.clients), ", ".join(failed)
                )
            )
        return results


def main(argv=None):
    sys.exit(Metrics().main(argv))


def module_init():
    if __name__ == "__main__":
        sys.exit(main(sys.argv))


module_init()
