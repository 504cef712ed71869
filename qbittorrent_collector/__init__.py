# SPDX-FileComment: qbittorrent-collector
# SPDX-FileCopyrightText: Copyright (C) 2024 qbittorrent-collector contributors
# SPDX-License-Identifier: MPL-2.0

import argparse
import logging
import os
import pathlib
import signal
import sys
import threading

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)
import yaml


class ConfigError(Exception):
    pass


class BaseMetrics:
    prefix = "base"
    interval = 60
    needs_config = False

    args = None
    config = None

    def __init__(self, registry=None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self.metrics = {}
        self.metrics_lock = threading.Lock()
        self.stop_event = threading.Event()
        self.logger = logging.getLogger(self.prefix)

    def pre_setup(self):
        pass

    def setup(self):
        pass

    def collect_metrics(self):
        pass

    def metrics_args(self, parser):
        pass

    def main_loop(self):
        from .scheduler import Scheduler

        self.scheduler = Scheduler(
            self.collect_metrics,
            self.interval,
            on_cycle=self.metric(
                "collection_duration_seconds",
                help_text="Time spent collecting metrics",
                data_type=Histogram,
            ).observe,
            on_error=self.metric(
                "collection_errors_total",
                help_text="Errors encountered while collecting metrics",
                data_type=Counter,
            ).inc,
        )
        self.scheduler.run(self.stop_event)
        self.logger.info("Collector stopped")

    def parse_args(self, argv=None):
        def _optional_path(string):
            return pathlib.Path(string) if string else None

        if argv is None:
            argv = sys.argv

        parser = argparse.ArgumentParser(
            formatter_class=argparse.ArgumentDefaultsHelpFormatter,
            prog=os.path.basename(argv[0]),
        )

        parser.add_argument(
            "--interval",
            type=float,
            default=self.interval,
            help="Seconds between collections",
            metavar="SECONDS",
        )
        parser.add_argument(
            "--port",
            type=int,
            default=8080,
            help="Port to serve metrics on",
        )
        parser.add_argument(
            "--listen-address",
            default="0.0.0.0",
            help="Address to serve metrics on",
            metavar="ADDRESS",
        )
        parser.add_argument(
            "--no-http-daemon",
            dest="http_daemon",
            action="store_false",
            help="Do not start the metrics HTTP server",
        )
        default_config_file = pathlib.Path(
            "/etc/qbittorrent-collector/{}.yaml".format(self.prefix)
        )
        if (not self.needs_config) and (not default_config_file.exists()):
            default_config_file = None
        parser.add_argument(
            "--config",
            type=_optional_path,
            default=default_config_file,
            help="YAML configuration file",
            metavar="FILE",
        )

        self.metrics_args(parser)
        return parser.parse_args(args=argv[1:])

    def load_config(self):
        if not self.args.config:
            return {}
        try:
            with self.args.config.open() as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError("Could not read {}: {}".format(self.args.config, e))
        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ConfigError("{} is not a YAML mapping".format(self.args.config))
        return config

    def metric(self, name, labels=None, help_text="", data_type=Gauge):
        """Return the labeled child of a metric, creating the metric on first use."""
        if labels is None:
            labels = {}
        full_name = "{}_{}".format(self.prefix, name)
        with self.metrics_lock:
            if full_name not in self.metrics:
                self.metrics[full_name] = data_type(
                    full_name,
                    help_text or name,
                    sorted(labels.keys()),
                    registry=self.registry,
                )
            m = self.metrics[full_name]
        if labels:
            return m.labels(**labels)
        return m

    def handle_signal(self, signum, frame):
        self.logger.info("Received signal {}, shutting down".format(signum))
        self.stop_event.set()

    def main(self, argv=None):
        logging_level = logging.DEBUG if sys.stdin.isatty() else logging.INFO
        logging.basicConfig(level=logging_level)
        self.args = self.parse_args(argv)
        self.interval = self.args.interval

        try:
            self.config = self.load_config()
            self.pre_setup()
            self.setup()
        except ConfigError as e:
            self.logger.error("Configuration error: {}".format(e))
            return 1

        if self.args.http_daemon:
            start_http_server(
                self.args.port, addr=self.args.listen_address, registry=self.registry
            )
            self.logger.info(
                "Serving metrics on {}:{}".format(
                    self.args.listen_address, self.args.port
                )
            )

        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGINT, self.handle_signal)
            signal.signal(signal.SIGTERM, self.handle_signal)

        self.main_loop()
        return 0
