# SPDX-FileComment: qbittorrent-collector
# SPDX-FileCopyrightText: Copyright (C) 2024 qbittorrent-collector contributors
# SPDX-License-Identifier: MPL-2.0

# Servers come from the first of these that is set:
#
#   QBITTORRENT_SERVERS='[{"hostname": "qbt.example.lan", "protocol": "http",
#                          "port": 8080, "auth_type": "cookie",
#                          "username": "admin", "password": "secret"}]'
#
#   QBITTORRENT_HOSTNAME=qbt.example.lan
#   QBITTORRENT_API_PROTOCOL=http
#   QBITTORRENT_USERNAME=admin
#   QBITTORRENT_PASSWORD=secret
#
#   "servers" in the YAML config file, same shape as the JSON array.

import json
import logging
import os

from . import ConfigError
from .client import ServerProfile


logger = logging.getLogger(__name__)

DEFAULT_RECHECK_INTERVAL = 30
DEFAULT_EXPORTER_PORT = 8080


def recheck_interval(value):
    """Parse a whole number of seconds, falling back to the default."""
    try:
        interval = int(value)
    except (TypeError, ValueError):
        return DEFAULT_RECHECK_INTERVAL
    if interval <= 0:
        return DEFAULT_RECHECK_INTERVAL
    return interval


def exporter_port(value):
    if not value:
        return DEFAULT_EXPORTER_PORT
    try:
        port = int(value)
    except ValueError:
        raise ConfigError("QBITTORRENT_EXPORTER_PORT is not a number: {!r}".format(value))
    if not 0 < port < 65536:
        raise ConfigError("QBITTORRENT_EXPORTER_PORT out of range: {}".format(port))
    return port


def server_definitions(environ, config):
    servers_json = environ.get("QBITTORRENT_SERVERS")
    if servers_json:
        try:
            defs = json.loads(servers_json)
        except ValueError as e:
            raise ConfigError("Error parsing QBITTORRENT_SERVERS: {}".format(e))
        if not isinstance(defs, list):
            raise ConfigError("QBITTORRENT_SERVERS must be a JSON array")
        return defs

    hostname = environ.get("QBITTORRENT_HOSTNAME")
    if hostname:
        username = environ.get("QBITTORRENT_USERNAME", "")
        password = environ.get("QBITTORRENT_PASSWORD", "")
        d = {
            "hostname": hostname,
            "protocol": environ.get("QBITTORRENT_API_PROTOCOL") or "https",
        }
        if username and password:
            d.update(auth_type="basic", username=username, password=password)
        return [d]

    if config.get("servers"):
        if not isinstance(config["servers"], list):
            raise ConfigError("servers in the config file must be a list")
        return config["servers"]

    raise ConfigError(
        "No servers configured; set QBITTORRENT_SERVERS or QBITTORRENT_HOSTNAME"
    )


def load_servers(environ=None, config=None):
    if environ is None:
        environ = os.environ
    if config is None:
        config = {}

    profiles = []
    seen = set()
    for d in server_definitions(environ, config):
        profile = ServerProfile.from_dict(d)
        if profile.hostname in seen:
            raise ConfigError("Duplicate server hostname {}".format(profile.hostname))
        seen.add(profile.hostname)
        profiles.append(profile)

    if not profiles:
        raise ConfigError("Server list is empty")
    for profile in profiles:
        logger.info(
            "Configured server {} ({}, auth {})".format(
                profile.hostname, profile.base_url, profile.auth_type
            )
        )
    return profiles
