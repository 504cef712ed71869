# SPDX-FileComment: qbittorrent-collector
# SPDX-FileCopyrightText: Copyright (C) 2024 qbittorrent-collector contributors
# SPDX-License-Identifier: MPL-2.0

import collections
import logging
import time

import requests

from . import ConfigError


logger = logging.getLogger(__name__)

AUTH_TYPES = ("none", "basic", "cookie")
PROTOCOLS = ("http", "https")
DEFAULT_TIMEOUT = 10


class ScrapeError(Exception):
    """Base for every failure confined to a single server's scrape."""

    kind = "scrape"


class TransportError(ScrapeError):
    kind = "transport"


class StatusError(ScrapeError):
    kind = "status"

    def __init__(self, status_code, message=None):
        self.status_code = status_code
        super().__init__(message or "Unexpected status code {}".format(status_code))


class DecodeError(ScrapeError):
    kind = "decode"


class AuthError(ScrapeError):
    kind = "auth"


class UnexpectedError(ScrapeError):
    kind = "unexpected"


class ServerProfile(
    collections.namedtuple(
        "ServerProfile",
        [
            "hostname",
            "protocol",
            "port",
            "api_version",
            "auth_type",
            "username",
            "password",
            "base_url",
        ],
    )
):
    __slots__ = ()

    @classmethod
    def from_dict(cls, d):
        if not isinstance(d, dict):
            raise ConfigError("Server definition must be an object, got {!r}".format(d))
        hostname = d.get("hostname")
        if not hostname or not isinstance(hostname, str):
            raise ConfigError("Server definition is missing a hostname: {!r}".format(d))
        protocol = d.get("protocol") or "https"
        if protocol not in PROTOCOLS:
            raise ConfigError(
                "Unknown protocol {!r} for {} (expected http or https)".format(
                    protocol, hostname
                )
            )
        port = d.get("port") or None
        if port is not None:
            port = str(port)
        api_version = d.get("api_version") or "v2"
        auth_type = d.get("auth_type") or "none"
        if auth_type not in AUTH_TYPES:
            raise ConfigError(
                "Unknown auth_type {!r} for {} (expected one of {})".format(
                    auth_type, hostname, ", ".join(AUTH_TYPES)
                )
            )
        if auth_type == "none":
            username = ""
            password = ""
        else:
            username = d.get("username") or ""
            password = d.get("password") or ""
            if not username or not password:
                raise ConfigError(
                    "auth_type {} for {} requires a username and password".format(
                        auth_type, hostname
                    )
                )

        if port:
            base_url = "{}://{}:{}".format(protocol, hostname, port)
        else:
            base_url = "{}://{}".format(protocol, hostname)

        return cls(
            hostname=hostname,
            protocol=protocol,
            port=port,
            api_version=api_version,
            auth_type=auth_type,
            username=username,
            password=password,
            base_url=base_url,
        )

    def api_url(self, path):
        return "{}/api/{}/{}".format(self.base_url, self.api_version, path)

    def __repr__(self):
        # Keep the password out of log lines.
        return "ServerProfile(hostname={!r}, base_url={!r}, auth_type={!r})".format(
            self.hostname, self.base_url, self.auth_type
        )


TorrentRecord = collections.namedtuple(
    "TorrentRecord", ["name", "state", "tracker", "ratio", "uploaded", "size"]
)

ScrapeResult = collections.namedtuple(
    "ScrapeResult", ["profile", "torrents", "error", "duration"]
)


def parse_torrent(item):
    if not isinstance(item, dict):
        raise DecodeError("Torrent entry is not an object: {!r}".format(item))
    try:
        name = item["name"]
        state = item["state"]
        tracker = item["tracker"]
        ratio = float(item["ratio"])
        uploaded = int(item["uploaded"])
        size = item.get("size")
        if size is not None:
            size = int(size)
    except KeyError as e:
        raise DecodeError("Torrent entry is missing {}".format(e)) from e
    except (TypeError, ValueError, OverflowError) as e:
        raise DecodeError("Torrent entry has a bad value: {}".format(e)) from e
    for k, v in (("name", name), ("state", state), ("tracker", tracker)):
        if not isinstance(v, str):
            raise DecodeError("Torrent field {} is not a string: {!r}".format(k, v))
    return TorrentRecord(
        name=name,
        state=state,
        tracker=tracker,
        ratio=ratio,
        uploaded=uploaded,
        size=size,
    )


def parse_torrents(j):
    if not isinstance(j, list):
        raise DecodeError("Expected a JSON array, got {}".format(type(j).__name__))
    return [parse_torrent(item) for item in j]


class QbittorrentClient:
    def __init__(self, profile, timeout=DEFAULT_TIMEOUT, session=None):
        self.profile = profile
        self.timeout = timeout
        self.r_session = session if session is not None else requests.Session()
        self.logged_in = False
        if profile.auth_type == "basic":
            self.r_session.auth = (profile.username, profile.password)

    def login(self):
        try:
            r = self.r_session.post(
                self.profile.api_url("auth/login"),
                data={
                    "username": self.profile.username,
                    "password": self.profile.password,
                },
                headers={"Referer": self.profile.base_url},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError("Login request failed: {}".format(e)) from e
        if r.status_code != 200 or r.text.strip() != "Ok.":
            self.logged_in = False
            raise AuthError(
                "Login rejected (status {}, body {!r})".format(
                    r.status_code, r.text[:64]
                )
            )
        self.logged_in = True

    def get(self, path):
        try:
            return self.r_session.get(self.profile.api_url(path), timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(str(e)) from e

    def torrents(self):
        if self.profile.auth_type == "cookie" and not self.logged_in:
            self.login()

        r = self.get("torrents/info")
        if r.status_code == 403 and self.profile.auth_type == "cookie":
            logger.debug("Session for {} expired, logging in again".format(
                self.profile.hostname
            ))
            self.login()
            r = self.get("torrents/info")

        if r.status_code in (401, 403):
            if self.profile.auth_type == "cookie":
                self.logged_in = False
            raise AuthError("Authentication rejected (status {})".format(r.status_code))
        if not 200 <= r.status_code < 300:
            raise StatusError(r.status_code)

        try:
            j = r.json()
        except ValueError as e:
            raise DecodeError("Response is not valid JSON: {}".format(e)) from e
        return parse_torrents(j)


def scrape(client):
    """Run one scrape attempt; failures come back in the result, never raised."""
    hostname = client.profile.hostname
    begin = time.time()
    try:
        torrents = client.torrents()
    except ScrapeError as e:
        duration = time.time() - begin
        logger.warning(
            "Scrape of {} failed ({} error): {}".format(hostname, e.kind, e)
        )
        return ScrapeResult(client.profile, None, e, duration)
    except Exception as e:
        duration = time.time() - begin
        logger.exception("Unexpected error scraping {}".format(hostname))
        error = UnexpectedError("{}: {}".format(type(e).__name__, e))
        return ScrapeResult(client.profile, None, error, duration)
    duration = time.time() - begin
    logger.debug(
        "Scraped {} torrents from {} in {:.3f}s".format(
            len(torrents), hostname, duration
        )
    )
    return ScrapeResult(client.profile, torrents, None, duration)
