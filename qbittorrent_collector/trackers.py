# SPDX-FileComment: qbittorrent-collector
# SPDX-FileCopyrightText: Copyright (C) 2024 qbittorrent-collector contributors
# SPDX-License-Identifier: MPL-2.0

import logging
import urllib.parse


logger = logging.getLogger(__name__)


def tracker_hostname(url):
    """Return the host portion of a tracker announce URL.

    Anything that cannot be reduced to a host (unparsable, no scheme,
    empty) comes back unchanged, so a torrent is never dropped over a
    bad label.
    """
    try:
        parts = urllib.parse.urlsplit(url)
        hostname = parts.hostname
    except (ValueError, TypeError, AttributeError):
        logger.debug("Could not parse tracker URL {!r}".format(url))
        return url
    if not hostname:
        return url
    # .hostname lowercases; take the host from netloc to keep its case.
    host = parts.netloc.rpartition("@")[2]
    if host.startswith("["):
        return host[1 : host.find("]")]
    return host.partition(":")[0]
