import json
import sys
from pathlib import Path

import pytest
import requests

# Ensure root path is available for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from qbittorrent_collector.client import ServerProfile  # noqa: E402


SAMPLE_TORRENTS = [
    {
        "name": "Torrent 1",
        "state": "uploading",
        "tracker": "https://tracker1.example.com/announce/foobar",
        "ratio": 1.5,
        "uploaded": 104857600,
    },
    {
        "name": "Torrent 2",
        "state": "pausedUP",
        "tracker": "https://tracker2.example.com/announce/fizzbuzz",
        "ratio": 0.8,
        "uploaded": 52428800,
    },
]


def make_response(status_code=200, body=None, text=None):
    response = requests.Response()
    response.status_code = status_code
    if text is None:
        text = json.dumps(body if body is not None else [])
    response._content = text.encode("utf-8")
    response.encoding = "utf-8"
    return response


@pytest.fixture
def sample_torrents():
    return json.loads(json.dumps(SAMPLE_TORRENTS))


@pytest.fixture
def profile():
    return ServerProfile.from_dict({"hostname": "host-A"})


@pytest.fixture
def session(mocker):
    return mocker.Mock(spec=requests.Session)
