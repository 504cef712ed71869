#!/usr/bin/env python3

from setuptools import setup


setup(
    name="qbittorrent-collector",
    version="1.0.0",
    description="Prometheus collector for qBittorrent torrent state",
    license="MPL-2.0",
    packages=["qbittorrent_collector"],
    python_requires=">=3.8",
    install_requires=[
        "prometheus-client",
        "PyYAML",
        "requests",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-mock",
        ]
    },
    entry_points={
        "console_scripts": [
            "qbittorrent-collector = qbittorrent_collector.qbittorrent:main",
        ]
    },
)
