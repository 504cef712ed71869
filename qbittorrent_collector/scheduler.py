# SPDX-FileComment: qbittorrent-collector
# SPDX-FileCopyrightText: Copyright (C) 2024 qbittorrent-collector contributors
# SPDX-License-Identifier: MPL-2.0

from concurrent.futures import ThreadPoolExecutor, as_completed
import logging
import threading
import time

from .client import scrape


logger = logging.getLogger(__name__)

IDLE = "idle"
SCRAPING = "scraping"


def fan_out(clients, registry, max_workers=None, on_result=None):
    """Scrape every client concurrently and apply successes as they land.

    A failed server contributes nothing, leaving whatever it last
    published in the registry.  Returns every ScrapeResult.
    """
    if not clients:
        return []

    results = []
    with ThreadPoolExecutor(
        max_workers=max_workers or len(clients),
        thread_name_prefix="scrape",
    ) as executor:
        futures = {executor.submit(scrape, client): client for client in clients}
        for future in as_completed(futures):
            try:
                result = future.result()
            except Exception:
                logger.exception(
                    "Unexpected error scraping {}".format(
                        futures[future].profile.hostname
                    )
                )
                continue
            if result.error is None:
                registry.apply(result.profile.hostname, result.torrents)
            if on_result is not None:
                try:
                    on_result(result)
                except Exception:
                    logger.exception(
                        "Error reporting result for {}".format(result.profile.hostname)
                    )
            results.append(result)
    return results


class Scheduler:
    def __init__(self, cycle, interval, on_cycle=None, on_error=None):
        self.cycle = cycle
        self.interval = interval
        self.on_cycle = on_cycle
        self.on_error = on_error
        self.state = IDLE
        self.cycles = 0
        self.stop_event = threading.Event()
        self._thread = None

    def run_once(self):
        self.state = SCRAPING
        logger.debug("Beginning collection run")
        begin = time.monotonic()
        try:
            self.cycle()
        except Exception:
            logger.exception("Encountered an error during collection")
            if self.on_error is not None:
                self.on_error()
        finally:
            self.state = IDLE
            self.cycles += 1
        duration = time.monotonic() - begin
        if self.on_cycle is not None:
            self.on_cycle(duration)
        return duration

    def next_delay(self, duration):
        # Fixed rate from cycle start; an overrun starts the next cycle at once.
        return max(0.0, self.interval - duration)

    def run(self, stop_event=None):
        if stop_event is None:
            stop_event = self.stop_event
        while not stop_event.is_set():
            duration = self.run_once()
            delay = self.next_delay(duration)
            if duration > self.interval:
                logger.warning(
                    "Collection took {:.1f}s, longer than the {}s interval".format(
                        duration, self.interval
                    )
                )
            logger.debug("Sleeping for {:.3f}".format(delay))
            stop_event.wait(delay)
        logger.debug("Scheduler stopped after {} cycles".format(self.cycles))

    def start(self):
        self.stop_event.clear()
        self._thread = threading.Thread(
            target=self.run, name="scheduler", daemon=True
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout=None):
        self.stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
