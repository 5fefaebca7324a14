"""Cooperative cancellation for long-running extraction calls.

A ``CancellationToken`` is passed into every long-running stage (resampling,
peak extraction, peak combining, accurate mass adjustment, window loop).
Stages call ``raise_if_cancelled()`` between units of work (a scan, a seed
peak, a feature, a window). Cancellation surfaces to the caller as
``ExtractionCancelled``; the library never catches it.

Examples
--------
>>> token = CancellationToken()
>>> worker = threading.Thread(target=lambda: find_features(run, cancel=token))
>>> worker.start()
>>> token.cancel()      # worker raises ExtractionCancelled at the next check
"""

import threading


class ExtractionCancelled(Exception):
    """Raised when feature extraction is aborted through its cancellation token."""


class CancellationToken:
    """Thread-safe cancellation flag shared between a caller and a worker."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ExtractionCancelled("feature extraction cancelled")


# Shared token for callers that never cancel
NEVER_CANCELLED = CancellationToken()


def ensure_token(token):
    """Return ``token`` or the shared never-cancelled token when ``None``."""
    return NEVER_CANCELLED if token is None else token
