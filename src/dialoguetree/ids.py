"""Identifier generation for trees and nodes."""

from __future__ import annotations

import itertools
import time
from typing import Callable

IdFactory = Callable[[str], str]

_SEQUENCE = itertools.count(1)


def make_id(prefix: str) -> str:
    """Return ``<prefix>_<milliseconds>_<sequence>``.

    The sequence number is shared by every caller in the process, so two
    calls never return the same identifier even within one millisecond.
    """

    timestamp = int(time.time() * 1000)
    return f"{prefix}_{timestamp}_{next(_SEQUENCE)}"


__all__ = ["IdFactory", "make_id"]
