"""
Name Index
==========

In-memory registry of the image identifiers a backend knows about.

The index is a cache of the durable medium, never the source of truth: each
backend seeds it by scanning its medium at construction and then updates it
on every successful write and delete. A rescan seeds a new index and
replaces the old one only once the scan has succeeded.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional

from ..error_handling import DuplicateIdentifierError, ImageNotFoundError

logger = logging.getLogger(__name__)


class NameIndex:
    """
    Deduplicated, ordered set of identifiers.

    Keeps a list for enumeration and a dict mapping each identifier to its
    list position for O(1) membership and removal. Removal swaps the last
    element into the freed slot, so enumeration follows insertion order only
    until the first removal.

    All operations hold an ``RLock``; ``names()`` returns a snapshot.
    """

    def __init__(self, identifiers: Optional[Iterable[str]] = None):
        self._names: List[str] = []
        self._positions: Dict[str, int] = {}
        self._lock = threading.RLock()

        for identifier in identifiers or ():
            self.add(identifier)

    def add(self, identifier: str) -> None:
        """
        Register ``identifier``.

        Raises:
            DuplicateIdentifierError: If ``identifier`` is already registered
        """
        with self._lock:
            if identifier in self._positions:
                raise DuplicateIdentifierError(
                    f"{identifier} already exists", {"identifier": identifier}
                )
            self._positions[identifier] = len(self._names)
            self._names.append(identifier)

    def remove(self, identifier: str) -> None:
        """
        Unregister ``identifier``.

        Raises:
            ImageNotFoundError: If ``identifier`` is not registered
        """
        with self._lock:
            position = self._positions.pop(identifier, None)
            if position is None:
                raise ImageNotFoundError(
                    f"image {identifier} is not found", {"identifier": identifier}
                )

            last = self._names.pop()
            if position < len(self._names):
                # swap the former last element into the freed slot
                self._names[position] = last
                self._positions[last] = position

    def names(self) -> List[str]:
        """Snapshot of the registered identifiers."""
        with self._lock:
            return list(self._names)

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return identifier in self._positions

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)

    def __repr__(self) -> str:
        return f"NameIndex({self.names()!r})"
