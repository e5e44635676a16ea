"""Discord user id -> display name cache used when rendering mentions for IRC."""

from __future__ import annotations

import threading
from collections.abc import Mapping

from loguru import logger


def raw_mention(user_id: int | str) -> str:
    """Placeholder for a mention whose name is unknown."""
    return f"<@{user_id}>"


class MentionCache:
    """Monotonic id -> name map, filled from live events.

    Entries are never evicted; a stale name is acceptable. Writers serialize
    on a lock, readers do a single dict lookup.
    """

    def __init__(self) -> None:
        self._names: dict[int, str] = {}
        self._write_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, user_id: object) -> bool:
        try:
            return int(user_id) in self._names  # type: ignore[call-overload]
        except (TypeError, ValueError):
            return False

    def resolve(self, user_id: int | str) -> str | None:
        """Cached name for user_id, or None. Never touches the network."""
        return self._names.get(int(user_id))

    def observe(self, user_id: int | str, name: str) -> None:
        """Record an authoritative id -> name fact. Last write wins."""
        if not name:
            return
        key = int(user_id)
        with self._write_lock:
            previous = self._names.get(key)
            self._names[key] = name
        if previous != name:
            logger.trace("Mention cache: {} -> {}", key, name)

    def resolve_or_search(
        self,
        user_id: int | str,
        context: Mapping[int | str, str] | None = None,
    ) -> str:
        """Display text for a mention of user_id.

        Checks the cache, then `context` (the users attached to the message
        being formatted). A context hit is written back to the cache. Returns
        `@name`, or the raw `<@id>` form when nothing is known.
        """
        name = self.resolve(user_id)
        if name is None and context:
            key = int(user_id)
            for candidate_id, candidate_name in context.items():
                if int(candidate_id) == key and candidate_name:
                    self.observe(key, candidate_name)
                    name = candidate_name
                    break
        if name is None:
            return raw_mention(user_id)
        return f"@{name}"
