"""
Tag-versioned caching on top of Flask-Caching.

Flask-Caching backends have no notion of tags, so every tag owns a small
version token. A cached entry's key embeds the current token of each of its
tags; flushing a tag swaps the token, which makes every entry built under the
old token unreachable (it then ages out through its own timeout).
"""

from __future__ import annotations

import hashlib
import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, FrozenSet, Iterable, Optional

from module_anatomy.extensions import cache
from module_anatomy.utils.logging_utils import get_logger, log_context

_TAG_PREFIX = "tag:"


@dataclass(frozen=True)
class CacheDescriptor:
    """Per-flag cache namespace: key name, tags, and lifetime in minutes."""

    name: str
    tags: FrozenSet[str] = field(default_factory=frozenset)
    duration: int = 24 * 60

    @property
    def timeout(self) -> int:
        return int(self.duration) * 60


def flag_tag(flag: str) -> str:
    return f"flag:{flag}"


def _new_token() -> str:
    return uuid.uuid4().hex[:12]


def _digest(*parts: Any) -> str:
    raw = json.dumps(parts, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


class TaggedCache:
    def __init__(self, backend: Optional[Any] = None) -> None:
        self._backend = backend if backend is not None else cache

    def tag_version(self, tag: str) -> str:
        key = _TAG_PREFIX + tag
        token = self._backend.get(key)
        if token is None:
            # add() keeps the token another writer may have set in between
            self._backend.add(key, _new_token(), timeout=0)
            token = self._backend.get(key)
        return token

    def build_key(self, descriptor: CacheDescriptor, tags: Iterable[str], key_parts: Any) -> str:
        versions = [(tag, self.tag_version(tag)) for tag in sorted(set(tags))]
        return f"{descriptor.name}:{_digest(versions, key_parts)}"

    def remember(
        self,
        descriptor: CacheDescriptor,
        key_parts: Any,
        producer: Callable[[], Any],
        *,
        extra_tags: Iterable[str] = (),
    ) -> Any:
        logger = get_logger("cache")
        tags = set(descriptor.tags) | set(extra_tags)
        key = self.build_key(descriptor, tags, key_parts)
        value = self._backend.get(key)
        if value is not None:
            logger.debug("cache hit name=%s key=%s", descriptor.name, key)
            return value
        logger.debug("cache miss name=%s key=%s", descriptor.name, key)
        value = producer()
        self._backend.set(key, value, timeout=descriptor.timeout)
        return value

    def flush(self, tags: Iterable[str]) -> None:
        """Invalidate every entry carrying any of ``tags``.

        Failures are retried once and then logged; a committed write is never
        undone because the cache could not be reached.
        """
        logger = get_logger("cache")
        for tag in sorted(set(tags)):
            with log_context(cache_tag=tag):
                for attempt in (1, 2):
                    try:
                        self._backend.set(_TAG_PREFIX + tag, _new_token(), timeout=0)
                        logger.info("cache tag flushed tag=%s", tag)
                        break
                    except Exception:
                        if attempt == 2:
                            logger.exception("cache tag flush failed tag=%s; stale reads possible until expiry", tag)
