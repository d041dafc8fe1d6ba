"""Caching and memoization support."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Hashable

from specwise._async import CancelSignal, raise_if_cancelled
from specwise._core import Specification, as_specification
from specwise._errors import InvalidArgumentError, require
from specwise._expression import PredicateExpression
from specwise._types import T

logger = logging.getLogger(__name__)


class CachedSpecification(Specification[T]):
    """
    A specification that remembers its result per entity key.

    The key is computed with ``key_selector``; once a key has a recorded
    result it is returned for every entity producing that key, even if a
    fresh evaluation would differ. Concurrent misses may evaluate the
    wrapped specification more than once, but the first stored result wins
    and is what every caller gets back.

    Example:
        by_id = CachedSpecification(is_eligible, lambda user: user.id)
        by_id.is_satisfied_by(user)   # evaluates
        by_id.is_satisfied_by(user)   # cached
        by_id.cache_count             # 1
    """

    def __init__(
        self,
        specification: Specification[T] | PredicateExpression[T],
        key_selector: Callable[[T], Hashable],
    ):
        super().__init__()
        self.specification = as_specification(specification, "specification")
        require(key_selector, "key_selector")
        if not callable(key_selector):
            raise InvalidArgumentError("key_selector must be callable", "key_selector")
        self.key_selector = key_selector
        self._cache: dict[Hashable, bool] = {}
        self._cache_lock = threading.Lock()

    def _build_expression(self) -> PredicateExpression[T]:
        return self.specification.as_expression()

    def _store(self, key: Hashable, result: bool) -> bool:
        with self._cache_lock:
            return self._cache.setdefault(key, result)

    def _evaluate(self, entity: T) -> bool:
        key = self.key_selector(entity)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        return self._store(key, self.specification._evaluate(entity))

    async def is_satisfied_by_async(
        self, entity: T, cancel: CancelSignal | None = None
    ) -> bool:
        require(entity, "entity")
        raise_if_cancelled(cancel)
        key = self.key_selector(entity)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        result = await self.specification.is_satisfied_by_async(entity, cancel)
        return self._store(key, bool(result))

    def clear_cache(self) -> None:
        """Forget every recorded result."""
        with self._cache_lock:
            count = len(self._cache)
            self._cache = {}
        logger.debug("Cleared %d cached results from %r", count, self)

    @property
    def cache_count(self) -> int:
        """Number of keys with a recorded result."""
        return len(self._cache)

    def __repr__(self) -> str:
        return f"CachedSpecification({self.specification!r})"
