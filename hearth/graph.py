"""Dependency-tracked memoization for derived household state.

A ``Graph`` owns three kinds of nodes:

* ``Source`` holds a value written from outside (repository collections, user
  selections, the session clock).
* ``Derived`` wraps a zero-argument function. Every ``get()`` made while the
  function runs is recorded together with the version it observed, so the
  dependency set is discovered automatically.
* ``Effect`` is a derivation run for its side effects. Effects are flushed
  after each write (or at the end of a ``batch()``) in registration order.

Writes push a dirty flag downstream; reads pull. A dirty derivation checks the
versions of the nodes it read last time and only calls its function again if
one of them moved. A derivation's own version only advances when the value it
produces is different from the cached one, so an unchanged result stops the
ripple.
"""

import logging
import time
from collections import deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_FLUSH_ROUNDS = 100

_UNSET: Any = object()


class CycleError(RuntimeError):
    def __init__(self, path: list[str]) -> None:
        self.path = path
        super().__init__("Derivation cycle: " + " -> ".join(path))


def _same(a: Any, b: Any) -> bool:
    return a is b or a == b


class Node:
    def __init__(self, graph: "Graph", name: str) -> None:
        self.graph = graph
        self.name = name
        self.version = 0
        self._dependents: set["Derived"] = set()
        self.order = graph._register(self)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} v{self.version}>"


class Source(Node, Generic[T]):
    def __init__(
        self,
        graph: "Graph",
        name: str,
        value: T,
        equals: Callable[[Any, Any], bool] = _same,
    ) -> None:
        super().__init__(graph, name)
        self._value = value
        self._equals = equals

    def get(self) -> T:
        self.graph._track(self)
        return self._value

    def peek(self) -> T:
        return self._value

    def set(self, value: T) -> bool:
        """Store ``value``. Returns False when it equals the current value."""
        self.graph._check_writable(self)
        if self._equals(self._value, value):
            return False
        self._value = value
        self.version += 1
        logger.debug("Source %s -> v%d", self.name, self.version, extra={"derivation": self.name})
        self.graph._invalidate(self)
        return True

    def update(self, fn: Callable[[T], T]) -> bool:
        return self.set(fn(self._value))


class Derived(Node, Generic[T]):
    def __init__(
        self,
        graph: "Graph",
        name: str,
        fn: Callable[[], T],
        equals: Callable[[Any, Any], bool] = _same,
    ) -> None:
        super().__init__(graph, name)
        self._fn = fn
        self._equals = equals
        self._value: Any = _UNSET
        self._deps: dict[Node, int] = {}
        self._dirty = True
        self.recompute_count = 0

    def get(self) -> T:
        value = self._refresh()
        self.graph._track(self)
        return value

    def peek(self) -> T:
        return self._refresh()

    @property
    def dependencies(self) -> list[str]:
        return [dep.name for dep in self._deps]

    def _refresh(self) -> T:
        graph = self.graph
        if self in graph._computing:
            graph._raise_cycle(self)
        if self._value is not _UNSET and not self._dirty:
            return self._value
        graph._computing.add(self)
        try:
            if self._value is _UNSET or self._deps_changed():
                self._recompute()
        finally:
            graph._computing.discard(self)
        self._dirty = False
        return self._value

    def _deps_changed(self) -> bool:
        for dep, seen in self._deps.items():
            if isinstance(dep, Derived):
                dep._refresh()
            if dep.version != seen:
                return True
        return False

    def _recompute(self) -> None:
        graph = self.graph
        previous_deps = self._deps
        self._deps = {}
        graph._stack.append(self)
        started = time.perf_counter()
        try:
            value = self._fn()
        except BaseException:
            # Forget the cached value so the next read retries instead of
            # trusting a half-recorded dependency set.
            self._value = _UNSET
            self._deps = {**previous_deps, **self._deps}
            raise
        finally:
            graph._stack.pop()

        for dep in previous_deps.keys() - self._deps.keys():
            dep._dependents.discard(self)
        for dep in self._deps:
            dep._dependents.add(self)

        self.recompute_count += 1
        changed = self._value is _UNSET or not self._equals(self._value, value)
        if changed:
            self._value = value
            self.version += 1
        logger.debug(
            "Recomputed %s (changed=%s)",
            self.name,
            changed,
            extra={"derivation": self.name, "latency_ms": round((time.perf_counter() - started) * 1000, 3)},
        )


class Effect(Derived[None]):
    def __init__(self, graph: "Graph", name: str, fn: Callable[[], None]) -> None:
        super().__init__(graph, name, fn, equals=lambda a, b: True)
        self.disposed = False

    def run(self) -> None:
        if not self.disposed:
            self._refresh()

    def dispose(self) -> None:
        self.disposed = True
        for dep in self._deps:
            dep._dependents.discard(self)
        self._deps = {}
        self.graph._pending_effects.discard(self)


class Graph:
    """Owns the nodes of one household session and their evaluation state."""

    def __init__(self) -> None:
        self.nodes: dict[str, Node] = {}
        self._stack: list[Derived] = []
        self._computing: set[Derived] = set()
        self._pending_effects: set[Effect] = set()
        self._batch_depth = 0
        self._flushing = False

    def source(self, name: str, value: T, equals: Callable[[Any, Any], bool] = _same) -> Source[T]:
        return Source(self, name, value, equals)

    def derived(self, name: str, fn: Callable[[], T], equals: Callable[[Any, Any], bool] = _same) -> Derived[T]:
        return Derived(self, name, fn, equals)

    def effect(self, name: str, fn: Callable[[], None]) -> Effect:
        eff = Effect(self, name, fn)
        self._pending_effects.add(eff)
        self._flush()
        return eff

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Group writes so effects run once, against the final state."""
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                self._flush()

    def _register(self, node: Node) -> int:
        if node.name in self.nodes:
            raise ValueError(f"Duplicate node name: {node.name}")
        self.nodes[node.name] = node
        return len(self.nodes)

    def _track(self, node: Node) -> None:
        if self._stack:
            self._stack[-1]._deps.setdefault(node, node.version)

    def _check_writable(self, source: Source) -> None:
        if self._stack and not isinstance(self._stack[-1], Effect):
            raise RuntimeError(f"Cannot write {source.name} while computing {self._stack[-1].name}")

    def _raise_cycle(self, node: Derived) -> None:
        names = [n.name for n in self._stack]
        start = names.index(node.name) if node.name in names else 0
        raise CycleError(names[start:] + [node.name])

    def _invalidate(self, source: Source) -> None:
        queue: deque[Derived] = deque(source._dependents)
        while queue:
            node = queue.popleft()
            if node._dirty:
                continue
            node._dirty = True
            if isinstance(node, Effect):
                self._pending_effects.add(node)
            queue.extend(node._dependents)
        self._flush()

    def _flush(self) -> None:
        if self._batch_depth or self._flushing:
            return
        self._flushing = True
        try:
            rounds = 0
            while self._pending_effects:
                rounds += 1
                if rounds > MAX_FLUSH_ROUNDS:
                    names = sorted(e.name for e in self._pending_effects)
                    self._pending_effects.clear()
                    raise CycleError(names)
                pending = sorted(self._pending_effects, key=lambda e: e.order)
                self._pending_effects.clear()
                for eff in pending:
                    eff.run()
        finally:
            self._flushing = False
