"""Timing spans for ``--verbose``.

Disabled by default; each hook then costs a single ContextVar lookup.
With ``--verbose`` the outermost traced service call owns a span tree
that ends up in ``ServiceResult.meta["telemetry"]``. Traced calls made
underneath it (including executor calls on pipeline worker threads,
which run in a copy of the submitting context) attach to that tree
instead of starting their own.
"""

from __future__ import annotations

import functools
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, ParamSpec, TypeVar

import structlog

from tflayerctl.services.result import ServiceResult

log = structlog.get_logger("tflayerctl.telemetry")

_enabled: ContextVar[bool] = ContextVar("tflayerctl_telemetry", default=False)
_active: ContextVar[Span | None] = ContextVar("tflayerctl_span", default=None)


@dataclass
class Span:
    """One timed step. Children may be added from several worker threads."""

    name: str
    annotations: dict[str, Any] = field(default_factory=dict)
    children: list[Span] = field(default_factory=list)
    started: float = field(default_factory=time.perf_counter)
    finished: float | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def duration_ms(self) -> float:
        if self.finished is None:
            return 0.0
        return (self.finished - self.started) * 1000

    def child(self, name: str, **annotations: Any) -> Span:
        span = Span(name=name, annotations=annotations)
        with self._lock:
            self.children.append(span)
        return span

    def finish(self) -> None:
        self.finished = time.perf_counter()

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name, "duration_ms": round(self.duration_ms, 2)}
        if self.annotations:
            out["annotations"] = dict(self.annotations)
        with self._lock:
            children = list(self.children)
        if children:
            out["children"] = [c.to_dict() for c in children]
        return out


@contextmanager
def _activate(span: Span) -> Iterator[Span]:
    token = _active.set(span)
    try:
        yield span
    finally:
        span.finish()
        _active.reset(token)


@contextmanager
def trace_span(name: str, **annotations: Any) -> Iterator[Span | None]:
    """Time a step inside a traced call; yields None when there is no active tree."""
    parent = _active.get() if _enabled.get() else None
    if parent is None:
        yield None
        return
    with _activate(parent.child(name, **annotations)) as span:
        yield span


def annotate(**values: Any) -> None:
    """Attach key/value pairs to the innermost active span, if any."""
    span = _active.get() if _enabled.get() else None
    if span is not None:
        span.annotations.update(values)


_P = ParamSpec("_P")
_R = TypeVar("_R")


def traced(func: Callable[_P, _R]) -> Callable[_P, _R]:  # noqa: UP047
    """Time a service method; the outermost one publishes the tree in ``meta``."""

    @functools.wraps(func)
    def wrapper(*args: _P.args, **kwargs: _P.kwargs) -> _R:
        if not _enabled.get():
            return func(*args, **kwargs)

        parent = _active.get()
        if parent is not None:
            with _activate(parent.child(func.__qualname__)):
                return func(*args, **kwargs)

        root = Span(name=func.__qualname__)
        with _activate(root):
            result = func(*args, **kwargs)
        log.debug("span.complete", span_name=root.name, duration_ms=round(root.duration_ms, 2))
        if isinstance(result, ServiceResult):
            meta = {**(result.meta or {}), "telemetry": root.to_dict()}
            result = result.model_copy(update={"meta": meta})  # type: ignore[assignment]
        return result

    return wrapper


def enable_telemetry() -> None:
    """Turn spans on for the current context (``--verbose``)."""
    _enabled.set(True)


def disable_telemetry() -> None:
    _enabled.set(False)
