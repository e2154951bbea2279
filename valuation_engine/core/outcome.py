"""
Two-path result type for calls to external collaborators.

Components that depend on a remote service expose ``try_remote() -> Outcome``
and ``local_fallback() -> T``; the caller picks the path by inspecting the
outcome instead of catching exceptions.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException) -> "Outcome[T]":
        return cls(error=error)


async def attempt(awaitable: Awaitable[T], timeout: float) -> Outcome[T]:
    """Await ``awaitable`` under ``timeout`` seconds, folding any failure into an Outcome."""
    try:
        return Outcome.success(await asyncio.wait_for(awaitable, timeout))
    except asyncio.TimeoutError:
        return Outcome.failure(TimeoutError(f"timed out after {timeout:g}s"))
    except Exception as exc:
        return Outcome.failure(exc)
