"""
Mutation Executor
=================

Runs a remote write made of one or more ordered steps, then invalidates every
cached read registered under the mutation's declared tags.

Steps run exactly once, in order. There is no rollback: if a later step fails
the earlier steps stay applied and the failure is reported as a
PartialMutationError. A failed mutation never invalidates anything.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from folio.caching.errors import PartialMutationError, RemoteError
from folio.caching.keys import QueryKey, Tag, coerce_tags
from folio.caching.query_cache import QueryCache
from folio.monitoring.logging import log_context
from folio.notifications import Messages, Notice, Notifier, deliver

logger = structlog.get_logger(__name__)

StepAction = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class MutationDescriptor:
    """
    Static declaration of a mutation.

    ``invalidates`` must name at least one known tag; this is checked when the
    descriptor is created, typically at import time of the repository module.
    A ``success_message`` of None means success is silent.
    """

    name: str
    invalidates: frozenset[Tag]
    success_message: str | None = None
    failure_message: str | None = Messages.SOMETHING_WENT_WRONG

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Mutation name cannot be empty")
        object.__setattr__(
            self, "invalidates", coerce_tags(self.invalidates, owner=f"Mutation {self.name}")
        )

    @classmethod
    def declare(
        cls,
        name: str,
        tags: Iterable[Tag | str],
        success_message: str | None = None,
        failure_message: str | None = Messages.SOMETHING_WENT_WRONG,
    ) -> MutationDescriptor:
        return cls(
            name=name,
            invalidates=frozenset(tags),  # type: ignore[arg-type]
            success_message=success_message,
            failure_message=failure_message,
        )


@dataclass(frozen=True)
class MutationStep:
    """One remote sub-operation of a mutation."""

    name: str
    action: StepAction


@dataclass(frozen=True)
class MutationResult:
    name: str
    value: Any
    steps_completed: tuple[str, ...]
    invalidated_keys: frozenset[QueryKey] = field(default_factory=frozenset)


class MutationExecutor:
    """Executes mutations against the remote source and drives cache invalidation."""

    def __init__(self, cache: QueryCache, notifier: Notifier | None = None) -> None:
        self._cache = cache
        self._notifier = notifier

    async def execute(
        self,
        descriptor: MutationDescriptor,
        steps: Sequence[MutationStep],
    ) -> MutationResult:
        """
        Run ``steps`` in order and invalidate on success.

        Returns:
            MutationResult carrying the last step's return value

        Raises:
            RemoteError: The first step failed
            PartialMutationError: A later step failed after earlier ones took effect
        """
        if not steps:
            raise ValueError(f"Mutation {descriptor.name} has no steps")

        with log_context(operation=descriptor.name):
            return await self._run_steps(descriptor, steps)

    async def _run_steps(
        self,
        descriptor: MutationDescriptor,
        steps: Sequence[MutationStep],
    ) -> MutationResult:
        completed: list[str] = []
        value: Any = None
        for step in steps:
            try:
                value = await step.action()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = self._failure(descriptor, tuple(completed), step, e)
                logger.warning(
                    "mutation_failed",
                    mutation=descriptor.name,
                    step=step.name,
                    completed=list(completed),
                    error=str(e),
                )
                if descriptor.failure_message is not None:
                    await deliver(self._notifier, Notice.error(descriptor.failure_message, str(e)))
                if error is e:
                    raise
                raise error from e
            completed.append(step.name)

        invalidated = await self._cache.invalidate_tags(descriptor.invalidates)
        logger.info(
            "mutation_succeeded",
            mutation=descriptor.name,
            steps=len(completed),
            invalidated=len(invalidated),
        )
        if descriptor.success_message is not None:
            await deliver(self._notifier, Notice.success(descriptor.success_message))

        return MutationResult(
            name=descriptor.name,
            value=value,
            steps_completed=tuple(completed),
            invalidated_keys=invalidated,
        )

    @staticmethod
    def _failure(
        descriptor: MutationDescriptor,
        completed: tuple[str, ...],
        step: MutationStep,
        cause: Exception,
    ) -> RemoteError:
        if completed:
            return PartialMutationError(descriptor.name, completed, step.name, cause)
        if isinstance(cause, RemoteError):
            return cause
        return RemoteError(f"Mutation {descriptor.name} failed at '{step.name}': {cause}", cause=cause)


__all__ = [
    "MutationDescriptor",
    "MutationStep",
    "MutationResult",
    "MutationExecutor",
    "StepAction",
]
