"""Fluent construction of chunk-oriented steps.

Example:
    >>> step = (
    ...     StepBuilder("load_prices", repository)
    ...     .reader(ListItemReader(rows))
    ...     .processor(FunctionItemProcessor(parse_row))
    ...     .writer(writer)
    ...     .chunk_size(100)
    ...     .retry(max_attempts=3, retryable=(TimeoutError,))
    ...     .skip(limit=5, skippable=(ValueError,))
    ...     .build()
    ... )
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from stepwise.core.settings import BatchSettings, get_settings
from stepwise.repository.job_repository import JobRepository
from stepwise.retry.backoff import BackOffPolicy
from stepwise.retry.cache import MapRetryContextCache, RetryContextCache
from stepwise.retry.policy import RetryPolicy, SimpleRetryPolicy
from stepwise.step.chunk import ChunkKeyGenerator, ChunkOrientedStep, default_chunk_key
from stepwise.step.completion import CompletionPolicy, SimpleCompletionPolicy
from stepwise.step.interruption import CancellationToken, StepInterruptionPolicy
from stepwise.step.item import FunctionItemProcessor, ItemProcessor, ItemReader, ItemStream, ItemWriter
from stepwise.step.listener import ChunkListener, SkipListener, StepExecutionListener
from stepwise.step.skip import LimitCheckingSkipPolicy, SkipPolicy
from stepwise.step.transaction import TransactionManager


class StepBuilder:
    """Builds a :class:`ChunkOrientedStep`; unset options come from settings."""

    def __init__(self, name: str, repository: JobRepository, settings: BatchSettings | None = None):
        self._name = name
        self._repository = repository
        self._settings = settings or get_settings()

        self._reader: ItemReader | None = None
        self._processor: ItemProcessor | None = None
        self._writer: ItemWriter | None = None
        self._completion_policy: CompletionPolicy | None = None
        self._transaction_manager: TransactionManager | None = None
        self._retry_policy: RetryPolicy | None = None
        self._back_off_policy: BackOffPolicy | None = None
        self._skip_policy: SkipPolicy | None = None
        self._write_retry_policy: RetryPolicy | None = None
        self._retry_cache: RetryContextCache | None = None
        self._chunk_key_generator: ChunkKeyGenerator = default_chunk_key
        self._token: CancellationToken | None = None
        self._streams: list[ItemStream] = []
        self._listeners: list[StepExecutionListener] = []
        self._chunk_listeners: list[ChunkListener] = []
        self._skip_listeners: list[SkipListener] = []
        self._allow_start_if_complete = False
        self._start_limit: int | None = None

    def reader(self, reader: ItemReader) -> StepBuilder:
        self._reader = reader
        return self

    def processor(self, processor: ItemProcessor | Callable[[Any], Any]) -> StepBuilder:
        if not isinstance(processor, ItemProcessor):
            processor = FunctionItemProcessor(processor)
        self._processor = processor
        return self

    def writer(self, writer: ItemWriter) -> StepBuilder:
        self._writer = writer
        return self

    def chunk_size(self, size: int) -> StepBuilder:
        self._completion_policy = SimpleCompletionPolicy(size)
        return self

    def completion_policy(self, policy: CompletionPolicy) -> StepBuilder:
        self._completion_policy = policy
        return self

    def transaction_manager(self, manager: TransactionManager) -> StepBuilder:
        self._transaction_manager = manager
        return self

    def retry(
        self,
        policy: RetryPolicy | None = None,
        *,
        max_attempts: int | None = None,
        retryable: Iterable[type[BaseException]] | None = None,
        back_off: BackOffPolicy | None = None,
    ) -> StepBuilder:
        """Stateless retry for read and process failures."""
        if policy is None:
            policy = SimpleRetryPolicy(
                max_attempts or self._settings.retry_max_attempts,
                retryable_exceptions=list(retryable) if retryable is not None else None,
            )
        self._retry_policy = policy
        self._back_off_policy = back_off
        return self

    def skip(
        self,
        policy: SkipPolicy | None = None,
        *,
        limit: int = 10,
        skippable: Iterable[type[BaseException]] | None = None,
    ) -> StepBuilder:
        if policy is None:
            policy = LimitCheckingSkipPolicy(
                limit, list(skippable) if skippable is not None else None
            )
        self._skip_policy = policy
        return self

    def stateful_write_retry(
        self,
        policy: RetryPolicy | None = None,
        *,
        cache: RetryContextCache | None = None,
        key_generator: ChunkKeyGenerator | None = None,
    ) -> StepBuilder:
        """Re-deliver failed chunks to the writer until ``policy`` gives up."""
        self._write_retry_policy = policy or SimpleRetryPolicy(self._settings.retry_max_attempts)
        self._retry_cache = cache or MapRetryContextCache(self._settings.retry_cache_capacity)
        if key_generator is not None:
            self._chunk_key_generator = key_generator
        return self

    def cancellation_token(self, token: CancellationToken) -> StepBuilder:
        self._token = token
        return self

    def stream(self, stream: ItemStream) -> StepBuilder:
        self._streams.append(stream)
        return self

    def listener(self, listener: Any) -> StepBuilder:
        """Register a step, chunk or skip listener (or one that is all three)."""
        matched = False
        if isinstance(listener, StepExecutionListener):
            self._listeners.append(listener)
            matched = True
        if isinstance(listener, ChunkListener):
            self._chunk_listeners.append(listener)
            matched = True
        if isinstance(listener, SkipListener):
            self._skip_listeners.append(listener)
            matched = True
        if not matched:
            raise TypeError(f"Unsupported listener type: {type(listener).__name__}")
        return self

    def allow_start_if_complete(self, allow: bool = True) -> StepBuilder:
        self._allow_start_if_complete = allow
        return self

    def start_limit(self, limit: int) -> StepBuilder:
        self._start_limit = limit
        return self

    def build(self) -> ChunkOrientedStep:
        if self._reader is None:
            raise ValueError(f"Step {self._name!r} has no reader")
        if self._writer is None:
            raise ValueError(f"Step {self._name!r} has no writer")

        return ChunkOrientedStep(
            self._name,
            self._repository,
            self._reader,
            self._writer,
            self._processor,
            completion_policy=self._completion_policy
            or SimpleCompletionPolicy(self._settings.chunk_size),
            transaction_manager=self._transaction_manager,
            retry_policy=self._retry_policy,
            back_off_policy=self._back_off_policy,
            skip_policy=self._skip_policy,
            write_retry_policy=self._write_retry_policy,
            retry_cache=self._retry_cache,
            chunk_key_generator=self._chunk_key_generator,
            interruption_policy=StepInterruptionPolicy(self._token),
            streams=self._streams,
            listeners=self._listeners,
            chunk_listeners=self._chunk_listeners,
            skip_listeners=self._skip_listeners,
            allow_start_if_complete=self._allow_start_if_complete,
            start_limit=self._start_limit if self._start_limit is not None else self._settings.start_limit,
        )


__all__ = ["StepBuilder"]
