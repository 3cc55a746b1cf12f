"""
Chunk-oriented step: read N, process N, write once, commit.

Manifesto:
    Each chunk is one transaction. Either the whole chunk's writes and the
    step's progress (counters, ExecutionContext) become visible together,
    or none of them do. A restart therefore resumes at the first item of
    the first uncommitted chunk.

Loop:
    1. check for a stop request (chunk boundary only)
    2. begin transaction
    3. read until the completion policy says the chunk is full or the
       reader returns None; failures go through retry, then skip
    4. process each item; None filters it; failures go through retry,
       then skip
    5. write the surviving items in one call
    6. let item streams record their position, commit
    7. apply the chunk's counters, persist context and step execution
       (a failure here means committed data and metadata disagree:
       FatalStepExecutionError, step ends UNKNOWN)

Write failures:
    With a stateful write retry policy the failed chunk is rolled back and
    the same processed items are re-delivered in a new transaction until
    the policy is exhausted. The exhausted items are then offered to the
    skip policy as write skips; if it refuses, the chunk rolls back and the
    step fails. Without a write retry policy, a write failure rolls back
    and fails the step.

Tags:
    chunk, transaction, retry, skip, restart
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Sequence
from dataclasses import dataclass, field
from typing import Any

from stepwise.core.errors import BatchError, ExhaustedRetryError, FatalStepExecutionError
from stepwise.core.logging import get_logger
from stepwise.domain.context import ExecutionContext
from stepwise.domain.models import StepContribution, StepExecution
from stepwise.repository.job_repository import JobRepository
from stepwise.retry.backoff import BackOffPolicy
from stepwise.retry.cache import MapRetryContextCache, RetryContextCache
from stepwise.retry.context import RetryContext
from stepwise.retry.policy import NeverRetryPolicy, RetryPolicy
from stepwise.retry.stateful import RecoveryRetryCallback, StatefulRetryPolicy
from stepwise.retry.template import RetryTemplate
from stepwise.step.base import UNLIMITED_STARTS, Step
from stepwise.step.completion import CompletionPolicy, SimpleCompletionPolicy
from stepwise.step.interruption import StepInterruptionPolicy
from stepwise.step.item import ItemProcessor, ItemReader, ItemStream, ItemWriter
from stepwise.step.listener import ChunkListener, SkipListener, StepExecutionListener
from stepwise.step.skip import NeverSkipPolicy, SkipPolicy
from stepwise.step.transaction import ResourcelessTransactionManager, TransactionManager

logger = get_logger(__name__)

ChunkKeyGenerator = Callable[[list[Any]], Hashable]


def default_chunk_key(items: list[Any]) -> Hashable:
    """Key a chunk by its items; falls back to identity for unhashable items."""
    try:
        key = tuple(items)
        hash(key)
    except TypeError:
        return tuple(id(item) for item in items)
    return key


@dataclass
class Chunk:
    """Items of one chunk; kept across re-deliveries of a failed write."""

    inputs: list[Any] = field(default_factory=list)
    outputs: list[Any] = field(default_factory=list)
    end_of_input: bool = False
    processed: bool = False
    deliveries: int = 0
    contribution: StepContribution = field(default_factory=StepContribution)


class ChunkOrientedStep(Step):
    """Step that moves items from a reader to a writer in chunks.

    Args:
        name: Step name
        repository: Job repository
        reader: Item source; None from ``read()`` ends the input
        writer: Item sink, called once per chunk
        processor: Optional transformation; None filters the item
        completion_policy: When a chunk is full (default 10 items)
        transaction_manager: Chunk transaction boundaries
        retry_policy: Stateless policy for read and process failures
        back_off_policy: Pause between read/process retries
        skip_policy: Whether a read/process failure skips the item
        write_retry_policy: Enables stateful write retry with re-delivery
        retry_cache: Cache for stateful write retry contexts
        chunk_key_generator: Identifies a chunk across re-deliveries
        interruption_policy: Stop-request check at chunk boundaries
        streams: Extra ItemStreams to open/update/close with the step
        chunk_listeners: Chunk listeners
        skip_listeners: Skip listeners
    """

    def __init__(
        self,
        name: str,
        repository: JobRepository,
        reader: ItemReader,
        writer: ItemWriter,
        processor: ItemProcessor | None = None,
        *,
        completion_policy: CompletionPolicy | None = None,
        transaction_manager: TransactionManager | None = None,
        retry_policy: RetryPolicy | None = None,
        back_off_policy: BackOffPolicy | None = None,
        skip_policy: SkipPolicy | None = None,
        write_retry_policy: RetryPolicy | None = None,
        retry_cache: RetryContextCache | None = None,
        chunk_key_generator: ChunkKeyGenerator = default_chunk_key,
        interruption_policy: StepInterruptionPolicy | None = None,
        streams: Sequence[ItemStream] = (),
        listeners: Sequence[StepExecutionListener] = (),
        chunk_listeners: Sequence[ChunkListener] = (),
        skip_listeners: Sequence[SkipListener] = (),
        allow_start_if_complete: bool = False,
        start_limit: int = UNLIMITED_STARTS,
    ):
        super().__init__(
            name,
            repository,
            listeners=listeners,
            allow_start_if_complete=allow_start_if_complete,
            start_limit=start_limit,
        )
        self.reader = reader
        self.writer = writer
        self.processor = processor
        self.completion_policy = completion_policy or SimpleCompletionPolicy(10)
        self.transaction_manager = transaction_manager or ResourcelessTransactionManager()
        self.skip_policy = skip_policy or NeverSkipPolicy()
        self.interruption_policy = interruption_policy or StepInterruptionPolicy()
        self.chunk_key_generator = chunk_key_generator
        self.chunk_listeners = list(chunk_listeners)
        self.skip_listeners = list(skip_listeners)

        self._item_template = RetryTemplate(
            retry_policy=retry_policy or NeverRetryPolicy(),
            back_off_policy=back_off_policy,
        )
        self.write_retry_policy = write_retry_policy
        self.retry_cache: RetryContextCache | None = None
        self._write_template: RetryTemplate | None = None
        if write_retry_policy is not None:
            self.retry_cache = retry_cache or MapRetryContextCache()
            self._write_template = RetryTemplate(
                retry_policy=StatefulRetryPolicy(write_retry_policy, self.retry_cache),
            )

        self.streams: list[ItemStream] = []
        for candidate in (reader, processor, writer, *streams):
            if isinstance(candidate, ItemStream) and candidate not in self.streams:
                self.streams.append(candidate)

    # ── Stream lifecycle ─────────────────────────────────────────

    def open(self, execution_context: ExecutionContext) -> None:
        for stream in self.streams:
            stream.open(execution_context)

    def close(self, execution_context: ExecutionContext) -> None:
        for stream in self.streams:
            stream.close()

    def _update_streams(self, execution_context: ExecutionContext) -> None:
        for stream in self.streams:
            stream.update(execution_context)

    # ── Loop ─────────────────────────────────────────────────────

    def do_execute(self, step_execution: StepExecution) -> None:
        pending: Chunk | None = None
        while True:
            self.interruption_policy.check_interrupted(step_execution)
            chunk = pending or Chunk()
            pending = None
            try:
                finished = self._run_chunk(step_execution, chunk)
            except Exception as e:
                if self._should_redeliver(chunk, e):
                    logger.info(
                        "chunk.redeliver",
                        items=len(chunk.outputs),
                        delivery=chunk.deliveries,
                        error=str(e),
                    )
                    pending = chunk
                    continue
                self._forget_chunk(chunk)
                raise
            if finished:
                return

    def _run_chunk(self, step_execution: StepExecution, chunk: Chunk) -> bool:
        """Run one chunk transaction; True when the input is exhausted."""
        contribution = chunk.contribution
        chunk.deliveries += 1
        for listener in self.chunk_listeners:
            listener.before_chunk(step_execution)

        transaction = self.transaction_manager.begin()
        try:
            if not chunk.processed:
                self._read_chunk(step_execution, chunk, contribution)
                self._process_chunk(step_execution, chunk, contribution)
                chunk.processed = True
            self._write_chunk(step_execution, chunk, contribution)
            self._update_streams(step_execution.execution_context)
            self.transaction_manager.commit(transaction)
        except Exception as e:
            self._rollback(transaction, step_execution, contribution, e)
            raise

        # an empty final chunk still carries read skips, but is not counted as a commit
        step_execution.apply_contribution(contribution)
        if chunk.inputs:
            step_execution.commit_count += 1
        try:
            self.repository.update_execution_context(step_execution)
            self.repository.update(step_execution)
        except Exception as e:
            raise FatalStepExecutionError(
                "Fatal failure detected while persisting step state after chunk commit",
                cause=e,
                step_name=step_execution.step_name,
                step_execution_id=step_execution.id,
            ) from e

        for listener in reversed(self.chunk_listeners):
            listener.after_chunk(step_execution)
        logger.debug(
            "chunk.committed",
            items=len(chunk.inputs),
            written=contribution.write_count,
            commit_count=step_execution.commit_count,
        )
        return chunk.end_of_input

    def _rollback(
        self,
        transaction: Any,
        step_execution: StepExecution,
        contribution: StepContribution,
        error: BaseException,
    ) -> None:
        logger.warning("chunk.rollback", error_type=type(error).__name__, error=str(error))
        self.transaction_manager.rollback(transaction)
        step_execution.rollback_count += 1
        # items read before the failure still count as read
        step_execution.read_count += contribution.read_count
        contribution.read_count = 0
        for listener in reversed(self.chunk_listeners):
            listener.after_chunk_error(step_execution, error)

    def _should_redeliver(self, chunk: Chunk, error: BaseException) -> bool:
        if self.write_retry_policy is None or not chunk.processed:
            return False
        if isinstance(error, BatchError):
            return False
        return self.write_retry_policy.classify(error)

    def _forget_chunk(self, chunk: Chunk) -> None:
        """Drop write-retry history for a chunk that will not be re-delivered."""
        if self.retry_cache is not None and chunk.outputs:
            self.retry_cache.remove(self.chunk_key_generator(chunk.outputs))

    # ── Read / process ───────────────────────────────────────────

    def _read_chunk(
        self, step_execution: StepExecution, chunk: Chunk, contribution: StepContribution
    ) -> None:
        state = self.completion_policy.start()
        while not self.completion_policy.is_complete(state):
            item = self._read_item(step_execution, contribution)
            if item is None:
                chunk.end_of_input = True
                return
            chunk.inputs.append(item)
            self.completion_policy.update(state)

    def _read_item(self, step_execution: StepExecution, contribution: StepContribution) -> Any:
        while True:
            try:
                item = self._item_template.execute(lambda ctx: self.reader.read())
            except Exception as e:
                if self._should_skip(step_execution, contribution, e):
                    contribution.read_skip_count += 1
                    logger.info("chunk.read_skipped", error=str(e))
                    for listener in self.skip_listeners:
                        listener.on_skip_in_read(e)
                    continue
                raise
            if item is not None:
                contribution.read_count += 1
            return item

    def _process_chunk(
        self, step_execution: StepExecution, chunk: Chunk, contribution: StepContribution
    ) -> None:
        if self.processor is None:
            chunk.outputs = list(chunk.inputs)
            return
        processor = self.processor
        for item in chunk.inputs:
            try:
                result = self._item_template.execute(lambda ctx, item=item: processor.process(item))
            except Exception as e:
                if self._should_skip(step_execution, contribution, e):
                    contribution.process_skip_count += 1
                    logger.info("chunk.process_skipped", error=str(e))
                    for listener in self.skip_listeners:
                        listener.on_skip_in_process(item, e)
                    continue
                raise
            if result is None:
                contribution.filter_count += 1
                continue
            chunk.outputs.append(result)

    def _should_skip(
        self, step_execution: StepExecution, contribution: StepContribution, error: BaseException
    ) -> bool:
        skip_count = step_execution.skip_count + contribution.skip_count
        return self.skip_policy.should_skip(error, skip_count)

    # ── Write ────────────────────────────────────────────────────

    def _write_chunk(
        self, step_execution: StepExecution, chunk: Chunk, contribution: StepContribution
    ) -> None:
        if not chunk.outputs:
            return
        if self._write_template is None:
            self.writer.write(chunk.outputs)
            contribution.write_count += len(chunk.outputs)
            return

        def write(context: RetryContext) -> None:
            self.writer.write(chunk.outputs)
            contribution.write_count += len(chunk.outputs)

        def recover(context: RetryContext) -> BaseException | None:
            logger.warning(
                "chunk.write_exhausted",
                items=len(chunk.outputs),
                retry_count=context.retry_count,
            )
            return context.last_failure

        callback = RecoveryRetryCallback(
            write,
            self.chunk_key_generator(chunk.outputs),
            recoverer=recover,
        )
        failure = self._write_template.execute(callback)
        if failure is not None:
            self._skip_chunk_outputs(step_execution, chunk, contribution, failure)

    def _skip_chunk_outputs(
        self,
        step_execution: StepExecution,
        chunk: Chunk,
        contribution: StepContribution,
        failure: BaseException,
    ) -> None:
        """Count an exhausted chunk's items as write skips, if the skip policy allows.

        Raises:
            SkipLimitExceededError: the skip limit is reached
            ExhaustedRetryError: the skip policy does not skip ``failure``
        """
        for _ in chunk.outputs:
            if not self._should_skip(step_execution, contribution, failure):
                raise ExhaustedRetryError(
                    "Non-skippable exception in recoverer",
                    cause=failure,
                    step_name=step_execution.step_name,
                    step_execution_id=step_execution.id,
                )
            contribution.write_skip_count += 1
        logger.info("chunk.write_skipped", items=len(chunk.outputs), error=str(failure))
        for listener in self.skip_listeners:
            for item in chunk.outputs:
                listener.on_skip_in_write(item, failure)


__all__ = ["Chunk", "ChunkOrientedStep", "ChunkKeyGenerator", "default_chunk_key"]
