"""Chunk execution loop -- read, process, write and commit in chunks.

MODULE MAP
──────────
  1. item.py          ─ ItemReader / ItemProcessor / ItemWriter / ItemStream
  2. completion.py    ─ when a chunk is full
  3. transaction.py   ─ chunk transaction boundaries
  4. interruption.py  ─ CancellationToken, chunk-boundary stop check
  5. listener.py      ─ step / chunk / skip listeners
  6. skip.py          ─ skip policies for read and process failures
  7. base.py          ─ Step lifecycle and failure mapping
  8. chunk.py         ─ ChunkOrientedStep (the loop)
  9. builder.py       ─ StepBuilder
"""

from .base import UNLIMITED_STARTS, Step
from .builder import StepBuilder
from .chunk import Chunk, ChunkOrientedStep, default_chunk_key
from .completion import (
    CompletionPolicy,
    CompositeCompletionPolicy,
    SimpleCompletionPolicy,
    TimeoutTerminationPolicy,
)
from .interruption import CancellationToken, StepInterruptionPolicy
from .item import (
    FunctionItemProcessor,
    ItemProcessor,
    ItemReader,
    ItemStream,
    ItemWriter,
    ListItemReader,
    ListItemWriter,
    PassThroughItemProcessor,
)
from .listener import ChunkListener, SkipListener, StepExecutionListener
from .skip import AlwaysSkipPolicy, LimitCheckingSkipPolicy, NeverSkipPolicy, SkipPolicy
from .transaction import (
    ConnectionTransactionManager,
    ResourcelessTransactionManager,
    TransactionManager,
)

__all__ = [
    "Step",
    "UNLIMITED_STARTS",
    "StepBuilder",
    "Chunk",
    "ChunkOrientedStep",
    "default_chunk_key",
    "CompletionPolicy",
    "SimpleCompletionPolicy",
    "TimeoutTerminationPolicy",
    "CompositeCompletionPolicy",
    "CancellationToken",
    "StepInterruptionPolicy",
    "ItemStream",
    "ItemReader",
    "ItemProcessor",
    "ItemWriter",
    "ListItemReader",
    "ListItemWriter",
    "PassThroughItemProcessor",
    "FunctionItemProcessor",
    "StepExecutionListener",
    "ChunkListener",
    "SkipListener",
    "SkipPolicy",
    "NeverSkipPolicy",
    "AlwaysSkipPolicy",
    "LimitCheckingSkipPolicy",
    "TransactionManager",
    "ResourcelessTransactionManager",
    "ConnectionTransactionManager",
]
