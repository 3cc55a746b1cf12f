"""Tests for the bundled item readers, processors and writers."""

from stepwise.domain.context import ExecutionContext
from stepwise.step.item import (
    FunctionItemProcessor,
    ItemStream,
    ListItemReader,
    ListItemWriter,
    PassThroughItemProcessor,
)


class TestListItemReader:
    def test_reads_until_exhausted(self):
        reader = ListItemReader([1, 2])
        assert [reader.read(), reader.read(), reader.read()] == [1, 2, None]

    def test_input_is_copied(self):
        items = [1, 2]
        reader = ListItemReader(items)
        items.append(3)
        assert [reader.read(), reader.read(), reader.read()] == [1, 2, None]

    def test_update_records_position(self):
        reader = ListItemReader(["a", "b", "c"], name="prices")
        reader.read()
        reader.read()
        context = ExecutionContext()
        reader.update(context)
        assert context.get("prices.read.count") == 2

    def test_open_resumes_from_context(self):
        reader = ListItemReader(["a", "b", "c"], name="prices")
        reader.open(ExecutionContext({"prices.read.count": 2}))
        assert reader.read() == "c"
        assert reader.read() is None

    def test_open_without_state_starts_at_beginning(self):
        reader = ListItemReader(["a"])
        reader.open(ExecutionContext())
        assert reader.read() == "a"

    def test_is_a_stream(self):
        assert isinstance(ListItemReader([]), ItemStream)


class TestProcessors:
    def test_pass_through(self):
        item = {"id": 1}
        assert PassThroughItemProcessor().process(item) is item

    def test_function_processor(self):
        assert FunctionItemProcessor(str.upper).process("abc") == "ABC"

    def test_function_processor_can_filter(self):
        assert FunctionItemProcessor(lambda item: None).process("abc") is None


class TestListItemWriter:
    def test_collects_chunks(self):
        writer = ListItemWriter()
        writer.write([1, 2])
        writer.write([3])
        assert writer.written_items == [1, 2, 3]
        assert writer.write_calls == 2


class TestItemStream:
    def test_hooks_are_no_ops(self):
        stream = ItemStream()
        context = ExecutionContext()
        stream.open(context)
        stream.update(context)
        stream.close()
        assert context.is_empty
