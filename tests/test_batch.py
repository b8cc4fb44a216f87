"""Tests for the batch processor, activity logger and run progress."""

from ffc_migrations.activity import LEVEL_WARNING, ActivityLogger
from ffc_migrations.batch import BatchOutcome, BatchProcessor, RowResult
from ffc_migrations.conditions import Empty, Populated, all_of
from ffc_migrations.progress import RunProgress
from ffc_migrations.schema import RowUpdate
from ffc_migrations.strategies.base import ExecuteResult

from .conftest import fetch_row

PENDING = all_of([Populated("email"), Empty("email_hash")])


def mark_hashed(row):
    return RowResult.ok(row["id"], RowUpdate().set("email_hash", f"h-{row['email']}"))


class TestBatchProcessor:
    """Test bounded selection and per-row error isolation."""

    def test_processes_at_most_batch_size(self, storage, activity, add_submission):
        for i in range(7):
            add_submission(email=f"u{i}@example.com")
        processor = BatchProcessor(storage, activity)

        first = processor.process("ffc_submissions", 5, ["email"], PENDING, mark_hashed)
        second = processor.process("ffc_submissions", 5, ["email"], PENDING, mark_hashed)
        third = processor.process("ffc_submissions", 5, ["email"], PENDING, mark_hashed)

        assert (first.processed, second.processed, third.processed) == (5, 2, 0)
        assert storage.count("ffc_submissions", PENDING) == 0

    def test_transform_errors_are_collected(self, storage, activity, add_submission):
        good = add_submission(email="good@example.com")
        bad = add_submission(email="bad@example.com")

        def transform(row):
            if row["id"] == bad:
                raise ValueError("boom")
            return mark_hashed(row)

        outcome = BatchProcessor(storage, activity).process(
            "ffc_submissions", 10, ["email"], PENDING, transform
        )

        assert outcome.processed == 1
        assert outcome.errors == [f"Error processing ID {bad} in ffc_submissions: boom"]
        assert fetch_row(storage, "ffc_submissions", good)["email_hash"] == "h-good@example.com"
        assert fetch_row(storage, "ffc_submissions", bad)["email_hash"] is None

    def test_failure_results_and_write_errors(self, storage, activity, add_submission):
        failing = add_submission(email="a@example.com")
        unwritable = add_submission(email="b@example.com")

        def transform(row):
            if row["id"] == failing:
                return RowResult.failure(row["id"], "no value")
            return RowResult.ok(row["id"], RowUpdate().set("no_such_column", "x"))

        outcome = BatchProcessor(storage, activity).process(
            "ffc_submissions", 10, ["email"], PENDING, transform
        )

        assert outcome.processed == 0
        assert outcome.errors[0] == f"Error processing ID {failing} in ffc_submissions: no value"
        assert outcome.errors[1].startswith(f"Failed to update ID {unwritable} in ffc_submissions")

    def test_batch_event_is_logged(self, storage, activity, add_submission):
        add_submission(email="a@example.com")
        BatchProcessor(storage, activity).process(
            "ffc_submissions", 10, ["email"], PENDING, mark_hashed, event="test_batch"
        )

        [entry] = activity.find("test_batch")
        assert entry.context == {"table": "ffc_submissions", "processed": 1, "errors": 0}

    def test_outcome_merge(self):
        outcome = BatchOutcome(processed=1, errors=["a"])
        outcome.merge(BatchOutcome(processed=2, errors=["b"]))
        assert outcome.to_dict() == {"processed": 3, "errors": ["a", "b"]}
        assert outcome.has_errors


class TestActivityLogger:
    """Test the fire-and-forget activity log."""

    def test_entries_are_kept(self):
        activity = ActivityLogger(keep_entries=2)
        activity.log("one")
        activity.log("two", LEVEL_WARNING, {"id": 1})
        activity.log("three")

        assert [e.event for e in activity.entries] == ["two", "three"]
        assert activity.find("two")[0].to_dict()["context"] == {"id": 1}

    def test_sink_failures_are_ignored(self):
        def sink(entry):
            raise RuntimeError("sink down")

        assert ActivityLogger(sink=sink).log("event") is False

    def test_sink_receives_entries(self):
        received = []
        assert ActivityLogger(sink=received.append).log("event", context={"a": 1})
        assert received[0].event == "event"


class TestRunProgress:
    """Test accumulation of batch results."""

    def test_record_batches(self):
        progress = RunProgress(key="k").start()
        progress.record_batch(ExecuteResult(True, 50, True, "Encrypted 50 submissions"))
        progress.record_batch(ExecuteResult(False, 10, False, "Encrypted 10 submissions", ["e"]))
        progress.finish("complete")

        assert progress.batches == 2
        assert progress.processed == 60
        assert progress.is_complete
        assert progress.has_errors
        assert progress.to_dict()["stopped_reason"] == "complete"
        assert progress.duration >= 0
        assert "60 rows in 2 batches" in progress.get_summary()
