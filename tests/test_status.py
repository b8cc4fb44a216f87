"""Tests for migration status aggregation."""

from ffc_migrations.conditions import Populated
from ffc_migrations.status import MigrationStatus, StatusCalculator, TableCounts


class TestMigrationStatus:
    """Test derived status values."""

    def test_percent_is_rounded(self):
        status = MigrationStatus(total=3, migrated=1)
        assert status.percent == 33.33
        assert status.pending == 2
        assert not status.is_complete

    def test_empty_dataset_is_complete(self):
        status = MigrationStatus()
        assert status.percent == 100.0
        assert status.is_complete

    def test_counts_are_summed_before_ratio(self):
        status = MigrationStatus.from_counts(
            [TableCounts("a", total=10, migrated=10), TableCounts("b", total=30, migrated=0)]
        )
        assert status.total == 40
        assert status.migrated == 10
        assert status.percent == 25.0

    def test_to_dict_and_summary(self):
        status = MigrationStatus(total=4, migrated=1)
        assert status.to_dict() == {
            "total": 4,
            "migrated": 1,
            "pending": 3,
            "percent": 25.0,
            "is_complete": False,
        }
        assert str(status) == "1/4 migrated (25.00%), 3 pending"


class TestStatusCalculator:
    """Test counting against a real database."""

    def test_count_table(self, storage, introspector, add_submission):
        add_submission(email="a", email_encrypted="x")
        add_submission(email="b")
        add_submission()

        calculator = StatusCalculator(storage, introspector)
        counts = calculator.count_table(
            "ffc_submissions", Populated("email"), Populated("email_encrypted")
        )

        assert counts == TableCounts("ffc_submissions", total=2, migrated=1)
        assert counts.pending == 1

    def test_absent_table_contributes_zero(self, storage, introspector, add_submission):
        add_submission(email="a")
        calculator = StatusCalculator(storage, introspector)

        missing = calculator.count_table("no_such_table", Populated("email"), None)
        present = calculator.count_table("ffc_submissions", Populated("email"), None)
        status = calculator.aggregate([missing, present])

        assert missing == TableCounts("no_such_table")
        assert status.total == 1
        assert status.migrated == 0

    def test_none_conditions(self, storage, introspector):
        calculator = StatusCalculator(storage, introspector)
        assert calculator.count_table("ffc_submissions", None, None).total == 0
        assert calculator.count_pending("ffc_submissions", None) == 0
