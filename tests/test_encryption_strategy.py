"""Tests for the sensitive-data encryption migration."""

import pytest

from ffc_migrations.crypto import FernetCryptoProvider
from ffc_migrations.exceptions import ConfigurationError, PreconditionError
from ffc_migrations.schema import submissions_layout
from ffc_migrations.strategies.encryption import (
    COMPLETED_OPTION,
    EncryptionMigrationStrategy,
    EncryptionState,
)

from .conftest import fetch_row

KEY = "encrypt_sensitive_data"


@pytest.fixture
def strategy(storage, crypto, submissions, introspector, activity, options):
    return EncryptionMigrationStrategy(
        storage, crypto, [submissions],
        introspector=introspector, activity=activity, options=options,
    )


class TestPreconditions:
    """Test can_run."""

    def test_can_run_when_configured(self, strategy):
        assert strategy.can_run(KEY, {}) is True

    def test_missing_provider(self, storage, submissions):
        result = EncryptionMigrationStrategy(storage, None, [submissions]).can_run(KEY, {})
        assert isinstance(result, PreconditionError)
        assert result.code == "encryption_unavailable"

    def test_keys_not_configured(self, storage, submissions):
        strategy = EncryptionMigrationStrategy(storage, FernetCryptoProvider(""), [submissions])
        result = strategy.can_run(KEY, {})
        assert isinstance(result, PreconditionError)
        assert result.code == "encryption_not_configured"
        assert result.to_dict()["code"] == "encryption_not_configured"

    def test_invalid_batch_size(self, strategy):
        with pytest.raises(ConfigurationError):
            strategy.execute(KEY, {"batch_size": 0})
        with pytest.raises(ConfigurationError):
            strategy.execute(KEY, {"batch_size": "many"})


class TestExecute:
    """Test row transformation."""

    def test_encrypts_all_fields(self, storage, crypto, strategy, add_submission):
        row_id = add_submission(
            email="user@example.com",
            user_ip="10.0.0.1",
            data='{"name": "Ana"}',
            cpf_rf="123.456.789-01",
        )

        result = strategy.execute(KEY, {"batch_size": 50})

        assert result.success
        assert result.processed == 1
        assert not result.has_more
        assert result.message == "Encrypted 1 submissions"

        row = fetch_row(storage, "ffc_submissions", row_id)
        assert crypto.decrypt(row["email_encrypted"]) == "user@example.com"
        assert row["email_hash"] == crypto.hash("user@example.com")
        assert crypto.decrypt(row["user_ip_encrypted"]) == "10.0.0.1"
        assert crypto.decrypt(row["data_encrypted"]) == '{"name": "Ana"}'
        assert crypto.decrypt(row["cpf_rf_encrypted"]) == "12345678901"
        assert row["cpf_rf_hash"] == crypto.hash("12345678901")

    def test_identifier_copied_into_typed_columns(self, storage, crypto, strategy, add_submission):
        cpf_id = add_submission(cpf_rf="123.456.789-01")
        rf_id = add_submission(cpf_rf="1234567")

        strategy.execute(KEY, {})

        cpf_row = fetch_row(storage, "ffc_submissions", cpf_id)
        assert cpf_row["cpf_encrypted"] == cpf_row["cpf_rf_encrypted"]
        assert cpf_row["cpf_hash"] == cpf_row["cpf_rf_hash"] == crypto.hash("12345678901")
        assert cpf_row["rf_encrypted"] is None
        assert cpf_row["rf_hash"] is None

        rf_row = fetch_row(storage, "ffc_submissions", rf_id)
        assert rf_row["rf_encrypted"] == rf_row["cpf_rf_encrypted"]
        assert rf_row["rf_hash"] == crypto.hash("1234567")
        assert rf_row["cpf_hash"] is None

    def test_inapplicable_columns_are_null(self, storage, strategy, add_submission):
        row_id = add_submission(email="only@example.com")
        strategy.execute(KEY, {})

        row = fetch_row(storage, "ffc_submissions", row_id)
        assert row["email_encrypted"]
        assert row["user_ip_encrypted"] is None
        assert row["cpf_rf_hash"] is None
        assert row["cpf_hash"] is None

    def test_unknown_length_is_flagged(self, storage, strategy, activity, add_submission):
        row_id = add_submission(cpf_rf="12345")
        strategy.execute(KEY, {})

        row = fetch_row(storage, "ffc_submissions", row_id)
        assert row["cpf_hash"] == row["cpf_rf_hash"]
        [entry] = activity.find("cpf_rf_unknown_length")
        assert entry.level == "warning"
        assert entry.context == {"id": row_id, "table": "ffc_submissions", "length": 5}

    def test_row_without_encryptable_value_fails(self, strategy, add_submission):
        row_id = add_submission(cpf_rf="n/a")
        result = strategy.execute(KEY, {})

        assert not result.success
        assert result.processed == 0
        assert result.has_more
        assert f"ID {row_id}" in result.errors[0]


class TestProgress:
    """Test batching, convergence and idempotence."""

    def test_120_rows_in_batches_of_50(self, strategy, options, add_submission):
        for i in range(120):
            add_submission(email=f"user{i}@example.com", cpf_rf="123.456.789-01")

        results = [strategy.execute(KEY, {"batch_size": 50}, n) for n in (1, 2, 3)]

        assert [r.processed for r in results] == [50, 50, 20]
        assert [r.has_more for r in results] == [True, True, False]
        assert strategy.count_pending() == 0
        assert strategy.calculate_status(KEY, {}).percent == 100.0
        assert options.get(COMPLETED_OPTION) is not None

    def test_status_is_monotonic(self, strategy, add_submission):
        for i in range(12):
            add_submission(email=f"user{i}@example.com")

        seen = []
        while True:
            seen.append(strategy.calculate_status(KEY, {}))
            if not strategy.execute(KEY, {"batch_size": 5}).has_more:
                break
        seen.append(strategy.calculate_status(KEY, {}))

        assert [s.migrated for s in seen] == [0, 5, 10, 12]
        assert {s.total for s in seen} == {12}
        assert seen[1].percent == 41.67

    def test_rerun_after_completion_is_noop(self, storage, strategy, add_submission):
        row_id = add_submission(email="a@example.com")
        strategy.execute(KEY, {})
        before = fetch_row(storage, "ffc_submissions", row_id)

        result = strategy.execute(KEY, {})

        assert result.success
        assert result.processed == 0
        assert not result.has_more
        assert result.message == "No submissions to encrypt"
        assert fetch_row(storage, "ffc_submissions", row_id) == before

    def test_completion_date_written_once(self, strategy, options, add_submission):
        add_submission(email="a@example.com")
        strategy.execute(KEY, {})
        first = strategy.completed_at()
        options.set(COMPLETED_OPTION, "2020-01-01 00:00:00")
        strategy.execute(KEY, {})

        assert first is not None
        assert strategy.completed_at() == "2020-01-01 00:00:00"

    def test_state(self, strategy, add_submission):
        assert strategy.get_state() is EncryptionState.COMPLETE
        for i in range(3):
            add_submission(email=f"u{i}@example.com")
        assert strategy.get_state() is EncryptionState.NOT_STARTED
        strategy.execute(KEY, {"batch_size": 1})
        assert strategy.get_state() is EncryptionState.IN_PROGRESS
        strategy.execute(KEY, {"batch_size": 5})
        assert strategy.get_state() is EncryptionState.COMPLETE

    def test_missing_table_is_skipped(self, storage, crypto):
        strategy = EncryptionMigrationStrategy(
            storage, crypto, [submissions_layout("missing_")]
        )
        result = strategy.execute(KEY, {})
        assert result.processed == 0
        assert not result.has_more
        assert strategy.calculate_status(KEY, {}).total == 0
