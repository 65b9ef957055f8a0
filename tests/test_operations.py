"""Tests for chunked ON CONFLICT inserts."""

from sqlmodel import select

from ledger_indexer.database.operations import (
    MAX_PARAMS_PER_STATEMENT,
    field_count,
    get_chunks,
    insert_on_conflict_do_nothing,
    upsert_records,
)
from ledger_indexer.models import Event, ProcessorStatus, Transaction, WriteSetChange, from_transactions

from tests.factories import count_rows, raw, user_txn_json


class TestGetChunks:

    def test_chunk_size_is_param_limit_over_field_count(self):
        chunk_size = MAX_PARAMS_PER_STATEMENT // 9
        chunks = get_chunks(chunk_size * 2 + 1, 9)
        assert chunks == [(0, chunk_size), (chunk_size, chunk_size * 2), (chunk_size * 2, chunk_size * 2 + 1)]

    def test_empty(self):
        assert get_chunks(0, 5) == []

    def test_small_limit(self):
        assert get_chunks(5, 2, max_params=4) == [(0, 2), (2, 4), (4, 5)]

    def test_field_counts(self):
        assert field_count(ProcessorStatus) == 5
        assert field_count(WriteSetChange) == 8
        assert field_count(Event) == 7


class TestInserts:

    def test_insert_ignores_conflicts(self, db):
        rows = from_transactions(raw([user_txn_json(v) for v in range(3)]))
        with db.get_session() as session:
            with session.begin():
                insert_on_conflict_do_nothing(session, Transaction, rows.transactions)
                insert_on_conflict_do_nothing(session, Transaction, rows.transactions)

        assert count_rows(db, Transaction) == 3

    def test_insert_in_multiple_chunks(self, db):
        rows = from_transactions(raw([user_txn_json(v) for v in range(7)]))
        with db.get_session() as session:
            with session.begin():
                chunks = insert_on_conflict_do_nothing(
                    session, Transaction, rows.transactions, max_params=field_count(Transaction) * 2
                )

        assert chunks == 4
        assert count_rows(db, Transaction) == 7

    def test_upsert_overwrites_only_update_columns(self, db):
        with db.get_session() as session:
            with session.begin():
                upsert_records(session, ProcessorStatus, ProcessorStatus.from_versions("p", 0, 1, False),
                               ["name", "version"], ["success", "details", "last_updated"])
                upsert_records(session, ProcessorStatus, ProcessorStatus.from_versions("p", 1, 1, True),
                               ["name", "version"], ["success", "details", "last_updated"])

        with db.get_session() as session:
            statuses = session.exec(select(ProcessorStatus).order_by(ProcessorStatus.version)).all()
            assert [(s.version, s.success) for s in statuses] == [(0, False), (1, True)]
