"""Transaction payload builders and an in-memory fetcher shared by the tests."""

from typing import Any, Dict, List

from sqlalchemy import func
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from ledger_indexer.database.connection import DatabaseConnection
from ledger_indexer.indexer.exceptions import UpstreamFetchError
from ledger_indexer.indexer.fetcher import TransactionFetcher, UpstreamLedgerInfo
from ledger_indexer.models.processor_status import ProcessorStatus
from ledger_indexer.models.raw_transaction import RawTransaction

CHAIN_ID = 4


def make_event(version: int, sequence_number: int) -> Dict[str, Any]:
    return {
        "guid": {"creation_number": "0", "account_address": f"0x{version:064x}"},
        "sequence_number": str(sequence_number),
        "type": "0x1::coin::DepositEvent",
        "data": {"amount": "100"},
    }


def make_change(version: int, index: int) -> Dict[str, Any]:
    return {
        "type": "write_resource",
        "address": f"0x{version:064x}",
        "state_key_hash": f"0x{index:064x}",
        "data": {"type": "0x1::coin::CoinStore", "data": {"coin": {"value": str(index)}}},
    }


def _base(version: int, txn_type: str, events: int, changes: int) -> Dict[str, Any]:
    return {
        "type": txn_type,
        "version": str(version),
        "hash": f"0x{version:064x}",
        "state_root_hash": f"0x{version + 1:064x}",
        "event_root_hash": f"0x{version + 2:064x}",
        "gas_used": "7",
        "success": True,
        "vm_status": "Executed successfully",
        "accumulator_root_hash": f"0x{version + 3:064x}",
        "timestamp": "1650000000000000",
        "events": [make_event(version, i) for i in range(events)],
        "changes": [make_change(version, i) for i in range(changes)],
    }


def user_txn_json(version: int, events: int = 1, changes: int = 0) -> Dict[str, Any]:
    data = _base(version, "user_transaction", events, changes)
    data.update({
        "sender": "0x" + "a" * 64,
        "sequence_number": str(version),
        "max_gas_amount": "2000",
        "gas_unit_price": "1",
        "expiration_timestamp_secs": "1650000600",
        "signature": {"type": "ed25519_signature"},
        "payload": {
            "type": "entry_function_payload",
            "function": "0x1::coin::transfer",
            "type_arguments": ["0x1::aptos_coin::AptosCoin"],
            "arguments": ["0x" + "b" * 64, "100"],
        },
    })
    return data


def block_metadata_txn_json(version: int, events: int = 0, changes: int = 0) -> Dict[str, Any]:
    data = _base(version, "block_metadata_transaction", events, changes)
    data.update({
        "id": f"0x{version:064x}",
        "round": "12",
        "epoch": "1",
        "previous_block_votes": ["0x" + "c" * 64],
        "proposer": "0x" + "d" * 64,
    })
    return data


def genesis_txn_json(version: int = 0, events: int = 0, changes: int = 0) -> Dict[str, Any]:
    data = _base(version, "genesis_transaction", events, changes)
    data["payload"] = {"type": "write_set_payload"}
    return data


def raw(payloads: List[Dict[str, Any]]) -> List[RawTransaction]:
    return [RawTransaction.from_json(p) for p in payloads]


class FakeFetcher(TransactionFetcher):
    """In-memory upstream serving a fixed list of transactions."""

    def __init__(self, payloads: List[Dict[str, Any]], chain_id: int = CHAIN_ID):
        self.transactions = {txn.version: txn for txn in raw(payloads)}
        self.chain_id = chain_id
        self.fetch_calls: List[tuple] = []
        self.fail_fetch = False

    def extend(self, payloads: List[Dict[str, Any]]):
        self.transactions.update({txn.version: txn for txn in raw(payloads)})

    async def fetch(self, start_version: int, count: int) -> List[RawTransaction]:
        self.fetch_calls.append((start_version, count))
        if self.fail_fetch:
            raise UpstreamFetchError("upstream unavailable", start_version)
        result = []
        for version in range(start_version, start_version + count):
            if version not in self.transactions:
                break
            result.append(self.transactions[version])
        return result

    async def get_ledger_info(self) -> UpstreamLedgerInfo:
        return UpstreamLedgerInfo(chain_id=self.chain_id, ledger_version=max(self.transactions, default=0))


def count_rows(db: DatabaseConnection, model_class, **filters) -> int:
    query = select(func.count()).select_from(model_class)
    for column, value in filters.items():
        query = query.where(getattr(model_class, column) == value)
    with db.get_session() as session:
        return session.exec(query).one()




class FlakyInsert:
    """Stands in for `insert_rows`: writes every row, then fails the first `failures` calls."""

    def __init__(self, insert_rows, failures: int = 1):
        self._insert_rows = insert_rows
        self.failures = failures
        self.calls = 0

    def __call__(self, session, rows):
        self.calls += 1
        self._insert_rows(session, rows)
        if self.failures > 0:
            self.failures -= 1
            raise OperationalError("INSERT INTO write_set_changes", {}, Exception("injected failure"))


class SimulatedCrash(RuntimeError):
    """Raised from inside a processor to mimic the process dying mid-range."""


def status_rows(db: DatabaseConnection, name: str) -> List[ProcessorStatus]:
    query = select(ProcessorStatus).where(ProcessorStatus.name == name).order_by(ProcessorStatus.version)
    with db.get_session() as session:
        return list(session.exec(query).all())
