"""
Ledger indexer: tails a blockchain's REST endpoint and mirrors its transaction
history into a relational analytics store.
"""

__version__ = "0.1.0"
