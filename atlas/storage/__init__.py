"""SQLite persistence for reference data and the transaction ledger."""
