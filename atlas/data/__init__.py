"""Importers for externally supplied data (broker snapshots)."""
