"""Error taxonomy for the ledger and valuation engine.

Position derivation and valuation never raise for numeric degeneracy
(they degrade to 0). Only reference lookups and snapshot sync, which
reads untrusted input, raise.
"""

from __future__ import annotations

from typing import Any


class AtlasError(Exception):
    """Base class for all engine errors."""


class ReferenceNotFound(AtlasError):
    """A security, account or organization lookup failed."""

    def __init__(self, kind: str, ref_id: str, message: str | None = None):
        self.kind = kind
        self.ref_id = ref_id
        super().__init__(message or f"{kind} not found: {ref_id}")


class TargetAccountNotFound(ReferenceNotFound):
    """Snapshot sync was pointed at an account that does not exist."""

    def __init__(self, account_id: str, org_id: str | None = None):
        self.org_id = org_id
        where = f" in organization {org_id}" if org_id else ""
        super().__init__(
            "account", account_id, f"Target account {account_id} not found{where}"
        )


class ColumnResolutionError(AtlasError):
    """Required ticker/quantity columns could not be found in a CSV header."""

    def __init__(self, missing: list[str], headers: list[str], searched: dict[str, Any]):
        self.missing = missing
        self.headers = headers
        self.searched = searched
        super().__init__(
            f"CSV format error: could not find {' or '.join(missing)} column. "
            f"Headers: {headers}. Searched: {searched}"
        )


class RowParseSkip(AtlasError):
    """A single snapshot row could not be used. Never escapes snapshot sync."""


class ConfigError(AtlasError):
    """config.yaml could not be parsed or failed validation."""

    def __init__(self, path: str | None, detail: str):
        self.path = path
        self.detail = detail
        where = path or "defaults"
        super().__init__(f"Invalid configuration ({where}): {detail}")


class MigrationError(AtlasError):
    """A schema migration script failed to apply."""

    def __init__(self, name: str, detail: str):
        self.name = name
        self.detail = detail
        super().__init__(f"Migration {name} failed: {detail}")
