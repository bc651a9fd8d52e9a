"""Helpers for validating ledger identifiers and deriving contract-layer addresses."""

from __future__ import annotations

import re
from functools import lru_cache

_LEDGER_ID_RE = re.compile(r"[0-9]+\.[0-9]+\.[0-9]+")

# Largest entity number that still fits in a 20-byte address
_MAX_ENTITY = (1 << 160) - 1


def is_ledger_id(value: str | None) -> bool:
    """Return True for dotted-triple identifiers such as ``0.0.1234``."""

    if not value or not _LEDGER_ID_RE.fullmatch(value):
        return False
    entity = value.rsplit(".", 1)[1]
    if len(entity) > len(str(_MAX_ENTITY)):
        return False
    return int(entity) <= _MAX_ENTITY


@lru_cache(maxsize=1024)
def to_evm_address(ledger_id: str) -> str:
    """Render the entity number of ``shard.realm.num`` as a 20-byte hex address.

    Only the entity number is encoded; shard and realm are dropped, which is
    how the DEX contracts address long-zero accounts and tokens.
    """

    if not is_ledger_id(ledger_id):
        raise ValueError(f"Not a ledger identifier: {ledger_id!r}")
    entity = int(ledger_id.split(".")[2])
    return "0x" + format(entity, "x").zfill(40)
