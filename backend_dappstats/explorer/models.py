"""
Explorer record types: address descriptors and normalised transactions.

The explorer speaks Blockscout JSON. from_api_item() maps one raw item into a
typed record without raising: missing or unparsable fields become None and the
orchestrator decides what to do with them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from backend_dappstats.core.time_utils import parse_block_time, to_iso


def _hash_of(value: Any) -> str | None:
    """Blockscout nests addresses as {"hash": ...}; older payloads use a plain string."""
    if isinstance(value, dict):
        value = value.get("hash")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


@dataclass
class AddressDescriptor:
    """One address the explorer attributes to a dApp."""

    address: str
    label: str | None = None
    address_type: str = "contract"
    transactions_count: int | None = None

    def __post_init__(self) -> None:
        self.address = self.address.strip().lower()

    @classmethod
    def from_api_item(cls, item: dict[str, Any]) -> "AddressDescriptor | None":
        address = _hash_of(item.get("hash")) or _hash_of(item.get("address_hash"))
        if not address:
            return None
        label = None
        tags = (item.get("metadata") or {}).get("tags") or []
        for tag in tags:
            if isinstance(tag, dict) and tag.get("tagType") == "name" and tag.get("name"):
                label = str(tag["name"])
                break
        if label is None:
            label = item.get("name") or item.get("label") or None
        count = item.get("transactions_count")
        try:
            count = int(count) if count is not None else None
        except (TypeError, ValueError):
            count = None
        return cls(
            address=address,
            label=label,
            address_type=str(item.get("address_type") or "contract"),
            transactions_count=count,
        )


@dataclass
class ExplorerTransaction:
    """Normalised transaction. timestamp is Unix seconds (UTC) or None when unknown."""

    tx_hash: str | None
    timestamp: int | None
    sender: str | None
    recipient: str | None = None
    status: str | None = None
    block_number: int | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_api_item(cls, item: dict[str, Any]) -> "ExplorerTransaction":
        ts_raw = item.get("timestamp")
        if ts_raw is None:
            ts_raw = item.get("block_time")
        block = item.get("block_number", item.get("block"))
        try:
            block = int(block) if block is not None else None
        except (TypeError, ValueError):
            block = None
        status = item.get("status") or item.get("result")
        return cls(
            tx_hash=_hash_of(item.get("hash")) or _hash_of(item.get("tx_hash")),
            timestamp=parse_block_time(ts_raw),
            sender=_hash_of(item.get("from")),
            recipient=_hash_of(item.get("to")),
            status=str(status) if status is not None else None,
            block_number=block,
            raw=item,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "timestamp": to_iso(self.timestamp) if self.timestamp is not None else None,
            "sender": self.sender,
            "recipient": self.recipient,
            "status": self.status,
            "block_number": self.block_number,
        }
