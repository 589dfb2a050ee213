from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from ..types import TxVersion

JITO_MAX_BUNDLE_TRANSACTIONS = 5


@dataclass(slots=True, frozen=True)
class SignedBundle:
    transactions: list[str]
    tx_signatures: list[str]
    recent_blockhash: str
    tx_version: TxVersion
    tip_account: str | None
    tip_lamports: int

    def __len__(self) -> int:
        return len(self.transactions)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload.pop("transactions")
        payload["tx_count"] = len(self.transactions)
        return payload
