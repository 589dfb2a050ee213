from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Literal, Protocol

SOL_MINT = "So11111111111111111111111111111111111111112"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"

TradeAction = Literal["buy", "sell"]
TxVersion = Literal["LEGACY", "V0"]
CommitPolicy = Literal["confirmed", "optimistic"]


def to_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def to_int(value: Any, default: int) -> int:
    try:
        if value is None or str(value).strip() == "":
            return default
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return default


def to_float(value: Any, default: float) -> float:
    try:
        if value is None or str(value).strip() == "":
            return default
        return float(str(value).strip())
    except (TypeError, ValueError):
        return default


def to_decimal(value: Any, default: Decimal) -> Decimal:
    try:
        if value is None or str(value).strip() == "":
            return default
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    return parsed if parsed.is_finite() else default


def normalize_tx_version(value: str | None) -> TxVersion:
    version = (value or "").strip().upper()
    if version == "V0":
        return "V0"
    return "LEGACY"


def normalize_commit_policy(value: str | None) -> CommitPolicy:
    policy = (value or "").strip().lower()
    if policy == "optimistic":
        return "optimistic"
    return "confirmed"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True, frozen=True)
class StrategyConfig:
    buy_drop_percent: Decimal = Decimal("14")
    sell_rise_percent: Decimal = Decimal("6")
    stop_loss_percent: Decimal = Decimal("8")
    confirmation_threshold_percent: Decimal = Decimal("10")
    confirmation_ticks: int = 2

    @classmethod
    def from_env(cls) -> "StrategyConfig":
        defaults = cls()
        return cls(
            buy_drop_percent=to_decimal(os.getenv("BUY_DROP_PERCENT"), defaults.buy_drop_percent),
            sell_rise_percent=to_decimal(os.getenv("SELL_RISE_PERCENT"), defaults.sell_rise_percent),
            stop_loss_percent=to_decimal(os.getenv("STOP_LOSS_PERCENT"), defaults.stop_loss_percent),
            confirmation_threshold_percent=to_decimal(
                os.getenv("PRICE_CONFIRMATION_THRESHOLD_PERCENT"),
                defaults.confirmation_threshold_percent,
            ),
            confirmation_ticks=max(
                1,
                to_int(os.getenv("PRICE_CONFIRMATION_TICKS"), defaults.confirmation_ticks),
            ),
        )


@dataclass(slots=True, frozen=True)
class PendingSell:
    active: bool = False
    target_price: Decimal = Decimal("0")
    ticks_count: int = 0


@dataclass(slots=True, frozen=True)
class StrategyState:
    last_high: Decimal | None = None
    last_low: Decimal | None = None
    entry_price: Decimal | None = None
    pending_sell: PendingSell = field(default_factory=PendingSell)
    cooldown_pending: bool = False

    @property
    def has_position(self) -> bool:
        return self.entry_price is not None


@dataclass(slots=True, frozen=True)
class Decision:
    state: StrategyState
    action: TradeAction | None
    reason: str


@dataclass(slots=True, frozen=True)
class TradeRequest:
    action: TradeAction
    mint: str
    amount: int | None = None


@dataclass(slots=True, frozen=True)
class PoolInfo:
    pool_address: str
    token_price: Decimal
    base_mint: str
    quote_mint: str
    base_reserve: Decimal
    quote_reserve: Decimal
    timestamp: str


@dataclass(slots=True, frozen=True)
class PriorityFeeEstimate:
    very_high: int
    high: int
    medium: int


@dataclass(slots=True, frozen=True)
class SwapQuote:
    input_mint: str
    output_mint: str
    input_amount: int
    output_amount: int
    other_amount_threshold: int
    slippage_bps: int
    price_impact_pct: float
    route_pool_ids: tuple[str, ...]
    tx_version: TxVersion
    raw: dict[str, Any]

    def compact(self) -> dict[str, Any]:
        return {
            "inputMint": self.input_mint,
            "outputMint": self.output_mint,
            "inputAmount": self.input_amount,
            "outputAmount": self.output_amount,
            "otherAmountThreshold": self.other_amount_threshold,
            "slippageBps": self.slippage_bps,
            "priceImpactPct": self.price_impact_pct,
            "routeHopCount": len(self.route_pool_ids),
        }


@dataclass(slots=True, frozen=True)
class ExecutionResult:
    status: str
    action: TradeAction
    input_mint: str
    output_mint: str
    amount_in: int | None
    expected_amount_out: int | None
    bundle_id: str | None
    tx_signatures: list[str]
    metadata: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PriceFeed(Protocol):
    async def connect(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def healthcheck(self) -> None:
        ...

    async def fetch_pool_info(self) -> PoolInfo:
        ...


class SwapExecutor(Protocol):
    async def connect(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def healthcheck(self) -> None:
        ...

    async def execute(self, request: TradeRequest) -> ExecutionResult:
        ...
