from .atomic import BundleBuilder, JitoBlockEngineClient, SignedBundle
from .engine import DecisionEngine
from .errors import (
    ExecutionError,
    JitoBundleRateLimitError,
    MissingAccountError,
    QuoteBuildError,
    RelayRejectionError,
    TradingError,
    TransientFeedError,
)
from .executors import DryRunSwapExecutor, LiveSwapExecutor
from .swap_api import RaydiumSwapClient
from .types import (
    SOL_MINT,
    Decision,
    ExecutionResult,
    PendingSell,
    PoolInfo,
    PriceFeed,
    StrategyConfig,
    StrategyState,
    SwapExecutor,
    TradeAction,
    TradeRequest,
)
from .wallet import SolanaWallet
from .watcher import RaydiumPoolWatcher

__all__ = [
    "BundleBuilder",
    "Decision",
    "DecisionEngine",
    "DryRunSwapExecutor",
    "ExecutionError",
    "ExecutionResult",
    "JitoBlockEngineClient",
    "JitoBundleRateLimitError",
    "LiveSwapExecutor",
    "MissingAccountError",
    "PendingSell",
    "PoolInfo",
    "PriceFeed",
    "QuoteBuildError",
    "RaydiumPoolWatcher",
    "RaydiumSwapClient",
    "RelayRejectionError",
    "SOL_MINT",
    "SignedBundle",
    "SolanaWallet",
    "StrategyConfig",
    "StrategyState",
    "SwapExecutor",
    "TradeAction",
    "TradeRequest",
    "TradingError",
    "TransientFeedError",
]
