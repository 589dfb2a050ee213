from .logging import setup_logger
from .loop import TickOutcome, bootstrap_dependencies, process_tick, run_trading_loop
from .settings import AppSettings

__all__ = [
    "AppSettings",
    "TickOutcome",
    "bootstrap_dependencies",
    "process_tick",
    "run_trading_loop",
    "setup_logger",
]
