"""
Structured logging for Backend dApp Stats.

JSON logs with timestamp, event_type, and dApp/address context.
Use get_logger() in all modules for aggregation-friendly output.
"""

from backend_dappstats.dappstats_logging.logger import bind_dapp, dapp_log_context, get_logger

__all__ = ["bind_dapp", "dapp_log_context", "get_logger"]
