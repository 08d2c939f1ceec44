"""Transfer services: event fan-out, single-attempt execution and scheduling."""

from fetchgate.services.events import EventBus
from fetchgate.services.transfer_executor import TransferExecutor
from fetchgate.services.transfer_scheduler import TransferScheduler

__all__ = ["EventBus", "TransferExecutor", "TransferScheduler"]
