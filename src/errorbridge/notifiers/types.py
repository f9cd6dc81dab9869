from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from ..config import ReporterConfig

LOGGER = logging.getLogger(__name__)

DeliveryErrorHook = Callable[[BaseException, Any], None]


class Notifier:
    """Backend that receives exceptions and forwards them somewhere."""

    name: str = "notifier"

    def __init__(self) -> None:
        self.on_delivery_error: Optional[DeliveryErrorHook] = None

    def init(self, config: ReporterConfig) -> None:
        raise NotImplementedError

    def notify(self, exception: Any, context: Dict[str, Any]) -> None:
        raise NotImplementedError

    def _delivery_failed(self, exception: Any, error: BaseException) -> None:
        """Record a swallowed delivery failure without raising."""
        hook = self.on_delivery_error
        if hook is None:
            LOGGER.warning(
                "Notifier %s failed to deliver %s: %s",
                self.name,
                type(exception).__name__,
                error,
            )
            return
        try:
            hook(error, exception)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Delivery error hook raised for notifier %s", self.name)
