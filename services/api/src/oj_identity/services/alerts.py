"""运维告警通道。"""

import logging
from typing import Any, Protocol

logger = logging.getLogger("oj_identity.alerts")


class AlertSink(Protocol):
    """需要人工介入时的告警出口。"""

    def alert(self, message: str, *, context: dict[str, Any]) -> None: ...


class LoggingAlertSink:
    """默认告警实现：输出 CRITICAL 日志，由日志平台负责转发。"""

    def alert(self, message: str, *, context: dict[str, Any]) -> None:
        details = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
        logger.critical("OPERATOR ALERT %s %s", message, details)
