"""日志初始化。"""

import logging

from oj_identity.core.config import get_settings


def setup_logging() -> None:
    """初始化日志输出格式与级别。"""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
