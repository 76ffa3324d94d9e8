import logging
import os
from logging.handlers import RotatingFileHandler

from rich.logging import RichHandler

from trojan_deploy.core.config import settings


def setup_logger(name: str) -> logging.Logger:
    """配置日志记录器"""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(settings.LOG_LEVEL)

    # 控制台处理器(按级别着色)
    console_handler = RichHandler(show_path=False, markup=False)
    console_handler.setFormatter(logging.Formatter('%(message)s'))
    logger.addHandler(console_handler)

    if settings.LOG_TO_FILE:
        # 创建日志目录
        os.makedirs(settings.LOG_DIR, exist_ok=True)

        # 文件处理器
        file_handler = RotatingFileHandler(
            os.path.join(settings.LOG_DIR, "trojan-deploy.log"),
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
