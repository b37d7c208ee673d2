import sys
from typing import Optional
from loguru import logger

class LoggerManager:
    def __init__(self):
        self.console_sink_id = None
        self.file_sink_id = None
        self.level = "INFO"
        self.enable_json = False

        # Always remove the default handler
        logger.remove()

    def setup_logging(
        self,
        level: str = "INFO",
        enable_json: bool = False,
        log_file: Optional[str] = None,
        enable_file_logging: bool = False,
        max_file_size: str = "10 MB",
        retention_days: int = 7,
    ):
        """(Re)configure the console sink and the optional rotating file sink."""
        self.level = level.upper()
        self.enable_json = enable_json

        self.disable_console()
        self.enable_console()

        if self.file_sink_id is not None:
            logger.remove(self.file_sink_id)
            self.file_sink_id = None
        if enable_file_logging and log_file:
            self.file_sink_id = logger.add(
                log_file,
                level=self.level,
                rotation=max_file_size,
                retention=f"{retention_days} days",
                serialize=enable_json,
                enqueue=True,
            )

    def enable_console(self):
        if self.console_sink_id is None:
            self.console_sink_id = logger.add(
                sys.stdout,
                level=self.level,
                colorize=not self.enable_json,
                serialize=self.enable_json,
            )

    def disable_console(self):
        if self.console_sink_id is not None:
            logger.remove(self.console_sink_id)
            self.console_sink_id = None


log_manager = LoggerManager()
