import logging
import sys

from opentelemetry._logs import set_logger_provider
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor, ConsoleLogRecordExporter

from .config import settings

_STREAM_HANDLER_NAME = "localca-stderr"


def setup_logging(level: str | None = None) -> None:
    """Configure OpenTelemetry logging plus a stderr handler for the CLI."""
    level = (level or settings.LOG_LEVEL).upper()
    root = logging.getLogger()

    if settings.OTEL_CONSOLE_EXPORT:
        logger_provider = LoggerProvider()
        logger_provider.add_log_record_processor(
            BatchLogRecordProcessor(ConsoleLogRecordExporter())
        )
        set_logger_provider(logger_provider)

        # Route standard logging calls through OTel
        root.addHandler(LoggingHandler(level=getattr(logging, level), logger_provider=logger_provider))

    # stdout carries command results, so diagnostics go to stderr
    for handler in [h for h in root.handlers if h.get_name() == _STREAM_HANDLER_NAME]:
        root.removeHandler(handler)
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.set_name(_STREAM_HANDLER_NAME)
    stream_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root.addHandler(stream_handler)
    root.setLevel(level)

    # Silence noisy libraries
    logging.getLogger("filelock").setLevel(logging.WARNING)


logger = logging.getLogger("localca")
