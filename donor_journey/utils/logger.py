"""
Logging for analysis runs.

One line format everywhere (millisecond timestamps, optional run label such as
"analyze" or "journey"), quiet LLM/HTTP libraries, and a record of every
warning and error so the CLI can summarize them at the end of a run.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

# Third-party loggers that are only useful when something is wrong
QUIET_LIBRARIES = ["LiteLLM", "litellm", "httpx", "httpcore", "openai", "anthropic", "urllib3"]

DEFAULT_LOG_DIR = Path(__file__).parent.parent.parent / "logs"


class MillisecondsFormatter(logging.Formatter):
    """Adds ``,mmm`` to timestamps; ``%f`` in datefmt marks where it goes."""

    def formatTime(self, record, datefmt=None):  # noqa: N802 - logging.Formatter API
        created = datetime.fromtimestamp(record.created)
        millis = f",{int(record.msecs):03d}"
        if not datefmt:
            return created.strftime("%Y-%m-%d %H:%M:%S") + millis
        if "%f" in datefmt:
            return created.strftime(datefmt.replace(",%f", "")) + millis
        return created.strftime(datefmt)


def _formatter(phase: Optional[str]) -> MillisecondsFormatter:
    label = f" | {phase}" if phase else ""
    return MillisecondsFormatter(
        f"%(asctime)s | %(levelname)-8s{label} | %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S,%f",
    )


def _handler(handler: logging.Handler, level: int, phase: Optional[str]) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(_formatter(phase))
    return handler


def _with_fields(message: str, fields: dict) -> str:
    if not fields:
        return message
    return f"{message} [{' '.join(f'{k}={v}' for k, v in fields.items())}]"


class PipelineLogger:
    """
    Run logger shared by the CLIs, services and LLM client.

    Keyword arguments on every call are appended as ``[key=value ...]``.
    Warnings and errors are also kept in ``self.warnings`` / ``self.errors``.
    """

    def __init__(
        self,
        name: str = "donor_journey",
        log_level: str = "INFO",
        log_file: Optional[str] = None,
        log_dir: Optional[Path] = None,
        phase: Optional[str] = None,
    ):
        """
        Args:
            name: Logger name; module loggers under it share its handlers
            log_level: DEBUG, INFO, WARNING or ERROR for the console
            log_file: Also write everything (DEBUG and up) to this file
            log_dir: Where log_file goes, logs/ at the repo root by default
            phase: Run label printed in every line
        """
        level = getattr(logging, log_level.upper())
        self.phase = phase
        self.errors: list[dict] = []
        self.warnings: list[dict] = []

        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)
        # Own handlers only, the root handler would print every line twice
        self.logger.propagate = False
        self.logger.handlers.clear()
        self.logger.addHandler(_handler(logging.StreamHandler(sys.stdout), level, phase))

        if log_file:
            directory = log_dir or DEFAULT_LOG_DIR
            directory.mkdir(parents=True, exist_ok=True)
            path = directory / log_file
            self.logger.addHandler(_handler(logging.FileHandler(path), logging.DEBUG, phase))
            self.info(f"Writing log to {path}")

        configure_global_logging(log_level, phase)

    def debug(self, message: str, **kwargs):
        self.logger.debug(_with_fields(message, kwargs), stacklevel=2)

    def info(self, message: str, **kwargs):
        self.logger.info(_with_fields(message, kwargs), stacklevel=2)

    def warning(self, message: str, **kwargs):
        message = _with_fields(message, kwargs)
        self.logger.warning(message, stacklevel=2)
        self.warnings.append({"message": message, "timestamp": datetime.now().isoformat(), "data": kwargs})

    def error(self, message: str, exception: Optional[Exception] = None, **kwargs):
        """Log with the traceback of ``exception`` when one is given."""
        if exception:
            message = f"{message} | Exception: {exception}"
        message = _with_fields(message, kwargs)
        self.logger.error(message, exc_info=exception is not None, stacklevel=2)
        self.errors.append(
            {
                "message": message,
                "exception": str(exception) if exception else None,
                "timestamp": datetime.now().isoformat(),
                "data": kwargs,
            }
        )

    def log_analysis_start(self, donor_id: str, organization_id: str, current_stage: Optional[str]):
        # Debug level: donors run concurrently and would flood the console
        self.logger.debug(
            _with_fields(
                "Starting donor analysis",
                {"donor": donor_id, "org": organization_id, "stage": current_stage or "unclassified"},
            ),
            stacklevel=2,
        )

    def log_analysis_complete(
        self,
        donor_id: str,
        organization_id: str,
        stage: Optional[str],
        action_count: int,
        duration_seconds: float,
    ):
        fields = {
            "donor": donor_id,
            "org": organization_id,
            "stage": stage,
            "actions": action_count,
            "duration_seconds": round(duration_seconds, 2),
        }
        self.logger.info(_with_fields("Completed donor analysis", fields), stacklevel=2)

    def log_pipeline_start(self, num_donors: int, organization_id: str):
        rule = "=" * 60
        self.info(rule)
        self.info(f"Analysis started - processing {num_donors} donors", org=organization_id)
        self.info(rule)

    def log_pipeline_complete(self, succeeded: int, failed: int, duration_seconds: float, total_cost_usd: float = 0.0):
        rule = "=" * 60
        self.info(rule)
        self.info(
            "Analysis completed",
            succeeded=succeeded,
            failed=failed,
            total=succeeded + failed,
            duration_seconds=round(duration_seconds, 2),
            total_cost_usd=round(total_cost_usd, 4),
        )
        self.info(rule)

    def get_error_summary(self) -> dict:
        return {
            "total_errors": len(self.errors),
            "total_warnings": len(self.warnings),
            "errors": self.errors,
            "warnings": self.warnings,
        }


class PipelineRunContext:
    """
    Brackets a batch with start and completion lines; an exception escaping the
    block is logged as an abort and re-raised.

        with PipelineRunContext(logger, num_donors=10, organization_id="org_1") as ctx:
            batch = await service.analyze_donors(...)
            ctx.record(batch.succeeded, batch.failed, service.total_cost_usd)
    """

    def __init__(self, logger: PipelineLogger, num_donors: int, organization_id: str):
        self.logger = logger
        self.num_donors = num_donors
        self.organization_id = organization_id
        self.started_at: Optional[datetime] = None
        self.succeeded = 0
        self.failed = 0
        self.total_cost_usd = 0.0

    def __enter__(self):
        self.started_at = datetime.now()
        self.logger.log_pipeline_start(self.num_donors, self.organization_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.logger.error("Analysis aborted", exception=exc_val, org=self.organization_id)
        self.logger.log_pipeline_complete(
            self.succeeded,
            self.failed,
            (datetime.now() - self.started_at).total_seconds(),
            total_cost_usd=self.total_cost_usd,
        )
        return False

    def record(self, succeeded: int, failed: int, cost_usd: float = 0.0):
        self.succeeded += succeeded
        self.failed += failed
        self.total_cost_usd += cost_usd


def configure_global_logging(log_level: str = "INFO", phase: Optional[str] = None):
    """
    Point the root logger at stdout in the run format and quiet noisy libraries.

    Module loggers (``logging.getLogger(__name__)``) outside the PipelineLogger
    tree then print in the same format.
    """
    level = getattr(logging, log_level.upper())
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(_handler(logging.StreamHandler(sys.stdout), level, phase))

    for name in QUIET_LIBRARIES:
        library_logger = logging.getLogger(name)
        library_logger.handlers.clear()
        library_logger.propagate = True
        library_logger.setLevel(logging.WARNING)
