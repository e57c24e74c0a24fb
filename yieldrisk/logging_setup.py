"""
Structured logging setup for Lambda & local development.

PURPOSE:
- Configure consistent JSON-formatted logs for both AWS Lambda and local runs.
- Logs are structured so they can be queried in CloudWatch Insights.

CONTEXT:
- Called once by the Lambda entrypoint and the CLI; other modules just use
  structlog.get_logger(__name__) and inherit this configuration.
"""

from __future__ import annotations
import logging
import os
import sys
import structlog


SERVICE_NAME = os.getenv("SERVICE_NAME", "YieldRisk")


def configure_logging():
    """
    Configure structured JSON logging for the current environment.

    returns:
    - structlog.BoundLogger – logger bound with service and env metadata.

    behaviour:
    - Reads log level from LOG_LEVEL (default = INFO).
    - Writes to stdout so AWS Lambda captures it automatically.

    example log entry:
    {
      "event": "metrics.computed",
      "level": "info",
      "timestamp": "2026-10-17T13:00:00Z",
      "service": "YieldRisk",
      "env": "dev",
      "pool_id": "747c1d2a-c668-4682-b9f9-296708a3dd90",
      "processing_time_ms": 84.2
    }
    """
    level = os.getenv("LOG_LEVEL", "INFO").upper()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level, logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger().bind(service=SERVICE_NAME, env=os.getenv("ENV", "dev"))
