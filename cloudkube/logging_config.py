"""
Logging configuration for cloudkube.

Provider CLI argv is logged at DEBUG; the redaction filter keeps secrets
passed on the command line (service-principal passwords and the like) out of
the log stream.
"""

import logging
import logging.config
import re
from typing import Any, Dict

_SECRET_FLAGS = re.compile(r"(--password|--client-secret|--secret|-p)(=|\s+|',\s*')([^\s',\]]+)")


class RedactSecretsFilter(logging.Filter):
    """Mask values that follow secret-bearing CLI flags."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SECRET_FLAGS.sub(lambda m: f"{m.group(1)}{m.group(2)}***", message)
        if redacted != message:
            record.msg = redacted
            record.args = ()
        return True


def get_logging_config(level: str = "INFO") -> Dict[str, Any]:
    """Get the dictConfig used by the cloudkube entry points."""
    level = (level or "INFO").upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "redact_secrets": {
                "()": RedactSecretsFilter
            }
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
                "filters": ["redact_secrets"]
            }
        },
        "loggers": {
            "cloudkube": {
                "handlers": ["default"],
                "level": level,
                "propagate": False
            }
        },
        "root": {
            "level": "WARNING",
            "handlers": ["default"]
        }
    }


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(get_logging_config(level))
