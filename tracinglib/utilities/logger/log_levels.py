import logging
import os
from typing import Dict

GLOBAL_LOG_LEVEL: str = os.environ.get("GLOBAL_LOG_LEVEL", "INFO").upper()
if GLOBAL_LOG_LEVEL not in logging.getLevelNamesMapping():
    GLOBAL_LOG_LEVEL = "INFO"

log_sources = [
    "OPEN_TELEMETRY",
    "INITIALIZATION",
    "CONTEXT",
    "CLI",
]

SRC_LOG_LEVELS: Dict[str, str] = {}

for source in log_sources:
    log_env_var = source + "_LOG_LEVEL"
    level = os.environ.get(log_env_var, "").upper()
    if level not in logging.getLevelNamesMapping():
        level = GLOBAL_LOG_LEVEL
    SRC_LOG_LEVELS[source] = level
