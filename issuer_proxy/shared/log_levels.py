"""Custom logging levels for the proxy.

Adds a TRACE level below DEBUG for per-probe and per-header detail.
"""

import logging

# Define TRACE level (below DEBUG)
TRACE = 5


def setup_trace_logging():
    """Register the TRACE level with Python's logging system."""
    logging.addLevelName(TRACE, "TRACE")

    def trace(self, message, *args, **kwargs):
        if self.isEnabledFor(TRACE):
            self._log(TRACE, message, args, **kwargs)

    logging.Logger.trace = trace
    logging.TRACE = TRACE

    return TRACE


TRACE_LEVEL = setup_trace_logging()
