"""structlog setup for the copy trader.

Called once by scripts/run_copy_trader.py before the other polycopy imports,
so every module-level ``structlog.get_logger()`` shares the same chain.
"""

import structlog

_configured = False


def configure_logging() -> None:
    """Configure structlog with the project-standard processor chain.

    Safe to call multiple times; only the first call takes effect.
    """
    global _configured
    if _configured:
        return
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(),
        ]
    )
    _configured = True
