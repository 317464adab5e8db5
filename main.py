"""
SalonBook entry point.

Runs the offline console walkthrough or prints the effective configuration.

Usage:
    Full demo:      python main.py
    One scenario:   python main.py demo conflict
    Show settings:  python main.py config
"""

import logging
import sys

from salonbook.config import settings

logger = logging.getLogger(__name__)


def _print_config() -> None:
    """Dump the effective configuration after env overrides."""
    print(f"app_name: {settings.app_name}")
    print(f"log_level: {settings.log_level}")
    for section in ("scheduling", "ledger"):
        for name, value in vars(getattr(settings, section)).items():
            print(f"{section}.{name}: {value}")


def _run_demo(scenario: str = "") -> None:
    """Start the offline console demo (no database required)."""
    from console_demo import ConsoleSession

    session = ConsoleSession()
    if scenario:
        session.run_scenario(scenario)
    else:
        session.run()


if __name__ == "__main__":
    command = sys.argv[1] if len(sys.argv) > 1 else "demo"
    if command == "config":
        _print_config()
    elif command == "demo":
        _run_demo(sys.argv[2] if len(sys.argv) > 2 else "")
    else:
        logger.error("Unknown command: %s (expected 'demo' or 'config')", command)
        sys.exit(2)
