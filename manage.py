#!/usr/bin/env python
"""
Command-line utility for the IT Support Desk.

Loads a local .env file before Django reads its settings, so database,
email and task-queue credentials can live outside the repository.
"""

import os
import sys
from pathlib import Path

from dotenv import load_dotenv


def main() -> None:
    env_path = Path(__file__).resolve().parent / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

    try:
        from django.core.management import execute_from_command_line  # noqa: PLC0415
    except ImportError as exc:
        raise ImportError(
            "Couldn't import Django. Is it installed and available on your "
            "PYTHONPATH, and is the virtual environment active?"
        ) from exc

    execute_from_command_line(sys.argv)


if __name__ == "__main__":
    main()
