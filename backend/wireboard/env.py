"""Environment loading helpers.

Nothing here runs at import time; the CLI calls `load_dotenv_if_present()`
before reading settings.
"""

from __future__ import annotations

from dotenv import find_dotenv, load_dotenv


def load_dotenv_if_present() -> bool:
    """Load variables from the nearest .env file; return True if one was found."""

    dotenv_path = find_dotenv(filename=".env", usecwd=True)
    if not dotenv_path:
        return False
    load_dotenv(dotenv_path=dotenv_path)
    return True
