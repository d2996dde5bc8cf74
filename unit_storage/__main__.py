"""
Console entry point: ``unit-storage`` or ``python -m unit_storage``.
"""

import asyncio
import logging
import os
import sys

from unit_storage.cli.app import app
from unit_storage.cli.formatters import console, format_error_with_suggestions
from unit_storage.exceptions import UnitStorageError

log = logging.getLogger("unit_storage")


def _force_utf8_streams() -> None:
    for stream in (sys.stdout, sys.stderr):
        reconfigure = getattr(stream, "reconfigure", None)
        if reconfigure is not None:
            reconfigure(encoding="utf-8")


def main() -> None:
    if os.name == "nt":
        _force_utf8_streams()

    try:
        app()
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)
    except UnitStorageError as e:
        console.print(format_error_with_suggestions(e))
        sys.exit(1)
    except Exception as e:
        log.debug("Unhandled error", exc_info=True)
        console.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        sys.exit(1)


if __name__ == "__main__":
    main()
