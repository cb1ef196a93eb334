"""Entry point for Folder Monitor.

Usage:
    folder-monitor run                      Run the monitor in the foreground
    folder-monitor service <command>        Install/manage the background service
    folder-monitor encode-password          Encode the SMTP password for the config file

All commands accept ``--config PATH`` to use a specific configuration file.
"""

import sys
from pathlib import Path


def _pop_config_path(args: list[str]) -> Path | None:
    """Remove ``--config PATH`` from *args* and return the path."""
    if "--config" not in args:
        return None
    idx = args.index("--config")
    try:
        value = args[idx + 1]
    except IndexError:
        print("ERROR: --config needs a path.", file=sys.stderr)
        sys.exit(2)
    del args[idx:idx + 2]
    return Path(value)


def main() -> None:
    """Dispatch to the foreground runner, service CLI or password helper."""
    args = sys.argv[1:]
    config_path = _pop_config_path(args)
    cmd = args[0] if args else "run"

    if cmd == "encode-password":
        from folder_monitor.credentials import main as encode_main

        sys.exit(encode_main(config_path))
    elif cmd in ("--service", "service"):
        from folder_monitor.service import main as service_main

        sys.exit(service_main(args[1:], config_path))
    elif cmd == "run":
        from folder_monitor.service import run_foreground

        sys.exit(run_foreground(config_path))
    else:
        print(__doc__)
        sys.exit(1)


if __name__ == "__main__":
    main()
