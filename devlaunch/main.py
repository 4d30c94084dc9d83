import sys
import asyncio
import logging
from typing import List, Optional

import setproctitle

from devlaunch.config import load_settings
from devlaunch.log import setup_logging
from devlaunch.supervisor import Supervisor

log = logging.getLogger("devlaunch")

PROCESS_TITLE = "devlaunch - Supervisor"
USAGE = "usage: devlaunch [ROOT] [--verbose]"


def parse_args(argv: List[str]) -> tuple:
    """
    Parses the command line.

    :param argv: Arguments without the program name.
    :return: A (root or None, verbose) tuple.
    :raises SystemExit: On unknown options or more than one root.
    """
    args = list(argv)
    if "-h" in args or "--help" in args:
        print(USAGE)
        sys.exit(0)

    verbose = "--verbose" in args
    if verbose:
        args.remove("--verbose")

    unknown = [arg for arg in args if arg.startswith("-")]
    if unknown or len(args) > 1:
        print(USAGE, file=sys.stderr)
        sys.exit(2)

    root = args[0] if args else None
    return root, verbose


def main(argv: Optional[List[str]] = None) -> None:
    """The main entry point: launches both services and exits with the launcher's exit code."""
    root, verbose = parse_args(sys.argv[1:] if argv is None else argv)
    setup_logging(logging.DEBUG if verbose else logging.INFO)
    setproctitle.setproctitle(PROCESS_TITLE)

    settings = load_settings(root)
    log.debug(f"Effective settings: {settings.as_dict()}")

    exit_code = asyncio.run(Supervisor(settings).run())
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
