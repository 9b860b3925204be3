"""Module entrypoint for ``python -m vmsandbox``."""

import sys

from vmsandbox import cli

if __name__ == "__main__":
    sys.exit(cli.main())
