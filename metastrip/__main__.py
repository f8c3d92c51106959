"""Entry point for python -m metastrip."""

import sys

from metastrip.cli.main import main


if __name__ == "__main__":
    sys.exit(main())
