"""Entry point for running checkdocs as a module."""

import sys

from checkdocs.cli import main

if __name__ == "__main__":
    sys.exit(main())
