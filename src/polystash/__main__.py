"""Allow running the CLI as ``python -m polystash``."""

import sys

from polystash.cli import main

sys.exit(main())
