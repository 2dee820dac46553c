"""Entry point for ``python -m ai4paper``."""

import sys

from ai4paper.cli import main

sys.exit(main())
