"""Allow ``python -m noncat_sim``."""

import sys

from .cli import main

sys.exit(main())
