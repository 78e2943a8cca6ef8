"""Allow ``python -m localnet_speed``."""

import sys

from localnet_speed.cli import main

sys.exit(main())
