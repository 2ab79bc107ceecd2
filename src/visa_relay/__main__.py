"""Allow ``python -m visa_relay``."""

import sys

from visa_relay.cli import main

sys.exit(main())
