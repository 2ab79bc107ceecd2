"""Root conftest.py for visa-relay.

Puts ``src/`` on the import path so the suite runs from a plain checkout and
registers the custom markers.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from _pytest.config import Config


PROJECT_ROOT = Path(__file__).parent
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))


def pytest_configure(config: Config) -> None:
    """Register custom markers.

    Args:
        config: pytest configuration object.
    """
    config.addinivalue_line(
        "markers",
        "network: Test opens loopback TCP sockets",
    )
    config.addinivalue_line(
        "markers",
        "integration: Integration test requiring a real VISA instrument",
    )
