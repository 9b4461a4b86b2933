from __future__ import annotations

import sys

from .main import main

if __name__ == "__main__":  # pragma: no cover - cli entry point
    sys.exit(main())
