"""Entry point for `python -m kubesync`.

Usage:
    python -m kubesync
"""

from __future__ import annotations

import asyncio

from kubesync.app import main

asyncio.run(main())
