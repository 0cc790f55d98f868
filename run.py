#!/usr/bin/env python3
import asyncio
import sys

from launchpad.main import main

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        sys.exit(0)
