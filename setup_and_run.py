#!/usr/bin/env python3
"""
Magnify Setup and Run Script

Validates the configuration the service would start with, prepares the asset
cache directory and starts the API server.
"""

import os
import sys
from pathlib import Path

HOST = "127.0.0.1"
PORT = 8002


def prepare(env_file=None):
    """Load settings and create the cache directory; returns None on failure"""
    from core.config import load_settings
    from core.exceptions import MagnifyError

    try:
        settings = load_settings(env_file)
        settings.require_token()
        settings.cache_dir.mkdir(parents=True, exist_ok=True)
    except MagnifyError as e:
        print(f"Configuration problem: {e.message}")
        return None
    except OSError as e:
        print(f"Cannot create asset cache: {e}")
        return None

    print(f"Environment: {settings.environment}")
    print(f"Profile API: {settings.api_base}")
    print(f"Asset cache: {settings.cache_dir}")
    return settings


def main():
    os.chdir(Path(__file__).parent)

    if prepare() is None:
        sys.exit(1)

    import uvicorn

    print(f"Serving on http://{HOST}:{PORT} (health: /healthcheck)")
    try:
        uvicorn.run("main:app", host=HOST, port=PORT, log_level="info")
    except KeyboardInterrupt:
        print("\nServer stopped by user")


if __name__ == "__main__":
    main()
