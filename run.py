#!/usr/bin/env python3
"""
Mobile Money Ledger Entry Point

Starts the FastAPI server with the ledger core.
"""

import sys

from mobile_money.api import run_server
from mobile_money.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Mobile Money Ledger...")
    print(f"API available at: http://{config.api_host}:{config.api_port}")
    print(f"Documentation at: http://{config.api_host}:{config.api_port}/docs")

    try:
        run_server()
    except KeyboardInterrupt:
        print("\nShutting down Mobile Money Ledger...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
