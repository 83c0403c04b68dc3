#!/usr/bin/env python3
"""
Nivalus Bank Entry Point

Starts the FastAPI server (port 6001 unless NIVALUS_API_PORT is set).
"""

import sys

from nivalus_bank.api import run_server
from nivalus_bank.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Nivalus Bank...")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(debug=False)
    except KeyboardInterrupt:
        print("\nShutting down Nivalus Bank...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
