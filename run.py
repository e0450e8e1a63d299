#!/usr/bin/env python3
"""
EMI Tracker Entry Point

Starts the FastAPI server on the configured host and port (8090 by default).
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from emi_tracker.api import run_server
from emi_tracker.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting EMI Tracker...")
    print("All amounts use Decimal precision")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(debug=False)
    except KeyboardInterrupt:
        print("\nShutting down EMI Tracker...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
