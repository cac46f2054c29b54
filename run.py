#!/usr/bin/env python3
"""
BankEase Entry Point

Starts the FastAPI server with the BankEase backend. Host, port and storage
come from BANKEASE_* environment variables (see bankease/config.py).
"""

import sys

from bankease.api import run_server
from bankease.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("🏦 Starting BankEase API...")
    print(f"💾 Storage: {config.database_url}")
    print("💰 All amounts use Decimal precision")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(debug=False)
    except KeyboardInterrupt:
        print("\n👋 Shutting down BankEase API...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
