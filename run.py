#!/usr/bin/env python3
"""
Simple run script for the onboarding service.

Usage:
    python run.py

Or with custom settings:
    HOST=127.0.0.1 PORT=8080 TOOL_SERVER_URL=http://localhost:9000 python run.py
"""

import uvicorn
import os


def main():
    """Run the FastAPI application."""
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    reload = os.getenv("RELOAD", "true").lower() == "true"
    tool_server = os.getenv("TOOL_SERVER_URL", "not configured")

    print(f"""
╔═══════════════════════════════════════════════════════════════╗
║                         OnboardFlow                           ║
║                                                               ║
║  Resumable payment onboarding workflows                       ║
╠═══════════════════════════════════════════════════════════════╣
║  Server:    http://{host}:{port}
║  API Docs:  http://{host}:{port}/docs
║  ReDoc:     http://{host}:{port}/redoc
╠═══════════════════════════════════════════════════════════════╣
║  Operation server: {tool_server}
╚═══════════════════════════════════════════════════════════════╝
    """)

    uvicorn.run(
        "onboardflow.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
