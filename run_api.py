#!/usr/bin/env python3
"""
Startup script for the Garnett API server
Runs the FastAPI application with ReDoc available at /redoc
"""

import sys
from pathlib import Path

import uvicorn

# Add src to path for imports
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

from garnett.core.config import settings  # noqa: E402


def main() -> None:
    """Run the FastAPI server"""
    print("Starting Garnett API server...")
    print(f"API docs (ReDoc) available at: http://localhost:{settings.api_port}/redoc")
    print(f"OpenAPI JSON schema available at: http://localhost:{settings.api_port}/openapi.json")

    uvicorn.run(
        "garnett.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level="info",
    )


if __name__ == "__main__":
    main()
