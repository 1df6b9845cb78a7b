#!/usr/bin/env python3
"""
Switchboard CRM Run Script
Handles database initialization and server startup
"""

import os
import sys
import subprocess
import argparse
import asyncio

# Colors for terminal output
class Colors:
    BLUE = '\033[94m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    END = '\033[0m'
    BOLD = '\033[1m'

def print_info(message):
    print(f"{Colors.BLUE}ℹ️  {message}{Colors.END}")

def print_success(message):
    print(f"{Colors.GREEN}✅ {message}{Colors.END}")

def print_warning(message):
    print(f"{Colors.YELLOW}⚠️  {message}{Colors.END}")

def print_error(message):
    print(f"{Colors.RED}❌ {message}{Colors.END}")

def print_header(message):
    print(f"\n{Colors.BOLD}{Colors.BLUE}{'='*60}{Colors.END}")
    print(f"{Colors.BOLD}{Colors.BLUE}{message.center(60)}{Colors.END}")
    print(f"{Colors.BOLD}{Colors.BLUE}{'='*60}{Colors.END}\n")

async def check_database_connection():
    """Check if database is accessible."""
    print_info("Checking database connection...")
    from switchboard.db.database import check_db_connection

    if await check_db_connection():
        print_success("Database connection successful")
        return True
    print_error("Database connection failed")
    return False

async def init_database():
    """Initialize database tables."""
    print_info("Initializing database tables...")
    try:
        from switchboard.db.database import init_db
        await init_db()
        print_success("Database tables initialized")
    except Exception as e:
        print_error(f"Failed to initialize database: {str(e)}")
        sys.exit(1)

def start_server(host="0.0.0.0", port=8000, reload=True):
    """Start the FastAPI server."""
    print_header("Starting Switchboard CRM")

    print_info(f"Server starting on http://{host}:{port}")
    print_info(f"API documentation: http://localhost:{port}/docs")
    print_info("Create the first admin with POST /api/auth/create-admin")

    if reload:
        print_info("Running in development mode with auto-reload")

    # A single worker: realtime presence lives in process memory
    cmd = [
        sys.executable, "-m", "uvicorn",
        "switchboard.main:app",
        "--host", host,
        "--port", str(port)
    ]
    if reload:
        cmd.append("--reload")

    try:
        subprocess.run(cmd)
    except KeyboardInterrupt:
        print("\n" + Colors.YELLOW + "Server stopped by user" + Colors.END)

async def async_main(args):
    if not await check_database_connection():
        print_info("Please check your DATABASE_URL in .env file")
        sys.exit(1)

    await init_database()

    if args.init_only:
        print_success("Initialization completed successfully")
        sys.exit(0)

def main():
    parser = argparse.ArgumentParser(description="Switchboard CRM Backend Runner")
    parser.add_argument("--host", default=os.getenv("API_HOST", "0.0.0.0"), help="Host to bind to (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=int(os.getenv("API_PORT", "8000")), help="Port to bind to (default: 8000)")
    parser.add_argument("--no-reload", action="store_true", help="Disable auto-reload")
    parser.add_argument("--init-only", action="store_true", help="Only initialize database and exit")

    args = parser.parse_args()

    print_header("Switchboard CRM Backend Setup")
    asyncio.run(async_main(args))

    start_server(host=args.host, port=args.port, reload=not args.no_reload)

if __name__ == "__main__":
    main()
