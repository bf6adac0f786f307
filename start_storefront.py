#!/usr/bin/env python3
import argparse
import asyncio
import getpass
import platform
import subprocess
import os
import sys

import uvicorn

# --- Configuration ---
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

# --- Colors ---
class Colors:
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    WARNING = '\033[93m'
    FAIL = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'

if platform.system() == "Windows":
    os.system('color')  # Enable ANSI colors in Windows terminal

def log(msg, color=Colors.ENDC, bold=False):
    prefix = Colors.BOLD if bold else ""
    print(f"{prefix}{color}{msg}{Colors.ENDC}")

def print_header():
    log("\n" + "═" * 40, Colors.HEADER)
    log("ECOSTORE - PORT CLEANUP & START", Colors.HEADER, bold=True)
    log("═" * 40 + "\n", Colors.HEADER)

# --- Port Management ---

def get_process_on_port(port):
    """Finds the PID of the process listening on the given port."""
    system = platform.system()
    try:
        if system == "Windows":
            cmd = f'netstat -ano | findstr :{port}'
            result = subprocess.run(cmd, shell=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
            if result.returncode == 0 and result.stdout:
                for line in result.stdout.strip().split('\n'):
                    if f":{port}" in line and "LISTENING" in line:
                        return line.strip().split()[-1]
        else:
            cmd = ['lsof', '-t', f'-i:{port}']
            result = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
            if result.returncode == 0 and result.stdout:
                return result.stdout.strip().split('\n')[0]
    except OSError as e:
        log(f"Error checking port {port}: {e}", Colors.WARNING)
    return None

def kill_process(pid):
    """Kills the process with the given PID."""
    try:
        if platform.system() == "Windows":
            subprocess.run(f"taskkill /F /PID {pid}", shell=True, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        else:
            subprocess.run(['kill', '-9', str(pid)], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        return True
    except OSError as e:
        log(f"  └─ Failed to kill PID {pid}: {e}", Colors.FAIL)
        return False

def clean_port(port):
    log("[1/3] Checking port...", Colors.BLUE, bold=True)
    pid = get_process_on_port(port)
    if not pid:
        log(f"✓ Port {port}: AVAILABLE", Colors.GREEN)
        return
    log(f"✓ Port {port}: IN USE (PID: {pid}), killing...", Colors.WARNING)
    if kill_process(pid):
        log("DONE", Colors.GREEN)
    else:
        log("FAILED - try running as Administrator/sudo", Colors.FAIL)
        sys.exit(1)

# --- Database ---

async def prepare_database(admin_email=None, admin_name=None, admin_password=None):
    # Imported here so settings pick up env vars set before launch
    from ecostore.main import app  # noqa: F401  registers every model
    from ecostore.shared.database import SessionLocal, engine, init_models
    from ecostore.auth.routes import bootstrap_admin

    await init_models()
    if admin_email:
        async with SessionLocal() as session:
            admin = await bootstrap_admin(session, admin_email, admin_password, admin_name)
        if admin:
            log(f"✓ Administrator {admin.email} ready", Colors.GREEN)
        else:
            log("✓ An administrator already exists, skipping bootstrap", Colors.CYAN)
    await engine.dispose()

def setup_database(args):
    log("\n[2/3] Preparing database...", Colors.BLUE, bold=True)
    password = None
    if args.admin_email:
        password = os.getenv("ECOSTORE_ADMIN_PASSWORD") or getpass.getpass("Admin password: ")
    asyncio.run(prepare_database(args.admin_email, args.admin_name, password))
    log("✓ Tables created", Colors.GREEN)

# --- Main ---

def main():
    parser = argparse.ArgumentParser(description="Cleanup port, prepare the database and start EcoStore")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--reload", action="store_true", help="Restart the server on code changes")
    parser.add_argument("--admin-email", help="Create the first administrator with this email")
    parser.add_argument("--admin-name", default="Administrator")
    args = parser.parse_args()

    print_header()
    clean_port(args.port)
    setup_database(args)

    log("\n[3/3] Starting API server...", Colors.BLUE, bold=True)
    log(f"- API:        {Colors.BLUE}http://{args.host}:{args.port}{Colors.ENDC}")
    log(f"- Swagger UI: {Colors.BLUE}http://{args.host}:{args.port}/docs{Colors.ENDC}")
    uvicorn.run("ecostore.main:app", host=args.host, port=args.port, reload=args.reload)

if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        log("\nAborted by user.", Colors.WARNING)
        sys.exit(0)
