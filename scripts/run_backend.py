#!/usr/bin/env python3
"""Helper script to prepare and launch the DealerDesk API dev server with one command."""
from __future__ import annotations

import argparse
import logging
import os
import subprocess
import sys
from pathlib import Path
from subprocess import TimeoutExpired

ROOT_DIR = Path(__file__).resolve().parents[1]
VENV_DIR = ROOT_DIR / ".venv"
TESTS_DIR = ROOT_DIR / "dealerdesk" / "tests"
LOGGER = logging.getLogger(__name__)

logging.basicConfig(level=logging.INFO, format="%(message)s")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Prepare and launch the DealerDesk API in development mode",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port the API listens on (default: 8000)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="uvicorn bind address (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--skip-install",
        action="store_true",
        help="Do not install the project (pip install -e .[test])",
    )
    parser.add_argument(
        "--skip-tests",
        action="store_true",
        help="Do not run pytest before starting the server",
    )
    return parser.parse_args()


def _venv_python() -> Path:
    if os.name == "nt":
        return VENV_DIR / "Scripts" / "python.exe"
    return VENV_DIR / "bin" / "python"


def run_step(description: str, command: list[str], cwd: Path) -> None:
    LOGGER.info("-> %s: %s", description, " ".join(command))
    subprocess.run(command, cwd=str(cwd), check=True)


def _try_launch_playwright(python_bin: Path) -> bool:
    probe = (
        "from playwright.sync_api import sync_playwright\n"
        "with sync_playwright() as p:\n"
        "    p.chromium.launch(headless=True).close()\n"
    )
    result = subprocess.run([str(python_bin), "-c", probe], capture_output=True)
    return result.returncode == 0


def ensure_playwright_ready(python_bin: Path) -> bool:
    if _try_launch_playwright(python_bin):
        LOGGER.info("[PDF] Playwright OK: chromium ready")
        return True

    if os.getenv("AUTO_INSTALL_PLAYWRIGHT") == "1":
        LOGGER.info("[PDF] Auto-install enabled: installing chromium...")
        subprocess.check_call([str(python_bin), "-m", "playwright", "install", "chromium"])
        if _try_launch_playwright(python_bin):
            LOGGER.info("[PDF] Playwright OK: chromium ready")
            return True

    LOGGER.warning(
        '[PDF] Chromium missing, invoices use ReportLab in auto mode. Run "%s -m playwright install chromium"',
        python_bin,
    )
    return False


def main() -> int:
    args = parse_args()
    if not VENV_DIR.exists():
        LOGGER.info("-> Creating virtual environment .venv")
        subprocess.run([sys.executable, "-m", "venv", str(VENV_DIR)], check=True)

    python_bin = _venv_python()
    if not python_bin.exists():
        raise SystemExit("Virtual environment interpreter not found. Check that .venv was created.")

    if not args.skip_install:
        run_step(
            "Installing the project",
            [str(python_bin), "-m", "pip", "install", "-e", ".[test]"],
            ROOT_DIR,
        )

    if not args.skip_tests:
        run_step("Running tests", [str(python_bin), "-m", "pytest", str(TESTS_DIR)], ROOT_DIR)

    ensure_playwright_ready(python_bin)

    command = [
        str(python_bin),
        "-m",
        "uvicorn",
        "dealerdesk.app:app",
        "--reload",
        "--host",
        args.host,
        "--port",
        str(args.port),
    ]

    env = os.environ.copy()
    env["VIRTUAL_ENV"] = str(VENV_DIR)
    env["PATH"] = f"{python_bin.parent}{os.pathsep}{env.get('PATH', '')}"

    LOGGER.info("-> Starting the DealerDesk API: %s", " ".join(command))

    process = subprocess.Popen(command, cwd=str(ROOT_DIR), env=env)
    try:
        return process.wait()
    except KeyboardInterrupt:
        LOGGER.info("Stopping the API...")
        process.terminate()
        try:
            return process.wait(timeout=10)
        except TimeoutExpired:
            process.kill()
            return process.wait()


if __name__ == "__main__":
    raise SystemExit(main())
