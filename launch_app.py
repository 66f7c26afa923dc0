"""Run the Shift Ledger API from a private virtual environment.

The first run builds ``.venv`` next to this file and installs ``app/requirements.txt``
into it. Later runs reinstall only when the requirements file changes, then hand off
to uvicorn serving ``api:app``.
"""

from __future__ import annotations

import hashlib
import os
import subprocess
import sys
import venv
from pathlib import Path
from typing import List


ROOT = Path(__file__).resolve().parent
APP_DIR = ROOT / "app"
VENV_DIR = ROOT / ".venv"
REQUIREMENTS = APP_DIR / "requirements.txt"
STAMP = VENV_DIR / ".requirements.sha256"
HOST = os.environ.get("SHIFT_LEDGER_HOST", "127.0.0.1")
PORT = os.environ.get("SHIFT_LEDGER_PORT", "8000")


def interpreter() -> Path:
    scripts = "Scripts" if os.name == "nt" else "bin"
    name = "python.exe" if os.name == "nt" else "python"
    return VENV_DIR / scripts / name


def _pip(*args: str) -> None:
    subprocess.check_call([str(interpreter()), "-m", "pip", *args])


def requirements_digest() -> str:
    if not REQUIREMENTS.exists():
        raise FileNotFoundError(f"Missing {REQUIREMENTS}")
    return hashlib.sha256(REQUIREMENTS.read_bytes()).hexdigest()


def prepare_environment() -> None:
    if not interpreter().exists():
        print(f"[shift-ledger] Building virtual environment in {VENV_DIR}")
        venv.EnvBuilder(with_pip=True).create(VENV_DIR)

    digest = requirements_digest()
    if STAMP.exists() and STAMP.read_text().strip() == digest:
        return

    print("[shift-ledger] Installing requirements (this only happens when they change)")
    _pip("install", "--upgrade", "pip")
    _pip("install", "-r", str(REQUIREMENTS))
    STAMP.write_text(digest)


def server_command() -> List[str]:
    return [
        str(interpreter()),
        "-m",
        "uvicorn",
        "api:app",
        "--app-dir",
        str(APP_DIR),
        "--host",
        HOST,
        "--port",
        str(PORT),
    ]


def main() -> int:
    prepare_environment()
    if not (APP_DIR / "api.py").exists():
        raise FileNotFoundError(f"Missing {APP_DIR / 'api.py'}")
    print(f"[shift-ledger] Serving on http://{HOST}:{PORT}")
    return subprocess.call(server_command())


if __name__ == "__main__":
    try:
        sys.exit(main())
    except subprocess.CalledProcessError as exc:
        print(f"[shift-ledger] pip exited with status {exc.returncode}", file=sys.stderr)
        sys.exit(exc.returncode)
    except OSError as exc:
        print(f"[shift-ledger] {exc}", file=sys.stderr)
        sys.exit(1)
