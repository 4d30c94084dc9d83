"""
This module contains the default configuration settings for the devlaunch launcher.
It defines the repository layout, the backend/frontend commands, setup markers and
the timing of the health probe and shutdown sequence.
Values can be overridden through environment variables (or a .env file), and the
settings listed in MODIFIABLE_SETTINGS through a JSON overrides file.
"""

import os
import sys
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file. Variables already set in the
# environment take precedence.
load_dotenv(override=False)

IS_WINDOWS = sys.platform == "win32"

#* --- Core Paths ---
ROOT_DIR = pathlib.Path(os.getenv("DEVLAUNCH_ROOT", ".")).resolve()
SERVER_DIR_NAME = os.getenv("DEVLAUNCH_SERVER_DIR", "server")
WEB_DIR_NAME = os.getenv("DEVLAUNCH_WEB_DIR", "web")
OVERRIDES_JSON_PATH = pathlib.Path(os.getenv("DEVLAUNCH_OVERRIDES", "devlaunch.json"))

#* --- Backend Settings ---
SERVER_PORT = os.getenv("SERVER_PORT") or os.getenv("PORT") or "3001"
HEALTH_HOST = "127.0.0.1"
HEALTH_PATH = os.getenv("DEVLAUNCH_HEALTH_PATH", "/api/health")

#* --- Health Probe Settings ---
HEALTH_TIMEOUT = float(os.getenv("DEVLAUNCH_HEALTH_TIMEOUT", "30"))   # seconds
HEALTH_INTERVAL = float(os.getenv("DEVLAUNCH_HEALTH_INTERVAL", "1"))  # seconds
HEALTH_ATTEMPT_TIMEOUT = 2.0  # seconds, per request

#* --- Shutdown Settings ---
SHUTDOWN_GRACE_PERIOD = 2.0  # seconds before the launcher exits regardless of children

#* --- Child Commands ---
# Commands go through the system shell, so they are split into a program name
# and its arguments only for display and for the Windows '.cmd' suffix.
PACKAGE_MANAGER = "yarn"
INSTALL_COMMAND = [PACKAGE_MANAGER, "install", "--silent", "--offline"]
GENERATE_COMMAND = [PACKAGE_MANAGER, "prisma:generate"]
GENERATE_STEP_NAME = "prisma:generate"
SERVER_COMMAND = [PACKAGE_MANAGER, "start"]
WEB_COMMAND = [PACKAGE_MANAGER, "start"]

#* --- Setup Markers ---
# Relative to the directory the setup step runs in.
INSTALL_MARKER = "node_modules\\.bin\\tsx.cmd" if IS_WINDOWS else "node_modules/.bin/tsx"
GENERATED_MARKER = "prisma/generated/index.js"

#* --- MODIFIABLE SETTINGS (Changeable through the JSON overrides file) ---
MODIFIABLE_SETTINGS = {
    # Layout
    "SERVER_DIR_NAME", "WEB_DIR_NAME",
    # Health probe
    "HEALTH_PATH", "HEALTH_TIMEOUT", "HEALTH_INTERVAL", "HEALTH_ATTEMPT_TIMEOUT",
    # Shutdown
    "SHUTDOWN_GRACE_PERIOD",
    # Commands and markers
    "INSTALL_COMMAND", "GENERATE_COMMAND", "SERVER_COMMAND", "WEB_COMMAND",
    "INSTALL_MARKER", "GENERATED_MARKER",
}
