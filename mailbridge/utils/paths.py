"""Centralized path definitions for MailBridge.

All on-disk state (currently only logs) lives under a single home
directory, ``~/.mailbridge`` unless ``MAILBRIDGE_HOME`` points elsewhere.
"""

import os
from pathlib import Path

# Base application directory
MAILBRIDGE_DIR = Path(os.getenv("MAILBRIDGE_HOME", Path.home() / ".mailbridge"))

# Subdirectories
LOGS_DIR = MAILBRIDGE_DIR / "logs"

# Specific files
ENV_FILE_PATH = MAILBRIDGE_DIR / ".env"
