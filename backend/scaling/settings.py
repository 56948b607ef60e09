"""
settings.py — Environment-driven defaults for the scaling service.

Values are read once at import time after loading a local .env file.
Request-level options override them.
"""

import os

from dotenv import load_dotenv

load_dotenv()

DEFAULT_ITERATIONS = int(os.getenv("ATAR_ITERATIONS", "100"))
# Position swing L; 0 disables early stopping
DEFAULT_SWING = float(os.getenv("ATAR_SWING", "0"))
LOGIT_EPS = float(os.getenv("ATAR_EPS", "1e-6"))
DUPLICATE_POLICY = os.getenv("DUPLICATE_POLICY", "reject").strip().lower()
MAX_WORKERS = int(os.getenv("ATAR_MAX_WORKERS", "1"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

DUPLICATE_POLICIES = ("reject", "last")
