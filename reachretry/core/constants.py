import os
import platform
import tempfile
from pathlib import Path

# Load environment variables from .env file
from dotenv import load_dotenv

# Load .env from project root
_project_root = Path(__file__).parent.parent.parent
load_dotenv(_project_root / ".env")

APP_NAME = os.getenv("REACHRETRY_APP_NAME", "reachretry")

# Temporary directory (cross-platform)
if platform.system() == "Windows":
    TMPDIR = os.getenv("REACHRETRY_TMPDIR", os.path.join(tempfile.gettempdir(), APP_NAME))
elif platform.system() == "Darwin":
    TMPDIR = os.getenv("REACHRETRY_TMPDIR", os.path.join(os.path.expanduser("~/Library/Caches"), APP_NAME))
else:
    TMPDIR = os.getenv("REACHRETRY_TMPDIR", os.path.join(os.environ.get("TMPDIR", "/tmp"), APP_NAME))

LOG_FILE = os.path.join(TMPDIR, f"{APP_NAME}.log")
LOG_LEVEL = os.getenv("REACHRETRY_LOG_LEVEL", "DEBUG")

# Monitor defaults
DEFAULT_POLL_INTERVAL = float(os.getenv("REACHRETRY_POLL_INTERVAL", "2.0"))
DEFAULT_PROBE_TIMEOUT = float(os.getenv("REACHRETRY_PROBE_TIMEOUT", "3"))
DEFAULT_PROBE_HOSTS = [
    ["1.1.1.1", 53],  # Cloudflare DNS
    ["8.8.8.8", 53],  # Google DNS
    ["208.67.222.222", 53],  # OpenDNS
]
DEFAULT_PREFERRED_TRANSPORTS = ["wifi", "ethernet"]

# Worker thread that publishes connectivity changes
MONITOR_THREAD_NAME = "reachability.wificheck"
