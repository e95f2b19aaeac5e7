"""
TRT Tracker Configuration.
All settings via environment variables with sensible defaults.
"""

import os
from pathlib import Path

# --- Paths ---
BASE_DIR = Path(os.getenv("TRT_DATA_DIR", "/data"))
DB_PATH = BASE_DIR / "trt.db"

# --- Auth ---
API_KEY = os.getenv("TRT_API_KEY", "")

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# --- Persistence ---
# "sqlite" keeps the document in DB_PATH, "edge_config" talks to Vercel Edge Config
STORAGE_BACKEND = os.getenv("TRT_STORAGE_BACKEND", "sqlite").lower()
DOCUMENT_KEY = os.getenv("TRT_DOCUMENT_KEY", "trtData")
HTTP_TIMEOUT_SEC = float(os.getenv("TRT_HTTP_TIMEOUT_SEC", "10"))

# --- Vercel Edge Config ---
EDGE_CONFIG_ID = os.getenv("EDGE_CONFIG_ID", "")
EDGE_CONFIG_READ_TOKEN = os.getenv("EDGE_CONFIG_READ_TOKEN", "")
VERCEL_ACCESS_TOKEN = os.getenv("VERCEL_ACCESS_TOKEN", "") or os.getenv("VERCEL_TOKEN", "")
EDGE_CONFIG_READ_URL = os.getenv("EDGE_CONFIG_READ_URL", "https://edge-config.vercel.com")
VERCEL_API_URL = os.getenv("VERCEL_API_URL", "https://api.vercel.com")

# --- Default protocol (first run) ---
DEFAULT_PROTOCOL = os.getenv("TRT_DEFAULT_PROTOCOL", "E2D")
DEFAULT_CONCENTRATION_MG_PER_ML: float = float(os.getenv("TRT_DEFAULT_CONCENTRATION", "200"))
DEFAULT_SYRINGE_VOLUME_ML: float = float(os.getenv("TRT_DEFAULT_SYRINGE_VOLUME_ML", "1"))
DEFAULT_SYRINGE_UNITS: float = float(os.getenv("TRT_DEFAULT_SYRINGE_UNITS", "100"))
DEFAULT_SYRINGE_DEAD_SPACE_ML: float = float(os.getenv("TRT_DEFAULT_DEAD_SPACE_ML", "0.05"))
DEFAULT_SYRINGE_FILL: float = float(os.getenv("TRT_DEFAULT_SYRINGE_FILL", "0.3"))  # fraction of syringe volume
DEFAULT_REMINDER_TIME = os.getenv("TRT_DEFAULT_REMINDER_TIME", "08:00")
DEFAULT_ENABLE_NOTIFICATIONS: bool = os.getenv("TRT_DEFAULT_NOTIFICATIONS", "true").lower() == "true"
DEFAULT_PROTOCOL_COLOR = os.getenv("TRT_DEFAULT_PROTOCOL_COLOR", "#f59e0b")  # amber-500

# Colours handed out to new protocol entries, cycled by history length
PROTOCOL_COLORS = [
    "#f59e0b",  # amber
    "#10b981",  # emerald
    "#3b82f6",  # blue
    "#ec4899",  # pink
    "#8b5cf6",  # violet
    "#ef4444",  # red
]

# --- Schedule ---
RESCHEDULE_COUNT = int(os.getenv("TRT_RESCHEDULE_COUNT", "30"))
NEXT_DATES_COUNT = 10
CHART_RECORD_LIMIT = 30
ANALYTICS_WEEKS = 4

# --- Protocol labels ---
PROTOCOL_INFO = {
    "Daily": {
        "frequency": "Every Day",
        "description": "Daily injections for the most stable hormone levels",
    },
    "E2D": {
        "frequency": "Every 2 Days",
        "description": "Inject every 2 days for stable levels",
    },
    "E3D": {
        "frequency": "Every 3 Days",
        "description": "Inject twice per week with 3-day intervals",
    },
    "Weekly": {
        "frequency": "Once Per Week",
        "description": "Traditional weekly injection protocol",
    },
}
