"""Runtime settings, read once from the environment (and a local .env file)."""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_DB_PATH = os.getenv(
    "STUDY_PORTAL_DB", str(Path.home() / ".study_portal" / "portal.db")
)
DEFAULT_LEARNER = os.getenv("STUDY_PORTAL_LEARNER", "me")
QUEUE_LIMIT = int(os.getenv("STUDY_PORTAL_QUEUE_LIMIT", "20"))
LOG_LEVEL = os.getenv("STUDY_PORTAL_LOG_LEVEL", "WARNING").upper()
