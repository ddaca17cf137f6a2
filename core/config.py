import os

# PocketBase server and the user the client logs in as
BASE_URL = os.environ.get("TRACKER_PB_URL", "http://127.0.0.1:8090")
IDENTITY = os.environ.get("TRACKER_IDENTITY", "")
PASSWORD = os.environ.get("TRACKER_PASSWORD", "")

REQUEST_TIMEOUT = float(os.environ.get("TRACKER_REQUEST_TIMEOUT", "10"))
PER_PAGE = int(os.environ.get("TRACKER_PER_PAGE", "500"))

# extra attempts at linking tasks after a milestone record was created
MEMBERSHIP_INSERT_RETRIES = int(os.environ.get("TRACKER_MEMBERSHIP_RETRIES", "2"))

LOG_LEVEL = os.environ.get("TRACKER_LOG_LEVEL", "INFO")
LOG_FILE = os.environ.get("TRACKER_LOG_FILE") or None
