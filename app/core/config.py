import os

# Database Configuration
# Uses default credentials for local Docker Compose setup
DB_URL = os.getenv("DATABASE_URL", "postgres://user:password@db:5432/restaurant_db")

# Application Metadata
PROJECT_NAME = "Restaurant Operations Backend"
VERSION = "1.0.0"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Reservation Engine
RESERVATION_DEFAULT_DURATION = int(os.getenv("RESERVATION_DEFAULT_DURATION", 120)) # Minutes a booking occupies its table
RESERVATION_WINDOW_POLICY = os.getenv("RESERVATION_WINDOW_POLICY", "forward") # "forward" or "symmetric"
UPCOMING_WINDOW_HOURS = int(os.getenv("UPCOMING_WINDOW_HOURS", 24))

# Inventory Ledger
EXPIRY_WINDOW_DAYS = int(os.getenv("EXPIRY_WINDOW_DAYS", 7))
MOVEMENT_REPORT_DAYS = int(os.getenv("MOVEMENT_REPORT_DAYS", 30))

# Listing
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", 20))

# Bootstrap (seed script)
SEED_MAX_ATTEMPTS = int(os.getenv("SEED_MAX_ATTEMPTS", 5)) # Connection attempts before giving up
SEED_RETRY_DELAY = float(os.getenv("SEED_RETRY_DELAY", 2)) # Seconds between attempts
