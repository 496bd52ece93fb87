import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./data/rooms_booking.db")

# JWT configuration
SECRET_KEY = os.getenv("SECRET_KEY", "secure-secret-key-1234567890")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

# Booking dates are compared in this timezone (lead time, single-instance cancels)
ORGANIZATION_TIMEZONE = os.getenv("ORGANIZATION_TIMEZONE", "Europe/Istanbul")

# Reservations tagged with any of these lock out every other room
BIG_EVENT_TAGS = (
    "Success Meetings",
    "Exco Meeting",
    "HR Small Talks",
)
BIG_EVENT_BLOCK_TAG = "big_event_block"
BIG_EVENT_BLOCK_TITLE = "Office Closed - Big Event"
BIG_EVENT_BUFFER_MINUTES = int(os.getenv("BIG_EVENT_BUFFER_MINUTES", "30"))

# Parent room name -> child room names sharing its space
COMBINED_ROOMS = {
    "Large Room": ("Table Room", "Armchair Room"),
}

# Notifications
TEAMS_WEBHOOK_URL = os.getenv("TEAMS_WEBHOOK_URL")
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME = os.getenv("SMTP_USERNAME")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Room Booker <noreply@example.com>")
ADMIN_NOTIFICATION_EMAIL = os.getenv("ADMIN_NOTIFICATION_EMAIL")
CATERING_NOTIFICATION_EMAIL = os.getenv("CATERING_NOTIFICATION_EMAIL")
NOTIFICATION_TIMEOUT_SECONDS = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "10"))
