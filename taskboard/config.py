import os
from dotenv import load_dotenv

load_dotenv()


# Configuration for JWT
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    raise ValueError("SECRET_KEY environment variable not set.")

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 7 * 24 * 60))

# Persistence
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./taskboard.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() in {"1", "true", "yes"}
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")

# Points granted each time a task is marked Completed
COMPLETION_REWARD = int(os.getenv("COMPLETION_REWARD", 10))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Email reminders (disabled unless SMTP_HOST, SMTP_USER and SMTP_PASS are all set)
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", 587))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASS = os.getenv("SMTP_PASS")
FROM_EMAIL = os.getenv("FROM_EMAIL", "no-reply@example.com")
# Crontab expressions for the reminder jobs
REMINDER_CRON = os.getenv("REMINDER_CRON", "*/5 * * * *")
# Day names, since APScheduler counts numeric weekdays from Monday = 0
WEEKLY_SUMMARY_CRON = os.getenv("WEEKLY_SUMMARY_CRON", "0 8 * * mon")
REMINDER_WINDOW_MINUTES = int(os.getenv("REMINDER_WINDOW_MINUTES", 60))


def smtp_configured() -> bool:
    return bool(SMTP_HOST and SMTP_USER and SMTP_PASS)
