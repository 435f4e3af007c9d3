import os

from dotenv import load_dotenv

load_dotenv()

AUTHORIZED_USERS = [
    int(user_id) for user_id in os.environ.get("AUTHORIZED_USERS", "").split(",") if user_id.strip()
]

TELEGRAM_TOKEN = os.environ.get("TELEGRAM_TOKEN")

ENCRYPTION_KEY = os.environ.get("ENCRYPTION_KEY", "")

DB_PATH = os.environ.get("DB_PATH", "data/lp_bot.db")

AMM_CONFIG_PATH = os.environ.get("AMM_CONFIG_PATH", "amm.yml")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
