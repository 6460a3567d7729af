import os
import logging
from pathlib import Path
from dotenv import load_dotenv

env_path = Path(__file__).parent / ".env"
if env_path.exists():
    load_dotenv(dotenv_path=env_path)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./pos.db")

SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    logger.warning("SECRET_KEY tidak diset, memakai nilai development")
    SECRET_KEY = "change-this-secret"

APP_TIMEZONE = os.getenv("APP_TIMEZONE", "Asia/Jakarta")

CHECKOUT_STRATEGIES = ("atomic", "snapshot")
CHECKOUT_STRATEGY = os.getenv("CHECKOUT_STRATEGY", "atomic").lower()
if CHECKOUT_STRATEGY not in CHECKOUT_STRATEGIES:
    logger.warning(f"CHECKOUT_STRATEGY '{CHECKOUT_STRATEGY}' tidak dikenal, memakai 'atomic'")
    CHECKOUT_STRATEGY = "atomic"

LOW_STOCK_THRESHOLD = int(os.getenv("LOW_STOCK_THRESHOLD", "10"))

# Header struk
STORE_NAME = os.getenv("STORE_NAME", "Frendo POS")
STORE_ADDRESS = os.getenv("STORE_ADDRESS", "Jl. Contoh No. 123")
STORE_PHONE = os.getenv("STORE_PHONE", "0812-3456-7890")
