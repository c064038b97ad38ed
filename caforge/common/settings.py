# caforge/common/settings.py
"""
Runtime settings. Environment overrides are read once at import time:
  CAFORGE_OUT_DIR    default output directory (".")
  CAFORGE_LOG_LEVEL  default log level ("INFO")
  CAFORGE_SERIAL_DB  serial database path (default: next to the CA certificate)
"""
import os

OUT_DIR = os.environ.get("CAFORGE_OUT_DIR", ".")
LOG_LEVEL = os.environ.get("CAFORGE_LOG_LEVEL", "INFO")
SERIAL_DB_PATH = os.environ.get("CAFORGE_SERIAL_DB") or None

PUBLIC_EXPONENT = 65537
ROOT_KEY_SIZE = 4096
LEAF_KEY_SIZE = 2048

ROOT_MIN_YEARS, ROOT_MAX_YEARS, ROOT_DEFAULT_YEARS = 1, 50, 10
LEAF_MIN_YEARS, LEAF_MAX_YEARS, LEAF_DEFAULT_YEARS = 1, 30, 1
DAYS_PER_YEAR = 365

# placeholder subject attributes for root CAs
ROOT_COUNTRY = "US"
ROOT_STATE = "State"
ROOT_ORG_UNIT = "IT"

# oldest cryptography release with not_valid_*_utc and pkcs12 serialization
MIN_CRYPTOGRAPHY_VERSION = (42, 0)
