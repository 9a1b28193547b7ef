# hms_pharmacy/core/config.py
import os
from decimal import Decimal
from typing import List
from urllib.parse import quote_plus

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "HMS Pharmacy & Billing")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # CORS (env takes priority)
    BACKEND_CORS_ORIGINS: List[str] = _split_csv(
        os.getenv(
            "CORS_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ))

    # ---------- MySQL ----------
    MYSQL_HOST: str = os.getenv("MYSQL_HOST", "localhost")
    MYSQL_PORT: int = int(os.getenv("MYSQL_PORT", "3306"))
    MYSQL_USER: str = os.getenv("MYSQL_USER", "hms_user")
    MYSQL_PASSWORD: str = os.getenv("MYSQL_PASSWORD", "")
    MYSQL_DB: str = os.getenv("MYSQL_DB", "hms_pharmacy")
    DB_DRIVER: str = os.getenv("DB_DRIVER", "pymysql")

    # DATABASE_URL wins when set (sqlite:// for tests, postgres, ...)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    SQL_ECHO: bool = _flag("SQL_ECHO")

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"mysql+{self.DB_DRIVER}://{quote_plus(self.MYSQL_USER)}:{quote_plus(self.MYSQL_PASSWORD)}"
            f"@{self.MYSQL_HOST}:{self.MYSQL_PORT}/{self.MYSQL_DB}?charset=utf8mb4")

    # ---------- Security ----------
    JWT_SECRET: str = os.getenv("JWT_SECRET", "change-this")
    JWT_ALG: str = os.getenv("JWT_ALG", "HS256")

    # ---------- Pharmacy ----------
    INVOICE_NUMBER_PREFIX: str = os.getenv("INVOICE_NUMBER_PREFIX", "MED")
    SALES_RETURN_NUMBER_PREFIX: str = os.getenv("SALES_RETURN_NUMBER_PREFIX", "CRN")
    PURCHASE_RETURN_NUMBER_PREFIX: str = os.getenv("PURCHASE_RETURN_NUMBER_PREFIX", "DRN")
    AUTO_BATCH_PREFIX: str = os.getenv("AUTO_BATCH_PREFIX", "AUTO")
    DEFAULT_BATCH_EXPIRY: str = os.getenv("DEFAULT_BATCH_EXPIRY", "2099-12-31")
    # split payments may differ from the grand total by this much
    PAYMENT_TOLERANCE: Decimal = Decimal(os.getenv("PAYMENT_TOLERANCE", "0.5") or "0.5")
    ANALYTICS_TOP_MEDICINES: int = int(os.getenv("ANALYTICS_TOP_MEDICINES", "10"))
    ANALYTICS_DAY_WINDOW: int = int(os.getenv("ANALYTICS_DAY_WINDOW", "30"))

    # ---------- GST reporting ----------
    GST_RECON_TOLERANCE: Decimal = Decimal(os.getenv("GST_RECON_TOLERANCE", "0.5") or "0.5")
    GST_REPORT_TOP_N: int = int(os.getenv("GST_REPORT_TOP_N", "50"))


settings = Settings()
