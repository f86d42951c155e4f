"""
ProjectDesk configuration — single source of truth for financial defaults,
status lifecycle values, storage locations and document constants.

Import from here in all services rather than hardcoding values.
Environment variables override the dev defaults; a local ``.env`` file is
loaded on import.
"""
from __future__ import annotations

import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [part.strip() for part in raw.split(",") if part.strip()]


# ── Database ──────────────────────────────────────────────────────────────────
DATABASE_URL: str = os.getenv("DATABASE_URL", "")


# ── Logging ───────────────────────────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON: bool = os.getenv("LOG_FORMAT", "json").lower() != "text"


# ── Financial defaults ────────────────────────────────────────────────────────

# VAT applied to a quote when its header carries no tax rate (percent)
DEFAULT_TAX_RATE_PCT: Decimal = Decimal(os.getenv("DEFAULT_TAX_RATE_PCT", "19"))

# Currency used when rendering amounts on printed documents
CURRENCY: str = os.getenv("CURRENCY", "EUR")


# ── Project lifecycle ─────────────────────────────────────────────────────────
STATUS_OPTIONS: list[str] = _env_list("STATUS_OPTIONS", [
    "Neu",
    "Angebot",
    "Beauftragt",
    "Montage",
    "Abgerechnet",
    "Abgeschlossen",
    "Nicht Beauftragt",
])

DEFAULT_STATUS: str = os.getenv("DEFAULT_STATUS", "Neu")

# Terminal states (done / cancelled). Compared case-insensitively.
ARCHIVED_STATUSES: frozenset[str] = frozenset(
    s.lower() for s in _env_list("ARCHIVED_STATUSES", ["Abgeschlossen", "Nicht Beauftragt"])
)

# Insert attempts before a project-code conflict is handed back to the caller
PROJECT_CODE_MAX_RETRIES: int = int(os.getenv("PROJECT_CODE_MAX_RETRIES", "3"))

# Dashboard "next due" widget size
UPCOMING_TASKS_LIMIT: int = int(os.getenv("UPCOMING_TASKS_LIMIT", "8"))


# ── Blob storage ──────────────────────────────────────────────────────────────
BLOB_ROOT: str = os.getenv("BLOB_ROOT", "/tmp/projectdesk-blobs")
BLOB_PUBLIC_BASE_URL: str = os.getenv("BLOB_PUBLIC_BASE_URL", "http://localhost:8000/storage")
BLOB_SIGNING_KEY: str = os.getenv("BLOB_SIGNING_KEY", "changethis_use_a_real_secret_in_production_64chars")
BLOB_SIGNING_ALGORITHM: str = os.getenv("BLOB_SIGNING_ALGORITHM", "HS256")
SIGNED_URL_TTL_SECONDS: int = int(os.getenv("SIGNED_URL_TTL_SECONDS", "3600"))
BLOB_LIST_LIMIT: int = 100

# bucket name -> is_public
BUCKETS: dict[str, bool] = {
    "files": False,
    "photos": True,
}


# ── Quote document ────────────────────────────────────────────────────────────
COMPANY_NAME: str = os.getenv("COMPANY_NAME", "Stellwag Klimatechnik")
COMPANY_ADDRESS_LINES: list[str] = _env_list(
    "COMPANY_ADDRESS_LINES", ["Am Eschbachtal 15", "60437 Frankfurt"]
)
COMPANY_EMAIL: str = os.getenv("COMPANY_EMAIL", "info@stellwag-klimatechnik.de")
COMPANY_LOGO_PATH: str = os.getenv("COMPANY_LOGO_PATH", "")

# Terms and conditions appended to every printed quote (skipped when missing)
TERMS_PDF_PATH: str = os.getenv("TERMS_PDF_PATH", "")

DOWNLOAD_DIR: str = os.getenv("DOWNLOAD_DIR", "/tmp/downloads")

IMPORTANT_NOTE: str = os.getenv(
    "IMPORTANT_NOTE",
    "Stromversorgung bauseits gemäß Herstellervorgaben. Keine Arbeiten an der "
    "ortsfesten Elektroinstallation durch Stellwag Klimatechnik.",
)

PAYMENT_TERMS: str = os.getenv(
    "PAYMENT_TERMS", "50 % bei Auftragserteilung, 50 % nach Fertigstellung."
)

TERMS_REFERENCE: str = "Es gelten die beiliegenden Allgemeinen Geschäftsbedingungen (AGB)."
