import os

from dotenv import load_dotenv

load_dotenv()


def _env_list(name: str, default: str) -> tuple:
    raw = os.getenv(name, default)
    return tuple(item.strip().upper() for item in raw.split(",") if item.strip())


class Config:
    # Public SFU course outlines endpoint, queried with ?dept=..&number=..
    CATALOG_URL = os.getenv("PREREQ_CATALOG_URL", "https://api.sfucourses.com/v1/rest/outlines")

    # Local CSV/XLSX catalog. When set, lookups never leave the machine.
    CATALOG_PATH = os.getenv("PREREQ_CATALOG_PATH") or None

    REQUEST_TIMEOUT = float(os.getenv("PREREQ_REQUEST_TIMEOUT", "10"))
    BUILD_TIMEOUT = float(os.getenv("PREREQ_BUILD_TIMEOUT", "60"))

    MAX_DEPTH = int(os.getenv("PREREQ_MAX_DEPTH", "5"))

    # Catalog entries with self-referential or malformed prerequisite text
    DENY_LIST = _env_list("PREREQ_DENY_LIST", "CMPT 300")

    # Departments whose 11/12 numbers are BC high-school courses
    HIGH_SCHOOL_DEPARTMENTS = _env_list("PREREQ_HIGH_SCHOOL_DEPTS", "MATH,CHEM,PHYS,ENGL,BIO")

    LOG_LEVEL = os.getenv("PREREQ_LOG_LEVEL", "INFO").upper()
