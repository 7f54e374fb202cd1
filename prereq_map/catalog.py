"""
Catalog lookups: course records by department and number.

Two sources are provided. SFUCatalogClient calls the public SFU outlines API;
DataFrameCatalog serves records from a local CSV/Excel table loaded with pandas.
Both return None for "no data" instead of raising.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd
import requests
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from .config import Config
from .prereq_parser import CourseRef

logger = logging.getLogger(__name__)

CATALOG_COLUMNS = ["dept", "number", "title", "description", "units", "prerequisites", "corequisites"]


class CourseRecord(BaseModel):
    department: str
    number: str
    title: str = ""
    description: str = ""
    units: str = ""
    prerequisite_text: str = ""
    corequisite_text: str = ""


def _text(value) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip()


def record_from_payload(payload: Dict) -> Optional[CourseRecord]:
    """Convert one outline object (dept, number, title, ...) into a CourseRecord"""
    if not isinstance(payload, dict):
        return None
    dept = _text(payload.get("dept")).upper()
    number = _text(payload.get("number")).upper()
    if not dept or not number:
        return None
    return CourseRecord(
        department=dept,
        number=number,
        title=_text(payload.get("title")),
        description=_text(payload.get("description")),
        units=_text(payload.get("units")),
        prerequisite_text=_text(payload.get("prerequisites")),
        corequisite_text=_text(payload.get("corequisites")),
    )


# ============================================================================
# REMOTE CATALOG
# ============================================================================


class SFUCatalogClient:
    """Course lookups against the SFU course outlines REST API"""

    def __init__(
            self,
            base_url: str = Config.CATALOG_URL,
            timeout: float = Config.REQUEST_TIMEOUT,
            session: Optional[requests.Session] = None):
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, ref: CourseRef) -> Optional[CourseRecord]:
        """
        Blocking lookup of one course.

        Args:
            ref: Course to fetch; the suffix is sent as part of the number

        Returns:
            The first record returned by the API, or None on any failure
        """
        params = {"dept": ref.department, "number": f"{ref.number}{ref.suffix}"}
        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Catalog request for %s failed: %s", ref.id, e)
            return None

        if not response.ok:
            logger.warning("Catalog returned %s for %s: %s",
                           response.status_code, ref.id, response.text[:200])
            return None

        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            logger.warning("Unexpected catalog response for %s: %s", ref.id, response.text[:200])
            return None

        try:
            data = response.json()
        except ValueError as e:
            logger.warning("Malformed catalog payload for %s: %s", ref.id, e)
            return None

        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list) or not data:
            logger.debug("No catalog data for %s", ref.id)
            return None

        record = record_from_payload(data[0])
        if record is None:
            logger.warning("Catalog entry for %s is missing dept/number", ref.id)
        return record

    async def lookup(self, ref: CourseRef) -> Optional[CourseRecord]:
        return await run_in_threadpool(self.fetch, ref)


# ============================================================================
# LOCAL CATALOG
# ============================================================================


class DataFrameCatalog:
    """In-memory catalog backed by a pandas DataFrame"""

    def __init__(self, courses_df: pd.DataFrame):
        missing = [c for c in ("dept", "number") if c not in courses_df.columns]
        if missing:
            raise ValueError(f"Catalog is missing columns: {missing}")

        df = courses_df.copy()
        for col in CATALOG_COLUMNS:
            if col not in df.columns:
                df[col] = ""
        df = df[CATALOG_COLUMNS].fillna("").astype(str)
        df["dept"] = df["dept"].str.strip().str.upper()
        df["number"] = df["number"].str.strip().str.replace(r"\.0$", "", regex=True).str.upper()
        self.courses_df = df.drop_duplicates(subset=["dept", "number"]).reset_index(drop=True)

    def __len__(self) -> int:
        return len(self.courses_df)

    def get(self, ref: CourseRef) -> Optional[CourseRecord]:
        number = f"{ref.number}{ref.suffix}"
        df = self.courses_df
        course_data = df[(df["dept"] == ref.department) & (df["number"] == number)]
        if course_data.empty:
            return None
        return record_from_payload(course_data.iloc[0].to_dict())

    async def lookup(self, ref: CourseRef) -> Optional[CourseRecord]:
        record = self.get(ref)
        if record is None:
            logger.debug("No catalog data for %s", ref.id)
        return record

    @classmethod
    def from_records(cls, records: List[Dict]) -> "DataFrameCatalog":
        return cls(pd.DataFrame(records, columns=CATALOG_COLUMNS))


def load_catalog(path: Union[str, Path]) -> DataFrameCatalog:
    """
    Load a local catalog file.

    Args:
        path: CSV or Excel file with columns dept, number, title, description,
            units, prerequisites, corequisites

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If required columns are missing
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Catalog file not found: {path}")

    if path.suffix.lower() == ".csv":
        try:
            df = pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8")
        except UnicodeDecodeError:
            df = pd.read_csv(path, dtype=str, keep_default_na=False, encoding="latin1")
    else:
        df = pd.read_excel(path, sheet_name=0, engine="openpyxl", dtype=str)

    df.columns = [str(c).strip().lower() for c in df.columns]
    catalog = DataFrameCatalog(df)
    logger.info("Loaded %d courses from %s", len(catalog), path)
    return catalog
