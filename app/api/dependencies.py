"""
app/api/dependencies.py

Shared FastAPI dependencies for request validation.
"""

from __future__ import annotations

import re

from fastapi import File, HTTPException, Query, UploadFile, status

from app.config import get_pipeline_settings
from app.domain.drug_records import CountMode

CSV_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
}


def get_csv_upload(file: UploadFile = File(...)) -> UploadFile:
    """
    Validate that the uploaded file is a CSV by extension or MIME type.
    """

    filename = (file.filename or "").strip().lower()
    content_type = (file.content_type or "").strip().lower()

    is_csv_filename = filename.endswith(".csv")
    is_csv_content_type = content_type in CSV_CONTENT_TYPES

    if not is_csv_filename and not is_csv_content_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only CSV files are allowed.",
        )

    return file


def get_count_mode(
    count_mode: str | None = Query(default=None, description="'ingredient' or 'ingredient+form'"),
) -> str:
    """
    Resolve the counting mode, defaulting to the configured one.
    """

    resolved = (count_mode or get_pipeline_settings().count_mode).strip().lower()
    # An unencoded "+" in the query string arrives as a space.
    resolved = re.sub(r"\s*\+\s*|\s+", "+", resolved)
    if resolved not in CountMode.ALL:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"count_mode must be one of {list(CountMode.ALL)}.",
        )
    return resolved


def get_include_revoked(
    include_revoked: bool | None = Query(default=None, description="Count revoked registry entries"),
) -> bool:
    if include_revoked is None:
        return get_pipeline_settings().include_revoked
    return include_revoked
