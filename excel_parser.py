import io
import math
import logging
import datetime as dt
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field

from utils.errors import ParseError
from utils.log_context import LogContext

logger = logging.getLogger(__name__)


class TableMetadata(BaseModel):
    """
    Summary of a parsed sheet.

    Attributes:
        total_rows: Number of data rows kept after dropping empty rows
        total_columns: Number of header cells in the sheet, blank ones included
        file_name: Original name of the uploaded file
    """
    total_rows: int
    total_columns: int
    file_name: str


class NormalizedTable(BaseModel):
    """
    Headers plus row mappings produced from the first sheet of a workbook.

    Attributes:
        headers: Non-blank column names, in sheet order (duplicates kept)
        rows: One mapping per non-empty data row, keyed by the original header text
        metadata: Row/column counts and the source file name
    """
    headers: List[str] = Field(default_factory=list)
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    metadata: TableMetadata


def is_empty_cell(value: Any) -> bool:
    """Return True for None, NaN/NaT and empty strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def clean_cell(value: Any) -> Any:
    """
    Convert a raw cell into a plain, JSON-friendly Python value.

    Args:
        value: Cell value as delivered by pandas

    Returns:
        None for empty cells, native int/float/bool/str otherwise, and ISO-8601
        strings for date and time values
    """
    if is_empty_cell(value):
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, pd.Timedelta):
        return str(value)
    return value


def cell_to_text(value: Any) -> str:
    """Render a cell as text; whole floats lose their trailing '.0'."""
    if is_empty_cell(value):
        return ""
    value = clean_cell(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return str(value)


class TabularParser:
    """
    Turns uploaded workbook bytes into a NormalizedTable.

    Only the first sheet is read; the first row holds the headers and every
    following row is data. The whole workbook is materialised in memory.
    """

    @staticmethod
    def parse(content: bytes, file_name: str) -> NormalizedTable:
        """
        Parse a workbook into headers, row mappings and metadata.

        Args:
            content: Raw bytes of the .xlsx/.xls file
            file_name: Original file name, recorded in the metadata

        Returns:
            NormalizedTable: The normalized first sheet

        Raises:
            ParseError: If the workbook is unreadable or holds no data rows
        """
        with LogContext("excel reading", file_name=file_name, size_bytes=len(content or b"")):
            raw_rows = TabularParser._read_first_sheet(content, file_name)

        if not raw_rows:
            logger.warning("Excel file is empty", extra={"file_name": file_name})
            raise ParseError("Failed to process Excel file: Excel file is empty")

        headers = [cell_to_text(cell) for cell in TabularParser._trim_trailing_empty(raw_rows[0])]
        data_rows = raw_rows[1:]

        rows = [
            TabularParser._row_to_mapping(headers, row)
            for row in data_rows
            if not TabularParser._is_blank_row(row)
        ]

        if not rows:
            logger.warning(
                "Excel file has no data rows",
                extra={"file_name": file_name, "raw_rows": len(data_rows)}
            )
            raise ParseError("Failed to process Excel file: Excel file contains no data rows")

        table = NormalizedTable(
            # Filtering blank headers is cosmetic; rows keep their original keys
            headers=[header for header in headers if header.strip() != ""],
            rows=rows,
            metadata=TableMetadata(
                total_rows=len(rows),
                total_columns=len(headers),
                file_name=file_name,
            ),
        )

        logger.info(
            "Parsed Excel file",
            extra={
                "file_name": file_name,
                "total_rows": table.metadata.total_rows,
                "total_columns": table.metadata.total_columns,
                "dropped_rows": len(data_rows) - len(rows),
            }
        )
        return table

    @staticmethod
    def _read_first_sheet(content: bytes, file_name: str) -> List[List[Any]]:
        """
        Load the first sheet as a list of raw row lists.

        Raises:
            ParseError: If pandas cannot read the workbook
        """
        try:
            # Cell text such as "N/A" or "null" is data, not a missing value
            df = pd.read_excel(
                io.BytesIO(content), sheet_name=0, header=None, dtype=object, keep_default_na=False
            )
        except Exception as e:
            logger.error(
                "Failed to read Excel file",
                extra={"file_name": file_name, "error": str(e), "error_type": type(e).__name__}
            )
            raise ParseError(f"Failed to process Excel file: {str(e)}") from e

        if df.empty:
            return []
        return df.astype(object).values.tolist()

    @staticmethod
    def _trim_trailing_empty(row: Sequence[Any]) -> List[Any]:
        """Drop the padding pandas adds when a data row is wider than the header row."""
        cells = list(row)
        while cells and is_empty_cell(cells[-1]):
            cells.pop()
        return cells

    @staticmethod
    def _is_blank_row(row: Sequence[Any]) -> bool:
        return all(is_empty_cell(cell) for cell in row)

    @staticmethod
    def _row_to_mapping(headers: List[str], row: Sequence[Any]) -> Dict[str, Optional[Any]]:
        mapping: Dict[str, Optional[Any]] = {}
        for index, header in enumerate(headers):
            # Short rows map their missing trailing cells to None; duplicate headers: last wins
            mapping[header] = clean_cell(row[index]) if index < len(row) else None
        return mapping
