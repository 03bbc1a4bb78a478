import math
import re
import logging
from typing import Any, Dict, Iterable, List, Union

from pydantic import BaseModel

from excel_parser import NormalizedTable, cell_to_text

logger = logging.getLogger(__name__)

# Leading float literal, the same prefix a lenient float parser would accept
_FLOAT_PREFIX = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

Rows = Union[NormalizedTable, Iterable[Dict[str, Any]]]


class ChartPoint(BaseModel):
    """
    A single chart-ready point.

    Attributes:
        x: Raw x-axis cell value
        y: Numeric y value, 0.0 when the cell could not be read as a number
        label: Text form of the x value
    """
    x: Any = None
    y: float = 0.0
    label: str = ""


def to_number(value: Any) -> float:
    """
    Coerce a cell to a float, never raising.

    Strings are read by their leading numeric prefix ("12.5kg" -> 12.5).
    Booleans, unparsable values, NaN and infinities all become 0.0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _FLOAT_PREFIX.match(str(value).strip())
        if not match:
            return 0.0
        try:
            number = float(match.group(0))
        except ValueError:
            return 0.0
    return number if math.isfinite(number) else 0.0


def _rows_of(table: Rows) -> List[Dict[str, Any]]:
    if isinstance(table, NormalizedTable):
        return table.rows
    return list(table or [])


def _has_axes(row: Dict[str, Any], x_axis: str, y_axis: str) -> bool:
    return row.get(x_axis) is not None and row.get(y_axis) is not None


class ChartDataPreparer:
    """
    Validates an axis pair against parsed rows and turns the rows into points.
    """

    @staticmethod
    def validate(table: Rows, x_axis: str, y_axis: str) -> bool:
        """
        Check that the table can feed a chart on the given axes.

        Partial data is acceptable: one row with both values is enough.

        Args:
            table: NormalizedTable or plain list of row mappings
            x_axis: Column name used for the x axis
            y_axis: Column name used for the y axis

        Returns:
            bool: True if at least one row has non-null values for both axes
        """
        rows = _rows_of(table)
        if not rows:
            return False
        return any(_has_axes(row, x_axis, y_axis) for row in rows)

    @staticmethod
    def prepare(table: Rows, x_axis: str, y_axis: str) -> List[ChartPoint]:
        """
        Build chart points from rows holding both axis values, in row order.

        Args:
            table: NormalizedTable or plain list of row mappings
            x_axis: Column name used for the x axis
            y_axis: Column name used for the y axis

        Returns:
            List[ChartPoint]: One point per usable row
        """
        rows = _rows_of(table)
        points = [
            ChartPoint(
                x=row[x_axis],
                y=to_number(row[y_axis]),
                label=cell_to_text(row[x_axis]),
            )
            for row in rows
            if _has_axes(row, x_axis, y_axis)
        ]
        logger.debug(
            "Prepared chart points",
            extra={"x_axis": x_axis, "y_axis": y_axis, "input_rows": len(rows), "points": len(points)}
        )
        return points
