from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel

from chart_data import ChartPoint
from utils.errors import ValidationError

BACKGROUND_COLORS = [
    "rgba(255, 99, 132, 0.5)",
    "rgba(54, 162, 235, 0.5)",
    "rgba(255, 205, 86, 0.5)",
    "rgba(75, 192, 192, 0.5)",
    "rgba(153, 102, 255, 0.5)",
    "rgba(255, 159, 64, 0.5)",
]

BORDER_COLORS = [
    "rgba(255, 99, 132, 1)",
    "rgba(54, 162, 235, 1)",
    "rgba(255, 205, 86, 1)",
    "rgba(75, 192, 192, 1)",
    "rgba(153, 102, 255, 1)",
    "rgba(255, 159, 64, 1)",
]

DEPTH_3D = 20


class ChartKind(str, Enum):
    BAR = "BAR"
    LINE = "LINE"
    PIE = "PIE"
    SCATTER = "SCATTER"
    COLUMN_3D = "COLUMN_3D"
    BAR_3D = "BAR_3D"
    LINE_3D = "LINE_3D"

    @classmethod
    def parse(cls, value: Union[str, "ChartKind"]) -> "ChartKind":
        """
        Decode a wire value into a chart kind.

        Raises:
            ValidationError: If the value names no known chart kind
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            allowed = ", ".join(kind.value for kind in cls)
            raise ValidationError(f"chart_type must be one of: {allowed}", value=value) from None

    @property
    def is_3d(self) -> bool:
        return self in (ChartKind.COLUMN_3D, ChartKind.BAR_3D, ChartKind.LINE_3D)

    @property
    def renderer_type(self) -> str:
        return self.value.lower()


class ChartOptions(BaseModel):
    """
    User-chosen chart settings.

    Attributes:
        x_axis: Column used for the x axis
        y_axis: Column used for the y axis, also the dataset label
        title: Optional chart title; the title block is hidden when absent
        styling: Free-form styling options stored alongside the chart
    """
    x_axis: str
    y_axis: str
    title: Optional[str] = None
    styling: Optional[Dict[str, Any]] = None


def cycle_colors(palette: List[str], count: int) -> List[str]:
    return [palette[index % len(palette)] for index in range(count)]


def _point_field(point: Any, field: str, default: Any) -> Any:
    if isinstance(point, ChartPoint):
        return getattr(point, field)
    if isinstance(point, dict):
        return point.get(field, default)
    return default


class ChartConfigBuilder:
    """
    Turns a point series into a renderer-agnostic chart descriptor.

    The builder is a pure function of its inputs and never raises: an empty
    or malformed series produces an empty but well-formed descriptor.
    """

    @staticmethod
    def build(points: Optional[Iterable[Any]], options: ChartOptions, kind: ChartKind) -> Dict[str, Any]:
        """
        Build the chart descriptor.

        Args:
            points: ChartPoint objects (or equivalent mappings)
            options: Axis, title and styling settings
            kind: Chart kind, already decoded with ChartKind.parse

        Returns:
            Dict[str, Any]: Descriptor with data, colours, title/legend plugins and scales
        """
        series = [point for point in (points or []) if isinstance(point, (ChartPoint, dict))]
        labels = [_point_field(point, "label", "") for point in series]
        values = [_point_field(point, "y", 0) for point in series]

        plugins: Dict[str, Any] = {
            "title": {
                "display": bool(options.title),
                "text": options.title or "",
            },
            "legend": {
                "display": True,
            },
        }
        if kind.is_3d:
            plugins["threejs"] = {"enabled": True, "depth": DEPTH_3D}

        return {
            "type": kind.renderer_type,
            "data": {
                "labels": labels,
                "datasets": [
                    {
                        "label": options.y_axis,
                        "data": values,
                        "backgroundColor": cycle_colors(BACKGROUND_COLORS, len(series)),
                        "borderColor": cycle_colors(BORDER_COLORS, len(series)),
                        "borderWidth": 1,
                    }
                ],
            },
            "options": {
                "responsive": True,
                "plugins": plugins,
                "scales": ChartConfigBuilder.scales_for(kind),
            },
        }

    @staticmethod
    def scales_for(kind: ChartKind) -> Dict[str, Any]:
        if kind is ChartKind.PIE:
            return {}
        return {"y": {"beginAtZero": True}}
