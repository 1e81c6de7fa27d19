from __future__ import annotations

import html
import itertools
import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from reportbot.models.schemas import CHART_TYPES, ChartSpec
from reportbot.services.prompt_builder import CHART_END, CHART_START

logger = logging.getLogger(__name__)

CHART_BLOCK_RE = re.compile(re.escape(CHART_START) + r"(.*?)" + re.escape(CHART_END), re.DOTALL)
CHART_ERROR_MARKER = '<p class="chart-error">⚠️ Failed to render chart</p>'

PALETTE_RGB = (
    (59, 130, 246),  # blue
    (16, 185, 129),  # green
    (251, 146, 60),  # orange
    (147, 51, 234),  # purple
    (236, 72, 153),  # pink
    (245, 158, 11),  # amber
    (6, 182, 212),  # cyan
    (239, 68, 68),  # red
    (107, 114, 128),  # gray
    (34, 197, 94),  # emerald
)


def palette_color(index: int, alpha: float = 0.6) -> str:
    r, g, b = PALETTE_RGB[index % len(PALETTE_RGB)]
    return f"rgba({r}, {g}, {b}, {alpha})"


def chart_placeholder(chart: ChartSpec) -> str:
    return (
        f'<div class="chart-container" data-chart-id="{html.escape(chart.id, quote=True)}">'
        f'<p class="chart-placeholder">[Chart: {html.escape(chart.title)}]</p>'
        "</div>"
    )


def default_options(title: str) -> Dict[str, Any]:
    return {
        "responsive": True,
        "maintainAspectRatio": False,
        "plugins": {
            "title": {"display": True, "text": title},
            "legend": {"display": True, "position": "top"},
        },
    }


class ChartIdGenerator:
    """Chart ids for one response: a random token plus a running ordinal."""

    def __init__(self, token: Optional[str] = None) -> None:
        self._token = token or uuid.uuid4().hex[:8]
        self._counter = itertools.count()

    def __call__(self) -> str:
        return f"chart-{self._token}-{next(self._counter)}"


@dataclass
class ChartExtraction:
    content: str
    charts: List[ChartSpec] = field(default_factory=list)
    failed_blocks: int = 0


def normalize_chart(raw: Any, chart_id: str, ordinal: int) -> ChartSpec:
    if not isinstance(raw, dict):
        raise ValueError("chart specification must be a JSON object")

    chart_type = raw.get("type")
    if chart_type not in CHART_TYPES:
        chart_type = "bar"
    title = str(raw.get("title") or f"Chart {ordinal}")

    data = raw.get("data") or {}
    if not isinstance(data, dict):
        raise ValueError("chart data must be a JSON object")
    datasets = data.get("datasets") or []
    if not isinstance(datasets, list):
        raise ValueError("chart datasets must be a list")

    normalized_sets = []
    for index, ds in enumerate(datasets):
        if not isinstance(ds, dict):
            raise ValueError(f"dataset {index} must be a JSON object")
        normalized_sets.append(
            {
                "label": ds.get("label") or "Data",
                "data": ds.get("data") or [],
                "backgroundColor": ds.get("backgroundColor") or palette_color(index),
                "borderColor": ds.get("borderColor") or palette_color(index, 1),
                "borderWidth": ds.get("borderWidth") or 1,
            }
        )

    options = default_options(title)
    if isinstance(raw.get("options"), dict):
        options.update(raw["options"])

    return ChartSpec.model_validate(
        {
            "id": chart_id,
            "type": chart_type,
            "title": title,
            "data": {"labels": data.get("labels") or [], "datasets": normalized_sets},
            "options": options,
        }
    )


def extract_charts(content: str, id_generator: Optional[ChartIdGenerator] = None) -> ChartExtraction:
    """Replace every sentinel-delimited chart block in ``content``.

    Well-formed blocks become ``ChartSpec``s and a placeholder ``div``;
    malformed ones become a visible error marker. Blocks are processed
    left to right and one bad block never stops the scan.
    """
    if CHART_START not in (content or ""):
        return ChartExtraction(content=content)

    next_id = id_generator or ChartIdGenerator()
    result = ChartExtraction(content="")
    ordinal = itertools.count(1)

    def _replace(match: re.Match) -> str:
        position = next(ordinal)
        try:
            raw = json.loads(match.group(1).strip())
            chart = normalize_chart(raw, next_id(), position)
        except (ValueError, ValidationError) as exc:
            # json.JSONDecodeError is a ValueError.
            logger.warning("Failed to parse chart specification %d: %s", position, exc)
            result.failed_blocks += 1
            return CHART_ERROR_MARKER
        result.charts.append(chart)
        return chart_placeholder(chart)

    result.content = CHART_BLOCK_RE.sub(_replace, content)
    return result
