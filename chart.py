import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from appconfig import STAT_CHART_MAX
from pipeline import DisplayRecord


STAT_LABELS = {
    "hp": "HP",
    "attack": "Atk",
    "defense": "Def",
    "special-attack": "SpA",
    "special-defense": "SpD",
    "speed": "Spe",
}

DEFAULT_COLORS = {
    "chart_bg": "#10151D",
    "chart_grid": "#44556B",
    "chart_fill": "#FF6384",
    "chart_line": "#FF6384",
    "chart_text": "#EDF3FB",
}


@dataclass(frozen=True)
class ChartDataset:
    label: str
    labels: Tuple[str, ...]
    values: Tuple[int, ...]
    max_value: int = STAT_CHART_MAX

    @property
    def points(self) -> Tuple[Tuple[str, int], ...]:
        return tuple(zip(self.labels, self.values))


def build_chart_dataset(record: DisplayRecord, max_value: int = STAT_CHART_MAX) -> ChartDataset:
    return ChartDataset(
        label=record.name,
        labels=tuple(name for name, _ in record.stats),
        values=tuple(int(value) for _, value in record.stats),
        max_value=max_value,
    )


def _hex_to_rgba(color: str, alpha: int = 255) -> Tuple[int, int, int, int]:
    c = color.lstrip("#")
    return int(c[0:2], 16), int(c[2:4], 16), int(c[4:6], 16), alpha


def _axis_point(cx: float, cy: float, radius: float, idx: int, count: int) -> Tuple[float, float]:
    # First axis points straight up, then clockwise.
    angle = -math.pi / 2 + (2 * math.pi * idx / count)
    return cx + radius * math.cos(angle), cy + radius * math.sin(angle)


def render_radar_chart(
    dataset: ChartDataset,
    size: Tuple[int, int] = (360, 360),
    colors: Optional[Dict[str, str]] = None,
    rings: int = 5,
) -> Image.Image:
    palette = dict(DEFAULT_COLORS)
    palette.update({k: v for k, v in (colors or {}).items() if k in DEFAULT_COLORS})
    w, h = size
    img = Image.new("RGBA", (w, h), _hex_to_rgba(palette["chart_bg"]))
    count = len(dataset.values)
    if count == 0:
        return img

    overlay = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    dr = ImageDraw.Draw(img)
    odr = ImageDraw.Draw(overlay)
    font = ImageFont.load_default()
    cx, cy = w / 2.0, h / 2.0
    radius = max(10.0, min(w, h) / 2.0 - 36)
    grid = _hex_to_rgba(palette["chart_grid"])
    ceiling = max(1, int(dataset.max_value))

    for ring in range(1, rings + 1):
        r = radius * ring / rings
        if count >= 3:
            dr.polygon([_axis_point(cx, cy, r, i, count) for i in range(count)], outline=grid)
        else:
            dr.ellipse((cx - r, cy - r, cx + r, cy + r), outline=grid)
    for i in range(count):
        dr.line([(cx, cy), _axis_point(cx, cy, radius, i, count)], fill=grid, width=1)

    points = []
    for i, value in enumerate(dataset.values):
        clamped = max(0, min(ceiling, int(value)))
        points.append(_axis_point(cx, cy, radius * clamped / ceiling, i, count))
    if len(points) >= 3:
        odr.polygon(points, fill=_hex_to_rgba(palette["chart_fill"], 51))
    line = _hex_to_rgba(palette["chart_line"])
    odr.line(points + [points[0]], fill=line, width=2)
    for px, py in points:
        odr.ellipse((px - 3, py - 3, px + 3, py + 3), fill=line)
    img = Image.alpha_composite(img, overlay)

    dr = ImageDraw.Draw(img)
    text = _hex_to_rgba(palette["chart_text"])
    for i, (label, value) in enumerate(dataset.points):
        lx, ly = _axis_point(cx, cy, radius + 18, i, count)
        caption = f"{STAT_LABELS.get(label, label)} {value}"
        tw = dr.textlength(caption, font=font)
        dr.text((lx - tw / 2, ly - 5), caption, fill=text, font=font)
    return img
