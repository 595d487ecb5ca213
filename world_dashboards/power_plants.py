"""
Power plant dashboard data: plant records from the Global Power Plant
Database, filtered by fuel and commissioning year, aggregated by fuel, by
year and by country for the bubble chart, the timeline and the map.
"""

import datetime
import logging
import math
from dataclasses import asdict, dataclass, replace
from typing import Any, Iterable

import pandas as pd
import requests
from plotly.colors import qualitative
from shapely.errors import ShapelyError

from . import config
from .events import RenderCommand
from .formatting import format_capacity, format_number, round_half_up
from .geo import feature_centroid, topology_features
from .loaders import DataLoadError, read_json, read_table
from .resolver import IdentifierIndex, build_name_index, resolve_feature, text_of

logger = logging.getLogger(__name__)

PLANT_COLUMNS = ["name", "lat", "lon", "capacity", "fuel", "year", "country", "country_long"]


@dataclass(frozen=True)
class Plant:
    name: str
    lat: float
    lon: float
    capacity: float
    fuel: str = "Unknown"
    year: float | None = None
    country: str = ""
    country_long: str = ""


@dataclass(frozen=True)
class CountryShape:
    feature: dict
    centroid: tuple[float, float] | None


@dataclass(frozen=True)
class CountryBubble:
    country_key: str
    capacity: float
    lon: float
    lat: float


@dataclass(frozen=True)
class FilterState:
    """Active filter. Changes produce a new value."""

    selected_fuel: str | None = None
    year_range: tuple[float, float] = config.DEFAULT_YEAR_RANGE
    brushed: bool = False

    def toggle_fuel(self, fuel: str) -> "FilterState":
        return replace(self, selected_fuel=None if self.selected_fuel == fuel else fuel)

    def with_brush(self, selection: tuple[float, float] | None, bounds: tuple[float, float]) -> "FilterState":
        # an empty brush selects every year again
        if selection is None:
            return replace(self, year_range=bounds, brushed=False)
        y0, y1 = round_half_up(selection[0]), round_half_up(selection[1])
        return replace(self, year_range=(min(y0, y1), max(y0, y1)), brushed=True)

    def cleared(self, bounds: tuple[float, float]) -> "FilterState":
        return FilterState(year_range=bounds)


@dataclass(frozen=True)
class MapView:
    zoom_k: float = 1.0
    # (lon_min, lat_min, lon_max, lat_max) of the visible area
    bounds: tuple[float, float, float, float] | None = None

    @property
    def shows_plants(self) -> bool:
        return self.zoom_k >= config.ZOOM_THRESHOLD


@dataclass(frozen=True)
class PowerPlantsData:
    plants: tuple[Plant, ...]
    palette: dict[str, str]
    features: list[dict]
    feature_index: IdentifierIndex
    year_bounds: tuple[float, float]


def to_num(value: Any) -> float | None:
    text = text_of(value)
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _first_text(row: dict, *columns: str) -> str:
    for column in columns:
        text = text_of(row.get(column))
        if text:
            return text
    return ""


def parse_plants(df: pd.DataFrame) -> list[Plant]:
    """Plants with a location and positive capacity; everything else is dropped."""
    plants = []
    for row in df.to_dict("records"):
        lat = to_num(row.get("latitude"))
        lon = to_num(row.get("longitude"))
        capacity = to_num(row.get("capacity_mw")) or 0.0
        if lat is None or lon is None or capacity <= 0:
            continue
        plants.append(Plant(
            name=text_of(row.get("name")),
            lat=lat,
            lon=lon,
            capacity=capacity,
            fuel=_first_text(row, "primary_fuel", "primary_fuel_type", "fuel") or "Unknown",
            year=to_num(row.get("commissioning_year")) or None,
            country=_first_text(row, "country", "country_short"),
            country_long=_first_text(row, "country_long", "country_long_name"),
        ))
    return plants


def fuel_palette(fuels: Iterable[str]) -> dict[str, str]:
    """
    Colour per fuel. Common fuels keep fixed colours; the rest take distinct
    qualitative colours, cycling once those run out.
    """
    palette = dict(config.FUEL_COLORS)
    generic: list[str] = []
    for color in (*qualitative.Set1, *qualitative.Set2, *qualitative.Set3,
                  *qualitative.Dark2, *qualitative.Pastel2, *qualitative.D3):
        if color not in generic and color not in palette.values():
            generic.append(color)

    remaining = [f for f in dict.fromkeys(fuels) if f not in palette]
    for i, fuel in enumerate(remaining):
        palette[fuel] = generic[i % len(generic)]
    return palette


def year_bounds(plants: Iterable[Plant]) -> tuple[float, float]:
    years = [p.year for p in plants if p.year]
    if not years:
        return (config.FALLBACK_MIN_YEAR, datetime.date.today().year)
    return (min(years), max(years))


def initial_filter(plants: Iterable[Plant]) -> FilterState:
    return FilterState(year_range=year_bounds(plants))


def build_feature_index(
    features: list[dict], name_index: IdentifierIndex | None = None
) -> IdentifierIndex:
    """
    Index every identifier a map feature carries to its shape, plus the
    canonical alpha-3 code the feature resolves to.
    """
    pairs = []
    for f in features:
        shape = CountryShape(f, feature_centroid(f))
        props = f.get("properties") or {}
        keys = [resolve_feature(f, name_index), f.get("id")]
        keys += [props.get(k) for k in ("iso_a3", "iso_a2", "name", "name_long", "admin")]
        pairs.extend((key, shape) for key in keys if text_of(key))
    return IdentifierIndex(pairs)


def load_power_plants(plants_csv=config.PLANTS_CSV, world=config.WORLD_TOPO) -> PowerPlantsData:
    """Load plants and country shapes; any failure is terminal (DataLoadError)."""
    try:
        plants_df = read_table(plants_csv)
        features = topology_features(read_json(world))
        feature_index = build_feature_index(features, build_name_index([]))
    except (OSError, ValueError, KeyError, TypeError, ShapelyError, requests.RequestException) as err:
        message = (
            "Error loading files. Ensure global_power_plant_database.csv and "
            f"world-110m.json are available. Error: {err}"
        )
        logger.error(message)
        raise DataLoadError(message) from err

    plants = parse_plants(plants_df)
    logger.info(f"Kept {len(plants)} of {len(plants_df)} plants with location and capacity")

    return PowerPlantsData(
        plants=tuple(plants),
        palette=fuel_palette(p.fuel for p in plants),
        features=features,
        feature_index=feature_index,
        year_bounds=year_bounds(plants),
    )


def filter_plants(plants: Iterable[Plant], state: FilterState) -> list[Plant]:
    """
    Plants matching the selected fuel and commissioning-year range.

    Plants without a year always pass the year test; a zero bound is open.
    """
    lo = state.year_range[0] or -math.inf
    hi = state.year_range[1] or math.inf
    out = []
    for p in plants:
        if state.selected_fuel and (p.fuel or "Unknown") != state.selected_fuel:
            continue
        if p.year and not (lo <= p.year <= hi):
            continue
        out.append(p)
    return out


def plants_frame(plants: Iterable[Plant]) -> pd.DataFrame:
    return pd.DataFrame([asdict(p) for p in plants], columns=PLANT_COLUMNS)


def capacity_by_fuel(plants: Iterable[Plant]) -> list[tuple[str, float]]:
    df = plants_frame(plants)
    if df.empty:
        return []
    df["fuel"] = df["fuel"].replace("", "Unknown")
    totals = df.groupby("fuel", sort=False)["capacity"].sum().sort_values(ascending=False, kind="stable")
    return [(fuel, float(total)) for fuel, total in totals.items()]


def capacity_timeline(
    plants: Iterable[Plant],
    fuels: list[str],
    state: FilterState,
    bounds: tuple[float, float],
) -> dict[str, Any]:
    """
    Capacity commissioned per year, stacked by fuel in ``fuels`` order.

    Each layer is a list of (y0, y1) per year. The x domain follows the brush
    when one is active, otherwise the full data range.
    """
    lo, hi = state.year_range
    if state.brushed and lo != hi:
        x_domain = (lo - 1, hi + 1)
    else:
        x_domain = bounds

    df = plants_frame(plants)
    df = df[df["year"].notna()]
    if df.empty or not fuels:
        return {"years": [], "layers": {f: [] for f in fuels}, "x_domain": x_domain, "y_domain": (0.0, 1.0)}

    table = (
        df.pivot_table(index="year", columns="fuel", values="capacity", aggfunc="sum", fill_value=0.0)
        .reindex(columns=fuels, fill_value=0.0)
        .sort_index()
    )
    upper = table.cumsum(axis=1)
    lower = upper - table

    max_capacity = float(upper[fuels[-1]].max())
    return {
        "years": [float(y) for y in table.index],
        "layers": {
            fuel: [(float(a), float(b)) for a, b in zip(lower[fuel], upper[fuel])]
            for fuel in fuels
        },
        "x_domain": x_domain,
        "y_domain": (0.0, max_capacity or 1.0),
    }


def find_feature(index: IdentifierIndex, country: str, country_long: str = "") -> CountryShape | None:
    for candidate in (country, country_long):
        shape = index.get(candidate)
        if shape is not None:
            return shape
    return None


def capacity_by_country(plants: Iterable[Plant], index: IdentifierIndex) -> list[CountryBubble]:
    """
    Capacity per country, placed at the country's centroid or, when no map
    feature matches, at the mean location of its plants. Plants carrying no
    country identifier are left out.
    """
    df = plants_frame(plants)
    df["key"] = [c or cl for c, cl in zip(df["country"], df["country_long"])]
    df = df[df["key"] != ""]
    if df.empty:
        return []

    grouped = df.groupby("key", sort=False).agg(
        capacity=("capacity", "sum"),
        lon=("lon", "mean"),
        lat=("lat", "mean"),
        country_long=("country_long", "first"),
    )

    bubbles = []
    for key, row in grouped.iterrows():
        shape = find_feature(index, key, row["country_long"])
        if shape is not None and shape.centroid is not None:
            lon, lat = shape.centroid
        else:
            lon, lat = row["lon"], row["lat"]
        if lon is None or lat is None or math.isnan(lon) or math.isnan(lat):
            continue
        bubbles.append(CountryBubble(key, float(row["capacity"]), float(lon), float(lat)))
    return bubbles


def plants_in_viewport(
    plants: list[Plant],
    bounds: tuple[float, float, float, float] | None,
    cap: int = config.PLANT_DISPLAY_CAP,
    buffer: float = config.VIEWPORT_BUFFER_DEG,
) -> list[Plant]:
    if bounds is not None:
        lon_min, lat_min, lon_max, lat_max = bounds
        plants = [
            p for p in plants
            if lon_min - buffer <= p.lon <= lon_max + buffer
            and lat_min - buffer <= p.lat <= lat_max + buffer
        ]
    return plants[:cap]


def summarize(plants: list[Plant], state: FilterState) -> dict[str, Any]:
    total = float(sum(p.capacity for p in plants))
    lo, hi = round_half_up(state.year_range[0]), round_half_up(state.year_range[1])
    return {
        "total_capacity": total,
        "plant_count": len(plants),
        "capacity_text": format_capacity(total),
        "plants_text": format_number(len(plants)),
        "fuel_text": (state.selected_fuel or "ALL").upper(),
        "info": f"Filtering: {format_number(len(plants))} plants from {lo} to {hi}.",
    }


def describe_fuel(fuel: str, capacity: float) -> str:
    return f"Click to Filter: {fuel} - Total Capacity: {format_capacity(capacity)} MW"


def describe_plant(plant: Plant) -> str:
    year = round_half_up(plant.year) if plant.year else "?"
    return f"{plant.name or 'Unnamed'} - {plant.fuel} - {format_capacity(plant.capacity)} MW - {year}"


def fuel_bubbles(plants: list[Plant], palette: dict[str, str], state: FilterState) -> list[dict[str, Any]]:
    return [
        {
            "fuel": fuel,
            "capacity": capacity,
            "color": palette.get(fuel, config.FUEL_COLORS["Unknown"]),
            "selected": fuel == state.selected_fuel,
            "hover": describe_fuel(fuel, capacity),
        }
        for fuel, capacity in capacity_by_fuel(plants)
    ]


def map_layer(data: PowerPlantsData, plants: list[Plant], view: MapView) -> dict[str, Any]:
    """Country bubbles when zoomed out, individual plants once zoomed in."""
    if not view.shows_plants:
        return {
            "mode": "countries",
            "marks": [
                {
                    "key": b.country_key,
                    "lon": b.lon,
                    "lat": b.lat,
                    "r": max(3.0, math.sqrt(b.capacity) * 0.035),
                    "title": f"{b.country_key}\nCapacity: {format_capacity(b.capacity)} MW",
                }
                for b in capacity_by_country(plants, data.feature_index)
            ],
        }

    visible = plants_in_viewport(plants, view.bounds)
    return {
        "mode": "plants",
        "marks": [
            {
                "key": f"{p.name}_{p.lat}_{p.lon}_{round_half_up(p.capacity)}",
                "lon": p.lon,
                "lat": p.lat,
                "r": max(1.2, math.sqrt(p.capacity) * 0.02),
                "color": data.palette.get(p.fuel, config.FUEL_COLORS["Unknown"]),
                "hover": describe_plant(p),
            }
            for p in visible
        ],
    }


def on_filter_changed(data: PowerPlantsData, state: FilterState, view: MapView = MapView()) -> list[RenderCommand]:
    """Redraw everything after a fuel click, a brush or a filter reset."""
    filtered = filter_plants(data.plants, state)
    summary = summarize(filtered, state)
    return [
        RenderCommand("kpis", summary),
        RenderCommand("info", summary["info"]),
        RenderCommand("timeline", capacity_timeline(filtered, list(data.palette), state, data.year_bounds)),
        RenderCommand("fuel-chart", fuel_bubbles(filtered, data.palette, state)),
        RenderCommand("map", map_layer(data, filtered, view)),
    ]


def on_view_changed(data: PowerPlantsData, state: FilterState, view: MapView) -> list[RenderCommand]:
    """Zoom and pan only change the map layer."""
    return [RenderCommand("map", map_layer(data, filter_plants(data.plants, state), view))]
