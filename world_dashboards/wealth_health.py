"""
Wealth & health dashboard data: GDP per capita, life expectancy and
population per country and year, joined on canonical alpha-3 codes.

Loading builds the country metadata, the name index and three series tables
once. Everything after that is a pure function of the loaded data and the
selected year.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping

import numpy as np
import pandas as pd
import requests
from plotly.colors import sample_colorscale

from . import config
from .events import RenderCommand
from .formatting import format_decimal, format_gdp, format_population
from .geo import topology_features
from .loaders import DataLoadError, read_json, read_table
from .playback import year_to_ratio
from .reshaping import SeriesTable, reshape_wide_table
from .resolver import (
    CountryRecord,
    IdentifierIndex,
    build_name_index,
    lookup_country,
    resolve,
    resolve_feature,
    text_of,
)

logger = logging.getLogger(__name__)

LOAD_ERROR_MESSAGE = (
    "Failed to load one or more data files "
    "(e.g., ISO-3166-Countries-with-Regional-Codes.csv, gdp_pcap.csv, lex.csv, pop.csv, world-110m.json)."
)


@dataclass(frozen=True)
class WealthHealthData:
    countries: Mapping[str, CountryRecord]
    gdp: SeriesTable
    life_exp: SeriesTable
    pop: SeriesTable
    features: list[dict]
    feature_codes: tuple[str | None, ...]
    name_index: IdentifierIndex


@dataclass(frozen=True)
class YearPoint:
    alpha3: str
    name: str
    region: str
    gdp: float
    life_exp: float
    pop: float

    @property
    def gdp_display(self) -> float:
        """GDP with the floor applied, safe for a log axis."""
        return max(self.gdp, config.GDP_FLOOR)


def classify_region(region: str, sub_region: str) -> str:
    region = region or "Other"
    if "Northern America" in sub_region:
        return "North America"
    if "Latin America" in sub_region or "Caribbean" in sub_region:
        return "South/Latin America"
    if "Oceania" in region:
        return "Oceania"
    if region == "Americas":
        return "Americas (Unspecified)"
    return region


def build_countries(meta: pd.DataFrame) -> tuple[dict[str, CountryRecord], list[tuple[str, str]]]:
    """Country records and (name or alpha-2, code) pairs from the ISO metadata table."""
    countries: dict[str, CountryRecord] = {}
    pairs: list[tuple[str, str]] = []
    for row in meta.to_dict("records"):
        alpha3 = resolve(row, scan_tokens=True)
        if not alpha3:
            continue
        name = text_of(row.get("name")) or "Unknown"
        region = classify_region(text_of(row.get("region")), text_of(row.get("sub-region")))
        countries[alpha3] = CountryRecord(alpha3, name, region)
        pairs.append((name, alpha3))
        alpha2 = text_of(row.get("alpha-2"))
        if alpha2:
            pairs.append((alpha2, alpha3))
    return countries, pairs


def countries_from_features(features: list[dict]) -> tuple[dict[str, CountryRecord], list[tuple[str, str]]]:
    """Fallback metadata taken from the map features themselves."""
    countries: dict[str, CountryRecord] = {}
    pairs: list[tuple[str, str]] = []
    for f in features:
        alpha3 = resolve_feature(f)
        if not alpha3:
            continue
        props = f.get("properties") or {}
        name = text_of(props.get("name")) or "Unknown"
        region = text_of(props.get("region")) or "Other"
        countries[alpha3] = CountryRecord(alpha3, name, region)
        pairs.append((name, alpha3))
    return countries, pairs


def load_wealth_health(
    metadata=config.ISO_CSV,
    gdp=config.GDP_CSV,
    life_exp=config.LEX_CSV,
    pop=config.POP_CSV,
    world=config.WORLD_TOPO,
    include_pycountry: bool = True,
) -> WealthHealthData:
    """
    Load and join every input of the dashboard.

    Any failure is terminal: it is logged once and raised as DataLoadError,
    never returned as a partially filled dataset.
    """
    try:
        meta_df = read_table(metadata)
        gdp_df = read_table(gdp)
        lex_df = read_table(life_exp)
        pop_df = read_table(pop)
        features = topology_features(read_json(world))
    except (OSError, ValueError, KeyError, TypeError, requests.RequestException) as err:
        logger.error(f"Error loading data: {err}")
        raise DataLoadError(LOAD_ERROR_MESSAGE) from err

    countries, pairs = build_countries(meta_df)
    if not countries and features:
        logger.info("No usable metadata rows; building countries from map features")
        countries, pairs = countries_from_features(features)

    name_index = build_name_index(pairs, include_pycountry=include_pycountry)

    data = WealthHealthData(
        countries=countries,
        gdp=reshape_wide_table(gdp_df, name_index),
        life_exp=reshape_wide_table(lex_df, name_index),
        pop=reshape_wide_table(pop_df, name_index),
        features=features,
        feature_codes=tuple(resolve_feature(f, name_index) for f in features),
        name_index=name_index,
    )
    logger.info(
        f"Loaded {len(countries)} countries; series for {len(data.gdp)} (gdp), "
        f"{len(data.life_exp)} (life expectancy), {len(data.pop)} (population) codes; "
        f"{len(features)} map features"
    )
    return data


def get_data_for_year(data: WealthHealthData, year: int) -> list[YearPoint]:
    """Countries with GDP, life expectancy and population all present for ``year``."""
    points = []
    codes = sorted(data.gdp.keys() & data.life_exp.keys() & data.pop.keys())
    for alpha3 in codes:
        gdp = data.gdp[alpha3].get(year)
        life = data.life_exp[alpha3].get(year)
        pop = data.pop[alpha3].get(year)
        if gdp is None or life is None or pop is None:
            continue
        meta = lookup_country(data.countries, alpha3)
        points.append(YearPoint(alpha3, meta.name, meta.region, gdp, life, pop))
    return points


def summarize(points: list[YearPoint]) -> dict[str, float | None]:
    if not points:
        return {"total_population": 0.0, "mean_life_expectancy": None, "median_gdp": None}
    return {
        "total_population": float(sum(p.pop for p in points)),
        "mean_life_expectancy": float(np.mean([p.life_exp for p in points])),
        "median_gdp": float(np.median([p.gdp for p in points])),
    }


def kpi_texts(summary: dict[str, float | None]) -> dict[str, str]:
    life = summary["mean_life_expectancy"]
    gdp = summary["median_gdp"]
    return {
        "population": format_population(summary["total_population"]),
        "life_expectancy": "N/A" if life is None else format_decimal(life),
        "gdp": "N/A" if gdp is None else format_gdp(gdp),
    }


def population_hierarchy(points: list[YearPoint]) -> dict[str, Any]:
    """World -> region -> country tree of population, largest first."""
    if not points:
        return {"name": "World", "value": 0.0, "children": []}

    df = pd.DataFrame(
        [(p.region or "Other", p.name, p.pop) for p in points],
        columns=["region", "name", "pop"],
    )
    totals = df.groupby("region", sort=False)["pop"].sum().sort_values(ascending=False, kind="stable")

    children = []
    for region, total in totals.items():
        members = df[df["region"] == region].sort_values("pop", ascending=False, kind="stable")
        children.append({
            "name": region,
            "value": float(total),
            "children": [
                {"name": name, "value": float(value), "region": region}
                for name, value in zip(members["name"], members["pop"])
            ],
        })
    return {"name": "World", "value": float(df["pop"].sum()), "children": children}


def region_colors(data: WealthHealthData) -> dict[str, str]:
    colors: dict[str, str] = {}
    for record in data.countries.values():
        region = record.region or "Other"
        if region not in colors:
            colors[region] = config.REGION_COLORS[len(colors) % len(config.REGION_COLORS)]
    return colors


def legend_regions(colors: dict[str, str]) -> list[str]:
    return [r for r in colors if r != "Other"]


def bubble_radius(pop: float) -> float:
    lo, hi = config.POP_RADIUS_DOMAIN
    r0, r1 = config.POP_RADIUS_RANGE
    return r0 + (r1 - r0) * (math.sqrt(max(pop, lo)) - math.sqrt(lo)) / (math.sqrt(hi) - math.sqrt(lo))


def motion_bubbles(points: list[YearPoint], colors: dict[str, str]) -> list[dict[str, Any]]:
    """Bubble chart marks: floored GDP on x (log axis), life expectancy on y."""
    return [
        {
            "alpha3": p.alpha3,
            "name": p.name,
            "region": p.region,
            "x": p.gdp_display,
            "y": p.life_exp,
            "r": bubble_radius(p.pop),
            "color": colors.get(p.region, config.NO_DATA_COLOR),
        }
        for p in points
    ]


def life_exp_color(value: float) -> str:
    lo, hi = config.LIFE_EXP_COLOR_DOMAIN
    t = min(1.0, max(0.0, (value - lo) / (hi - lo)))
    return sample_colorscale("Viridis", [t])[0]


def legend_ticks() -> list[tuple[float, str]]:
    lo, hi = config.LIFE_EXP_LEGEND_RANGE
    values = [lo + t * (hi - lo) for t in (0.0, 0.25, 0.5, 0.75, 1.0)]
    return [(v, life_exp_color(v)) for v in values]


def map_fills(data: WealthHealthData, year: int) -> list[dict[str, Any]]:
    """Choropleth fill per map feature, grey where there is no value for ``year``."""
    fills = []
    for alpha3 in data.feature_codes:
        life = data.life_exp.get(alpha3, {}).get(year) if alpha3 else None
        fills.append({
            "alpha3": alpha3,
            "life_exp": life,
            "fill": config.NO_DATA_COLOR if life is None else life_exp_color(life),
        })
    return fills


def describe_feature(data: WealthHealthData, feature: dict, year: int) -> dict[str, Any] | None:
    """Tooltip content for a map feature; None when there is nothing to show."""
    alpha3 = resolve_feature(feature, data.name_index)
    props = feature.get("properties") or {}
    name = text_of(props.get("name") or props.get("NAME")) or "Unknown"
    if alpha3 and name == "Unknown":
        name = lookup_country(data.countries, alpha3).name

    life = data.life_exp.get(alpha3, {}).get(year) if alpha3 else None
    if life is None and name in ("Unknown", "No Data"):
        return None
    return {
        "name": name,
        "alpha3": alpha3,
        "life_exp": life,
        "text": f"{name}\nLife Exp: " + ("N/A" if life is None else f"{format_decimal(life)} years"),
    }


def setup_commands(data: WealthHealthData) -> list[RenderCommand]:
    """Legends, axes and the playback interval, set once when the charts are built."""
    colors = region_colors(data)
    return [
        RenderCommand("hierarchy-legend", [(r, colors[r]) for r in legend_regions(colors)]),
        RenderCommand("map-legend", legend_ticks()),
        RenderCommand("motion-chart-axes", {
            "x_domain": (config.GDP_FLOOR, config.GDP_AXIS_MAX),
            "x_scale": "log",
            "y_domain": config.LIFE_EXP_AXIS,
        }),
        RenderCommand("playback", {"interval_ms": config.ANIMATION_INTERVAL_MS}),
    ]


def on_year_changed(data: WealthHealthData, year: int) -> list[RenderCommand]:
    """Everything the surface must redraw when the selected year changes."""
    points = get_data_for_year(data, year)
    colors = region_colors(data)
    return [
        RenderCommand("year-display", year),
        RenderCommand("slider", year_to_ratio(year)),
        RenderCommand("kpis", kpi_texts(summarize(points))),
        RenderCommand("motion-chart", motion_bubbles(points, colors)),
        RenderCommand("map", map_fills(data, year)),
        RenderCommand("hierarchy", population_hierarchy(points)),
    ]
