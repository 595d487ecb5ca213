"""
Unit tests for world_dashboards.power_plants

Tests plant parsing, filter composition, the fuel / timeline / country
aggregations, viewport capping and the update cascade.
"""

import json
import shutil
import tempfile
import unittest
from pathlib import Path

from world_dashboards import config
from world_dashboards.geo import topology_features
from world_dashboards.loaders import DataLoadError
from world_dashboards.power_plants import (
    FilterState,
    MapView,
    Plant,
    build_feature_index,
    capacity_by_country,
    capacity_by_fuel,
    capacity_timeline,
    describe_plant,
    filter_plants,
    find_feature,
    fuel_palette,
    initial_filter,
    load_power_plants,
    on_filter_changed,
    on_view_changed,
    parse_plants,
    plants_in_viewport,
    summarize,
    year_bounds,
)
from world_dashboards.resolver import build_name_index

from tests.fixtures.sample_data import (
    create_plants,
    create_plants_frame,
    create_topology,
    write_plant_files,
)


def names(plants):
    return {p.name for p in plants}


class TestParsePlants(unittest.TestCase):
    """Test suite for plant parsing."""

    def test_parses_fixture(self):
        self.assertEqual(parse_plants(create_plants_frame()), create_plants())

    def test_drops_invalid_rows(self):
        frame = create_plants_frame()
        frame.loc[0, "latitude"] = ""
        frame.loc[1, "capacity_mw"] = "0"
        frame.loc[2, "capacity_mw"] = "lots"
        self.assertEqual(names(parse_plants(frame)), {"River Dam", "Sun Farm"})

    def test_missing_fuel_and_year(self):
        frame = create_plants_frame()
        frame.loc[0, "primary_fuel"] = ""
        frame.loc[0, "commissioning_year"] = "0"
        plant = parse_plants(frame)[0]
        self.assertEqual(plant.fuel, "Unknown")
        self.assertIsNone(plant.year)


class TestFilterState(unittest.TestCase):
    """Test suite for filter values and filter_plants()."""

    def setUp(self):
        self.plants = create_plants()

    def test_fuel_and_year_range(self):
        state = FilterState(selected_fuel="Coal", year_range=(1990, 2000))
        self.assertEqual(names(filter_plants(self.plants, state)), {"Mid Coal", "Late Coal"})

    def test_filter_is_order_independent(self):
        state = FilterState(selected_fuel="Coal", year_range=(1990, 2000))
        forward = names(filter_plants(self.plants, state))
        backward = names(filter_plants(list(reversed(self.plants)), state))
        self.assertEqual(forward, backward)

    def test_plants_without_year_pass_year_filter(self):
        state = FilterState(year_range=(1990, 1993))
        self.assertEqual(names(filter_plants(self.plants, state)), {"River Dam", "Sun Farm"})

    def test_zero_bound_is_open(self):
        state = FilterState(year_range=(0, 1990))
        self.assertEqual(names(filter_plants(self.plants, state)), {"Old Coal", "Sun Farm"})

    def test_toggle_fuel(self):
        state = FilterState().toggle_fuel("Hydro")
        self.assertEqual(state.selected_fuel, "Hydro")
        self.assertIsNone(state.toggle_fuel("Hydro").selected_fuel)
        self.assertEqual(state.toggle_fuel("Coal").selected_fuel, "Coal")

    def test_brush(self):
        bounds = year_bounds(self.plants)
        state = FilterState(year_range=bounds).with_brush((2000.4, 1989.6), bounds)
        self.assertEqual(state.year_range, (1990, 2000))
        self.assertTrue(state.brushed)
        halves = FilterState().with_brush((1989.5, 2000.5), bounds)
        self.assertEqual(halves.year_range, (1990, 2001))
        reset = state.with_brush(None, bounds)
        self.assertEqual(reset.year_range, (1985.0, 2000.0))
        self.assertFalse(reset.brushed)

    def test_cleared(self):
        state = FilterState("Coal", (1990, 1991), True).cleared((1985.0, 2000.0))
        self.assertEqual(state, FilterState(None, (1985.0, 2000.0), False))

    def test_initial_filter_spans_data(self):
        self.assertEqual(initial_filter(self.plants).year_range, (1985.0, 2000.0))

    def test_year_bounds_without_years(self):
        lo, hi = year_bounds([Plant("x", 0.0, 0.0, 1.0)])
        self.assertEqual(lo, config.FALLBACK_MIN_YEAR)
        self.assertGreaterEqual(hi, 2024)


class TestAggregations(unittest.TestCase):
    """Test suite for fuel, timeline and country aggregations."""

    def setUp(self):
        self.plants = create_plants()
        self.index = build_feature_index(topology_features(create_topology()))

    def test_capacity_by_fuel(self):
        self.assertEqual(
            capacity_by_fuel(self.plants),
            [("Coal", 1000.0), ("Hydro", 1000.0), ("Solar", 50.0)],
        )

    def test_capacity_by_fuel_empty(self):
        self.assertEqual(capacity_by_fuel([]), [])

    def test_timeline_stacks_in_fuel_order(self):
        state = FilterState(year_range=(1985.0, 2000.0))
        timeline = capacity_timeline(self.plants, ["Coal", "Hydro", "Solar"], state, (1985.0, 2000.0))
        self.assertEqual(timeline["years"], [1985.0, 1992.0, 1995.5, 2000.0])
        self.assertEqual(timeline["layers"]["Coal"], [(0.0, 500.0), (0.0, 0.0), (0.0, 300.0), (0.0, 200.0)])
        self.assertEqual(timeline["layers"]["Hydro"][1], (0.0, 1000.0))
        self.assertEqual(timeline["layers"]["Solar"], [(500.0, 500.0), (1000.0, 1000.0), (300.0, 300.0), (200.0, 200.0)])
        self.assertEqual(timeline["y_domain"], (0.0, 1000.0))
        self.assertEqual(timeline["x_domain"], (1985.0, 2000.0))

    def test_timeline_follows_brush(self):
        state = FilterState(year_range=(1990, 1995), brushed=True)
        timeline = capacity_timeline(self.plants, ["Coal"], state, (1985.0, 2000.0))
        self.assertEqual(timeline["x_domain"], (1989, 1996))

    def test_timeline_empty(self):
        timeline = capacity_timeline([], ["Coal"], FilterState(), (1985.0, 2000.0))
        self.assertEqual(timeline["years"], [])
        self.assertEqual(timeline["y_domain"], (0.0, 1.0))

    def test_find_feature(self):
        self.assertEqual(find_feature(self.index, "", "bosnia and herz").feature["id"], "-99")
        self.assertEqual(find_feature(self.index, "004").centroid, (5.0, 5.0))
        self.assertIsNone(find_feature(self.index, "USA", "United States"))

    def test_capacity_by_country(self):
        bubbles = {b.country_key: b for b in capacity_by_country(self.plants, self.index)}
        self.assertEqual(set(bubbles), {"AFG", "Bosnia and Herz.", "USA"})
        # numeric feature id 004 resolves to AFG
        self.assertEqual((bubbles["AFG"].lon, bubbles["AFG"].lat), (5.0, 5.0))
        self.assertEqual(bubbles["AFG"].capacity, 800.0)
        self.assertEqual((bubbles["Bosnia and Herz."].lon, bubbles["Bosnia and Herz."].lat), (22.0, 22.0))
        self.assertEqual(bubbles["USA"].capacity, 1050.0)
        # no USA feature in the topology; placed at its plants' mean location
        self.assertEqual((bubbles["USA"].lon, bubbles["USA"].lat), (-100.5, 40.5))

    def test_plants_without_country_are_excluded(self):
        plants = [Plant("x", 1.0, 1.0, 10.0), Plant("y", 2.0, 2.0, 5.0, country="AFG")]
        bubbles = capacity_by_country(plants, self.index)
        self.assertEqual([b.country_key for b in bubbles], ["AFG"])

    def test_numeric_feature_matches_alpha3_plant(self):
        feature = {
            "type": "Feature",
            "id": "840",
            "properties": {"name": "United States of America"},
            "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [10, 0], [10, 10], [0, 10], [0, 0]]]},
        }
        index = build_feature_index([feature])
        plants = [Plant("River Dam", 40.0, -100.0, 1000.0, "Hydro", 1992.0, "USA", "United States")]
        (bubble,) = capacity_by_country(plants, index)
        self.assertEqual(bubble.country_key, "USA")
        self.assertEqual((bubble.lon, bubble.lat), (5.0, 5.0))

    def test_abbreviated_feature_name_resolves_through_name_index(self):
        features = topology_features(create_topology())
        names_index = build_name_index([("Bosnia and Herzegovina", "BIH")], include_pycountry=False)
        index = build_feature_index(features, names_index)
        plants = [Plant("Dam", 21.0, 21.0, 10.0, country="BIH")]
        (bubble,) = capacity_by_country(plants, index)
        self.assertEqual((bubble.lon, bubble.lat), (22.0, 22.0))

    def test_country_long_used_when_code_has_no_shape(self):
        plants = [Plant("Dam", 1.0, 1.0, 10.0, country="ZZZ", country_long="Afghanistan")]
        (bubble,) = capacity_by_country(plants, self.index)
        self.assertEqual(bubble.country_key, "ZZZ")
        self.assertEqual((bubble.lon, bubble.lat), (5.0, 5.0))

    def test_plants_in_viewport(self):
        visible = plants_in_viewport(self.plants, (-102.0, 39.0, -99.0, 40.6))
        self.assertEqual(names(visible), {"River Dam", "Sun Farm"})
        self.assertEqual(len(plants_in_viewport(self.plants, None, cap=2)), 2)

    def test_fuel_palette(self):
        palette = fuel_palette(["Coal", "Geothermal", "Wave and Tidal", "Coal"])
        self.assertEqual(palette["Coal"], config.FUEL_COLORS["Coal"])
        self.assertIn("Geothermal", palette)
        self.assertNotEqual(palette["Geothermal"], palette["Wave and Tidal"])
        self.assertNotIn(palette["Geothermal"], config.FUEL_COLORS.values())
        self.assertEqual(list(palette)[:len(config.FUEL_COLORS)], list(config.FUEL_COLORS))

    def test_summarize(self):
        state = FilterState("Coal", (1990, 2000))
        summary = summarize(filter_plants(self.plants, state), state)
        self.assertEqual(summary["total_capacity"], 500.0)
        self.assertEqual(summary["plant_count"], 2)
        self.assertEqual(summary["fuel_text"], "COAL")
        self.assertEqual(summary["info"], "Filtering: 2 plants from 1990 to 2000.")

    def test_describe_plant(self):
        self.assertEqual(describe_plant(self.plants[1]), "Mid Coal - Coal - 300 MW - 1996")
        self.assertTrue(describe_plant(self.plants[4]).endswith(" - ?"))
        self.assertTrue(describe_plant(Plant("Pond", 0.0, 0.0, 2.0, year=1994.5)).endswith(" - 1995"))


class TestLoadPowerPlants(unittest.TestCase):
    """Test suite for loading and the update cascade."""

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.paths = write_plant_files(self.test_dir)

    def tearDown(self):
        if self.test_dir.exists():
            shutil.rmtree(self.test_dir)

    def test_load(self):
        data = load_power_plants(**self.paths)
        self.assertEqual(len(data.plants), 5)
        self.assertEqual(data.year_bounds, (1985.0, 2000.0))
        self.assertIn("Solar", data.palette)
        self.assertIn("afghanistan", data.feature_index)

    def test_missing_file_is_terminal(self):
        self.paths["world"].unlink()
        with self.assertRaises(DataLoadError) as context:
            load_power_plants(**self.paths)
        self.assertIn("Error loading files", str(context.exception))

    def test_missing_arc_is_terminal(self):
        topology = create_topology()
        topology["objects"]["countries"]["geometries"][1]["arcs"] = [[~5]]
        self.paths["world"].write_text(json.dumps(topology), encoding="utf-8")
        with self.assertRaises(DataLoadError) as context:
            load_power_plants(**self.paths)
        self.assertIn("Arc index", str(context.exception))

    def test_on_filter_changed_zoomed_out(self):
        data = load_power_plants(**self.paths)
        state = initial_filter(data.plants).toggle_fuel("Coal")
        commands = dict(on_filter_changed(data, state))
        self.assertEqual(list(commands), ["kpis", "info", "timeline", "fuel-chart", "map"])
        self.assertEqual(commands["kpis"]["plant_count"], 3)
        self.assertEqual([b["fuel"] for b in commands["fuel-chart"]], ["Coal"])
        self.assertTrue(commands["fuel-chart"][0]["selected"])
        self.assertEqual(commands["map"]["mode"], "countries")

    def test_on_view_changed_zoomed_in(self):
        data = load_power_plants(**self.paths)
        view = MapView(zoom_k=config.ZOOM_THRESHOLD, bounds=(0.0, 0.0, 3.0, 3.0))
        (command,) = on_view_changed(data, initial_filter(data.plants), view)
        self.assertEqual(command.target, "map")
        self.assertEqual(command.payload["mode"], "plants")
        self.assertEqual({m["key"].split("_")[0] for m in command.payload["marks"]}, {"Old Coal", "Mid Coal"})


if __name__ == "__main__":
    unittest.main()
