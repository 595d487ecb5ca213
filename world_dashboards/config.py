from pathlib import Path


# Files
DATA_DIR = Path("data")

ISO_CSV = DATA_DIR / "ISO-3166-Countries-with-Regional-Codes.csv"
GDP_CSV = DATA_DIR / "gdp_pcap.csv"
LEX_CSV = DATA_DIR / "lex.csv"
POP_CSV = DATA_DIR / "pop.csv"
WORLD_TOPO = DATA_DIR / "world-110m.json"

PLANTS_CSV = DATA_DIR / "global_power_plant_database.csv"

# Year columns outside this range are not treated as years
MIN_YEAR = 1800
MAX_YEAR = 2100

# Keeps GDP positive on the log axis
GDP_FLOOR = 100.0
GDP_AXIS_MAX = 520_000.0
LIFE_EXP_AXIS = (0.0, 100.0)

# Milliseconds per year while playing
ANIMATION_INTERVAL_MS = 200

POP_RADIUS_DOMAIN = (0.0, 1.5e9)
POP_RADIUS_RANGE = (3.0, 40.0)

LIFE_EXP_COLOR_DOMAIN = (30.0, 85.0)
LIFE_EXP_LEGEND_RANGE = (25.0, 95.0)
NO_DATA_COLOR = "#ccc"

REGION_COLORS = [
    "#e41a1c", "#377eb8", "#4daf4a", "#984ea3", "#ff7f00",
    "#a65628", "#f781bf", "#66c2a5", "#fc8d62",
]

# Power plants map
ZOOM_THRESHOLD = 3.0
PLANT_DISPLAY_CAP = 8000
VIEWPORT_BUFFER_DEG = 0.5
DEFAULT_YEAR_RANGE = (0.0, 9999.0)
FALLBACK_MIN_YEAR = 1900

FUEL_COLORS = {
    "Gas": "#f59e0b",
    "Coal": "#1f2937",
    "Hydro": "#3b82f6",
    "Solar": "#fcd34d",
    "Wind": "#10b981",
    "Nuclear": "#ef4444",
    "Oil": "#78716c",
    "Biomass": "#84cc16",
    "Unknown": "#9ca3af",
}

HTTP_TIMEOUT = 60
