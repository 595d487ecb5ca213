import io
import json
from pathlib import Path

import pandas as pd
import requests

from .config import HTTP_TIMEOUT


class DataLoadError(RuntimeError):
    """A required input could not be read. The session cannot continue."""


def is_url(source) -> bool:
    return str(source).startswith(("http://", "https://"))


def require_file(path: Path) -> None:
    if not path.exists():
        raise FileNotFoundError(
            f"\nMissing file: {path}\n\n"
            "Expected structure:\n"
            "  data/\n"
            "    ISO-3166-Countries-with-Regional-Codes.csv\n"
            "    gdp_pcap.csv\n"
            "    lex.csv\n"
            "    pop.csv\n"
            "    world-110m.json\n"
            "    global_power_plant_database.csv\n"
        )


def fetch_text(url: str) -> str:
    r = requests.get(url, timeout=HTTP_TIMEOUT)
    r.raise_for_status()
    return r.text


def read_table(source) -> pd.DataFrame:
    """Read a delimited file with every cell kept as a string."""
    if is_url(source):
        handle = io.StringIO(fetch_text(str(source)))
    else:
        path = Path(source)
        require_file(path)
        handle = path
    return pd.read_csv(handle, dtype=str, keep_default_na=False)


def read_json(source) -> dict:
    if is_url(source):
        r = requests.get(str(source), timeout=HTTP_TIMEOUT)
        r.raise_for_status()
        return r.json()
    path = Path(source)
    require_file(path)
    return json.loads(path.read_text(encoding="utf-8"))
