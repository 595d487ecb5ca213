"""
Country identifier resolution.

Every loader in both dashboards turns whatever identifies a country in its
source (an ISO alpha-3 or alpha-2 code, a display name, a numeric ISO id) into
one canonical alpha-3 code through ``resolve``. Matching is exact or
normalized-exact only; anything else stays unresolved (``None``).
"""

import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping

import pycountry


# Probed in this order; the first value that is a bare 3-letter token wins.
CODE_COLUMNS = (
    "alpha-3", "alpha3", "iso_a3", "ISO_A3", "iso3", "ISO3", "iso", "geo",
    "Country Code", "Code", "ADM0_A3", "adm0_a3", "iso_a3_eh", "iso_a3_us",
    "A3", "abbrev",
)

NAME_COLUMNS = (
    "name", "NAME", "Country Name", "country_name", "country",
    "country_long", "name_long", "admin",
)

ALPHA2_COLUMNS = ("alpha-2", "alpha2", "iso_a2", "ISO_A2")

NUMERIC_COLUMNS = ("id", "numeric_id", "iso_n3", "country-code", "ccn3")

# Map labels that differ from the ISO metadata names
NAME_ALIASES = {
    "BOSNIA AND HERZ.": "BOSNIA AND HERZEGOVINA",
    "SOLOMON IS.": "SOLOMON ISLANDS",
    "BRUNEI": "BRUNEI DARUSSALAM",
    "BOLIVIA": "BOLIVIA (PLURINATIONAL STATE OF)",
    "CENTRAL AFRICAN REP.": "CENTRAL AFRICAN REPUBLIC",
    "DOMINICAN REP.": "DOMINICAN REPUBLIC",
    "DEM. REP. CONGO": "CONGO, DEMOCRATIC REPUBLIC OF THE",
    "EQ. GUINEA": "EQUATORIAL GUINEA",
    "S. SUDAN": "SOUTH SUDAN",
    "W. SAHARA": "WESTERN SAHARA",
    "FALKLAND IS.": "FALKLAND ISLANDS (MALVINAS)",
    "FR. S. ANTARCTIC LANDS": "FRENCH SOUTHERN TERRITORIES",
    "UNITED STATES": "UNITED STATES OF AMERICA",
    "UNITED KINGDOM": "UNITED KINGDOM OF GREAT BRITAIN AND NORTHERN IRELAND",
    "RUSSIA": "RUSSIAN FEDERATION",
    "IRAN": "IRAN (ISLAMIC REPUBLIC OF)",
    "VENEZUELA": "VENEZUELA (BOLIVARIAN REPUBLIC OF)",
    "TANZANIA": "TANZANIA, UNITED REPUBLIC OF",
    "SYRIA": "SYRIAN ARAB REPUBLIC",
    "LAOS": "LAO PEOPLE'S DEMOCRATIC REPUBLIC",
    "VIETNAM": "VIET NAM",
    "SOUTH KOREA": "KOREA, REPUBLIC OF",
    "NORTH KOREA": "KOREA (DEMOCRATIC PEOPLE'S REPUBLIC OF)",
    "MOLDOVA": "MOLDOVA, REPUBLIC OF",
    "MACEDONIA": "NORTH MACEDONIA",
    "CZECH REPUBLIC": "CZECHIA",
    "IVORY COAST": "CÔTE D'IVOIRE",
    "PALESTINE": "PALESTINE, STATE OF",
    "TAIWAN": "TAIWAN, PROVINCE OF CHINA",
}

# world-110m features often carry only a numeric id. Known to be incomplete.
ISO_NUMERIC_TO_ALPHA3 = {
    "4": "AFG", "8": "ALB", "12": "DZA", "24": "AGO", "32": "ARG",
    "36": "AUS", "40": "AUT", "51": "ARM", "50": "BGD", "56": "BEL",
    "68": "BOL", "76": "BRA", "124": "CAN", "152": "CHL", "156": "CHN",
    "170": "COL", "180": "COD", "188": "CRI", "191": "HRV", "196": "CYP",
    "208": "DNK", "262": "DJI", "276": "DEU", "300": "GRC", "344": "HKG",
    "356": "IND", "360": "IDN", "376": "ISR", "392": "JPN", "398": "KAZ",
    "404": "KEN", "484": "MEX", "528": "NLD", "554": "NZL", "586": "PAK",
    "643": "RUS", "764": "THA", "784": "ARE", "840": "USA", "858": "URY",
    "860": "UZB", "862": "VEN", "894": "ZMB", "710": "ZAF", "250": "FRA",
    "826": "GBR", "380": "ITA", "400": "JOR", "504": "MAR", "792": "TUR",
    "804": "UKR", "608": "PHL", "372": "IRL", "226": "GNQ", "140": "CAF",
    "728": "SSD", "834": "TZA", "807": "MKD", "498": "MDA", "275": "PSE",
    "760": "SYR", "238": "FLK", "540": "NCL", "364": "IRN", "418": "LAO",
    "704": "VNM", "408": "PRK", "410": "KOR", "732": "ESH", "96": "BRN",
    "214": "DOM", "90": "SLB", "70": "BIH", "212": "DMA",
}

UNKNOWN = "Unknown"

_ALPHA3 = re.compile(r"^[A-Za-z]{3}$")
_DIGITS = re.compile(r"^\d+$")


@dataclass(frozen=True)
class CountryRecord:
    alpha3: str
    name: str = UNKNOWN
    region: str = UNKNOWN


def text_of(value: Any) -> str:
    """Cell or property value as trimmed text; missing values become ''."""
    if value is None:
        return ""
    if isinstance(value, float):
        if value != value:
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def normalize(value: Any) -> str:
    """Drop accents and punctuation, lowercase, trim, collapse whitespace."""
    text = unicodedata.normalize("NFKD", text_of(value))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"[^\w\s]", "", text)
    return re.sub(r"\s+", " ", text).strip().lower()


def as_alpha3(value: Any) -> str | None:
    text = text_of(value)
    if _ALPHA3.match(text):
        return text.upper()
    return None


_NORMALIZED_ALIASES = {normalize(k): v for k, v in NAME_ALIASES.items()}


class IdentifierIndex:
    """
    Read-only many-to-one lookup from identifier strings to values.

    Each key is stored lowercased and in its normalized form; ``get`` tries
    the lowercase form first, then the normalized one. Later pairs replace
    earlier ones for the same key.
    """

    def __init__(self, pairs: Iterable[tuple[Any, Any]] = ()):
        keys: dict[str, Any] = {}
        for key, value in pairs:
            text = text_of(key)
            if not text:
                continue
            keys[text.lower()] = value
            norm = normalize(text)
            if norm:
                keys[norm] = value
        self._keys = keys

    def get(self, key: Any, default: Any = None) -> Any:
        text = text_of(key)
        if not text:
            return default
        hit = self._keys.get(text.lower())
        if hit is None:
            hit = self._keys.get(normalize(text))
        return default if hit is None else hit

    def __contains__(self, key: Any) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._keys)


def pycountry_names() -> Iterator[tuple[str, str]]:
    for country in pycountry.countries:
        for attr in ("name", "official_name", "common_name", "alpha_2"):
            label = getattr(country, attr, None)
            if label:
                yield label, country.alpha_3


def build_name_index(
    pairs: Iterable[tuple[str, str]], include_pycountry: bool = True
) -> IdentifierIndex:
    """
    Index of identifier -> alpha-3 from (name or alpha-2, code) pairs.

    pycountry names go in first so the caller's metadata wins on conflicts.
    """
    seeded: list[tuple[str, str]] = []
    if include_pycountry:
        seeded.extend(pycountry_names())
    seeded.extend(pairs)
    return IdentifierIndex(seeded)


def _name_candidates(raw: str) -> Iterator[str]:
    alias = NAME_ALIASES.get(raw.upper()) or _NORMALIZED_ALIASES.get(normalize(raw))
    if alias:
        yield alias
    yield raw.upper()


def numeric_to_alpha3(value: Any) -> str | None:
    text = text_of(value)
    if not _DIGITS.match(text):
        return None
    return ISO_NUMERIC_TO_ALPHA3.get(str(int(text)))


def resolve(
    fields: Mapping[str, Any],
    index: IdentifierIndex | None = None,
    scan_tokens: bool = False,
) -> str | None:
    """
    Canonical alpha-3 code for a bag of candidate fields, or None.

    Order: code columns, names (aliases first) and alpha-2 codes through
    ``index``, numeric ids, a bare 3-letter ``id``, then, with
    ``scan_tokens``, any field holding a bare 3-letter token.
    """
    for column in CODE_COLUMNS:
        code = as_alpha3(fields.get(column))
        if code:
            return code

    if index is not None:
        for column in NAME_COLUMNS:
            raw = text_of(fields.get(column))
            if not raw:
                continue
            for candidate in _name_candidates(raw):
                code = index.get(candidate)
                if code:
                    return code
        for column in ALPHA2_COLUMNS:
            code = index.get(fields.get(column))
            if code:
                return code

    for column in NUMERIC_COLUMNS:
        code = numeric_to_alpha3(fields.get(column))
        if code:
            return code

    code = as_alpha3(fields.get("id"))
    if code:
        return code

    if scan_tokens:
        for value in fields.values():
            code = as_alpha3(value)
            if code:
                return code

    return None


def feature_fields(feature: Mapping[str, Any]) -> dict[str, Any]:
    """Flatten a GeoJSON feature into one field bag (properties plus id)."""
    fields = dict(feature.get("properties") or {})
    if feature.get("id") is not None:
        fields["id"] = feature["id"]
    return fields


def resolve_feature(feature: Mapping[str, Any], index: IdentifierIndex | None = None) -> str | None:
    return resolve(feature_fields(feature), index)


def lookup_country(countries: Mapping[str, CountryRecord], code: str) -> CountryRecord:
    record = countries.get(code)
    if record is None:
        return CountryRecord(code)
    return record
