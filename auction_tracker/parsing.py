# auction_tracker/parsing.py
"""Shared parsing and normalisation helpers for the platform parsers.

Every auction site changes its markup regularly, so extraction is written as
"try an ordered list of candidates, keep the first non-empty result" and every
helper degrades to ``None`` instead of raising.
"""
from __future__ import annotations

import hashlib
import json
import re
from datetime import datetime, timezone
from typing import Iterable, NamedTuple
from urllib.parse import urljoin, urlsplit, urlunsplit, parse_qsl, urlencode

from bs4 import BeautifulSoup, Tag

# prefer lxml when it is installed
try:
    import lxml  # type: ignore  # noqa: F401
    BS_PARSER = "lxml"
except ImportError:
    BS_PARSER = "html.parser"


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", BS_PARSER)


# ---------------------------------------------------------------------------
# Selector helpers
# ---------------------------------------------------------------------------

def clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = re.sub(r"\s+", " ", value).strip()
    return cleaned or None


def element_text(el: Tag | None) -> str | None:
    if el is None:
        return None
    return clean_text(el.get_text(" ", strip=True))


def first_text(scope: Tag, selectors: Iterable[str]) -> str | None:
    """Text of the first selector that matches a non-empty element."""
    for selector in selectors:
        text = element_text(scope.select_one(selector))
        if text:
            return text
    return None


def first_attr(scope: Tag, selectors: Iterable[str], attrs: Iterable[str]) -> str | None:
    attrs = tuple(attrs)
    for selector in selectors:
        el = scope.select_one(selector)
        if el is None:
            continue
        for attr in attrs:
            value = el.get(attr)
            if isinstance(value, list):
                value = " ".join(value)
            if value and value.strip():
                return value.strip()
    return None


def has_any(scope: Tag, selectors: Iterable[str]) -> bool:
    return any(scope.select_one(selector) is not None for selector in selectors)


def image_src(img: Tag) -> str | None:
    for attr in ("src", "data-src", "data-lazy-src"):
        value = img.get(attr)
        if value and not value.startswith("data:"):
            return value.strip()
    return None


def absolute_url(base_url: str, href: str | None) -> str | None:
    if not href:
        return None
    href = href.strip()
    if href.startswith("http://") or href.startswith("https://"):
        return href
    return urljoin(base_url + "/", href)


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------

def parse_price(text: str | None) -> float | None:
    """``"Bid to $12,500"`` → ``12500.0``; anything unparsable → ``None``."""
    if not text:
        return None
    cleaned = re.sub(r"[^0-9.]", "", str(text))
    # "$1,299." or "USD 45.000.00" leave stray dots behind
    cleaned = cleaned.strip(".")
    if cleaned.count(".") > 1:
        head, _, tail = cleaned.rpartition(".")
        cleaned = head.replace(".", "") + "." + tail
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


_CURRENCY_MARKERS = (
    ("£", "GBP"), ("GBP", "GBP"),
    ("€", "EUR"), ("EUR", "EUR"),
    ("CHF", "CHF"),
    ("CA$", "CAD"), ("C$", "CAD"), ("CAD", "CAD"),
    ("A$", "AUD"), ("AUD", "AUD"),
    ("$", "USD"), ("USD", "USD"),
)


def parse_currency(text: str | None) -> str | None:
    """ISO code for the currency a price is written in; None when the text does not say."""
    if not text:
        return None
    for marker, code in _CURRENCY_MARKERS:
        if marker in text:
            return code
    return None


def parse_bid_count(text: str | None) -> int | None:
    if not text:
        return None
    m = re.search(r"(\d+)", text.replace(",", ""))
    return int(m.group(1)) if m else None


def parse_mileage(text: str | None) -> int | None:
    if not text:
        return None
    digits = re.sub(r"[^0-9]", "", text)
    return int(digits) if digits else None


def _expand_k(raw: str) -> int | None:
    raw = raw.replace(",", "").strip().lower()
    multiplier = 1
    if raw.endswith("k"):
        multiplier = 1000
        raw = raw[:-1]
    try:
        return int(round(float(raw) * multiplier))
    except ValueError:
        return None


def mileage_unit_for(text: str | None) -> str:
    if text and re.search(r"\b(km|kms|kilomet(?:er|re)s?)\b", text, re.I):
        return "km"
    return "miles"


class MileageReading(NamedTuple):
    mileage: int
    unit: str


_TITLE_MILEAGE_RE = re.compile(
    r"^~?\s*([\d,]+(?:\.\d+)?k?)[-\s](miles?|kilomet(?:er|re)s?|km)\b", re.I
)


def parse_mileage_from_title(title: str | None) -> MileageReading | None:
    """``"10k-Mile 2003 Ferrari 360"`` → ``(10000, "miles")``."""
    if not title:
        return None
    m = _TITLE_MILEAGE_RE.match(title.strip())
    if not m:
        return None
    mileage = _expand_k(m.group(1))
    if mileage is None:
        return None
    return MileageReading(mileage, mileage_unit_for(m.group(2)))


_NUM = r"([\d,]+(?:\.\d+)?k?)"
_UNIT = r"(miles?|kilomet(?:er|re)s?|km)"
_DESCRIPTION_MILEAGE_PATTERNS = [
    re.compile(rf"\b(?:showing|shows|indicating|indicates|reads|reading)\s+(?:approximately\s+|roughly\s+|about\s+|just\s+|under\s+)?{_NUM}\s*{_UNIT}\b", re.I),
    re.compile(rf"\bodometer\s+(?:reads\s+|shows\s+|indicates\s+)?(?:approximately\s+)?{_NUM}\s*{_UNIT}\b", re.I),
    re.compile(rf"\b{_NUM}\s*{_UNIT}\s+(?:are\s+|is\s+)?(?:shown|indicated|displayed)\b", re.I),
    re.compile(rf"\bwith\s+(?:approximately\s+|just\s+|under\s+)?{_NUM}\s*{_UNIT}\s+on\s+the\s+(?:odometer|clock|speedometer)\b", re.I),
    re.compile(rf"\bthere\s+are\s+{_NUM}\s*{_UNIT}\s+(?:shown|indicated|on)\b", re.I),
]


def parse_mileage_from_description(text: str | None) -> MileageReading | None:
    """Mileage mentioned with odometer context; incidental distances are ignored."""
    if not text:
        return None
    for pattern in _DESCRIPTION_MILEAGE_PATTERNS:
        m = pattern.search(text)
        if m:
            mileage = _expand_k(m.group(1))
            if mileage is not None:
                return MileageReading(mileage, mileage_unit_for(m.group(2)))
    return None


_ESSENTIAL_MILEAGE_RE = re.compile(
    r"^~?\s*(?:showing\s+|indicated\s+)?([\d,]+(?:\.\d+)?k?)\s*(miles?|kilomet(?:er|re)s?|km)\b", re.I
)


def parse_mileage_item(text: str | None) -> MileageReading | None:
    """Essentials-style items: ``"33k Miles"``, ``"Showing 8k Kilometers"``."""
    if not text:
        return None
    m = _ESSENTIAL_MILEAGE_RE.match(text.strip())
    if not m:
        return None
    mileage = _expand_k(m.group(1))
    if mileage is None:
        return None
    return MileageReading(mileage, mileage_unit_for(m.group(2)))


# ---------------------------------------------------------------------------
# Free-text classifiers
# ---------------------------------------------------------------------------

TRANSMISSION_RE = re.compile(
    r"speed|manual|automatic|dual[\s-]?clutch|transaxle|\bPDK\b|tiptronic|sequential|\bF1\b|SMG|gearbox|CVT",
    re.I,
)
MILEAGE_WORDS_RE = re.compile(r"\b(miles?|km|kilomet(?:er|re)s?|speedometer|odometer)\b", re.I)
ENGINE_RE = re.compile(
    r"\d[\d.]*[\s-]?lit(?:er|re)|\b[vV]\d{1,2}\b|flat[\s-]?\d|inline[\s-]?\d|twin[\s-]?turbo|turbo(?:charged)?|supercharged|boxer|rotary",
    re.I,
)
POWERTRAIN_GUARD_RE = re.compile(
    r"lit(?:er|re)|\b[vV]\d|turbo|speed|manual|automatic|clutch|transaxle|PDK|\bmiles?\b|\bkm\b", re.I
)
INTERIOR_RE = re.compile(r"\b(leather|upholstery|alcantara|interior|cloth|suede|nappa|vinyl)\b", re.I)
EXTERIOR_RE = re.compile(r"paint$|\b(metallic|micalizzato|pearl)\b", re.I)
ITALIAN_COLOR_RE = re.compile(
    r"\b(rosso|nero|grigio|bianco|giallo|blu|azzurro|argento|verde|marrone|avorio|crema|nocciola)\b", re.I
)

_BODY_STYLES = {
    "coupe": "Coupe", "coupé": "Coupe", "spider": "Spider", "spyder": "Spyder",
    "berlinetta": "Berlinetta", "gtb": "GTB", "gts": "GTS", "gt4": "GT4",
    "targa": "Targa", "convertible": "Convertible", "roadster": "Roadster",
    "cabriolet": "Cabriolet", "sedan": "Sedan", "wagon": "Wagon",
    "hatchback": "Hatchback", "suv": "SUV",
}
_BODY_STYLE_RE = re.compile(r"\b(" + "|".join(_BODY_STYLES) + r")\b", re.I)


def is_transmission_text(text: str | None) -> bool:
    """True for "Six-Speed Manual", false for "17k Miles Shown on Replacement Speedometer"."""
    if not text:
        return False
    return bool(TRANSMISSION_RE.search(text)) and not MILEAGE_WORDS_RE.search(text)


def is_engine_text(text: str | None) -> bool:
    if not text:
        return False
    return bool(ENGINE_RE.search(text)) and not MILEAGE_WORDS_RE.search(text)


def parse_body_style(text: str | None) -> str | None:
    if not text:
        return None
    m = _BODY_STYLE_RE.search(text)
    return _BODY_STYLES[m.group(1).lower()] if m else None


def exterior_color_from(text: str | None) -> str | None:
    if not text or INTERIOR_RE.search(text):
        return None
    if EXTERIOR_RE.search(text):
        return clean_text(re.sub(r"\s*paint$", "", text, flags=re.I))
    if ITALIAN_COLOR_RE.search(text) and not POWERTRAIN_GUARD_RE.search(text):
        return clean_text(text)
    return None


def interior_color_from(text: str | None) -> str | None:
    if not text or not INTERIOR_RE.search(text):
        return None
    if POWERTRAIN_GUARD_RE.search(text):
        return None
    return clean_text(re.sub(r"\s*upholstery$", "", text, flags=re.I))


# ---------------------------------------------------------------------------
# Titles
# ---------------------------------------------------------------------------

KNOWN_MAKES = [
    "Mercedes-Benz", "Alfa Romeo", "Land Rover", "Range Rover", "Aston Martin",
    "Rolls-Royce", "Austin-Healey", "De Tomaso",
    "Porsche", "BMW", "Mercedes", "Audi", "Volkswagen", "VW",
    "Ferrari", "Lamborghini", "Maserati", "Fiat", "Lancia",
    "Toyota", "Honda", "Nissan", "Mazda", "Subaru", "Mitsubishi", "Lexus",
    "Acura", "Infiniti", "Datsun", "Suzuki",
    "Ford", "Chevrolet", "Dodge", "Jeep", "GMC", "Cadillac", "Buick",
    "Lincoln", "Pontiac", "Oldsmobile", "Plymouth", "Chrysler", "RAM",
    "Corvette", "Shelby", "AMC",
    "Jaguar", "Bentley", "Lotus", "McLaren", "Mini", "MG", "Triumph",
    "Morgan", "TVR", "Caterham",
    "Volvo", "Saab", "Koenigsegg", "Pagani", "Bugatti",
    "Alpine", "Peugeot", "Citroen", "Renault", "Lada",
    "Genesis", "Rivian", "Tesla", "Lucid", "Polestar",
]


class TitleParts(NamedTuple):
    year: int | None
    make: str
    model: str


def parse_title_components(title: str) -> TitleParts:
    """Split ``"YEAR MAKE MODEL ..."`` titles.

    Handles a leading year, a trailing ``"- 1996"`` year, and a year found
    anywhere in the string (which also drops prefixes such as ``"10k-Mile"``).
    """
    title = (title or "").strip()
    year = None
    rest = title

    m = re.match(r"^(\d{4})\s+", title)
    if m:
        year = int(m.group(1))
        rest = title[m.end():].strip()
    else:
        m = re.search(r"[-\s]+((?:19|20)\d{2})$", title)
        if m and not re.search(r"\b(?:19|20)\d{2}\b", title[:m.start()]):
            year = int(m.group(1))
            rest = title[:m.start()].strip()
        else:
            m = re.search(r"\b((?:19|20)\d{2})\b", title)
            if m:
                year = int(m.group(1))
                rest = title[m.end():].strip()

    make = ""
    model = rest
    lowered = rest.lower()
    for known in KNOWN_MAKES:
        k = known.lower()
        if lowered.startswith(k) and (len(lowered) == len(k) or not lowered[len(k)].isalnum()):
            make = known
            model = rest[len(known):].strip()
            break

    if not make:
        parts = rest.split()
        make = parts[0] if parts else ""
        model = " ".join(parts[1:])

    return TitleParts(year, make, model)


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

_MONTHS = {
    "january": 1, "jan": 1, "february": 2, "feb": 2, "march": 3, "mar": 3,
    "april": 4, "apr": 4, "may": 5, "june": 6, "jun": 6, "july": 7, "jul": 7,
    "august": 8, "aug": 8, "september": 9, "sept": 9, "sep": 9,
    "october": 10, "oct": 10, "november": 11, "nov": 11, "december": 12, "dec": 12,
}


def month_day_year_to_utc_noon(text: str | None) -> datetime | None:
    """``"March 5, 2024"`` → 2024-03-05 12:00 UTC (noon avoids date drift)."""
    if not text:
        return None
    m = re.match(r"^([A-Za-z]+)\.?\s+(\d{1,2}),?\s+(\d{4})$", text.strip())
    if not m:
        return None
    month = _MONTHS.get(m.group(1).lower())
    if month is None:
        return None
    try:
        return datetime(int(m.group(3)), month, int(m.group(2)), 12, 0, tzinfo=timezone.utc)
    except ValueError:
        return None


def parse_datetime(text: str | None) -> datetime | None:
    """ISO timestamps, epoch seconds, month-name dates and US numeric dates."""
    if not text:
        return None
    text = text.strip()
    if re.fullmatch(r"\d{10}(?:\.\d+)?", text):
        return datetime.fromtimestamp(float(text), tz=timezone.utc)
    if re.fullmatch(r"\d{13}", text):
        return datetime.fromtimestamp(int(text) / 1000, tz=timezone.utc)
    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        parsed = datetime.fromisoformat(iso)
    except ValueError:
        parsed = None
    if parsed is not None:
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    found = month_day_year_to_utc_noon(text)
    if found:
        return found
    m = re.search(r"\b(\d{1,2})/(\d{1,2})/(\d{2,4})\b", text)
    if m:
        month, day, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
        if year < 100:
            year += 2000
        try:
            return datetime(year, month, day, 12, 0, tzinfo=timezone.utc)
        except ValueError:
            return None
    m = re.search(r"([A-Za-z]+\.?\s+\d{1,2},?\s+\d{4})", text)
    if m:
        return month_day_year_to_utc_noon(m.group(1))
    return None


def extract_json_ld(soup: BeautifulSoup) -> list[dict]:
    """All JSON-LD objects on the page, flattened out of lists and @graph."""
    objects: list[dict] = []
    for script in soup.select('script[type="application/ld+json"]'):
        raw = script.string or script.get_text()
        if not raw:
            continue
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            continue
        items = data if isinstance(data, list) else [data]
        for obj in items:
            if not isinstance(obj, dict):
                continue
            objects.append(obj)
            graph = obj.get("@graph")
            if isinstance(graph, list):
                objects.extend(o for o in graph if isinstance(o, dict))
    return objects


def end_date_from_json_ld(soup: BeautifulSoup) -> datetime | None:
    for obj in extract_json_ld(soup):
        candidates = [obj.get("endDate")]
        if isinstance(obj.get("auction"), dict):
            candidates.append(obj["auction"].get("endDate"))
        offers = obj.get("offers")
        if isinstance(offers, dict):
            candidates.append(offers.get("endDate"))
        elif isinstance(offers, list):
            candidates.extend(o.get("endDate") for o in offers if isinstance(o, dict))
        for candidate in candidates:
            if isinstance(candidate, str):
                parsed = parse_datetime(candidate)
                if parsed:
                    return parsed
    return None


_END_PHRASE_RE = re.compile(
    r"(?:auction\s+)?(?:ended|ends|closes|closed)(?:\s+on)?\s+([A-Za-z]+\.?\s+\d{1,2},\s+\d{4})",
    re.I,
)
TIME_ATTRS = ("data-end-time", "data-endtime", "data-auction-end", "data-until", "datetime")


def resolve_end_time(soup: BeautifulSoup, time_selectors: Iterable[str]) -> datetime | None:
    """Time element attribute, then JSON-LD ``endDate``, then visible body text."""
    for selector in time_selectors:
        el = soup.select_one(selector)
        if el is None:
            continue
        raw = None
        for attr in TIME_ATTRS:
            if el.get(attr):
                raw = el.get(attr)
                break
        parsed = parse_datetime(raw or element_text(el))
        if parsed:
            return parsed

    found = end_date_from_json_ld(soup)
    if found:
        return found

    body = soup.body or soup
    m = _END_PHRASE_RE.search(body.get_text(" ", strip=True))
    if m:
        return month_day_year_to_utc_noon(m.group(1))
    return None


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

_TRACKING_PARAMS = re.compile(r"^(utm_.*|ref|fbclid|gclid)$", re.I)


def canonicalize_url(url: str) -> str:
    parts = urlsplit(url.strip())
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if not _TRACKING_PARAMS.match(k)]
    return urlunsplit((parts.scheme, parts.netloc.lower(), parts.path, urlencode(query), ""))


def derive_external_id(url: str, prefix: str, slug_pattern: re.Pattern) -> str:
    """Platform-prefixed id from the listing slug, else a stable URL hash."""
    canonical = canonicalize_url(url)
    m = slug_pattern.search(canonical)
    if m:
        return f"{prefix}-{m.group(m.lastindex or 0)}"[:200]
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:32]
    return f"{prefix}-{digest}"


# ---------------------------------------------------------------------------
# Keyed spec tables
# ---------------------------------------------------------------------------

def collect_specs(scope: Tag, selectors: str) -> dict[str, str]:
    """Key/value pairs from ``li "Key: Value"``, table rows and ``dt``/``dd`` lists."""
    specs: dict[str, str] = {}
    for el in scope.select(selectors):
        key = value = None
        if el.name == "tr":
            cells = el.find_all(["td", "th"])
            if len(cells) >= 2:
                key = element_text(cells[0])
                value = element_text(cells[-1])
        elif el.name == "dt":
            dd = el.find_next_sibling("dd")
            key = element_text(el)
            value = element_text(dd)
        else:
            text = element_text(el) or ""
            if ":" in text:
                key, _, value = text.partition(":")
            else:
                label = el.select_one(".label, .key, strong, b")
                val = el.select_one(".value, .detail")
                key = element_text(label)
                value = element_text(val)
                if key and not value:
                    value = clean_text(text.replace(key, "", 1))
        key = clean_text(key)
        value = clean_text(value)
        if key and value:
            specs.setdefault(key.lower(), value)
    return specs


def spec_value(specs: dict[str, str], *keys: str) -> str | None:
    for key in keys:
        if specs.get(key):
            return specs[key]
    return None
