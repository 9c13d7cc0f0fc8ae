# auction_tracker/platforms/__init__.py
"""Registry of the supported auction sites."""
import re
from urllib.parse import urlsplit

from ..errors import UnsupportedPlatformError
from ..schemas import Platform
from .base import PlatformParser
from . import bring_a_trailer, cars_and_bids, collecting_cars

PARSERS = {
    Platform.BRING_A_TRAILER: bring_a_trailer.PARSER,
    Platform.CARS_AND_BIDS: cars_and_bids.PARSER,
    Platform.COLLECTING_CARS: collecting_cars.PARSER,
}

_ALIASES = {
    "BRING_A_TRAILER": Platform.BRING_A_TRAILER,
    "BRINGATRAILER": Platform.BRING_A_TRAILER,
    "BAT": Platform.BRING_A_TRAILER,
    "CARS_AND_BIDS": Platform.CARS_AND_BIDS,
    "CARSANDBIDS": Platform.CARS_AND_BIDS,
    "CAB": Platform.CARS_AND_BIDS,
    "C_AND_B": Platform.CARS_AND_BIDS,
    "COLLECTING_CARS": Platform.COLLECTING_CARS,
    "COLLECTINGCARS": Platform.COLLECTING_CARS,
    "CC": Platform.COLLECTING_CARS,
}


def _normalize_name(name):
    name = re.sub(r"\s*&\s*", " AND ", name.strip().upper())
    return re.sub(r"[\s-]+", "_", name)


def get_parser(name) -> PlatformParser:
    """Look a parser up by enum, canonical name or alias ("bat", "Cars & Bids")."""
    if isinstance(name, Platform):
        return PARSERS[name]
    platform = _ALIASES.get(_normalize_name(name or ""))
    if platform is None:
        raise UnsupportedPlatformError(name)
    return PARSERS[platform]


def detect_platform(url):
    """Platform for a listing URL, or None for other hosts."""
    host = urlsplit(url or "").hostname or ""
    for platform, parser in PARSERS.items():
        if parser.owns_host(host):
            return platform
    return None


def parser_for_url(url) -> PlatformParser:
    platform = detect_platform(url)
    if platform is None:
        raise UnsupportedPlatformError(url)
    return PARSERS[platform]


def all_parsers():
    return list(PARSERS.values())
