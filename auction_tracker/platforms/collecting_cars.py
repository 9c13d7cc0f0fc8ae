# auction_tracker/platforms/collecting_cars.py
"""Collecting Cars (UK based, so colour/kilometre spellings show up in specs)."""
import re

from ..parsing import (
    collect_specs, element_text, first_text, is_transmission_text,
    make_soup, mileage_unit_for, parse_body_style, parse_mileage,
    parse_mileage_from_description, resolve_end_time, spec_value,
)
from .base import (
    PlatformParser, build_card_record, card_image, card_mileage, card_status,
    card_time, card_url, compact, detail_bid, detail_bid_count, detail_status,
    gallery_images,
)
from ..schemas import Platform

BASE_URL = "https://collectingcars.com"
SOLD_SELECTORS = (".sold-badge", ".winner-badge", '[class*="sold"]', '[class*="winner"]',
                  ".auction-sold", ".listing-sold", ".sale-completed", ".ended")
LOT_LINK_RE = re.compile(r"/(?:cars|lots)/[a-z0-9]")
TIME_SELECTORS = ("time", "[datetime]", '[class*="time"]', '[class*="countdown"]')


def _parse_card(parser, tag, now):
    url, link = card_url(parser, tag, 'a[href*="/cars/"], a[href*="/lots/"]')
    if not url or not LOT_LINK_RE.search(url):
        return None
    title = first_text(tag, (".lot-title", ".card-title", "h3", "h2", '[class*="title"]')) or element_text(link)
    if not title:
        return None
    mileage, unit = card_mileage(tag.get_text(" ", strip=True))
    return build_card_record(
        parser,
        url=url,
        title=title,
        now=now,
        bid_text=first_text(tag, (".current-bid", ".bid-amount", '[class*="bid"]', '[class*="price"]')),
        bid_count_text=first_text(tag, (".bid-count", '[class*="bid-count"]', '[class*="bids"]')),
        end_time=card_time(tag, TIME_SELECTORS),
        image=card_image(tag),
        status=card_status(tag, SOLD_SELECTORS),
        mileage=mileage,
        mileage_unit=unit,
        location=first_text(tag, ('[class*="location"]', ".lot-location")),
    )


def parse_detail(html):
    soup = make_soup(html)
    specs = collect_specs(
        soup, ".lot-details li, .specifications li, .vehicle-specs li, .key-facts li, dl dt, .specs-table tr"
    )
    description = first_text(soup, (".lot-description", ".vehicle-description", ".listing-description",
                                    '[class*="description"]'))

    km_text = spec_value(specs, "kilometres", "km")
    mileage_text = spec_value(specs, "mileage", "odometer", "miles") or km_text
    mileage = parse_mileage(mileage_text)
    unit = None
    if mileage is not None:
        unit = "km" if mileage_text is km_text else mileage_unit_for(mileage_text)
    if mileage is None:
        reading = parse_mileage_from_description(description)
        if reading:
            mileage, unit = reading

    transmission = spec_value(specs, "transmission", "gearbox")
    if transmission and not is_transmission_text(transmission):
        transmission = None

    return compact({
        "description": description,
        "seller_notes": first_text(soup, ('[class*="seller-note"]', '[class*="seller_note"]')),
        "vin": spec_value(specs, "vin", "chassis number", "chassis"),
        "mileage": mileage,
        "mileage_unit": unit,
        "transmission": transmission,
        "engine": spec_value(specs, "engine", "engine size", "motor"),
        "exterior_color": spec_value(specs, "exterior colour", "exterior color", "colour", "color"),
        "interior_color": spec_value(specs, "interior colour", "interior color", "interior"),
        "location": spec_value(specs, "location", "country"),
        "body_style": parse_body_style(spec_value(specs, "body style", "body type", "body")),
        "images": gallery_images(soup, ".gallery img, .carousel img, .lot-gallery img, "
                                       "[class*=\"gallery\"] img, .photo-slider img"),
        "current_bid": detail_bid(soup, (".current-bid", ".high-bid", '[class*="current-bid"]',
                                         '[class*="high-bid"]')),
        "bid_count": detail_bid_count(soup, (".bid-count", ".total-bids", '[class*="bid-count"]')),
        "end_time": resolve_end_time(soup, TIME_SELECTORS),
        "status": detail_status(soup, (".sale-completed", ".auction-sold", ".sold-badge")),
    })


PARSER = PlatformParser(
    platform=Platform.COLLECTING_CARS,
    id_prefix="cc",
    hosts=("collectingcars.com",),
    base_url=BASE_URL,
    listings_url=f"{BASE_URL}/search",
    card_selector='.lot-card, .search-result, .auction-card, [class*="lot-card"], [class*="search-result"]',
    fallback_link_selector='a[href*="/cars/"], a[href*="/lots/"]',
    link_pattern=re.compile(r"/(cars|lots)/([^/?#]+)"),
    container_tags=("li", "article", "div"),
    card_parser=_parse_card,
    detail_parser=parse_detail,
    currency=None,
)
