# auction_tracker/platforms/cars_and_bids.py
import re

from ..parsing import (
    collect_specs, element_text, first_text, is_transmission_text,
    make_soup, mileage_unit_for, parse_body_style, parse_mileage,
    parse_mileage_from_description, resolve_end_time, spec_value,
)
from .base import (
    PlatformParser, build_card_record, card_image, card_mileage, card_time,
    card_url, compact, detail_bid, detail_bid_count, detail_status,
    gallery_images,
)
from ..schemas import Platform

BASE_URL = "https://carsandbids.com"
# section headings rendered with the same markup as cards
HEADING_RE = re.compile(r"^(past|current|featured)", re.I)
AUCTION_LINK_RE = re.compile(r"/auctions/([a-z0-9][^/?#]*)")
TIME_SELECTORS = ("time", "[datetime]", '[class*="time"]', '[class*="countdown"]')


def _parse_card(parser, tag, now):
    url, link = card_url(parser, tag, 'a[href*="/auctions/"]')
    if not url or not AUCTION_LINK_RE.search(url):
        return None
    title = first_text(tag, (".auction-title", ".card-title", "h3", "h2")) or element_text(link)
    if not title or HEADING_RE.match(title):
        return None
    stats = " ".join(el.get_text(" ", strip=True) for el in tag.select('[class*="stats"], [class*="details"], .subtitle'))
    mileage, unit = card_mileage(stats)
    return build_card_record(
        parser,
        url=url,
        title=title,
        now=now,
        bid_text=first_text(tag, (".current-bid", ".bid-amount", '[class*="bid"]', '[class*="price"]')),
        bid_count_text=first_text(tag, (".bid-count", '[class*="bid-count"]', '[class*="bids"]')),
        end_time=card_time(tag, TIME_SELECTORS),
        image=card_image(tag),
        mileage=mileage,
        mileage_unit=unit,
    )


def parse_detail(html):
    soup = make_soup(html)
    specs = collect_specs(soup, ".quick-facts li, .vehicle-specs li, .specs-table tr, .details-table tr, dl dt")
    description = first_text(soup, (".auction-description", ".listing-description",
                                    ".vehicle-description", '[class*="description"]'))

    mileage_text = spec_value(specs, "mileage", "miles", "odometer")
    mileage = parse_mileage(mileage_text)
    unit = mileage_unit_for(mileage_text) if mileage is not None else None
    if mileage is None:
        reading = parse_mileage_from_description(description)
        if reading:
            mileage, unit = reading

    transmission = spec_value(specs, "transmission", "gearbox")
    if transmission and not is_transmission_text(transmission):
        transmission = None

    return compact({
        "description": description,
        "seller_notes": first_text(soup, (".seller-notes", '[class*="seller"]')),
        "vin": spec_value(specs, "vin", "chassis"),
        "mileage": mileage,
        "mileage_unit": unit,
        "transmission": transmission,
        "engine": spec_value(specs, "engine", "powertrain"),
        "exterior_color": spec_value(specs, "exterior color", "exterior"),
        "interior_color": spec_value(specs, "interior color", "interior"),
        "location": spec_value(specs, "location", "seller location"),
        "body_style": parse_body_style(spec_value(specs, "body style", "body")),
        "images": gallery_images(soup, ".gallery img, .carousel img, .auction-photos img, "
                                       "[class*=\"gallery\"] img, .photo-gallery img"),
        "current_bid": detail_bid(soup, (".current-bid", ".high-bid", '[class*="current-bid"]')),
        "bid_count": detail_bid_count(soup, (".bid-count", ".total-bids", '[class*="bid-count"]')),
        "end_time": resolve_end_time(soup, TIME_SELECTORS),
        "status": detail_status(soup, (".auction-sold", ".sold-badge", '[class*="sold-for"]')),
    })


PARSER = PlatformParser(
    platform=Platform.CARS_AND_BIDS,
    id_prefix="cab",
    hosts=("carsandbids.com",),
    base_url=BASE_URL,
    listings_url=f"{BASE_URL}/auctions",
    card_selector='.auction-card, .auction-item, [class*="auction-card"], [class*="listing-item"]',
    fallback_link_selector='a[href*="/auctions/"]',
    link_pattern=re.compile(r"/auctions/([^/?#]+)"),
    container_tags=("li", "article", "div"),
    card_parser=_parse_card,
    detail_parser=parse_detail,
)
