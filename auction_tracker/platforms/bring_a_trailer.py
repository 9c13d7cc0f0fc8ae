# auction_tracker/platforms/bring_a_trailer.py
"""Bring a Trailer: live auction cards, listing pages and the sold-results search."""
from __future__ import annotations

import re
from datetime import datetime
from typing import Optional
from urllib.parse import urlencode

from bs4 import Tag

from ..parsing import (
    element_text, first_text, image_src, interior_color_from, exterior_color_from, make_soup,
    is_engine_text, is_transmission_text, parse_body_style, parse_mileage,
    parse_mileage_from_description, parse_mileage_item, parse_price,
    parse_title_components, resolve_end_time,
    ENGINE_RE, POWERTRAIN_GUARD_RE,
)
from ..schemas import AuctionStatus, HistoricalAuctionRecord, Platform
from .base import (
    PlatformParser, build_card_record, card_image, card_mileage, card_status, card_time,
    card_url, compact, detail_bid, detail_bid_count, detail_status,
)

BASE_URL = "https://bringatrailer.com"
SOLD_SELECTORS = (".sold-badge", ".winner-badge", '[class*="sold"]', '[class*="winner"]',
                  ".auction-sold", ".listing-sold")
TIME_SELECTORS = (".auction-end", ".time-left", "time", '[class*="time"]')
DETAIL_TIME_SELECTORS = (".listing-available-countdown", "[data-end-time]", "[data-until]",
                         ".auction-end", "time")
RELATED_SECTIONS = ".related-listings, .recent-listings, .sidebar, .footer, [class*=\"related\"]"
IMAGE_EXT_RE = re.compile(r"\.(jpg|jpeg|png|webp)", re.I)


def _parse_card(parser: PlatformParser, tag: Tag, now: datetime):
    url, link = card_url(parser, tag, 'a[href*="/listing/"]')
    if not url:
        return None
    title = first_text(tag, (".auction-title", ".listing-title", "h3", "h2")) or element_text(link)
    if not title:
        return None
    return build_card_record(
        parser,
        url=url,
        title=title,
        now=now,
        bid_text=first_text(tag, (".auction-bid", ".current-bid", ".bid-value", '[class*="bid"]')),
        bid_count_text=first_text(tag, (".bid-count", ".bids", '[class*="bid-count"]')),
        end_time=card_time(tag, TIME_SELECTORS),
        image=card_image(tag),
        status=card_status(tag, SOLD_SELECTORS),
    )


def _essentials(soup):
    """Plain essentials lines plus the few that are keyed ("Chassis: ...")."""
    texts, keyed = [], {}
    for li in soup.select(".essentials li"):
        text = element_text(li)
        if not text:
            continue
        idx = text.find(":")
        if 0 < idx < 30:
            key, value = text[:idx].strip().lower(), text[idx + 1:].strip()
            keyed.setdefault(key, value)
            if value:
                texts.append(value)
        else:
            texts.append(text)
    for row in soup.select("table.essentials tr, .essentials table tr"):
        cells = row.find_all("td")
        if len(cells) >= 2:
            key, value = (element_text(cells[0]) or "").lower(), element_text(cells[1])
            if key and value:
                keyed.setdefault(key, value)
                texts.append(value)
    return texts, keyed


def _seller_notes(soup) -> Optional[str]:
    for heading in soup.select(".post-content h3, .post-content strong, .post-content h2"):
        if not re.search(r"\bseller\b", heading.get_text(), re.I):
            continue
        para = heading.find_next_sibling("p")
        if para is None and heading.parent is not None:
            para = heading.parent.find_next_sibling("p")
        text = element_text(para)
        if text:
            return text
    return first_text(soup, ('[class*="seller-note"]', '[class*="seller_note"]',
                             ".seller-description", ".seller-story"))


def _location(soup, keyed) -> Optional[str]:
    for strong in soup.select(".essentials strong"):
        if (element_text(strong) or "").lower() == "location":
            link = strong.find_next_sibling("a")
            if link is not None and element_text(link):
                return element_text(link)
    return keyed.get("location")


def _images(soup) -> list:
    images = []
    for img in soup.select("img"):
        src = image_src(img) or ""
        content = "wp-content/uploads" in src or "cdn.bringatrailer.com" in src
        gallery = img.find_parent(class_=re.compile("gallery|carousel")) is not None
        if not (content or gallery) or not IMAGE_EXT_RE.search(src):
            continue
        if "resize=235" in src or "resize=144" in src or "icon" in src:
            continue
        if img.find_parent(class_=re.compile(r"related|recent-listings|sidebar|footer")) is not None:
            continue
        width = img.get("width")
        if width and width.isdigit() and int(width) < 300:
            continue
        if src not in images:
            images.append(src)
    return images


def _reserve_status(soup, texts) -> Optional[str]:
    if any(re.fullmatch(r"no\s+reserve", t, re.I) for t in texts):
        return "NO_RESERVE"
    badge = first_text(soup, (".no-reserve", '[class*="reserve"]')) or ""
    if re.search(r"no\s+reserve", badge, re.I):
        return "NO_RESERVE"
    info = " ".join(el.get_text(" ", strip=True) for el in soup.select(
        '.listing-available-info, .auction-status, [class*="reserve-status"]'))
    if re.search(r"reserve\s+not\s+met", info, re.I):
        return "RESERVE_NOT_MET"
    if re.search(r"reserve\s+met", info, re.I):
        return "RESERVE_MET"
    return None


def parse_detail(html: str) -> dict:
    soup = make_soup(html)
    texts, keyed = _essentials(soup)
    description = first_text(soup, (".post-excerpt", ".listing-description", ".post-content",
                                    "article .entry-content"))

    mileage, unit = None, None
    for text in texts:
        reading = parse_mileage_item(text)
        if reading:
            mileage, unit = reading
            break
    if mileage is None:
        keyed_value = keyed.get("miles") or keyed.get("mileage")
        keyed_km = keyed.get("kilometers") or keyed.get("km")
        if keyed_value or keyed_km:
            mileage = parse_mileage(keyed_value or keyed_km)
            unit = "miles" if keyed_value else "km"
    if mileage is None:
        reading = parse_mileage_from_description(description)
        if reading:
            mileage, unit = reading

    engine = next((t for t in texts if is_engine_text(t)), None) or keyed.get("engine")
    transmission = next((t for t in texts if is_transmission_text(t)), None) or keyed.get("transmission")

    exterior = next(filter(None, (exterior_color_from(t) for t in texts)), None)
    exterior = exterior or keyed.get("exterior color") or keyed.get("color")
    interior = next(filter(None, (interior_color_from(t) for t in texts)), None)
    interior = interior or keyed.get("interior color") or keyed.get("interior")

    body_style = None
    for text in texts:
        if POWERTRAIN_GUARD_RE.search(text) or ENGINE_RE.search(text):
            continue
        body_style = parse_body_style(text)
        if body_style:
            break

    return compact({
        "description": description,
        "seller_notes": _seller_notes(soup),
        "vin": keyed.get("chassis") or keyed.get("vin"),
        "mileage": mileage,
        "mileage_unit": unit if mileage is not None else None,
        "engine": engine,
        "transmission": transmission,
        "exterior_color": exterior,
        "interior_color": interior,
        "location": _location(soup, keyed),
        "images": _images(soup),
        "reserve_status": _reserve_status(soup, texts),
        "body_style": body_style,
        "current_bid": detail_bid(soup, (".current-bid-value", ".current-bid")),
        "bid_count": detail_bid_count(soup, (".number-bids-value", ".bid-count")),
        "end_time": resolve_end_time(soup, DETAIL_TIME_SELECTORS),
        "status": detail_status(soup, (".listing-sold", ".auction-sold", ".sold-badge")),
    })


PARSER = PlatformParser(
    platform=Platform.BRING_A_TRAILER,
    id_prefix="bat",
    hosts=("bringatrailer.com",),
    base_url=BASE_URL,
    listings_url=f"{BASE_URL}/auctions",
    card_selector=".auction-item, .listing-card, [data-auction]",
    fallback_link_selector='a[href*="/listing/"]',
    link_pattern=re.compile(r"/listing/([^/?#]+)"),
    container_tags=("li", "article", "div"),
    card_parser=_parse_card,
    detail_parser=parse_detail,
    page_separator="/?page=",
)


# ---------------------------------------------------------------------------
# Sold-results search (historical backfill)
# ---------------------------------------------------------------------------

HISTORICAL_CARD_SELECTOR = ".auction-item, .listing-item, [data-auction]"


def search_url(make: str, model: str, page: int) -> str:
    params = {
        "make": make.lower(),
        "model": re.sub(r"\s+", "-", model.lower()),
        "status": "sold",
        "sort": "date",
        "page": str(page),
    }
    return f"{BASE_URL}/search/?{urlencode(params)}"


def parse_historical_card(tag: Tag, make: str, model: str, now: datetime) -> Optional[HistoricalAuctionRecord]:
    """One sold result. Returns None when the card has no listing link or title."""
    link = tag.select_one('a[href*="/listing/"]')
    href = link.get("href") if link is not None else None
    if not href:
        return None
    url = href if href.startswith("http") else BASE_URL + href
    title = element_text(link) or first_text(tag, ("h3", "h2", ".title"))
    if not title:
        return None

    price_text = first_text(tag, (".sold-price", ".final-price", '[class*="sold"]')) or tag.get_text(" ", strip=True)
    m = re.search(r"\$[\d,]+", price_text)
    price_text = m.group(0) if m else None

    auction_date = card_time(tag, ("time", "[datetime]", ".date"))
    mileage, unit = card_mileage(tag.get_text(" ", strip=True))
    year = parse_title_components(title).year

    return HistoricalAuctionRecord(
        external_id=PARSER.extract_external_id(url),
        platform=Platform.BRING_A_TRAILER,
        status=AuctionStatus.SOLD,
        title=title,
        make=make,
        model=model,
        year=year,
        price=parse_price(price_text),
        mileage=mileage,
        mileage_unit=unit,
        url=url,
        image_url=card_image(tag),
        auction_date=auction_date,
        scraped_at=now,
    )
