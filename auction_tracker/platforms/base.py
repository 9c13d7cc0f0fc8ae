# auction_tracker/platforms/base.py
"""The per-site parser value and the card/detail helpers the sites share."""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from bs4 import BeautifulSoup, Tag

from ..parsing import (
    absolute_url, derive_external_id, first_attr, first_text,
    has_any, image_src, parse_bid_count, parse_body_style, parse_currency,
    parse_datetime, parse_mileage, parse_mileage_from_title, parse_price,
    parse_title_components, mileage_unit_for,
)
from ..schemas import AuctionStatus, ListingRecord, Platform

SOLD_TEXT_RE = re.compile(
    r"sold\s+for|winning\s+bid|final\s+price|auction\s+ended|sale\s+completed|reserve\s+met\s+.*sold",
    re.I,
)
NO_SALE_TEXT_RE = re.compile(r"reserve\s+not\s+met|bid\s+to\s+\$[\d,]+\s*$|not\s+sold|no\s+sale", re.I)
CARD_MILEAGE_RE = re.compile(r"([\d,]+)\s*(miles?|mi|km|kilomet(?:er|re)s?)\b", re.I)
DEFAULT_TIME_SELECTORS = ("time", "[data-end-time]", "[data-endtime]", "[data-auction-end]", "[datetime]")


@dataclass(frozen=True)
class PlatformParser:
    """Everything needed to scrape one auction site.

    Sites differ only in data: hostnames, selector lists and the two parse
    functions. Dispatch happens on this value, never through subclassing.
    """
    platform: Platform
    id_prefix: str
    hosts: tuple
    base_url: str
    listings_url: str
    card_selector: str
    fallback_link_selector: str
    link_pattern: re.Pattern
    container_tags: tuple
    card_parser: Callable[["PlatformParser", Tag, datetime], Optional[ListingRecord]]
    detail_parser: Callable[[str], dict]
    page_separator: str = "?page="
    # listing currency when the price text carries no symbol
    currency: Optional[str] = "USD"

    @property
    def name(self) -> str:
        return self.platform.value

    def page_url(self, page: int) -> str:
        if page <= 1:
            return self.listings_url
        return f"{self.listings_url}{self.page_separator}{page}"

    def extract_external_id(self, url: str) -> str:
        return derive_external_id(url, self.id_prefix, self.link_pattern)

    def owns_host(self, host: str) -> bool:
        host = (host or "").lower()
        return any(host == h or host.endswith("." + h) for h in self.hosts)

    def find_cards(self, soup: BeautifulSoup) -> list:
        cards = soup.select(self.card_selector)
        if cards:
            return cards
        # markup changed: climb from detail links to their enclosing card
        found = []
        for link in soup.select(self.fallback_link_selector):
            href = link.get("href") or ""
            if "?page=" in href or not self.link_pattern.search(href.lower()):
                continue
            container = link.find_parent(list(self.container_tags)) or link
            if container not in found:
                found.append(container)
        return found

    def parse_card(self, tag: Tag, now: datetime) -> Optional[ListingRecord]:
        return self.card_parser(self, tag, now)

    def parse_detail(self, html: str) -> dict:
        return self.detail_parser(html)


# ---------------------------------------------------------------------------
# Card helpers
# ---------------------------------------------------------------------------

def card_url(parser: PlatformParser, tag: Tag, link_selector: str) -> tuple:
    """(absolute url, link element) or (None, None) when the card has no detail link."""
    link = tag.select_one(link_selector)
    if link is None and tag.name == "a" and tag.get("href"):
        link = tag
    href = link.get("href") if link is not None else None
    if not href:
        first = tag.select_one("a[href]")
        href = first.get("href") if first is not None else None
    url = absolute_url(parser.base_url, href)
    return url, link


def card_time(tag: Tag, selectors) -> Optional[datetime]:
    raw = first_attr(tag, selectors, ("datetime", "data-end-time", "data-endtime", "data-auction-end"))
    if raw:
        parsed = parse_datetime(raw)
        if parsed:
            return parsed
    return parse_datetime(first_text(tag, selectors))


def card_image(tag: Tag) -> Optional[str]:
    img = tag.select_one("img")
    return image_src(img) if img is not None else None


def card_status(tag: Tag, sold_selectors) -> Optional[AuctionStatus]:
    if has_any(tag, sold_selectors):
        return AuctionStatus.SOLD
    text = tag.get_text(" ", strip=True)
    if SOLD_TEXT_RE.search(text):
        return AuctionStatus.SOLD
    status_text = (first_text(tag, ('[class*="bid-status"]', '[class*="status"]')) or "").lower()
    if "sold" in status_text or "completed" in status_text:
        return AuctionStatus.SOLD
    if "ended" in status_text:
        return AuctionStatus.ENDED
    return None


def card_mileage(text: Optional[str]):
    if not text:
        return None, "miles"
    m = CARD_MILEAGE_RE.search(text)
    if not m:
        return None, "miles"
    return parse_mileage(m.group(1)), mileage_unit_for(m.group(2))


def build_card_record(parser: PlatformParser, *, url: str, title: str, now: datetime,
                      bid_text=None, bid_count_text=None, end_time=None, image=None,
                      status=None, mileage=None, mileage_unit="miles", location=None):
    year, make, model = parse_title_components(title)
    from_title = parse_mileage_from_title(title)
    if mileage is None and from_title:
        mileage, mileage_unit = from_title
    return ListingRecord(
        external_id=parser.extract_external_id(url),
        platform=parser.platform,
        url=url,
        title=title,
        make=make,
        model=model,
        year=year,
        mileage=mileage,
        mileage_unit=mileage_unit,
        body_style=parse_body_style(title),
        location=location,
        current_bid=parse_price(bid_text),
        currency=parse_currency(bid_text) or parser.currency,
        bid_count=parse_bid_count(bid_count_text) or 0,
        status=status,
        end_time=end_time,
        images=[image] if image else [],
        scraped_at=now,
    )


# ---------------------------------------------------------------------------
# Detail helpers
# ---------------------------------------------------------------------------

def detail_status(soup: BeautifulSoup, sold_selectors) -> Optional[AuctionStatus]:
    """Outcome of an auction as shown on its own page, or None while it runs."""
    if has_any(soup, sold_selectors):
        return AuctionStatus.SOLD
    info = first_text(soup, (".listing-available-info", ".auction-status", '[class*="auction-result"]',
                             '[class*="bid-status"]')) or ""
    if re.search(r"\bsold\b", info, re.I) and not re.search(r"not\s+sold", info, re.I):
        return AuctionStatus.SOLD
    if NO_SALE_TEXT_RE.search(info):
        return AuctionStatus.NO_SALE
    if re.search(r"\bended\b|\bclosed\b", info, re.I):
        return AuctionStatus.ENDED
    return None


def gallery_images(soup: BeautifulSoup, selectors: str) -> list:
    images = []
    for img in soup.select(selectors):
        src = image_src(img)
        if src and src not in images:
            images.append(src)
    return images


def detail_bid(soup: BeautifulSoup, selectors) -> Optional[float]:
    text = first_text(soup, selectors)
    if not text:
        return None
    m = re.search(r"\$\s*[\d,]+(?:\.\d+)?", text)
    return parse_price(m.group(0) if m else text)


def detail_bid_count(soup: BeautifulSoup, selectors) -> Optional[int]:
    return parse_bid_count(first_text(soup, selectors))


def compact(values: dict) -> dict:
    """Drop missing values so a detail overlay never erases summary data."""
    return {k: v for k, v in values.items() if v is not None and v != [] and v != ""}