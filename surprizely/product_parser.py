"""
Product import from a retailer URL: fetch the page (directly or through
ScraperAPI) and read the Open Graph title/description/image plus the first
dollar price. Amazon links get the affiliate tag.
"""
import re
import logging
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import requests
from bs4 import BeautifulSoup

import settings

logger = logging.getLogger("product_parser")

SCRAPER_API = "http://api.scraperapi.com"
PRICE_RE = re.compile(r"\$\s?(\d{1,3}(?:,\d{3})*(?:\.\d+)?|\d+(?:\.\d+)?)")


def add_affiliate_tag(url: str, tag: Optional[str] = None) -> str:
    """Add the Amazon affiliate tag to an Amazon product URL."""
    tag = (tag if tag is not None else settings.AMAZON_AFFILIATE_TAG).strip()
    if not url or not tag or "amazon." not in url.lower():
        return url
    parsed = urlparse(url)
    qs = parse_qs(parsed.query)
    qs["tag"] = [tag]
    return urlunparse(parsed._replace(query=urlencode(qs, doseq=True)))


def fetch_page(url: str) -> str:
    if settings.SCRAPER_API_KEY:
        resp = requests.get(
            SCRAPER_API,
            params={"api_key": settings.SCRAPER_API_KEY, "url": url},
            timeout=30,
        )
    else:
        resp = requests.get(
            url,
            headers={
                "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
                "Accept": "text/html,application/xhtml+xml",
                "Accept-Language": "en-US,en;q=0.9",
            },
            timeout=15,
        )
    resp.raise_for_status()
    return resp.text


def _meta(soup: BeautifulSoup, prop: str) -> str:
    el = soup.find("meta", attrs={"property": prop}) or soup.find("meta", attrs={"name": prop})
    return (el.get("content") or "").strip() if el else ""


def parse_product_html(html: str, url: str) -> Optional[dict]:
    """Extract name/description/price/imageUrl/affiliateLink, or None if anything is missing."""
    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    name = _meta(soup, "og:title")
    description = _meta(soup, "og:description")
    image = _meta(soup, "og:image")
    price_el = soup.select_one(".a-price .a-offscreen") or soup.find(attrs={"itemprop": "price"})
    price_text = ""
    if price_el is not None:
        price_text = (price_el.get("content") or price_el.get_text(strip=True) or "").strip()
        if price_text and not price_text.startswith("$"):
            price_text = "$" + price_text
    m = PRICE_RE.search(price_text) or PRICE_RE.search(soup.get_text(" ", strip=True))
    if not (name and description and image and m):
        return None
    return {
        "name": name,
        "description": description,
        "price": m.group(1).replace(",", ""),
        "imageUrl": image,
        "affiliateLink": add_affiliate_tag(url),
    }


def parse_product_url(url: str) -> Optional[dict]:
    try:
        html = fetch_page(url)
    except requests.RequestException as e:
        logger.warning("Fetching product page %s failed: %s", url, e)
        return None
    product = parse_product_html(html, url)
    if product is None:
        logger.warning("Could not extract all required product information from %s", url)
    return product
