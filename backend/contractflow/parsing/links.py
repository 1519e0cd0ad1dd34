"""Extraction of the Original Contract and Addendum links from contract emails.

Contract emails list the links under "Original Contract:" and "Addendums:"
labels. The hrefs are frequently wrapped by click trackers, either as a
base64 payload (``.../go?l=426-427947-aHR0cHM6Ly9sMS5wcm9kYnguY29t...``) or as
a URL-encoded path on track.pstmrk.it, so the visible link text is tried
before the tracker is decoded.
"""

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import unquote

from bs4 import BeautifulSoup, Tag

from .addendum import validate_addendum_url
from .eml import ParsedEmail
from .text_utils import load_html

logger = logging.getLogger(__name__)

_PRODBX_URL = re.compile(r"https?://(l1|login)\.prodbx\.com/go/view/\?[^\s\"<>\n\r]+", re.IGNORECASE)
_PRODBX_URL_IN_TRACKER = re.compile(r"https?://(l1|login)\.prodbx\.com/go/view/\?[^\s/\"<>\n\r]+", re.IGNORECASE)
_ENCODED_PRODBX_ID = re.compile(r"l1\.prodbx\.com%2Fgo%2Fview%2F%3F([^%/]+)", re.IGNORECASE)
_TRACKING_URL = re.compile(r"https?://track\.pstmrk\.it/[^\s\"<>]+", re.IGNORECASE)
_TRAILING_PUNCTUATION = re.compile(r"[.,;!?]+$")

# base64 of "https://l1.prodbx.com"
_BASE64_MARKER = "aHR0cHM6Ly9sMS5wcm9kYnguY29t"


@dataclass
class ContractLinks:
    original_contract_url: Optional[str] = None
    addendum_urls: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "original_contract_url": self.original_contract_url,
            "addendum_urls": list(self.addendum_urls),
        }


def extract_prodbx_url_from_tracking(tracking_url: str) -> Optional[str]:
    """ProDBX page URL hidden inside a click-tracking URL."""
    decoded = unquote(tracking_url)
    match = _PRODBX_URL_IN_TRACKER.search(decoded)
    if match:
        return match.group(0)

    match = _ENCODED_PRODBX_ID.search(tracking_url)
    if match:
        return f"https://l1.prodbx.com/go/view/?{unquote(match.group(1))}"
    return None


def _first_valid_url(text: str) -> Optional[str]:
    match = _PRODBX_URL.search(text)
    if not match:
        return None
    url = _TRAILING_PUNCTUATION.sub("", match.group(0))
    return url if validate_addendum_url(url) else None


def _decode_base64_tracker(href: str) -> Optional[str]:
    if "-" not in href:
        return None
    payload = unquote(href.rsplit("-", 1)[1]).split("&")[0]
    payload += "=" * (-len(payload) % 4)
    try:
        decoded = base64.b64decode(payload).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        logger.debug(f"Could not base64-decode tracking link {href[:80]}")
        return None
    return _first_valid_url(decoded)


def extract_url_from_link(link: Tag) -> Optional[str]:
    """ProDBX URL behind an <a> element.

    Tried in order: the href itself, a URL in the link text, a base64
    tracker payload, then a URL-encoded tracker path.
    """
    href = link.get("href") or ""
    text = link.get_text().strip()

    if href and validate_addendum_url(href):
        return href

    if text:
        url = _first_valid_url(text)
        if url:
            return url

    if href and _BASE64_MARKER in href:
        url = _decode_base64_tracker(href)
        if url:
            return url

    if href:
        url = extract_prodbx_url_from_tracking(href)
        if url and validate_addendum_url(url):
            return url

    return None


def extract_urls_from_text(text: str) -> list[str]:
    """Direct and tracked ProDBX URLs in plain text, de-duplicated in order."""
    urls: list[str] = []

    for match in _PRODBX_URL.finditer(text):
        url = _TRAILING_PUNCTUATION.sub("", match.group(0))
        if validate_addendum_url(url):
            urls.append(url)

    for match in _TRACKING_URL.finditer(text):
        url = extract_prodbx_url_from_tracking(match.group(0))
        if url and validate_addendum_url(url):
            urls.append(url)

    return list(dict.fromkeys(urls))


def _prodbx_links(tag: Tag) -> list[Tag]:
    return tag.select('a[href*="prodbx.com"]')


def _prefer_link_with_text(links: list[Tag]) -> Optional[Tag]:
    for link in links:
        if link.get_text().strip():
            return link
    return links[0] if links else None


def _labels(soup: BeautifulSoup, label: str) -> list[Tag]:
    return [s for s in soup.find_all("strong") if label in s.get_text().lower()]


def _divs_after_label(soup: BeautifulSoup, label: str) -> list[Tag]:
    """Divs that come after the first div containing the label."""
    divs = soup.find_all("div")
    for index, div in enumerate(divs):
        if any(label in s.get_text().lower() for s in div.find_all("strong")):
            return divs[index + 1:]
    return []


def _next_div(tag: Tag) -> Optional[Tag]:
    return tag.find_next_sibling("div")


def _original_contract_url(soup: BeautifulSoup) -> Optional[str]:
    labels = _labels(soup, "original contract")
    if not labels:
        logger.debug('"Original Contract:" section not found in HTML')
        return None

    link = None
    for label in labels:
        if label.parent is not None:
            links = _prodbx_links(label.parent)
            if links:
                link = links[0]
                break

    if link is None:
        parent_div = labels[0].find_parent("div")
        sibling = _next_div(parent_div) if parent_div is not None else None
        if sibling is not None:
            link = _prefer_link_with_text(_prodbx_links(sibling))

    if link is None:
        for div in _divs_after_label(soup, "original contract"):
            link = _prefer_link_with_text(_prodbx_links(div))
            if link is not None:
                break

    if link is None:
        logger.warning("No link found after Original Contract section")
        return None

    url = extract_url_from_link(link)
    if url is None:
        logger.warning(
            f"Original Contract URL extraction failed. Link text was: {link.get_text().strip()!r}"
        )
    return url


def _addendum_urls(soup: BeautifulSoup) -> list[str]:
    labels = _labels(soup, "addendums")
    if not labels:
        return []

    links: list[Tag] = []
    for label in labels:
        if label.parent is not None:
            links.extend(_prodbx_links(label.parent))

    if not links:
        parent_div = labels[0].find_parent("div")
        sibling = _next_div(parent_div) if parent_div is not None else None
        while sibling is not None and not links:
            links = _prodbx_links(sibling)
            sibling = _next_div(sibling)

    if not links:
        for div in _divs_after_label(soup, "addendums"):
            links.extend(_prodbx_links(div))

    urls = []
    for link in links:
        url = extract_url_from_link(link)
        if url:
            urls.append(url)
    return urls


def extract_contract_links(parsed_email: ParsedEmail) -> ContractLinks:
    """Original contract and addendum URLs of a contract email.

    The HTML body is searched first. The plain-text body is used only when
    the HTML yields nothing. The original contract URL never appears among
    the addendums, which are de-duplicated in order.
    """
    result = ContractLinks()

    if parsed_email.html:
        soup = load_html(parsed_email.html)
        result.original_contract_url = _original_contract_url(soup)
        result.addendum_urls = _addendum_urls(soup)

    if not result.original_contract_url and not result.addendum_urls and parsed_email.text:
        text = parsed_email.text
        match = re.search(r"Original\s+Contract\s*:?\s*([^\n]+)", text, re.IGNORECASE)
        if match:
            urls = extract_urls_from_text(match.group(1))
            if urls:
                result.original_contract_url = urls[0]

        match = re.search(r"Addendums\s*:?\s*([\s\S]+?)(?=\n\n|\n[A-Z]|$)", text, re.IGNORECASE)
        if match:
            result.addendum_urls.extend(extract_urls_from_text(match.group(1)))

    if result.original_contract_url:
        result.addendum_urls = [u for u in result.addendum_urls if u != result.original_contract_url]
    result.addendum_urls = list(dict.fromkeys(result.addendum_urls))

    logger.info(
        f"Extracted contract links: original={'yes' if result.original_contract_url else 'no'} "
        f"addendums={len(result.addendum_urls)}"
    )
    return result
