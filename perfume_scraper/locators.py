"""Ranked DOM locator strategies for the search dropdown and the detail image.

Every strategy inspects the live page and returns a candidate or None. The
navigator tries them in priority order, so site-specific heuristics can be
swapped without touching the navigation flow.
"""

import re
from typing import Any, Dict, List, Optional

from perfume_scraper.config_loader import get_site_config


# /perfume/<brand>/<slug>-<numeric id>.html
DETAIL_LINK_PATTERN = re.compile(r"/perfume/[^/]+/[^/]+-\d+\.html")
DETAIL_LINK_JS_PATTERN = r"\/perfume\/[^/]+\/[^/]+-\d+\.html"

CANDIDATE_ATTRIBUTE = "data-perfume-scraper-candidate"
CANDIDATE_SELECTOR = f"a[{CANDIDATE_ATTRIBUTE}='1']"
ACTIVATE_LINK_JS = "(a) => a.click()"


def is_detail_link(href: Optional[str]) -> bool:
    """Whether href points at a perfume detail page."""
    return bool(href) and bool(DETAIL_LINK_PATTERN.search(href))


class Locator:
    """Base strategy: ``locate(page)`` returns a candidate or None."""

    name = "locator"

    def locate(self, page) -> Optional[str]:
        raise NotImplementedError

    def __repr__(self):
        return f"<{type(self).__name__} {self.name}>"


# Result locators tag the chosen link with CANDIDATE_ATTRIBUTE and return its
# absolute URL. Earlier tags are cleared first so a stale tag is never clicked.
_CLEAR_TAGS_JS = f"""
document.querySelectorAll("[{CANDIDATE_ATTRIBUTE}]").forEach((el) => el.removeAttribute("{CANDIDATE_ATTRIBUTE}"));
"""

_OVERLAY_HEADING_JS = """([heading, containerSelector, linkSelector, pattern, attr]) => {
    %s
    const detail = new RegExp(pattern);
    let container = null;
    for (const el of document.querySelectorAll("*")) {
        if (el.textContent && el.textContent.trim() === heading && el.offsetParent !== null) {
            container = el.closest(containerSelector)
                || (el.parentElement && el.parentElement.parentElement && el.parentElement.parentElement.parentElement);
            break;
        }
    }
    if (!container) return null;
    for (const a of container.querySelectorAll(linkSelector)) {
        const href = a.getAttribute("href") || "";
        if (detail.test(href)) {
            a.setAttribute(attr, "1");
            return a.href || (window.location.origin + href);
        }
    }
    return null;
}""" % _CLEAR_TAGS_JS

_VIEWPORT_BAND_JS = """([linkSelector, pattern, bandTop, bandBottom, attr]) => {
    %s
    const detail = new RegExp(pattern);
    for (const a of document.querySelectorAll(linkSelector)) {
        const rect = a.getBoundingClientRect();
        if (rect.width <= 0 || rect.height <= 0 || rect.top <= bandTop || rect.top >= bandBottom) continue;
        const href = a.getAttribute("href") || "";
        if (!detail.test(href)) continue;
        const topEl = document.elementFromPoint(rect.left + rect.width / 2, rect.top + rect.height / 2);
        if (topEl && (a.contains(topEl) || topEl.closest("a") === a)) {
            a.setAttribute(attr, "1");
            return a.href || (window.location.origin + href);
        }
    }
    return null;
}""" % _CLEAR_TAGS_JS


class OverlayHeadingLocator(Locator):
    """First detail link inside the overlay that carries the results heading."""

    name = "overlay_heading"

    def __init__(self, heading: str, container_selector: str, link_selector: str):
        self.heading = heading
        self.container_selector = container_selector
        self.link_selector = link_selector

    def locate(self, page) -> Optional[str]:
        return page.evaluate(
            _OVERLAY_HEADING_JS,
            [self.heading, self.container_selector, self.link_selector, DETAIL_LINK_JS_PATTERN, CANDIDATE_ATTRIBUTE],
        )


class ViewportBandLocator(Locator):
    """Detail link inside the dropdown band that wins the hit-test at its center."""

    name = "viewport_band"

    def __init__(self, link_selector: str, band_top: int = 50, band_bottom: int = 600):
        self.link_selector = link_selector
        self.band_top = band_top
        self.band_bottom = band_bottom

    def locate(self, page) -> Optional[str]:
        return page.evaluate(
            _VIEWPORT_BAND_JS,
            [self.link_selector, DETAIL_LINK_JS_PATTERN, self.band_top, self.band_bottom, CANDIDATE_ATTRIBUTE],
        )


_ITEMPROP_IMAGE_JS = """() => {
    const img = document.querySelector("img[itemprop='image']");
    return img && img.src ? img.src : null;
}"""

_SELECTOR_LIST_IMAGE_JS = """(selectors) => {
    for (const sel of selectors) {
        const img = document.querySelector(sel);
        if (img && img.src) return img.src;
    }
    return null;
}"""

_ASSET_HOST_IMAGE_JS = """([hosts, minWidth]) => {
    for (const img of document.querySelectorAll("img")) {
        const src = img.src || "";
        if (hosts.some((host) => src.includes(host)) && img.width > minWidth) return src;
    }
    return null;
}"""


class ItempropImageLocator(Locator):
    """Image explicitly marked as the product image."""

    name = "itemprop_image"

    def locate(self, page) -> Optional[str]:
        return page.evaluate(_ITEMPROP_IMAGE_JS)


class SelectorListImageLocator(Locator):
    """First image matched by a known layout selector."""

    name = "layout_selectors"

    def __init__(self, selectors: List[str]):
        self.selectors = list(selectors)

    def locate(self, page) -> Optional[str]:
        if not self.selectors:
            return None
        return page.evaluate(_SELECTOR_LIST_IMAGE_JS, self.selectors)


class AssetHostImageLocator(Locator):
    """Any sufficiently wide image served from a known asset host."""

    name = "asset_host"

    def __init__(self, hosts: List[str], min_width: int = 100):
        self.hosts = list(hosts)
        self.min_width = min_width

    def locate(self, page) -> Optional[str]:
        if not self.hosts:
            return None
        return page.evaluate(_ASSET_HOST_IMAGE_JS, [self.hosts, self.min_width])


def default_result_locators(config: Dict[str, Any]) -> List[Locator]:
    site = get_site_config(config)
    link_selector = site.get("detail_link_selector", "a[href*='/perfume/']")
    band = site.get("dropdown_band", [50, 600])
    return [
        OverlayHeadingLocator(
            heading=site.get("results_heading", "PERFUMES"),
            container_selector=site.get(
                "overlay_container_selector",
                "[role='dialog'], [role='listbox'], [class*='search'], [class*='modal'], "
                "[class*='overlay'], [class*='dropdown']",
            ),
            link_selector=link_selector,
        ),
        ViewportBandLocator(link_selector, band_top=int(band[0]), band_bottom=int(band[1])),
    ]


def default_image_locators(config: Dict[str, Any]) -> List[Locator]:
    site = get_site_config(config)
    return [
        ItempropImageLocator(),
        SelectorListImageLocator(site.get("image_selectors", [])),
        AssetHostImageLocator(
            site.get("asset_hosts", ["fimgs", "img.fragrantica"]),
            min_width=int(site.get("min_image_width", 100)),
        ),
    ]
