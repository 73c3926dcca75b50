"""Tests for ranked DOM locator strategies."""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from perfume_scraper.locators import (
    CANDIDATE_ATTRIBUTE,
    AssetHostImageLocator,
    ItempropImageLocator,
    OverlayHeadingLocator,
    SelectorListImageLocator,
    ViewportBandLocator,
    default_image_locators,
    default_result_locators,
    is_detail_link,
)


class FakePage:
    def __init__(self, value=None):
        self.value = value
        self.calls = []

    def evaluate(self, script, arg=None):
        self.calls.append((script, arg))
        return self.value


class TestDetailLinkPattern(unittest.TestCase):
    def test_matches_perfume_detail_pages(self):
        self.assertTrue(is_detail_link("/perfume/Dior/Sauvage-31861.html"))
        self.assertTrue(is_detail_link("https://www.fragrantica.es/perfume/Chanel/Bleu-de-Chanel-9099.html"))

    def test_rejects_other_links(self):
        self.assertFalse(is_detail_link(None))
        self.assertFalse(is_detail_link(""))
        self.assertFalse(is_detail_link("/perfume/Dior/"))
        self.assertFalse(is_detail_link("/designers/Dior.html"))
        self.assertFalse(is_detail_link("/perfume/Dior/Sauvage.html"))


class TestResultLocators(unittest.TestCase):
    def test_overlay_heading_passes_heading_and_pattern(self):
        page = FakePage("https://www.fragrantica.es/perfume/Dior/Sauvage-31861.html")
        locator = OverlayHeadingLocator("PERFUMES", "[role='dialog']", "a[href*='/perfume/']")

        self.assertEqual(locator.locate(page), "https://www.fragrantica.es/perfume/Dior/Sauvage-31861.html")
        _script, arg = page.calls[0]
        self.assertEqual(arg[0], "PERFUMES")
        self.assertEqual(arg[1], "[role='dialog']")
        self.assertEqual(arg[-1], CANDIDATE_ATTRIBUTE)

    def test_viewport_band_passes_band(self):
        page = FakePage(None)
        locator = ViewportBandLocator("a[href*='/perfume/']", band_top=50, band_bottom=600)

        self.assertIsNone(locator.locate(page))
        _script, arg = page.calls[0]
        self.assertEqual(arg[2:4], [50, 600])

    def test_default_result_locators_order(self):
        config = {"site": {"results_heading": "PERFUMES", "dropdown_band": [40, 500]}}
        locators = default_result_locators(config)
        self.assertEqual([loc.name for loc in locators], ["overlay_heading", "viewport_band"])
        self.assertEqual((locators[1].band_top, locators[1].band_bottom), (40, 500))


class TestImageLocators(unittest.TestCase):
    def test_itemprop_image(self):
        page = FakePage("https://fimgs.net/mdimg/perfume/375x500.31861.jpg")
        self.assertEqual(ItempropImageLocator().locate(page), "https://fimgs.net/mdimg/perfume/375x500.31861.jpg")

    def test_empty_selector_list_skips_page(self):
        page = FakePage("unused")
        self.assertIsNone(SelectorListImageLocator([]).locate(page))
        self.assertIsNone(AssetHostImageLocator([]).locate(page))
        self.assertEqual(page.calls, [])

    def test_asset_host_passes_hosts_and_width(self):
        page = FakePage(None)
        AssetHostImageLocator(["fimgs"], min_width=120).locate(page)
        self.assertEqual(page.calls[0][1], [["fimgs"], 120])

    def test_default_image_locators_order(self):
        locators = default_image_locators({"site": {"image_selectors": ["#mainpicbox img"]}})
        self.assertEqual(
            [loc.name for loc in locators],
            ["itemprop_image", "layout_selectors", "asset_host"],
        )
        self.assertEqual(locators[1].selectors, ["#mainpicbox img"])
        self.assertEqual(locators[2].hosts, ["fimgs", "img.fragrantica"])


if __name__ == "__main__":
    unittest.main()
