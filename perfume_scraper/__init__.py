"""Perfume image scraper: Fragrantica image harvesting and Cloudinary/Firebase publishing."""

__version__ = "1.0.0"
