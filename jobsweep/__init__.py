"""Multi-source job scraping sweep with persistent dedup and Discord delivery."""

__version__ = "0.1.0"
