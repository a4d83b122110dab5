"""Harvest service.

One browser session against the practice site: read names, reveal text,
submit the form and download every image on the result page.

Components:
- Config: Settings from env / .env (config.py)
- Scraper: Page-level steps (scraper.py)
- Output: File persistence (output.py)
- Service: Runs a full session (service.py)
"""
