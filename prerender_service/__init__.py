"""
Prerender Service: renders JavaScript-driven pages in a headless browser and
serves the resulting static HTML to crawlers.
"""
