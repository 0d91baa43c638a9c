# =============================================================================
# Collectors Package — Raw Signal Gathering
# =============================================================================
#   - base.py: SourceCollector protocol and URL / identifier helpers
#   - social.py: LinkedIn / Instagram / Facebook adapters (scraping API)
#   - web.py: Web page fetcher (httpx + BeautifulSoup)
#   - mentions.py: Public-mention search with same-name filtering
#   - gatherer.py: RawSignalCollector — parallel fan-out with per-source
#     isolation, supplementary link fetches and the mention pass
# =============================================================================
