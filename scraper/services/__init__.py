"""
Scraper services.

- ScrapeOrchestrator: fetch, extract and validate one product page
- QueueWorker / QueueWorkerController: drain the persistent scrape queue
- CatalogStore: persisted perfumes and brands
- ResponseCache: short-lived cache of scraped records
- DiscoveryService: brand-page and sitemap URL discovery
"""
