"""
Scraper administration REST API.

Synchronous scraping, queue control, discovery jobs, re-scraping and
catalog maintenance. All endpoints require an admin user.
"""
