"""statecrawl: crawl server-rendered pages and recover their embedded state."""

__version__ = "0.3.0"
