"""
Recursive hyperlink lister: breadth-first, depth-bounded link discovery
from a start URL, printed with depth indentation.
"""
from rgetlinks.core import traverse, LinkRecord, TraversalContext
from rgetlinks.fetcher import LinkFetcher, LinkScanner, CrawlStats, extract_links

__version__ = "1.0.0"
__all__ = ["traverse", "LinkRecord", "TraversalContext", "LinkFetcher", "LinkScanner", "CrawlStats", "extract_links"]
