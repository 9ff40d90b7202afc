"""Engine components orchestrating fetch → extract → parse → reconcile → store."""

from .acquire import Acquirer
from .cache import ContentCache
from .dataset import DatasetStore
from .fetcher import HttpFetcher
from .memo import FileMemoCache, Memo, PipelineResult, bind
from .parser import GrammarResult, WidlGrammar
from .records import ParseRecord
from .scrape_pool import ScrapePoolManager

__all__ = [
    "Acquirer",
    "ContentCache",
    "DatasetStore",
    "FileMemoCache",
    "GrammarResult",
    "HttpFetcher",
    "Memo",
    "ParseRecord",
    "PipelineResult",
    "ScrapePoolManager",
    "WidlGrammar",
    "bind",
]
