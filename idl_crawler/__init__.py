"""WebIDL crawler: scrape specification pages and store parsed IDL fragments."""

__version__ = "0.1.0"
