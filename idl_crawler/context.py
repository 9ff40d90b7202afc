"""Explicit run context handed to every runner and stage."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from .config import ConfigLocator, ConfigRepository, GlobalConfig
from .engine.cache import ContentCache
from .engine.parser import GrammarParser, WidlGrammar
from .logging_conf import binding_logger, configure_logging


@dataclass(slots=True)
class RunContext:
    """Cache directories, config, logger and grammar for one process."""

    config: GlobalConfig
    locator: ConfigLocator
    cache: ContentCache
    logger: structlog.BoundLogger
    grammar: GrammarParser

    def bind(self, **binding: Any) -> structlog.BoundLogger:
        return binding_logger(binding, self.locator.logs_dir)


def build_context(
    locator: ConfigLocator | None = None,
    verbose: bool = False,
    grammar: GrammarParser | None = None,
    config: GlobalConfig | None = None,
) -> RunContext:
    locator = locator or ConfigLocator()
    logger = configure_logging(locator.logs_dir, verbose=verbose)
    if config is None:
        config = ConfigRepository(locator).load_global_config()
    cache = ContentCache(
        locator.url_cache_dir,
        locator.idl_cache_dir,
        logger=logger.bind(component="cache"),
    )
    return RunContext(
        config=config,
        locator=locator,
        cache=cache,
        logger=logger,
        grammar=grammar or WidlGrammar(),
    )


__all__ = ["RunContext", "build_context"]
