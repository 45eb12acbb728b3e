"""Pipeline wiring: topic profile + store + X client → ingestor / resolver."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass

from mentionboard import config
from mentionboard.ingest import Ingestor
from mentionboard.lookup import AuthorResolver, LookupBudget
from mentionboard.models import CycleReport
from mentionboard.store import MentionStore
from mentionboard.topic import TopicProfile, load_topic
from mentionboard.x_client import XClient

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


@dataclass
class Components:
    topic: TopicProfile
    store: MentionStore
    client: XClient | None


def build_components(topic: str = config.DEFAULT_TOPIC) -> Components:
    """Load the topic profile and open its store; the client is None without a token."""
    paths = config.topic_paths(topic)
    profile = load_topic(paths["topic_file"], name=topic)
    store = MentionStore(db_path=paths["db"])

    client: XClient | None = None
    if config.upstream_enabled():
        client = XClient(
            bearer_token=config.X_BEARER_TOKEN,
            max_results=config.MAX_RESULTS,
            timeout=config.REQUEST_TIMEOUT,
        )
    else:
        logger.warning("X_BEARER_TOKEN not set; ingestion and live lookups are disabled.")
    return Components(topic=profile, store=store, client=client)


def build_ingestor(components: Components) -> Ingestor:
    return Ingestor(
        components.client,
        components.store,
        components.topic.rules,
        components.topic.queries,
        cooldown=config.COOLDOWN_SECONDS,
        max_pages=config.MAX_PAGES,
        refresh_authors=config.REFRESH_AUTHORS,
    )


def build_resolver(components: Components) -> AuthorResolver:
    return AuthorResolver(
        components.store,
        components.client,
        components.topic.rules,
        LookupBudget(config.LOOKUP_MIN_INTERVAL_SECONDS),
    )


def run_refresh(topic: str = config.DEFAULT_TOPIC) -> CycleReport:
    """Execute a single ingestion cycle for *topic*."""
    components = build_components(topic)
    logger.info("=== mentionboard refresh start [topic=%s] ===", topic)
    report = build_ingestor(components).run_cycle()
    logger.info("=== mentionboard refresh done [topic=%s] ===", topic)
    return report
