from __future__ import annotations

from typing import Callable, Dict

from ens_indexer.app.config import settings
from ens_indexer.app.domain.ports.out import JobPublisher
from ens_indexer.app.infrastructure.publishers.postgres_job_publisher import PostgresJobPublisher
from ens_indexer.app.infrastructure.resolvers.graph_name_resolver import GraphNameResolver


def _make_graph_resolver() -> GraphNameResolver:
    api_key = settings.the_graph_api_key.get_secret_value() if settings.the_graph_api_key else None
    return GraphNameResolver(
        url=settings.the_graph_ens_subgraph_url,
        api_key=api_key,
        timeout=settings.resolver_timeout_seconds,
    )


def _make_postgres_publisher() -> JobPublisher:
    return PostgresJobPublisher(database_url=settings.job_queue_database_url)


_NAME_RESOLVER_REGISTRY: Dict[str, Callable[[], GraphNameResolver]] = {
    "graph": _make_graph_resolver,
}

_JOB_PUBLISHER_REGISTRY: Dict[str, Callable[[], JobPublisher]] = {
    "postgres": _make_postgres_publisher,
}


def name_resolver_factory(*, backend: str = "graph") -> GraphNameResolver:
    """
    One resolver per process: its cache is shared by every loop it is
    handed to.
    """
    try:
        factory = _NAME_RESOLVER_REGISTRY[backend]
    except KeyError:
        raise ValueError(f"Unsupported name resolver backend: {backend!r}")
    return factory()


def job_publisher_factory(*, backend: str = "postgres") -> JobPublisher:
    try:
        factory = _JOB_PUBLISHER_REGISTRY[backend]
    except KeyError:
        raise ValueError(f"Unsupported job publisher backend: {backend!r}")
    return factory()
