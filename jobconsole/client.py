from typing import Optional

from .gateway import JobGateway
from .queries import JobQueries

# Singleton query layer shared by the console routes
_queries: Optional[JobQueries] = None


def get_queries() -> JobQueries:
    global _queries
    if _queries is None:
        _queries = JobQueries(JobGateway())
    return _queries


async def close_queries():
    global _queries
    if _queries is not None:
        await _queries.gateway.aclose()
        _queries = None
