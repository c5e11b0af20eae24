"""
Domain Layer — Interfaces (Abstract Contracts)
-----------------------------------------------
The application layer depends on these shapes; the infrastructure layer
implements them. Tests swap in fakes without touching application code.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any

from .entities import RepositoryPage, RepositorySummary


class IRepoFetcher(ABC):
    """
    Contract that any GitHub organization client must fulfil.

    Pages must be ordered by repository update time, newest first —
    the early-stop rule in the fetcher is only correct under that order.
    """

    @abstractmethod
    async def fetch_page(self, org: str, page_size: int, after: str | None = None) -> RepositoryPage:
        """Fetch one page of repositories with their most recent releases."""
        ...

    @abstractmethod
    async def fetch_repository(self, org: str, name: str) -> RepositorySummary | None:
        """Fetch a single repository. Returns None when it does not exist."""
        ...


class IWarehouseClient(ABC):
    """
    Contract for the analytical warehouse used by the bulk path.

    The caller owns the lifecycle: connect, execute, then always disconnect.
    Rows come back as loosely-typed mappings; column spelling is not guaranteed.
    """

    @abstractmethod
    def connect(self) -> None:
        ...

    @abstractmethod
    def execute(self, query: Any, params: Any = None) -> list[dict]:
        """Run a query and return every row as a column -> value mapping."""
        ...

    @abstractmethod
    def disconnect(self) -> None:
        ...
