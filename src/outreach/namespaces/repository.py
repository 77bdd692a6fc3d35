"""Namespace repository -- async access to the namespaces table.

The sync pipeline only reads namespaces; create_namespace() exists for
operators and fixtures that seed them.
"""

from __future__ import annotations

import re

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from src.outreach.core.exceptions import ConfigurationError, PersistenceError
from src.outreach.models import Namespace
from src.outreach.namespaces.tables import table_name_for_namespace, validate_table_name
from src.outreach.schemas import NamespaceRead

logger = structlog.get_logger(__name__)

# Namespace names: lowercase, start with a letter, then alphanumerics, '_' or '-'
NAMESPACE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
MAX_NAMESPACE_NAME_LENGTH = 50


def _normalise_keywords(keywords: list[str] | None) -> list[str]:
    """Trim, case-fold and de-duplicate keywords, dropping blanks."""
    seen: list[str] = []
    for keyword in keywords or []:
        if not isinstance(keyword, str):
            continue
        cleaned = keyword.strip().casefold()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


def _model_to_namespace(model: Namespace) -> NamespaceRead:
    """Convert Namespace model to NamespaceRead schema."""
    return NamespaceRead(
        id=model.id,
        name=model.name,
        keywords=_normalise_keywords(model.keywords),
        table_name=model.table_name,
        priority=model.priority or 0,
        is_active=model.is_active,
        created_at=model.created_at,
    )


class NamespaceRepository:
    """Async reads (and operator writes) for the namespaces table.

    Args:
        engine: Shared async engine.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def list_active(self) -> list[NamespaceRead]:
        """Active namespaces in match order: priority desc, then oldest first.

        Raises:
            PersistenceError: If the query fails.
        """
        stmt = (
            select(Namespace)
            .where(Namespace.is_active.is_(True))
            .order_by(Namespace.priority.desc(), Namespace.created_at.asc(), Namespace.id.asc())
        )
        try:
            async with AsyncSession(self._engine, expire_on_commit=False) as session:
                result = await session.execute(stmt)
                return [_model_to_namespace(model) for model in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load namespaces: {exc}") from exc

    async def get_by_name(self, name: str) -> NamespaceRead | None:
        stmt = select(Namespace).where(Namespace.name == name)
        try:
            async with AsyncSession(self._engine, expire_on_commit=False) as session:
                model = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load namespace {name!r}: {exc}") from exc
        return _model_to_namespace(model) if model else None

    async def create_namespace(
        self,
        name: str,
        keywords: list[str],
        *,
        priority: int = 0,
        is_active: bool = True,
    ) -> NamespaceRead:
        """Insert a namespace row.

        The table name is derived from the namespace name; the table itself is
        provisioned lazily by TableManager on first use.

        Raises:
            ConfigurationError: Invalid name or a namespace with that name exists.
            PersistenceError: Any other database failure.
        """
        if len(name) > MAX_NAMESPACE_NAME_LENGTH or not NAMESPACE_NAME_PATTERN.match(name):
            raise ConfigurationError(
                f"Invalid namespace name {name!r}: must start with a lowercase letter and "
                f"contain only lowercase letters, digits, '_' or '-' (max {MAX_NAMESPACE_NAME_LENGTH})"
            )
        table_name = validate_table_name(table_name_for_namespace(name))

        try:
            async with AsyncSession(self._engine, expire_on_commit=False) as session:
                model = Namespace(
                    name=name,
                    keywords=_normalise_keywords(keywords),
                    table_name=table_name,
                    priority=priority,
                    is_active=is_active,
                )
                session.add(model)
                await session.commit()
                await session.refresh(model)
        except IntegrityError as exc:
            raise ConfigurationError(f"Namespace {name!r} already exists") from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to create namespace {name!r}: {exc}") from exc

        logger.info("namespaces.created", namespace=name, table_name=table_name, keywords=model.keywords)
        return _model_to_namespace(model)
