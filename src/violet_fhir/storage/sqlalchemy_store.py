"""SQLAlchemy storage backend (PostgreSQL JSONB or SQLite JSON)."""

import threading
import uuid
from contextlib import contextmanager, nullcontext
from typing import Any, Dict, Generator, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, or_, select, type_coerce
from sqlalchemy.dialects.postgresql import JSONB as PostgreSQLJSONB
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from violet_fhir.config import Settings
from violet_fhir.core.database import (
    build_engine,
    build_session_factory,
    init_db,
    session_scope,
)
from violet_fhir.core.exceptions import StorageError, UniqueViolationError
from violet_fhir.models.api_namespace import ApiNamespace
from violet_fhir.models.api_resource import ApiResource
from violet_fhir.models.base import utcnow
from violet_fhir.models.records import Namespace, Resource
from violet_fhir.storage.base import ResourceStorage
from violet_fhir.storage.predicates import (
    AnyOf,
    Contains,
    StoragePredicate,
    matches_all,
)
from violet_fhir.utils.logging import get_logger

logger = get_logger(__name__)


class SQLAlchemyStorage(ResourceStorage):
    """Relational storage with the property bag held in a JSON(B) column.

    Every public method is one unit of work in its own session. On PostgreSQL
    top-level containment predicates are compiled to ``@>``; all remaining
    predicates are evaluated in process over the namespace's rows.
    """

    def __init__(self, session_factory: sessionmaker, engine: Optional[Engine] = None):
        """Initialize storage over an existing session factory."""
        self.session_factory = session_factory
        self.engine = engine if engine is not None else session_factory.kw.get("bind")
        # serializes merges where the dialect has no row locks
        self._merge_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls, settings: Settings, database_url: Optional[str] = None
    ) -> "SQLAlchemyStorage":
        """Build engine and session factory, creating tables if needed."""
        engine = build_engine(database_url or settings.database_url, settings)
        init_db(engine)
        return cls(build_session_factory(engine), engine)

    @property
    def dialect(self) -> str:
        """Name of the engine's dialect."""
        return self.engine.dialect.name if self.engine is not None else ""

    # Namespaces

    def list_namespaces(self) -> List[Namespace]:
        with self._unit_of_work() as session:
            rows = session.scalars(select(ApiNamespace).order_by(ApiNamespace.name))
            return [row.to_record() for row in rows]

    def get_namespace(self, namespace_id: uuid.UUID) -> Optional[Namespace]:
        with self._unit_of_work() as session:
            row = session.get(ApiNamespace, namespace_id)
            return row.to_record() if row else None

    def get_namespace_by_name(self, name: str) -> Optional[Namespace]:
        with self._unit_of_work() as session:
            row = session.scalars(
                select(ApiNamespace).where(ApiNamespace.name == name)
            ).first()
            return row.to_record() if row else None

    def insert_namespace(
        self, name: str, version: str, properties: Dict[str, Any]
    ) -> Namespace:
        try:
            with session_scope(self.session_factory) as session:
                row = ApiNamespace(name=name, version=version, properties=properties)
                session.add(row)
                session.flush()
                return row.to_record()
        except IntegrityError as e:
            raise UniqueViolationError(
                f"Namespace name '{name}' already exists"
            ) from e
        except SQLAlchemyError as e:
            raise StorageError("Namespace insert failed") from e

    def insert_namespace_or_get(
        self, name: str, version: str, properties: Dict[str, Any]
    ) -> Namespace:
        if self.dialect in ("postgresql", "sqlite"):
            self._insert_namespace_on_conflict_do_nothing(name, version, properties)
        else:
            try:
                self.insert_namespace(name, version, properties)
            except UniqueViolationError:
                logger.debug("namespace_insert_lost_race", name=name)

        existing = self.get_namespace_by_name(name)
        if existing is None:
            raise StorageError(f"Namespace '{name}' vanished after insert")
        return existing

    def update_namespace(
        self, namespace_id: uuid.UUID, version: str, properties: Dict[str, Any]
    ) -> Optional[Namespace]:
        with self._unit_of_work() as session:
            row = session.get(ApiNamespace, namespace_id)
            if row is None:
                return None
            row.version = version
            row.properties = dict(properties)
            row.updated_at = utcnow()
            session.flush()
            return row.to_record()

    def delete_namespace(self, namespace_id: uuid.UUID) -> bool:
        with self._unit_of_work() as session:
            row = session.get(ApiNamespace, namespace_id)
            if row is None:
                return False
            session.execute(
                delete(ApiResource).where(ApiResource.namespace_id == namespace_id)
            )
            session.delete(row)
            return True

    # Resources

    def list_resources(
        self,
        namespace_id: uuid.UUID,
        predicates: Sequence[StoragePredicate] = (),
        newest_first: bool = True,
    ) -> List[Resource]:
        clauses, residual = self._compile_predicates(predicates)
        order = (
            ApiResource.created_at.desc() if newest_first else ApiResource.created_at
        )
        query = (
            select(ApiResource)
            .where(ApiResource.namespace_id == namespace_id, *clauses)
            .order_by(order)
        )
        with self._unit_of_work() as session:
            records = [row.to_record() for row in session.scalars(query)]
        return [r for r in records if matches_all(r.properties, residual)]

    def count_resources(self, namespace_id: uuid.UUID) -> int:
        with self._unit_of_work() as session:
            return session.scalar(
                select(func.count())
                .select_from(ApiResource)
                .where(ApiResource.namespace_id == namespace_id)
            ) or 0

    def get_resource(self, resource_id: uuid.UUID) -> Optional[Resource]:
        with self._unit_of_work() as session:
            row = session.get(ApiResource, resource_id)
            return row.to_record() if row else None

    def insert_resource(
        self, namespace_id: uuid.UUID, properties: Dict[str, Any]
    ) -> Resource:
        with self._unit_of_work() as session:
            row = ApiResource(namespace_id=namespace_id, properties=dict(properties))
            session.add(row)
            session.flush()
            return row.to_record()

    def update_resource(
        self, resource_id: uuid.UUID, properties: Dict[str, Any]
    ) -> Optional[Resource]:
        with self._unit_of_work() as session:
            row = session.get(ApiResource, resource_id)
            if row is None:
                return None
            row.properties = dict(properties)
            row.updated_at = utcnow()
            session.flush()
            return row.to_record()

    def merge_resource(
        self, resource_id: uuid.UUID, patch: Dict[str, Any]
    ) -> Optional[Resource]:
        guard = nullcontext() if self.dialect == "postgresql" else self._merge_lock
        with guard, self._unit_of_work() as session:
            row = session.scalars(
                select(ApiResource)
                .where(ApiResource.id == resource_id)
                .with_for_update()
            ).first()
            if row is None:
                return None
            row.properties = {**(row.properties or {}), **patch}
            row.updated_at = utcnow()
            session.flush()
            return row.to_record()

    def delete_resource(self, resource_id: uuid.UUID) -> bool:
        with self._unit_of_work() as session:
            row = session.get(ApiResource, resource_id)
            if row is None:
                return False
            session.delete(row)
            return True

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()

    # Internals

    @contextmanager
    def _unit_of_work(self) -> Generator[Session, None, None]:
        """Session scope translating engine failures into ``StorageError``."""
        try:
            with session_scope(self.session_factory) as session:
                yield session
        except SQLAlchemyError as e:
            raise StorageError("Storage operation failed") from e

    def _insert_namespace_on_conflict_do_nothing(
        self, name: str, version: str, properties: Dict[str, Any]
    ) -> None:
        """Single ``INSERT ... ON CONFLICT (name) DO NOTHING`` statement."""
        insert = postgresql_insert if self.dialect == "postgresql" else sqlite_insert
        now = utcnow()
        statement = (
            insert(ApiNamespace)
            .values(
                id=uuid.uuid4(),
                name=name,
                version=version,
                properties=properties,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["name"])
        )
        with self._unit_of_work() as session:
            session.execute(statement)

    def _compile_predicates(
        self, predicates: Sequence[StoragePredicate]
    ) -> Tuple[List[Any], List[StoragePredicate]]:
        """Split predicates into SQL clauses and in-process leftovers."""
        clauses: List[Any] = []
        residual: List[StoragePredicate] = []
        for predicate in predicates:
            clause = self._compile(predicate)
            if clause is None:
                residual.append(predicate)
            else:
                clauses.append(clause)
        return clauses, residual

    def _compile(self, predicate: StoragePredicate) -> Any:
        if self.dialect != "postgresql":
            return None
        if isinstance(predicate, Contains) and len(predicate.path) == 1:
            document = {predicate.path[0]: [predicate.value]}
            return type_coerce(ApiResource.properties, PostgreSQLJSONB).contains(
                document
            )
        if isinstance(predicate, AnyOf):
            compiled = [self._compile(p) for p in predicate.predicates]
            if all(c is not None for c in compiled):
                return or_(*compiled)
        return None

