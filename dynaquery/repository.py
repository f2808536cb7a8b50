"""
Generic repository over one entity type.

Query methods delegate to a ``DynamicQueryExecutor`` with the entity type as
the result type. Basic CRUD goes through a SQLModel ``Session`` when one is
given.

    class UserRepository(DynamicRepository[User, int]):
        def find_active(self, min_age: int | None = None) -> list[User]:
            return self.execute_named_query(
                "UserMapper.findActiveUsers",
                {"min_age": Predicate.when_numeric_positive("age >= :min_age", min_age)},
            )
"""

from collections.abc import Mapping, Sequence
from typing import Any, Generic, TypeVar

from sqlmodel import Session, select

from dynaquery.core.exceptions import QueryUsageError
from dynaquery.engines.executor import DynamicQueryExecutor, Filters

T = TypeVar("T")
ID = TypeVar("ID")


class DynamicRepository(Generic[T, ID]):
    def __init__(
        self,
        entity_type: type[T],
        executor: DynamicQueryExecutor,
        session: Session | None = None,
    ) -> None:
        self.entity_type = entity_type
        self.executor = executor
        self.session = session

    # ---------- predicate-based queries ----------

    def execute_named_query(self, query_name: str, filters: Filters | None = None) -> list[T]:
        return self.executor.execute_named_query(query_name, filters, self.entity_type)

    def execute_dynamic_query(self, base_sql: str, filters: Filters | None = None) -> list[T]:
        return self.executor.execute_query(base_sql, filters, self.entity_type)

    def execute_raw_query(
        self, query_name: str, filters: Filters | None = None
    ) -> list[tuple[Any, ...]]:
        return self.executor.execute_raw_query(query_name, filters)

    def execute_single_result(
        self,
        query_name: str,
        filters: Filters | None = None,
        result_type: Any = None,
    ) -> Any | None:
        """First row converted to *result_type*, or to the entity type when omitted."""
        return self.executor.execute_single_result(
            query_name, filters, result_type or self.entity_type
        )

    # ---------- fixed-parameter queries ----------

    def execute_named_query_with_params(
        self, query_name: str, parameters: Mapping[str, Any] | None = None
    ) -> list[T]:
        return self.executor.execute_named_query_with_parameters(
            query_name, parameters, self.entity_type
        )

    def execute_single_result_with_params(
        self, query_name: str, parameters: Mapping[str, Any] | None = None
    ) -> T | None:
        results = self.execute_named_query_with_params(query_name, parameters)
        return results[0] if results else None

    # ---------- CRUD through the session ----------

    def _require_session(self) -> Session:
        if self.session is None:
            raise QueryUsageError(
                f"{type(self).__name__} has no session; CRUD methods need a SQLModel Session"
            )
        return self.session

    def find_by_id(self, entity_id: ID) -> T | None:
        return self._require_session().get(self.entity_type, entity_id)

    def find_all(self) -> Sequence[T]:
        return self._require_session().exec(select(self.entity_type)).all()

    def save(self, entity: T) -> T:
        session = self._require_session()
        session.add(entity)
        session.commit()
        session.refresh(entity)
        return entity

    def delete(self, entity: T) -> None:
        session = self._require_session()
        session.delete(entity)
        session.commit()
