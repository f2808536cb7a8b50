"""
Pydantic schemas for YAML template documents.

One document = one namespace holding an ordered list of queries::

    namespace: UserMapper
    queries:
      - id: findActiveUsers
        resultType: app.models.User
        sql: |
          SELECT * FROM users WHERE active = true
        parameters:
          - name: minAge
            required: false

Unknown keys are ignored; empty strings are read as absent.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dynaquery.engines.sql.parser import SqlType, get_sql_type, requires_result_type


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class ParameterMapping(BaseModel):
    """A parameter declared by a query."""

    model_config = ConfigDict(
        populate_by_name=True, extra="ignore", frozen=True, coerce_numbers_to_str=True
    )

    name: str
    type: str | None = None
    jdbc_type: str | None = Field(default=None, alias="jdbcType")
    required: bool = False
    description: str | None = None


class QueryTemplate(BaseModel):
    """A single query definition inside a template document."""

    model_config = ConfigDict(
        populate_by_name=True, extra="ignore", frozen=True, coerce_numbers_to_str=True
    )

    namespace: str | None = None
    id: str = ""
    sql: str = ""
    description: str | None = None
    # Whether predicate-based assembly is permitted.
    dynamic: bool = True
    result_type: str | None = Field(default=None, alias="resultType")
    # Legacy alias of resultType; resultType wins when both are set.
    result_class: str | None = Field(default=None, alias="resultClass")
    result_mapping: str | None = Field(default=None, alias="resultMapping")
    cacheable: bool = True
    parameters: list[ParameterMapping] = Field(default_factory=list)

    @field_validator("id", "sql", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator(
        "namespace", "description", "result_type", "result_class", "result_mapping",
        mode="before",
    )
    @classmethod
    def _blank_optional(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("parameters", mode="before")
    @classmethod
    def _none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def verb(self) -> SqlType:
        return get_sql_type(self.sql)

    @property
    def has_parameters(self) -> bool:
        return bool(self.parameters)

    def get_parameter(self, name: str) -> ParameterMapping | None:
        return next((p for p in self.parameters if p.name == name), None)

    def is_parameter_required(self, name: str) -> bool:
        param = self.get_parameter(name)
        return param is not None and param.required

    @property
    def effective_result_type(self) -> str | None:
        return self.result_type or self.result_class

    @property
    def has_result_type(self) -> bool:
        return self.effective_result_type is not None

    @property
    def has_result_mapping(self) -> bool:
        return self.result_mapping is not None

    @property
    def has_result_type_or_mapping(self) -> bool:
        return self.has_result_type or self.has_result_mapping

    @property
    def requires_result_type(self) -> bool:
        """Only SELECT/WITH and CALL/EXEC statements return rows."""
        return requires_result_type(self.verb)


class TemplateDocument(BaseModel):
    """A parsed YAML template file."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    namespace: str | None = None
    description: str | None = None
    queries: list[QueryTemplate] = Field(default_factory=list)

    @field_validator("namespace", "description", mode="before")
    @classmethod
    def _blank_optional(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("queries", mode="before")
    @classmethod
    def _none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def has_namespace(self) -> bool:
        return self.namespace is not None

    @property
    def has_queries(self) -> bool:
        return bool(self.queries)

    @property
    def query_count(self) -> int:
        return len(self.queries)

    def query_key(self, query_id: str) -> str:
        """Full key ``namespace.id`` (bare id when there is no namespace)."""
        if not self.namespace:
            return query_id
        return f"{self.namespace}.{query_id}"

    def get_query(self, query_id: str) -> QueryTemplate | None:
        return next((q for q in self.queries if q.id == query_id), None)
