"""Tests for the YAML document schemas."""

import pytest
import yaml
from pydantic import ValidationError

from dynaquery.engines.sql.parser import SqlType
from dynaquery.schemas import ParameterMapping, QueryTemplate, TemplateDocument

DOCUMENT = """
namespace: com.acme.UserMapper
description: Users
queries:
  - id: findById
    dynamic: false
    resultClass: app.models.User
    sql: SELECT * FROM users WHERE id = :id
    parameters:
      - name: id
        type: Long
        jdbcType: BIGINT
        required: true
        description: primary key
  - id: purge
    sql: DELETE FROM users WHERE deleted = true
    resultMapping: ""
    parameters:
    unknownKey: ignored
"""


class TestTemplateDocument:
    @pytest.fixture
    def document(self) -> TemplateDocument:
        return TemplateDocument.model_validate(yaml.safe_load(DOCUMENT))

    def test_fields(self, document: TemplateDocument) -> None:
        assert document.has_namespace
        assert document.has_queries
        assert document.query_count == 2
        assert document.query_key("findById") == "com.acme.UserMapper.findById"
        assert document.get_query("purge").sql.startswith("DELETE")
        assert document.get_query("nope") is None

    def test_query_template(self, document: TemplateDocument) -> None:
        q = document.get_query("findById")
        assert q.dynamic is False
        assert q.cacheable is True
        assert q.verb is SqlType.SELECT
        assert q.requires_result_type
        assert q.effective_result_type == "app.models.User"
        assert q.has_result_type and not q.has_result_mapping
        assert q.get_parameter("id") == ParameterMapping(
            name="id", type="Long", jdbcType="BIGINT", required=True, description="primary key"
        )
        assert q.is_parameter_required("id")
        assert not q.is_parameter_required("other")

    def test_blank_and_null_values(self, document: TemplateDocument) -> None:
        q = document.get_query("purge")
        assert q.result_mapping is None
        assert q.parameters == []
        assert not q.has_parameters
        assert not q.requires_result_type
        assert q.verb is SqlType.DELETE

    def test_without_namespace(self) -> None:
        doc = TemplateDocument.model_validate({"namespace": "  ", "queries": None})
        assert not doc.has_namespace
        assert not doc.has_queries
        assert doc.query_key("q") == "q"


class TestQueryTemplate:
    def test_result_type_wins_over_result_class(self) -> None:
        q = QueryTemplate(id="q", sql="SELECT 1", resultType="a.B", resultClass="c.D")
        assert q.effective_result_type == "a.B"

    def test_null_id_and_sql(self) -> None:
        q = QueryTemplate.model_validate({"id": None, "sql": None})
        assert q.id == ""
        assert q.sql == ""
        assert q.verb is SqlType.UNKNOWN

    def test_numeric_id_coerced(self) -> None:
        assert QueryTemplate.model_validate({"id": 42, "sql": "SELECT 1"}).id == "42"

    def test_frozen(self) -> None:
        q = QueryTemplate(id="q", sql="SELECT 1")
        with pytest.raises(ValidationError):
            q.sql = "SELECT 2"  # type: ignore[misc]
