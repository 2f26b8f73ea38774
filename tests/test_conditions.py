"""Tests for condition operators, branch selection and HTTP conditions."""

import json

import httpx
import pytest

from models.flow import ConditionData, Edge, HttpConditionConfig
from services.flow_engine import ExecutionError, HttpSender, ValidationError
from services.flow_engine.conditions import (
    evaluate_condition,
    evaluate_http_condition,
    evaluate_operator,
    select_branch_edges,
)


def condition(field, operator, value):
    return ConditionData.model_validate({"field": field, "operator": operator, "value": value})


class TestEvaluateCondition:

    def test_equals_and_not_equals(self):
        payload = {"lead": {"source": "whatsapp"}}
        assert evaluate_condition(condition("data.lead.source", "EQUALS", "whatsapp"), payload) is True
        assert evaluate_condition(condition("data.lead.source", "NOT_EQUALS", "whatsapp"), payload) is False

    def test_greater_than_numeric(self):
        payload = {"deal": {"value": 5000}}
        assert evaluate_condition(condition("deal.value", "GREATER_THAN", 3000), payload) is True
        assert evaluate_condition(condition("deal.value", "LESS_THAN", 3000), payload) is False

    def test_greater_than_non_numeric_field(self):
        payload = {"deal": {"value": "a lot"}}
        assert evaluate_condition(condition("deal.value", "GREATER_THAN", 3000), payload) is False

    def test_missing_field_is_false(self):
        assert evaluate_condition(condition("data.lead.source", "NOT_EQUALS", "x"), {}) is False

    @pytest.mark.parametrize("field", [None, "", "  "])
    def test_blank_field_is_false(self, field):
        assert evaluate_condition(condition(field, "EQUALS", "x"), {"x": "x"}) is False

    def test_boolean_literal_stays_boolean(self):
        data = condition("vip", "EQUALS", True)
        assert data.value is True
        assert evaluate_condition(data, {"vip": True}) is True
        assert evaluate_condition(data, {"vip": 1}) is False

    def test_numeric_literal_stays_numeric(self):
        assert condition("n", "EQUALS", 1).value == 1
        assert condition("n", "EQUALS", 1).value is not True


class TestEvaluateOperator:

    @pytest.mark.parametrize("operator,actual,expected,result", [
        ("EQUALS", 5000, "5000", True),
        ("EQUALS", 5000.0, "5000", True),
        ("EQUALS", True, "true", True),
        ("NOT_EQUALS", "a", "b", True),
        ("CONTAINS", "hello world", "world", True),
        ("CONTAINS", "hello", "world", False),
        ("CONTAINS", ["hot", "b2b"], "hot", True),
        ("GREATER_THAN", "10", 9, True),
        ("GREATER_THAN", 10, "abc", False),
        ("LESS_THAN", " 2.5 ", "3", True),
        ("LESS_THAN", "", 3, False),
        ("LESS_THAN", "nan", 3, False),
    ])
    def test_operator_table(self, operator, actual, expected, result):
        assert evaluate_operator(operator, actual, expected) is result

    @pytest.mark.parametrize("operator", ["MATCHES", None, ""])
    def test_unknown_operator_is_false(self, operator):
        assert evaluate_operator(operator, "a", "a") is False


class TestSelectBranchEdges:

    def test_filters_by_handle_in_order(self):
        edges = [
            Edge(id="e1", source="c", target="a", sourceHandle="yes"),
            Edge(id="e2", source="c", target="b", sourceHandle="no"),
            Edge(id="e3", source="c", target="d", sourceHandle="yes"),
        ]
        assert [e.target for e in select_branch_edges(edges, True)] == ["a", "d"]
        assert [e.target for e in select_branch_edges(edges, False)] == ["b"]

    def test_no_matching_edges(self):
        edges = [Edge(id="e1", source="c", target="a", sourceHandle="yes")]
        assert select_branch_edges(edges, False) == []


@pytest.mark.asyncio
class TestHttpCondition:

    @staticmethod
    def sender(handler) -> HttpSender:
        return HttpSender(timeout_ms=1000, transport=httpx.MockTransport(handler))

    @staticmethod
    def config(**overrides) -> HttpConditionConfig:
        data = {
            "url": "https://api.example.com/customers/{{customer.id}}",
            "responseField": "plan",
            "operator": "EQUALS",
            "value": "pro",
        }
        data.update(overrides)
        return HttpConditionConfig.model_validate(data)

    async def test_compares_response_field(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"plan": "pro"})

        result = await evaluate_http_condition(self.config(), {"customer": {"id": "c-7"}},
                                               self.sender(handler))
        assert result is True
        assert requests[0].method == "GET"
        assert str(requests[0].url) == "https://api.example.com/customers/c-7"

    async def test_status_is_available(self):
        def handler(request):
            return httpx.Response(404, json={"detail": "missing"})

        config = self.config(responseField="status", operator="EQUALS", value=404)
        assert await evaluate_http_condition(config, {}, self.sender(handler)) is True

    async def test_empty_body_exposes_status_only(self):
        def handler(request):
            return httpx.Response(204)

        config = self.config(responseField="status", operator="LESS_THAN", value=300)
        assert await evaluate_http_condition(config, {}, self.sender(handler)) is True

    async def test_templated_body_is_sent(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"allowed": True})

        config = self.config(method="POST", body={"email": "{{user.email}}"},
                             responseField="allowed", value="true")
        result = await evaluate_http_condition(config, {"user": {"email": "a@b.co"}},
                                               self.sender(handler))
        assert result is True
        assert json.loads(requests[0].content) == {"email": "a@b.co"}

    async def test_missing_response_field_is_false(self):
        def handler(request):
            return httpx.Response(200, json={"other": 1})

        assert await evaluate_http_condition(self.config(), {}, self.sender(handler)) is False

    async def test_non_json_response_raises(self):
        def handler(request):
            return httpx.Response(200, text="<html>ok</html>")

        with pytest.raises(ExecutionError):
            await evaluate_http_condition(self.config(), {}, self.sender(handler))

    async def test_json_array_response_raises(self):
        def handler(request):
            return httpx.Response(200, json=[1, 2])

        with pytest.raises(ExecutionError):
            await evaluate_http_condition(self.config(), {}, self.sender(handler))

    async def test_missing_url_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            await evaluate_http_condition(self.config(url=""), {}, self.sender(lambda r: None))
        assert exc_info.value.field == "url"

    async def test_missing_response_field_config_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            await evaluate_http_condition(self.config(responseField=""), {},
                                          self.sender(lambda r: None))
        assert exc_info.value.field == "responseField"
