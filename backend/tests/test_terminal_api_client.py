# Overview: Pytest coverage for the register HTTP client's failure mapping.

import json

import httpx
import pytest

from oropos.terminal.api_client import PosApiClient
from oropos.terminal.errors import AuthenticationRequired, PermanentRejection, TransientNetworkError


def _client(handler, token="tok"):
    return PosApiClient("http://pos.test", token=token, transport=httpx.MockTransport(handler))


class TestRequestMapping:
    def test_success_returns_json(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            seen["key"] = request.headers.get("Idempotency-Key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"transaction": {"id": 7}, "replayed": False})

        data = _client(handler).commit_sale({"paymentMethod": "CASH"}, "key-1")
        assert data["transaction"]["id"] == 7
        assert seen == {"auth": "Bearer tok", "key": "key-1", "body": {"paymentMethod": "CASH"}}

    @pytest.mark.parametrize("status", [500, 502, 503, 408, 429])
    def test_transient_statuses(self, status):
        client = _client(lambda request: httpx.Response(status, json={"error": "busy"}))
        with pytest.raises(TransientNetworkError) as exc:
            client.commit_sale({}, "k")
        assert exc.value.status_code == status

    def test_connection_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransientNetworkError):
            _client(handler).get_display_state("front")

    def test_timeout_is_transient(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(TransientNetworkError):
            _client(handler).search_products("sham")

    def test_client_error_is_permanent_with_details(self):
        def handler(request):
            return httpx.Response(400, json={
                "error": "Cannot refund 2", "code": "OVER_REFUND", "remaining": 1, "lineItemId": 9,
            })

        with pytest.raises(PermanentRejection) as exc:
            _client(handler).process_refund({}, "k")
        assert exc.value.status_code == 400
        assert exc.value.code == "OVER_REFUND"
        assert exc.value.message == "Cannot refund 2"
        assert exc.value.details == {"remaining": 1, "lineItemId": 9}

    def test_non_json_error_body(self):
        client = _client(lambda request: httpx.Response(404, text="<html>nope</html>"))
        with pytest.raises(PermanentRejection) as exc:
            client.get_offline_capability()
        assert exc.value.code is None
        assert exc.value.message == "HTTP 404"

    def test_expired_token_needs_sign_in(self):
        client = _client(lambda request: httpx.Response(
            401, json={"error": "Invalid or expired token", "code": "UNAUTHORIZED"},
        ))
        with pytest.raises(AuthenticationRequired) as exc:
            client.commit_sale({}, "k")
        assert exc.value.status_code == 401
        assert not isinstance(exc.value, PermanentRejection)


class TestEndpoints:
    def test_login_keeps_token(self):
        client = _client(lambda request: httpx.Response(200, json={"token": "new-token"}), token=None)
        client.login("cashier", "Password123")
        assert client.token == "new-token"

    def test_search_returns_results_list(self):
        def handler(request):
            assert request.url.params["q"] == "sham"
            assert request.url.params["limit"] == "5"
            return httpx.Response(200, json={"results": [{"id": 1}], "count": 1})

        assert _client(handler).search_products("sham", 5) == [{"id": 1}]

    def test_long_poll_params(self):
        def handler(request):
            assert request.url.params["stationId"] == "front"
            assert request.url.params["since"] == "3"
            return httpx.Response(200, json={"status": "IDLE", "version": 3})

        assert _client(handler).get_display_state("front", since=3, wait=10)["version"] == 3

    def test_display_read_names_the_business(self):
        def handler(request):
            assert request.url.params["tenantCode"] == "ACME"
            return httpx.Response(200, json={"status": "IDLE", "version": 0})

        client = PosApiClient("http://pos.test", tenant_code="ACME", transport=httpx.MockTransport(handler))
        assert client.get_display_state("front")["status"] == "IDLE"

    def test_accept_terms_sends_both_flags(self):
        def handler(request):
            body = json.loads(request.content)
            assert body["acceptTerms"] is True and body["acknowledgeRisk"] is True
            return httpx.Response(200, json={"enabled": True})

        assert _client(handler).accept_offline_terms("1.0")["enabled"] is True
