"""Tests for caller identity extraction."""

import base64
import json

from starlette.requests import Request

from graph_svc.identity import IdentityExtractor, extract_identity


def _request(headers: dict[str, str]) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
    }
    return Request(scope)


def _token(claims) -> str:
    payload = base64.urlsafe_b64encode(json.dumps(claims).encode()).decode().rstrip("=")
    return f"Bearer eyJhbGciOiJub25lIn0.{payload}.sig"


class TestIdentityExtractor:
    def test_jwt_claims(self):
        request = _request({
            "Authorization": _token({"sub": "alice@fabrikam.com", "client_id": "build-agent", "team": "web"}),
            "X-App-ID": "pipelines",
        })

        caller = extract_identity(request)

        assert caller.user_id == "alice@fabrikam.com"
        assert caller.service_id == "build-agent"
        assert caller.team == "web"
        assert caller.app_id == "pipelines"
        assert caller.principal == "build-agent"
        assert caller.claims["sub"] == "alice@fabrikam.com"

    def test_team_header_fallback(self):
        request = _request({"Authorization": _token({"sub": "bob"}), "X-Team": "infra"})
        assert extract_identity(request).team == "infra"

    def test_headers_only(self):
        caller = extract_identity(_request({"X-App-ID": "portal", "X-Team": "identity"}))
        assert caller.app_id == "portal"
        assert caller.team == "identity"
        assert caller.principal == "portal"

    def test_anonymous(self):
        assert extract_identity(_request({})).principal == "anonymous"

    def test_malformed_token(self):
        caller = extract_identity(_request({"Authorization": "Bearer a.!!!notbase64.c", "X-App-ID": "portal"}))
        assert caller.user_id is None
        assert caller.app_id == "portal"

    def test_non_object_payload(self):
        caller = extract_identity(_request({"Authorization": _token(["not", "a", "dict"])}))
        assert caller.principal == "anonymous"

    def test_not_bearer(self):
        assert extract_identity(_request({"Authorization": "Basic dXNlcjpwYXNz"})).user_id is None

    def test_custom_claims(self):
        extractor = IdentityExtractor(jwt_user_claim="upn", app_id_header="X-Client")
        request = _request({"Authorization": _token({"upn": "carol@fabrikam.com"}), "X-Client": "cli"})

        caller = extractor.extract(request)
        assert caller.user_id == "carol@fabrikam.com"
        assert caller.app_id == "cli"
