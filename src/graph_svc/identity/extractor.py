"""Identity extraction from requests."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass

from starlette.requests import Request

from ..telemetry.events import CallerIdentity


logger = logging.getLogger(__name__)


@dataclass
class IdentityExtractor:
    """
    Extracts caller identity from HTTP requests.

    Bearer tokens are read for their claims only; signature checks belong
    to the fronting gateway. Without a token the caller is identified by
    the application and team headers, if any.
    """
    jwt_header: str = "Authorization"
    app_id_header: str = "X-App-ID"
    team_header: str = "X-Team"

    # JWT claim mappings
    jwt_user_claim: str = "sub"
    jwt_service_claim: str = "client_id"
    jwt_team_claim: str = "team"

    def extract(self, request: Request) -> CallerIdentity:
        identity = self._extract_jwt(request)
        if identity:
            return identity

        return CallerIdentity(
            app_id=request.headers.get(self.app_id_header),
            team=request.headers.get(self.team_header),
        )

    def _extract_jwt(self, request: Request) -> CallerIdentity | None:
        """Extract identity from a JWT Bearer token."""
        auth_header = request.headers.get(self.jwt_header, "")
        if not auth_header.startswith("Bearer "):
            return None

        # JWT format: header.payload.signature
        parts = auth_header[7:].split(".")
        if len(parts) != 3:
            return None

        payload_b64 = parts[1] + "=" * (-len(parts[1]) % 4)
        try:
            payload = json.loads(base64.urlsafe_b64decode(payload_b64))
        except (binascii.Error, ValueError) as e:
            logger.debug(f"Failed to extract JWT identity: {e}")
            return None
        if not isinstance(payload, dict):
            return None

        return CallerIdentity(
            user_id=payload.get(self.jwt_user_claim),
            service_id=payload.get(self.jwt_service_claim),
            team=payload.get(self.jwt_team_claim) or request.headers.get(self.team_header),
            app_id=request.headers.get(self.app_id_header),
            claims=payload,
        )


# Default extractor instance
_default_extractor = IdentityExtractor()


def extract_identity(request: Request) -> CallerIdentity:
    """Extract identity using default extractor."""
    return _default_extractor.extract(request)
