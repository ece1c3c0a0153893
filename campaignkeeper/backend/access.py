"""Campaign access tokens and the permission resolver used by the runtime."""

from __future__ import annotations

import hashlib
import hmac
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from campaignkeeper.backend.models import CreatedCampaign

TOKEN_BYTES = 24

CONTENT_READ = "content.read"
CONTENT_WRITE = "content.write"

ROLE_GM = "GM"
ROLE_PLAYER = "PLAYER"

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    ROLE_GM: frozenset({CONTENT_READ, CONTENT_WRITE}),
    ROLE_PLAYER: frozenset({CONTENT_READ}),
}


def generate_token() -> str:
    """Generate a URL-safe token for campaign access."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(token: str, server_salt: str) -> str:
    """Create deterministic token hash via sha256(token + server_salt)."""
    payload = f"{token}{server_salt}".encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def verify_token(raw_token: str, expected_hash: str, server_salt: str) -> bool:
    return hmac.compare_digest(hash_token(raw_token, server_salt), expected_hash)


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    permission: str
    role: str | None = None


def decide(role: str | None, permission: str) -> AccessDecision:
    allowed = role is not None and permission in ROLE_PERMISSIONS.get(role, frozenset())
    return AccessDecision(allowed=allowed, permission=permission, role=role)


class PermissionResolver(Protocol):
    def resolve(self, campaign_id: str, token: str, permission: str) -> AccessDecision:
        """Return whether the token grants ``permission`` on the campaign."""


class CampaignAccessStore(PermissionResolver, Protocol):
    def create_campaign(self, gm_token: str, player_token: str) -> CreatedCampaign:
        """Register a campaign and persist hashes of its GM and player tokens."""


@dataclass
class InMemoryCampaignAccess:
    server_salt: str

    def __post_init__(self) -> None:
        self._campaigns: dict[str, dict[str, str]] = {}

    def create_campaign(self, gm_token: str, player_token: str) -> CreatedCampaign:
        campaign_id = str(uuid.uuid4())
        self._campaigns[campaign_id] = {
            ROLE_GM: hash_token(gm_token, self.server_salt),
            ROLE_PLAYER: hash_token(player_token, self.server_salt),
        }
        return CreatedCampaign(campaign_id=campaign_id, gm_token=gm_token, player_token=player_token)

    def resolve(self, campaign_id: str, token: str, permission: str) -> AccessDecision:
        tokens = self._campaigns.get(campaign_id)
        role: str | None = None
        if tokens is not None:
            for candidate_role, token_hash in tokens.items():
                if verify_token(token, token_hash, self.server_salt):
                    role = candidate_role
                    break
        return decide(role, permission)


@dataclass
class PostgresCampaignAccess:
    database_url: str
    server_salt: str

    def _connect(self) -> Any:
        import psycopg

        return psycopg.connect(self.database_url)

    def create_campaign(self, gm_token: str, player_token: str) -> CreatedCampaign:
        campaign_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO campaign_tokens (id, campaign_id, role, token_hash, created_at, revoked_at)
                    VALUES (%s, %s, 'GM', %s, %s, NULL), (%s, %s, 'PLAYER', %s, %s, NULL)
                    """,
                    (
                        str(uuid.uuid4()),
                        campaign_id,
                        hash_token(gm_token, self.server_salt),
                        now,
                        str(uuid.uuid4()),
                        campaign_id,
                        hash_token(player_token, self.server_salt),
                        now,
                    ),
                )
            conn.commit()
        return CreatedCampaign(campaign_id=campaign_id, gm_token=gm_token, player_token=player_token)

    def resolve(self, campaign_id: str, token: str, permission: str) -> AccessDecision:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT role
                    FROM campaign_tokens
                    WHERE campaign_id = %s
                      AND token_hash = %s
                      AND revoked_at IS NULL
                    """,
                    (campaign_id, hash_token(token, self.server_salt)),
                )
                row = cur.fetchone()
        return decide(row[0] if row else None, permission)


def create_access(database_url: str | None, server_salt: str) -> CampaignAccessStore:
    if database_url:
        return PostgresCampaignAccess(database_url=database_url, server_salt=server_salt)
    return InMemoryCampaignAccess(server_salt=server_salt)
