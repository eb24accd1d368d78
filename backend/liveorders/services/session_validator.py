# Overview: WhatsApp session capability checks.
"""
WhatsApp session validation.

Two entry points over the same ordered checks:

- diagnose(): operator-facing. Includes the transport "connected" signal and
  returns the first failing reason.
- is_usable(): gates real send attempts. Skips the connected signal, which the
  transport reports as false for a moment while a send is in flight; treating
  it as authoritative pauses queues that could have sent.

Neither mutates the session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional


logger = logging.getLogger(__name__)

REASON_MISSING = "Sessão inexistente"
REASON_DISCONNECTED = "WebSocket não conectado"
REASON_NO_CREDENTIALS = "Credenciais ausentes"
REASON_NO_KEY_STORE = "Sessões Signal ausentes - necessário reconectar"
REASON_KEY_STORE_UNREADABLE = "Armazenamento de chaves Signal ilegível"


@dataclass(frozen=True)
class SessionHandle:
    """
    What the transport adapter knows about a tenant's WhatsApp session.

    is_connected is None when the transport does not report it.
    """
    has_credentials: bool
    has_key_store: bool
    key_store_readable: bool = True
    is_connected: Optional[bool] = None
    identity: Optional[str] = None

    @classmethod
    def from_status_payload(cls, payload: dict[str, Any] | None) -> "SessionHandle | None":
        """
        Build from the transport's /status JSON.

        Expected shape (all optional):
            {"connected": true, "me": {"id": "5531...@s.whatsapp.net"},
             "has_keys": true, "keys_readable": true}
        """
        if not payload:
            return None

        me = payload.get("me") or {}
        identity = me.get("id") if isinstance(me, dict) else None
        connected = payload.get("connected")

        return cls(
            has_credentials=bool(identity),
            has_key_store=bool(payload.get("has_keys")),
            key_store_readable=bool(payload.get("keys_readable", True)),
            is_connected=None if connected is None else bool(connected),
            identity=identity,
        )


@dataclass(frozen=True)
class SessionDiagnosis:
    valid: bool
    reason: Optional[str] = None
    identity: Optional[str] = None

    def to_dict(self) -> dict:
        return {"valid": self.valid, "reason": self.reason, "identity": self.identity}


def _first_failure(session: Optional[SessionHandle], *, check_connection: bool) -> Optional[str]:
    if session is None:
        return REASON_MISSING
    if check_connection and session.is_connected is False:
        return REASON_DISCONNECTED
    if not session.has_credentials:
        return REASON_NO_CREDENTIALS
    if not session.has_key_store:
        return REASON_NO_KEY_STORE
    if not session.key_store_readable:
        return REASON_KEY_STORE_UNREADABLE
    return None


def diagnose(session: Optional[SessionHandle], tenant_label: str | None = None) -> SessionDiagnosis:
    reason = _first_failure(session, check_connection=True)
    if reason:
        logger.info("Session check failed for tenant %s: %s", tenant_label, reason)
        return SessionDiagnosis(valid=False, reason=reason)

    logger.debug("Session valid for tenant %s (%s)", tenant_label, session.identity)
    return SessionDiagnosis(valid=True, identity=session.identity)


def is_usable(session: Optional[SessionHandle]) -> bool:
    return _first_failure(session, check_connection=False) is None
