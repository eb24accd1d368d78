# Overview: Pytest coverage for WhatsApp session diagnosis and send gating.

from liveorders.services.session_validator import (
    REASON_DISCONNECTED,
    REASON_KEY_STORE_UNREADABLE,
    REASON_MISSING,
    REASON_NO_CREDENTIALS,
    REASON_NO_KEY_STORE,
    SessionHandle,
    diagnose,
    is_usable,
)


def healthy(**overrides) -> SessionHandle:
    fields = dict(
        has_credentials=True,
        has_key_store=True,
        key_store_readable=True,
        is_connected=True,
        identity="5531999990000@s.whatsapp.net",
    )
    fields.update(overrides)
    return SessionHandle(**fields)


class TestDiagnose:
    def test_healthy_session_is_valid(self):
        result = diagnose(healthy())
        assert result.valid
        assert result.reason is None
        assert result.identity == "5531999990000@s.whatsapp.net"

    def test_missing_session(self):
        assert diagnose(None).reason == REASON_MISSING

    def test_disconnected_is_reported(self):
        assert diagnose(healthy(is_connected=False)).reason == REASON_DISCONNECTED

    def test_unknown_connection_state_is_not_a_failure(self):
        assert diagnose(healthy(is_connected=None)).valid

    def test_first_failure_wins(self):
        session = healthy(is_connected=False, has_credentials=False, has_key_store=False)
        assert diagnose(session).reason == REASON_DISCONNECTED

    def test_missing_credentials(self):
        assert diagnose(healthy(has_credentials=False)).reason == REASON_NO_CREDENTIALS

    def test_missing_key_store(self):
        assert diagnose(healthy(has_key_store=False)).reason == REASON_NO_KEY_STORE

    def test_unreadable_key_store(self):
        assert diagnose(healthy(key_store_readable=False)).reason == REASON_KEY_STORE_UNREADABLE

    def test_to_dict(self):
        assert diagnose(None).to_dict() == {"valid": False, "reason": REASON_MISSING, "identity": None}


class TestIsUsable:
    def test_ignores_transient_disconnect(self):
        """The transport flips connected=false while a send is in flight."""
        assert is_usable(healthy(is_connected=False))

    def test_missing_session_is_unusable(self):
        assert not is_usable(None)

    def test_credentials_and_keys_are_required(self):
        assert not is_usable(healthy(has_credentials=False))
        assert not is_usable(healthy(has_key_store=False))
        assert not is_usable(healthy(key_store_readable=False))


class TestFromStatusPayload:
    def test_full_payload(self):
        session = SessionHandle.from_status_payload({
            "connected": True,
            "me": {"id": "5531999990000@s.whatsapp.net"},
            "has_keys": True,
            "keys_readable": True,
        })
        assert session == healthy()

    def test_connected_flag_absent(self):
        session = SessionHandle.from_status_payload({"me": {"id": "x"}, "has_keys": True})
        assert session.is_connected is None
        assert session.key_store_readable is True

    def test_no_identity_means_no_credentials(self):
        session = SessionHandle.from_status_payload({"connected": True, "has_keys": True})
        assert not session.has_credentials
        assert not is_usable(session)

    def test_empty_payload(self):
        assert SessionHandle.from_status_payload({}) is None
        assert SessionHandle.from_status_payload(None) is None
