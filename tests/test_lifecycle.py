"""UssdSessionManager tests — full gateway conversations against in-memory
repositories.

Each request carries the gateway's cumulative ``text`` exactly as Africa's
Talking sends it; the manager only reads the last segment.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from helpers.mocks import NOW, MockDrug, MockSessionRow, MockUser, make_alert
from stockalert_db.models.enums import SessionStatus, UserRole
from stockalert_ussd.text import format_response

PHONE = "+254712345678"
NEW_PHONE = "+254722000111"


@pytest.fixture
def supplier(user_repo):
    user = MockUser(name="Lake Pharma", phone_number="+254733000222")
    user_repo.users.append(user)
    return user


async def dial(manager, db, text, *, session_id="ATUid_1", phone=PHONE, now=NOW, **kwargs):
    return await manager.handle(
        db,
        session_id=session_id,
        service_code="*789*12345#",
        phone_number=phone,
        text=text,
        network_code=kwargs.pop("network_code", "63902"),
        now=now,
        **kwargs,
    )


# =====================================================================
# Full conversations
# =====================================================================


class TestReportConversation:
    """Registered caller: Analgesics -> first drug -> 10 -> High."""

    @pytest.mark.asyncio
    async def test_full_report_creates_alert(
        self, manager, mock_db, session_repo, alert_repo, hospital, supplier,
    ):
        welcome = await dial(manager, mock_db, "")
        assert welcome.text.startswith("Welcome Kisumu County Hospital")
        assert welcome.end_session is False

        categories = await dial(manager, mock_db, "1")
        assert "1. Analgesics" in categories.text
        assert "2. Antibiotics" in categories.text

        drugs = await dial(manager, mock_db, "1*1")
        assert "Select drug from Analgesics" in drugs.text
        assert "1. Ibuprofen" in drugs.text

        quantity = await dial(manager, mock_db, "1*1*1")
        assert "Enter quantity of Ibuprofen" in quantity.text

        urgency = await dial(manager, mock_db, "1*1*1*10")
        assert "Quantity: 10 units" in urgency.text

        final = await dial(manager, mock_db, "1*1*1*10*3")
        assert final.end_session is True
        assert final.text.startswith("Alert submitted successfully!")
        assert "Urgency: HIGH" in final.text

        assert len(alert_repo.alerts) == 1, "exactly one alert per session"
        alert = alert_repo.alerts[0]
        assert alert.hospital_id == hospital.id
        assert alert.session_id == "ATUid_1"
        assert alert.reporter_phone == PHONE
        assert alert.overall_urgency == "high"
        assert alert.location == {"address": "Kisumu"}
        requirement = alert.drugs[0]
        assert requirement["drug_name"] == "Ibuprofen"
        assert requirement["category"] == "Analgesics"
        assert requirement["requested_quantity"] == 10
        assert requirement["urgency_level"] == "high"

        assert final.job is not None
        assert final.job.alert_id == alert.id
        assert final.job.supplier_ids == [supplier.id]
        assert final.job.hospital_id == hospital.id

        row = session_repo.sessions["ATUid_1"]
        assert row.status == SessionStatus.COMPLETED
        assert row.end_reason == "alert_submitted"
        assert mock_db.savepoints == 1
        assert mock_db.rolled_back_savepoints == 0

    @pytest.mark.asyncio
    async def test_back_navigation_within_report(self, manager, mock_db, hospital):
        await dial(manager, mock_db, "")
        await dial(manager, mock_db, "1")
        await dial(manager, mock_db, "1*2")
        back = await dial(manager, mock_db, "1*2*0")
        assert "Select drug category" in back.text
        again = await dial(manager, mock_db, "1*2*0*1")
        assert "Select drug from Analgesics" in again.text

    @pytest.mark.asyncio
    async def test_invalid_quantity_reprompts(self, manager, mock_db, session_repo, hospital):
        for text in ("", "1", "1*1", "1*1*1"):
            await dial(manager, mock_db, text)
        reply = await dial(manager, mock_db, "1*1*1*abc")
        assert reply.end_session is False
        assert "Please enter a valid number" in reply.text
        assert session_repo.sessions["ATUid_1"].current_level == 5

    @pytest.mark.asyncio
    async def test_alert_failure_cancels_session(
        self, manager, mock_db, session_repo, alert_repo, hospital,
    ):
        alert_repo.fail_create = True
        for text in ("", "1", "1*1", "1*1*1", "1*1*1*10"):
            await dial(manager, mock_db, text)
        final = await dial(manager, mock_db, "1*1*1*10*4")

        assert final.end_session is True
        assert final.text == "Failed to submit alert. Please try again later."
        assert final.job is None
        row = session_repo.sessions["ATUid_1"]
        assert row.status == SessionStatus.CANCELLED
        assert row.end_reason == "submit_alert_failed"
        assert mock_db.rolled_back_savepoints == 1, "only the effect is rolled back"

    @pytest.mark.asyncio
    async def test_empty_drug_table_uses_default_catalogue(
        self, manager, mock_db, drug_repo, hospital,
    ):
        drug_repo.drugs = []
        await dial(manager, mock_db, "")
        reply = await dial(manager, mock_db, "1")
        assert "Antimalarials" in reply.text
        assert "Diabetes" in reply.text

    @pytest.mark.asyncio
    async def test_long_menu_fits_gateway_limit(self, manager, mock_db, drug_repo, hospital):
        drug_repo.drugs = [
            MockDrug(f"Drug {i}", f"Very long therapeutic category number {i}")
            for i in range(8)
        ]
        await dial(manager, mock_db, "")
        reply = await dial(manager, mock_db, "1")
        wire = format_response(reply.text, reply.end_session)
        assert len(wire) <= 182
        assert reply.text.endswith("...")


class TestRegistrationConversation:

    @pytest.mark.asyncio
    async def test_register_new_caller(self, manager, mock_db, session_repo, user_repo):
        welcome = await dial(manager, mock_db, "", phone=NEW_PHONE)
        assert "1. Register" in welcome.text

        await dial(manager, mock_db, "1", phone=NEW_PHONE)
        await dial(manager, mock_db, "1*John Doe", phone=NEW_PHONE)
        await dial(manager, mock_db, "1*John Doe*Nakuru Clinic", phone=NEW_PHONE)
        final = await dial(manager, mock_db, "1*John Doe*Nakuru Clinic*Nakuru", phone=NEW_PHONE)

        assert final.end_session is True
        assert "Registration successful" in final.text
        hospitals = [u for u in user_repo.users if u.role == UserRole.HOSPITAL]
        assert len(hospitals) == 1
        assert hospitals[0].phone_number == NEW_PHONE
        assert hospitals[0].facility_name == "Nakuru Clinic"
        assert hospitals[0].location == "Nakuru"
        assert session_repo.sessions["ATUid_1"].end_reason == "registered"

    @pytest.mark.asyncio
    async def test_local_number_format_is_normalised(self, manager, mock_db, session_repo):
        await dial(manager, mock_db, "", phone="0722000111")
        assert session_repo.sessions["ATUid_1"].phone_number == NEW_PHONE

    @pytest.mark.asyncio
    async def test_registration_failure_text(self, manager, mock_db, session_repo, user_repo):
        user_repo.fail_create = True
        for text in ("", "1", "1*John Doe", "1*John Doe*Nakuru Clinic"):
            await dial(manager, mock_db, text, phone=NEW_PHONE)
        final = await dial(manager, mock_db, "1*John Doe*Nakuru Clinic*Nakuru", phone=NEW_PHONE)
        assert final.text == "Registration failed. Please try again later."
        assert session_repo.sessions["ATUid_1"].status == SessionStatus.CANCELLED


class TestMainMenuTerminals:

    @pytest.mark.asyncio
    async def test_recent_alerts(self, manager, mock_db, alert_repo, hospital):
        alert_repo.alerts.append(make_alert(hospital_id=hospital.id))
        await dial(manager, mock_db, "")
        reply = await dial(manager, mock_db, "2")
        assert reply.end_session is True
        assert "Your recent alerts:" in reply.text
        assert "Paracetamol 10 tablets (HIGH) - pending" in reply.text

    @pytest.mark.asyncio
    async def test_exit_cancels_session(self, manager, mock_db, session_repo, hospital):
        await dial(manager, mock_db, "")
        reply = await dial(manager, mock_db, "0")
        assert reply.end_session is True
        assert "Thank you for using StockAlert" in reply.text
        row = session_repo.sessions["ATUid_1"]
        assert row.status == SessionStatus.CANCELLED
        assert row.end_reason == "exit"


# =====================================================================
# Validation and session guards
# =====================================================================


class TestValidation:

    @pytest.mark.asyncio
    async def test_missing_fields(self, manager, mock_db, session_repo):
        reply = await manager.handle(
            mock_db, session_id=None, service_code="*789*12345#",
            phone_number=PHONE, text="",
        )
        assert reply.end_session is True
        assert reply.error == "missing_fields"
        assert session_repo.sessions == {}, "no session for invalid requests"

    @pytest.mark.asyncio
    async def test_invalid_session_id(self, manager, mock_db):
        reply = await dial(manager, mock_db, "", session_id="bad id!")
        assert reply.error == "invalid_session_id"

    @pytest.mark.asyncio
    async def test_invalid_phone(self, manager, mock_db, session_repo):
        reply = await dial(manager, mock_db, "", phone="12345")
        assert reply.end_session is True
        assert reply.error == "invalid_phone_number"
        assert session_repo.sessions == {}

    @pytest.mark.asyncio
    async def test_provider_detected_from_network_code(self, manager, mock_db, session_repo):
        reply = await dial(manager, mock_db, "", network_code="63907")
        assert reply.provider == "airtel"
        assert session_repo.sessions["ATUid_1"].provider == "airtel"


class TestSessionGuards:

    @pytest.mark.asyncio
    async def test_expired_session(self, manager, mock_db, session_repo, hospital):
        await dial(manager, mock_db, "")
        reply = await dial(manager, mock_db, "1", now=NOW + timedelta(seconds=181))
        assert reply.end_session is True
        assert reply.error == "session_expired"
        assert reply.text == "Session expired. Please dial again to start over."
        row = session_repo.sessions["ATUid_1"]
        assert row.status == SessionStatus.EXPIRED
        assert row.end_reason == "timeout"

    @pytest.mark.asyncio
    async def test_session_expires_exactly_at_deadline(
        self, manager, mock_db, session_repo, hospital,
    ):
        await dial(manager, mock_db, "")
        deadline = session_repo.sessions["ATUid_1"].expires_at
        reply = await dial(manager, mock_db, "1", now=deadline)
        assert reply.error == "session_expired"
        assert session_repo.sessions["ATUid_1"].status == SessionStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_terminal_session_rejects_requests(self, manager, mock_db, hospital):
        await dial(manager, mock_db, "")
        await dial(manager, mock_db, "0")
        reply = await dial(manager, mock_db, "0*1")
        assert reply.end_session is True
        assert reply.error == "session_ended"
        assert "This session has ended" in reply.text

    @pytest.mark.asyncio
    async def test_grace_window_extends_expiry(self, manager, mock_db, session_repo, hospital):
        await dial(manager, mock_db, "")
        late = NOW + timedelta(seconds=165)
        reply = await dial(manager, mock_db, "1", now=late)
        assert reply.error is None
        row = session_repo.sessions["ATUid_1"]
        assert row.status == SessionStatus.ACTIVE
        assert row.expires_at == late + timedelta(seconds=180)

    @pytest.mark.asyncio
    async def test_expiry_never_moves_backwards(self, manager, mock_db, session_repo, hospital):
        await dial(manager, mock_db, "")
        await dial(manager, mock_db, "1", now=NOW + timedelta(seconds=100))
        row = session_repo.sessions["ATUid_1"]
        high_water = row.expires_at

        # A request stamped earlier than the previous one
        await dial(manager, mock_db, "1*0", now=NOW + timedelta(seconds=50))
        assert row.expires_at == high_water

    @pytest.mark.asyncio
    async def test_corrupt_session_data_restarts(self, manager, mock_db, session_repo, hospital):
        session_repo.sessions["ATUid_1"] = MockSessionRow(
            session_id="ATUid_1",
            current_level=4,
            session_data={"flow": "bogus"},
        )
        reply = await dial(manager, mock_db, "1*1*1")
        assert reply.end_session is True
        assert "Please dial again" in reply.text
        assert session_repo.sessions["ATUid_1"].end_reason == "invalid_state"

    @pytest.mark.asyncio
    async def test_unexpected_error_cancels_session(
        self, manager, mock_db, session_repo, drug_repo, hospital,
    ):
        drug_repo.list_drugs = AsyncMock(side_effect=RuntimeError("db down"))
        await dial(manager, mock_db, "")
        reply = await dial(manager, mock_db, "1")
        assert reply.end_session is True
        assert reply.error == "internal_error"
        assert reply.text == "Service temporarily unavailable. Please try again later."
        row = session_repo.sessions["ATUid_1"]
        assert row.status == SessionStatus.CANCELLED
        assert row.end_reason == "internal_error"


# =====================================================================
# Diagnostics and maintenance
# =====================================================================


class TestDiagnostics:

    @pytest.mark.asyncio
    async def test_session_info_masks_phone(self, manager, mock_db, hospital):
        await dial(manager, mock_db, "")
        info = await manager.get_session_info(mock_db, "ATUid_1")
        assert info is not None
        assert info.phone_number == "+2547123***"
        assert info.status == "active"
        assert info.current_level == 2

    @pytest.mark.asyncio
    async def test_session_info_missing(self, manager, mock_db):
        assert await manager.get_session_info(mock_db, "nope") is None

    @pytest.mark.asyncio
    async def test_expire_stale_sessions(self, manager, mock_db, session_repo):
        session_repo.sessions["old"] = MockSessionRow(
            session_id="old", expires_at=NOW - timedelta(seconds=1),
        )
        session_repo.sessions["fresh"] = MockSessionRow(
            session_id="fresh", expires_at=NOW + timedelta(seconds=60),
        )
        count = await manager.expire_stale_sessions(mock_db, now=NOW)
        assert count == 1
        assert session_repo.sessions["old"].status == SessionStatus.EXPIRED
        assert session_repo.sessions["fresh"].status == SessionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_sweep_includes_sessions_at_deadline(self, manager, mock_db, session_repo):
        session_repo.sessions["due"] = MockSessionRow(session_id="due", expires_at=NOW)
        assert await manager.expire_stale_sessions(mock_db, now=NOW) == 1
        assert session_repo.sessions["due"].status == SessionStatus.EXPIRED
