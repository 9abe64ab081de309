import uuid

import pytest

from helpers.mocks import (
    FakeSessionFactory,
    MockAlertRepository,
    MockDeliveryRepository,
    MockDrug,
    MockDrugRepository,
    MockPreferenceRepository,
    MockSessionRepository,
    MockUser,
    MockUserRepository,
    make_mock_db,
)
from stockalert_db.models.enums import UserRole
from stockalert_ussd.alerts import AlertService
from stockalert_ussd.eligibility import SupplierEligibilityEvaluator
from stockalert_ussd.lifecycle import UssdSessionManager
from stockalert_ussd.models.session import CallerProfile, DrugOption, MenuContext


@pytest.fixture
def mock_db():
    return make_mock_db()


@pytest.fixture
def session_factory(mock_db):
    return FakeSessionFactory(mock_db)


@pytest.fixture
def session_repo():
    return MockSessionRepository()


@pytest.fixture
def user_repo():
    return MockUserRepository()


@pytest.fixture
def alert_repo():
    return MockAlertRepository()


@pytest.fixture
def preference_repo():
    return MockPreferenceRepository()


@pytest.fixture
def delivery_repo():
    return MockDeliveryRepository()


@pytest.fixture
def drug_repo():
    return MockDrugRepository(
        [
            MockDrug("Paracetamol", "Analgesics", "units"),
            MockDrug("Ibuprofen", "Analgesics", "units"),
            MockDrug("Amoxicillin", "Antibiotics", "capsules"),
        ]
    )


@pytest.fixture
def catalogue():
    return [
        DrugOption(id="1", name="Paracetamol", category="Analgesics"),
        DrugOption(id="2", name="Ibuprofen", category="Analgesics"),
        DrugOption(id="3", name="Amoxicillin", category="Antibiotics", unit="capsules"),
    ]


@pytest.fixture
def caller():
    return CallerProfile(
        id=uuid.uuid4(),
        phone_number="+254712345678",
        name="Jane Otieno",
        facility_name="Kisumu County Hospital",
        location="Kisumu",
    )


@pytest.fixture
def registered_ctx(caller, catalogue):
    return MenuContext(caller=caller, catalogue=catalogue)


@pytest.fixture
def unregistered_ctx(catalogue):
    return MenuContext(catalogue=catalogue)


@pytest.fixture
def hospital(user_repo):
    user = MockUser(
        role=UserRole.HOSPITAL,
        phone_number="+254712345678",
        name="Jane Otieno",
        facility_name="Kisumu County Hospital",
        location="Kisumu",
    )
    user_repo.users.append(user)
    return user


@pytest.fixture
def manager(session_repo, user_repo, drug_repo, alert_repo, preference_repo):
    """UssdSessionManager wired to the in-memory repositories."""
    service = AlertService(SupplierEligibilityEvaluator())
    service._alerts = alert_repo
    service._users = user_repo
    service._preferences = preference_repo

    mgr = UssdSessionManager(service)
    mgr._repo = session_repo
    mgr._users = user_repo
    mgr._drugs = drug_repo
    mgr._alerts = alert_repo
    return mgr
