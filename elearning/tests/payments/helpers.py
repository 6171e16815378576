from decimal import Decimal

from django.contrib.auth.models import User

from core.chapa_integration import InitializeResult
from core.exceptions import GatewayError
from elearning.courses.models import Course
from elearning.users.models import Profile


class FakeGateway:
    """
    Stands in for ChapaClient. ``statuses`` maps tx_ref to the status the
    provider reports; unknown references report ``pending``.
    """

    public_key = "CHAPUBK_TEST-fake"

    def __init__(self, fail_initialize=False):
        self.statuses = {}
        self.fail_initialize = fail_initialize
        self.initialized = []
        self.verified = []

    def ensure_configured(self):
        return None

    def initialize(self, *, amount, email, first_name, tx_ref, callback_url, currency="ETB"):
        if self.fail_initialize:
            raise GatewayError("Chapa request timed out after 15.0s")
        self.initialized.append(tx_ref)
        payload = {"checkout_url": f"https://checkout.chapa.test/{tx_ref}"}
        return InitializeResult(checkout_url=payload["checkout_url"], payload=payload)

    def verify(self, tx_ref):
        self.verified.append(tx_ref)
        return {"status": self.statuses.get(tx_ref, "pending"), "tx_ref": tx_ref}


def create_user(username, role=Profile.ROLE_STUDENT, **extra):
    user = User.objects.create_user(
        username=username, email=f"{username}@example.com", password="pw-123456", **extra
    )
    profile = user.profile
    profile.role = role
    profile.save(update_fields=["role"])
    return user


def create_course(instructor=None, price=Decimal("1000")):
    return Course.objects.create(
        title="Data Engineering Basics",
        price=price,
        instructor=instructor,
        status=Course.STATUS_PUBLISHED,
    )


def earnings_of(user):
    return Profile.objects.get(user=user).earnings
