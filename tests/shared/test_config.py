import pytest
from pydantic import ValidationError

from shared.config import Settings


def test_image_budget_defaults_below_client_timeout():
    settings = Settings()
    assert settings.image_request_budget < settings.client_timeout


@pytest.mark.parametrize("budget,client_timeout", [(60, 60), (90, 60), (45, 30)])
def test_image_budget_must_be_shorter_than_client_timeout(budget, client_timeout):
    with pytest.raises(ValidationError, match="IMAGE_REQUEST_BUDGET"):
        Settings(IMAGE_REQUEST_BUDGET=budget, CLIENT_TIMEOUT=client_timeout)


def test_longer_client_timeout_allows_longer_budget():
    settings = Settings(IMAGE_REQUEST_BUDGET=100, CLIENT_TIMEOUT=120)
    assert settings.image_request_budget == 100
