import os

import pytest

# Service modules initialise their upstream clients at import time. Make sure
# no real credentials or endpoints are picked up while testing.
for _var in ("GCP_PROJECT", "SD_API_URL", "IMAGE_API_KEY"):
    os.environ.pop(_var, None)
os.environ["IMAGE_PROVIDER"] = "imagen"

from shared.config import get_settings  # noqa: E402
from shared.models import StyleTheme  # noqa: E402
from tests._helpers.fakes import RecordingSleep, data_uri, make_template  # noqa: E402

get_settings.cache_clear()


@pytest.fixture
def no_sleep():
    return RecordingSleep()


@pytest.fixture
def theme():
    return StyleTheme(name="Red Planet", color_tone="rusty red and orange", style="photorealistic", mood="adventurous")


@pytest.fixture
def template():
    return make_template()


@pytest.fixture
def bright_image():
    return data_uri((245, 245, 235))


@pytest.fixture
def dark_image():
    return data_uri((20, 20, 40))
