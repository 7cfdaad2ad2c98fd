import pytest

from mcadmin.db.config_model import ConfigModel


@pytest.fixture
def users_model():
    model = ConfigModel("users")
    yield model
    model.close()
