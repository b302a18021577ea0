from types import SimpleNamespace

import pytest

from swerve_control import config


def make_config(**overrides):
    """Copy of the configuration module with selected constants replaced."""
    values = {name: getattr(config, name) for name in dir(config) if name.isupper()}
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def loop_config():
    # Tick timing depends on the test machine, so period enforcement is off
    return make_config(ENFORCE_PERIOD=False)
