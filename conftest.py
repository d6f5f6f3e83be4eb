# Root conftest to ensure pytest-asyncio is loaded even when plugin autoload is disabled
import pytest_asyncio.plugin


def pytest_configure(config):
    if not config.pluginmanager.is_registered(pytest_asyncio.plugin):
        config.pluginmanager.register(pytest_asyncio.plugin, name="pytest_asyncio")
