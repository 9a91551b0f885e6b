import pytest

from relmap.connection import Connection

from helpers import MYSQL_URL, SQLITE_URL, blog_config, clinic_config, shop_config, zoo_config


@pytest.fixture(scope="function")
def connection():
    """A fresh in-memory SQLite connection for each test."""
    conn = Connection(SQLITE_URL)
    yield conn
    conn.close()


@pytest.fixture(scope="function")
def mysql_connection():
    """A MySQL connection that is never established; for rendering only."""
    return Connection(MYSQL_URL)


def _installed(config):
    models = config.create_models()
    models.install()
    return models


@pytest.fixture(scope="function")
def zoo():
    models = _installed(zoo_config())
    yield models
    models.connections.close()


@pytest.fixture(scope="function")
def blog():
    models = _installed(blog_config())
    yield models
    models.connections.close()


@pytest.fixture(scope="function")
def mysql_zoo():
    return zoo_config(MYSQL_URL).create_models()


@pytest.fixture(scope="function")
def clinic():
    return clinic_config().create_models()


@pytest.fixture(scope="function")
def shop():
    return shop_config().create_models()
