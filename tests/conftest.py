import pytest

from fulfillment.shared.events import Address, CustomerSnapshot


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
def customer() -> CustomerSnapshot:
    return CustomerSnapshot(
        id="cust-1",
        firstname="Ada",
        lastname="Lovelace",
        email="ada@example.com",
        address=Address(street="Main Street", house_number="12", zip_code="10115"),
    )
