import pytest

from structinfer import Universe


@pytest.fixture
def universe() -> Universe:
    with Universe() as active:
        yield active
