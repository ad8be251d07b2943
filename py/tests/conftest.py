import pytest

from lazygrad import use_arena


@pytest.fixture(autouse=True)
def fresh_arena():
    """Each test builds its expressions in its own arena."""
    with use_arena() as arena:
        yield arena
