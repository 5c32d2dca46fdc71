import pytest

from stencil import Engine
from stencil.conf import configure

configure()


@pytest.fixture
def engine():
    return Engine()


@pytest.fixture
def render(engine):
    def render(template_string, context=None):
        return engine.from_string(template_string).render(context)
    return render
