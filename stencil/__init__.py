"""
stencil: a small, safe text template engine.

Overview:

- Templates mix literal text with ``{{ expression|filter:args }}``
  interpolations and ``{% for %}`` / ``{% if %}`` blocks.
- Expressions use a fixed grammar (paths, literals, arithmetic, comparison
  and boolean operators). Nothing in a template can call into Python except
  the filters registered on the engine.
- Missing data never raises: it renders as an empty value.

The stencil.Engine class encapsulates a filter registry and the rendering
options. stencil.engines holds engines built from configuration, and
compile() / render() below are shortcuts over a fresh Engine:

>>> import stencil
>>> stencil.render('Hello {{ name|upper }}!', {'name': 'ada'})
'Hello ADA!'
"""

from .engine import Engine
from .utils import EngineHandler

engines = EngineHandler()

# Public exceptions
from .exceptions import (  # NOQA isort:skip
    DepthExceededError, FilterError, ImproperlyConfigured,
    InvalidTemplateLibrary, TemplateSyntaxError,
)
from .utils import InvalidTemplateEngineError  # NOQA isort:skip

# Template parts
from .base import Template, Token, TokenType, extract_paths  # NOQA isort:skip
from .context import Context  # NOQA isort:skip
from .library import Library  # NOQA isort:skip

__all__ = (
    'Engine', 'engines', 'EngineHandler', 'Template', 'Token', 'TokenType',
    'Context', 'Library', 'DepthExceededError', 'FilterError',
    'ImproperlyConfigured', 'InvalidTemplateEngineError',
    'InvalidTemplateLibrary', 'TemplateSyntaxError', 'compile', 'render',
    'extract_paths',
)


def compile(template_string, **options):
    """
    Compile ``template_string`` with an Engine built from ``options`` and
    return its render function. Raise TemplateSyntaxError if the template is
    invalid.
    """
    return Engine(**options).compile(template_string)


def render(template_string, context=None, **options):
    """
    Compile and render ``template_string`` against ``context`` in one call.
    """
    return Engine(**options).render(template_string, context)
