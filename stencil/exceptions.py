"""
This module contains generic exceptions used by the template engine. The
parser raises TemplateSyntaxError at compile time; FilterError and
DepthExceededError abort a render call. Missing data never raises, it renders
as an empty value.
"""
from django.core.exceptions import ImproperlyConfigured  # NOQA


class TemplateSyntaxError(Exception):
    """
    The exception used for syntax errors during parsing. The parser attaches
    the offending Token as ``token``; expression errors also carry the
    ``position`` inside the tag body.
    """
    def __init__(self, msg, position=None):
        super().__init__(msg)
        self.position = position


class FilterError(Exception):
    """
    A registered filter raised while it was being applied. The original
    exception is chained as ``__cause__``.
    """
    def __init__(self, filter_name, error):
        super().__init__("Filter '%s' failed: %s" % (filter_name, error))
        self.filter_name = filter_name
        self.token = None


class DepthExceededError(RecursionError):
    """
    Block nesting went deeper than the engine's ``max_depth`` while rendering.
    """
    def __init__(self, max_depth, node=None):
        super().__init__(
            'Maximum nesting depth of %d exceeded while rendering %r.' % (max_depth, node)
        )
        self.max_depth = max_depth
        self.token = None


class InvalidTemplateLibrary(Exception):
    """
    A filter module listed in an engine's builtins cannot be imported or has
    no ``register`` Library.
    """
