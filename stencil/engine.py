import functools
import logging

from django.core.exceptions import ImproperlyConfigured

from . import conf
from .base import Template
from .context import DEFAULT_MAX_DEPTH
from .library import import_library

logger = logging.getLogger('stencil.engine')


class Engine:
    """
    A configured template engine: the filter registry and the rendering
    options shared by every template it compiles.

    Options:

    autoescape
        HTML-escape the output of ``{{ }}`` tags. Defaults to True.

    filters
        A mapping of extra filters, name to callable. They are added after
        the builtins and override a builtin of the same name.

    builtins
        Dotted paths of extra filter modules (modules with a ``register``
        Library) loaded after ``default_builtins``.

    max_depth
        How deeply ``for`` and ``if`` blocks may nest while rendering before
        DepthExceededError is raised. Defaults to 32.

    debug
        Record token positions while lexing and annotate errors with a
        ``template_debug`` dict. Slower; off by default.

    The filter registry may be changed with add_filter() and remove_filter().

    The formatting filters read django.conf.settings. If neither
    DJANGO_SETTINGS_MODULE is set nor settings.configure() has been called
    when the first Engine is built, the engine calls settings.configure()
    with the defaults in stencil.conf. That configuration is process-wide
    and Django refuses to be configured twice, so a host application that
    uses Django must configure it before creating an Engine.
    A Template takes a copy of the registry when it is compiled, so changes
    only affect templates compiled afterwards.
    """
    default_builtins = [
        'stencil.defaultfilters',
    ]

    def __init__(self, autoescape=True, filters=None, builtins=None,
                 max_depth=DEFAULT_MAX_DEPTH, debug=False):
        conf.configure()
        if builtins is None:
            builtins = []
        if filters is None:
            filters = {}
        if not isinstance(max_depth, int) or isinstance(max_depth, bool) or max_depth < 1:
            raise ImproperlyConfigured(
                "max_depth must be a positive integer, got %r." % (max_depth,))

        self.autoescape = autoescape
        self.max_depth = max_depth
        self.debug = debug
        self.builtins = self.default_builtins + list(builtins)
        self.template_builtins = self.get_template_builtins(self.builtins)

        self._filters = {}
        for lib in self.template_builtins:
            self._filters.update(lib.filters)
        for name, func in filters.items():
            if not callable(func):
                raise ImproperlyConfigured(
                    "Filter '%s' is not callable: %r." % (name, func))
            self._filters[name] = func

    def __repr__(self):
        return '<%s: autoescape=%s, max_depth=%d, filters=%d>' % (
            self.__class__.__name__, self.autoescape, self.max_depth, len(self._filters),
        )

    @staticmethod
    @functools.lru_cache()
    def get_default():
        """
        Return the engine configured under the alias 'default', or the first
        configured engine if there is no such alias.

        This backs templates created without an engine:

        >>> from stencil import Template
        >>> Template('Hello {{ name }}!').render({'name': 'world'})
        'Hello world!'
        """
        # Since Engine is imported in stencil/__init__.py, a local import is
        # required to avoid an import loop.
        from stencil import engines
        if 'default' in engines.templates:
            return engines['default']
        for engine in engines.all():
            return engine
        raise ImproperlyConfigured('No template engine is configured.')

    def get_template_builtins(self, builtins):
        return [import_library(x) for x in builtins]

    @property
    def filters(self):
        "A copy of the current filter registry."
        return dict(self._filters)

    def get_filters(self):
        return self.filters

    def add_filter(self, name, func):
        """
        Register ``func`` under ``name``, replacing any filter of that name.
        """
        if not callable(func):
            raise TypeError("Filter '%s' must be callable, got %r." % (name, func))
        logger.debug("Registering filter '%s'.", name)
        self._filters[name] = func

    def remove_filter(self, name):
        """
        Unregister ``name``. Removing a filter that was never registered is a
        no-op.
        """
        if self._filters.pop(name, None) is not None:
            logger.debug("Removed filter '%s'.", name)

    def from_string(self, template_code, name=None):
        """
        Return a compiled Template object for the given template code.
        """
        return Template(template_code, engine=self, name=name)

    def compile(self, template_code, name=None):
        """
        Compile ``template_code`` once and return a render function taking
        the context mapping.
        """
        return self.from_string(template_code, name=name).render

    def render(self, template_code, context=None):
        """
        Compile and render in one step.
        """
        return self.from_string(template_code).render(context)
