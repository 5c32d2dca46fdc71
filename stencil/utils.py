from collections import Counter, OrderedDict
from collections.abc import Mapping

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.functional import cached_property
from django.utils.module_loading import import_string

from . import conf
from .engine import Engine


class InvalidTemplateEngineError(ImproperlyConfigured):
    pass


class EngineHandler:
    """
    Build and cache Engine instances from a list of engine definitions.

    Each definition is a dict with a 'NAME' (the alias, 'default' if
    omitted) and 'OPTIONS', the keyword arguments for Engine. Entries of
    OPTIONS['filters'] may be callables or dotted import paths::

        STENCIL_ENGINES = [
            {
                'NAME': 'default',
                'OPTIONS': {
                    'autoescape': True,
                    'filters': {'slug': 'myproject.filters.slugify'},
                },
            },
        ]

    Without an explicit list, settings.STENCIL_ENGINES is used if it is
    defined, otherwise a single default engine.
    """
    def __init__(self, templates=None):
        """
        templates is an optional list of engine definitions (structured like
        settings.STENCIL_ENGINES).
        """
        self._templates = templates
        self._engines = {}

    @cached_property
    def templates(self):
        if self._templates is None:
            conf.configure()
            self._templates = getattr(settings, 'STENCIL_ENGINES', None) or [{'NAME': 'default'}]

        templates = OrderedDict()
        engine_names = []
        for tpl in self._templates:
            if not isinstance(tpl, Mapping):
                raise ImproperlyConfigured(
                    "Invalid template engine definition: {!r}. Each entry of "
                    "STENCIL_ENGINES must be a dict.".format(tpl))

            tpl = {
                'NAME': 'default',
                'OPTIONS': {},
                **tpl,
            }

            templates[tpl['NAME']] = tpl
            engine_names.append(tpl['NAME'])

        counts = Counter(engine_names)
        duplicates = [alias for alias, count in counts.most_common() if count > 1]
        if duplicates:
            raise ImproperlyConfigured(
                "Template engine aliases aren't unique, duplicates: {}. "
                "Set a unique NAME for each engine in STENCIL_ENGINES."
                .format(", ".join(duplicates)))

        return templates

    def __getitem__(self, alias):
        try:
            return self._engines[alias]
        except KeyError:
            try:
                params = self.templates[alias]
            except KeyError:
                raise InvalidTemplateEngineError(
                    "Could not find config for '{}' "
                    "in STENCIL_ENGINES".format(alias))

            # If building the engine raises an exception, self._engines[alias]
            # isn't set and this code may get executed again, so we must
            # preserve the original params.
            options = dict(params['OPTIONS'])
            filters = options.get('filters')
            if filters:
                options['filters'] = {
                    name: import_string(func) if isinstance(func, str) else func
                    for name, func in filters.items()
                }

            try:
                engine = Engine(**options)
            except TypeError as e:
                raise ImproperlyConfigured(
                    "Invalid OPTIONS for template engine '{}': {}".format(alias, e))

            self._engines[alias] = engine
            return engine

    def __iter__(self):
        return iter(self.templates)

    def all(self):
        return [self[alias] for alias in self]
