from importlib import import_module

from .exceptions import InvalidTemplateLibrary


class Library:
    """
    A class for registering template filters. Registered callables are stored
    in the ``filters`` attribute, keyed by the name templates use.

    A filter module creates exactly one instance named ``register`` and
    decorates its functions with it; Engine collects ``register.filters`` from
    every module listed in its builtins.
    """
    def __init__(self):
        self.filters = {}

    def filter(self, name=None, filter_func=None):
        """
        Register a callable as a template filter. Example:

        @register.filter
        def lower(value):
            return value.lower()

        @register.filter(name='formatUSD')
        def format_usd(value):
            ...
        """
        if name is None and filter_func is None:
            # @register.filter()
            def dec(func):
                return self.filter_function(func)
            return dec
        elif name is not None and filter_func is None:
            if callable(name):
                # @register.filter
                return self.filter_function(name)
            else:
                # @register.filter('somename') or @register.filter(name='somename')
                def dec(func):
                    return self.filter(name, func)
                return dec
        elif name is not None and filter_func is not None:
            # register.filter('somename', somefunc)
            self.filters[name] = filter_func
            filter_func._filter_name = name
            return filter_func
        else:
            raise ValueError(
                "Unsupported arguments to Library.filter: (%r, %r)" %
                (name, filter_func),
            )

    def filter_function(self, func):
        name = getattr(func, "_decorated_function", func).__name__
        return self.filter(name, func)


def import_library(name):
    """
    Load a Library object from a filter module.
    """
    try:
        module = import_module(name)
    except ImportError as e:
        raise InvalidTemplateLibrary(
            "Invalid template library specified. ImportError raised when "
            "trying to load '%s': %s" % (name, e)
        )
    try:
        return module.register
    except AttributeError:
        raise InvalidTemplateLibrary(
            "Module  %s does not have a variable named 'register'" % name,
        )
