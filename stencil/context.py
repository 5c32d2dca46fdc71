from collections.abc import Mapping
from contextlib import contextmanager
from copy import copy

from .exceptions import DepthExceededError

DEFAULT_MAX_DEPTH = 32


class Context(Mapping):
    """
    The variables a template sees while it renders.

    A Context is read-only. The root of the chain wraps the caller's mapping;
    push() returns a child carrying exactly one extra binding and leaves the
    parent untouched. Lookups start at the innermost binding and walk outward,
    so a loop variable shadows an outer name of the same name (including an
    enclosing loop variable) only for the body it belongs to.

    Every Context in a chain shares the RenderContext of the render call that
    created the root.
    """
    def __init__(self, dict_=None, render_context=None):
        if dict_ is not None and not isinstance(dict_, Mapping):
            raise TypeError(
                'context must be a mapping rather than %s.' % dict_.__class__.__name__
            )
        self._base = {} if dict_ is None else dict_
        self._parent = None
        self._name = None
        self._value = None
        self.render_context = RenderContext() if render_context is None else render_context

    def __repr__(self):
        return '<%s: %r>' % (self.__class__.__name__, self.flatten())

    def __getitem__(self, key):
        "Get a variable's value, starting at the innermost binding and going outward"
        context = self
        while context._parent is not None:
            if context._name == key:
                return context._value
            context = context._parent
        return context._base[key]

    def __iter__(self):
        seen = set()
        context = self
        while context._parent is not None:
            if context._name not in seen:
                seen.add(context._name)
                yield context._name
            context = context._parent
        for key in context._base:
            if key not in seen:
                yield key

    def __len__(self):
        return sum(1 for _ in self)

    @property
    def depth(self):
        "Number of bindings pushed on top of the root."
        depth = 0
        context = self
        while context._parent is not None:
            depth += 1
            context = context._parent
        return depth

    @property
    def template_name(self):
        return self.render_context.template_name

    def push(self, name, value):
        """
        Return a child context in which ``name`` is bound to ``value``.
        """
        child = copy(self)
        child._parent = self
        child._name = name
        child._value = value
        return child

    def flatten(self):
        """
        Return the visible bindings as one dictionary.
        """
        return {key: self[key] for key in self}


class RenderContext:
    """
    State for a single render call: the filter mapping frozen into the
    template, the autoescape switch and the nesting depth guard. One instance
    is created per render, so concurrent renders of the same template never
    share it.
    """
    def __init__(self, template=None, filters=None, autoescape=True,
                 max_depth=DEFAULT_MAX_DEPTH):
        self.template = template
        self.filters = {} if filters is None else filters
        self.autoescape = autoescape
        self.max_depth = max_depth
        self.depth = 0

    @property
    def template_name(self):
        return getattr(self.template, 'name', None) or 'unknown'

    @contextmanager
    def push_state(self, node):
        """
        Enter one level of block nesting for ``node``. Raise
        DepthExceededError instead of going past ``max_depth``.
        """
        if self.depth >= self.max_depth:
            raise DepthExceededError(self.max_depth, node)
        self.depth += 1
        try:
            yield
        finally:
            self.depth -= 1


def make_context(context, render_context=None):
    """
    Create a root Context from the mapping passed to a render call.
    """
    if context is not None and not isinstance(context, Mapping):
        raise TypeError('context must be a mapping rather than %s.' % context.__class__.__name__)
    return Context(context, render_context=render_context)
