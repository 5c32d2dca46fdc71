import sys
import types

import pytest

import stencil
from stencil import (
    Engine, ImproperlyConfigured, InvalidTemplateLibrary, Library, Template,
)


def shout(value):
    return '%s!' % value


def test_default_filters(engine):
    assert {'upper', 'lower', 'truncate', 'formatDate', 'formatUSD', 'safe'} <= set(engine.filters)


def test_filters_property_is_a_copy(engine):
    filters = engine.filters
    filters['shout'] = shout
    del filters['upper']
    assert 'shout' not in engine.filters
    assert 'upper' in engine.get_filters()


def test_option_filters_override_defaults():
    engine = Engine(filters={'upper': lambda value: 'overridden', 'shout': shout})
    assert engine.render('{{ a|upper }} {{ a|shout }}', {'a': 'x'}) == 'overridden x!'


def test_non_callable_option_filter():
    with pytest.raises(ImproperlyConfigured, match="Filter 'bad' is not callable"):
        Engine(filters={'bad': 'not callable'})


@pytest.mark.parametrize('max_depth', [0, -1, 1.5, '3', True])
def test_invalid_max_depth(max_depth):
    with pytest.raises(ImproperlyConfigured, match='max_depth must be a positive integer'):
        Engine(max_depth=max_depth)


def test_add_and_remove_filter(engine):
    engine.add_filter('shout', shout)
    assert engine.filters['shout'] is shout
    assert engine.render('{{ a|shout }}', {'a': 'hi'}) == 'hi!'

    engine.remove_filter('shout')
    assert 'shout' not in engine.filters
    assert engine.render('{{ a|shout }}', {'a': 'hi'}) == 'hi'


def test_add_filter_replaces_existing(engine):
    engine.add_filter('upper', shout)
    assert engine.render('{{ a|upper }}', {'a': 'hi'}) == 'hi!'


def test_remove_unknown_filter_is_a_noop(engine):
    before = engine.filters
    engine.remove_filter('never-registered')
    assert engine.filters == before


def test_add_non_callable_filter(engine):
    with pytest.raises(TypeError):
        engine.add_filter('bad', 42)


def test_compiled_templates_keep_their_filters(engine):
    template = engine.from_string('{{ a|shout }}{{ a|upper }}')
    engine.add_filter('shout', shout)
    engine.remove_filter('upper')
    assert template.render({'a': 'x'}) == 'xX'
    assert engine.from_string('{{ a|shout }}{{ a|upper }}').render({'a': 'x'}) == 'x!x'


def test_engines_do_not_share_registries():
    first, second = Engine(), Engine()
    first.add_filter('shout', shout)
    assert 'shout' not in second.filters


def test_compile_returns_reusable_render_function(engine):
    render = engine.compile('Hi {{ name }}')
    assert callable(render)
    assert render({'name': 'a'}) == 'Hi a'
    assert render({'name': 'b'}) == 'Hi b'


def test_module_level_compile_and_render():
    render = stencil.compile('{{ v }}', autoescape=False)
    assert render({'v': '<i>'}) == '<i>'
    assert stencil.render('{{ v }}', {'v': '<i>'}) == '&lt;i&gt;'
    assert stencil.render('{{ v|shout }}', {'v': 'a'}, filters={'shout': shout}) == 'a!'


def test_from_string_name(engine):
    template = engine.from_string('x', name='greeting')
    assert template.name == 'greeting'
    assert repr(template) == '<Template: greeting>'
    assert [node.origin for node in template.nodelist] == ['greeting']


def test_get_default():
    default = Engine.get_default()
    assert isinstance(default, Engine)
    assert default is Engine.get_default()
    assert Template('{{ a }}').engine is default


def test_extra_builtins(monkeypatch):
    register = Library()

    @register.filter
    def reverse(value):
        return str(value)[::-1]

    module = types.ModuleType('stencil_test_filters')
    module.register = register
    monkeypatch.setitem(sys.modules, 'stencil_test_filters', module)

    engine = Engine(builtins=['stencil_test_filters'])
    assert engine.render('{{ a|reverse|upper }}', {'a': 'abc'}) == 'CBA'


def test_missing_builtin_module():
    with pytest.raises(InvalidTemplateLibrary, match="ImportError raised when trying to load 'no.such.module'"):
        Engine(builtins=['no.such.module'])


def test_builtin_module_without_register():
    with pytest.raises(InvalidTemplateLibrary, match="does not have a variable named 'register'"):
        Engine(builtins=['json'])


def test_library_registration_forms():
    register = Library()

    @register.filter
    def plain(value):
        return value

    @register.filter()
    def called(value):
        return value

    @register.filter(name='camelCase')
    def camel_case(value):
        return value

    register.filter('direct', shout)

    assert register.filters == {
        'plain': plain,
        'called': called,
        'camelCase': camel_case,
        'direct': shout,
    }
    assert camel_case._filter_name == 'camelCase'


def test_library_rejects_bad_arguments():
    with pytest.raises(ValueError):
        Library().filter(None, shout)
