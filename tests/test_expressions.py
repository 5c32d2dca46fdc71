import math
from decimal import Decimal

import pytest

from stencil.context import Context
from stencil.exceptions import TemplateSyntaxError
from stencil.expressions import (
    MAX_NESTING, BinaryOp, Literal, Path, parse_expression, parse_filter,
    parse_filter_arguments, split_filter_pipeline, tokenize,
)


def evaluate(text, **context):
    return parse_expression(text).eval(Context(context))


@pytest.mark.parametrize('text, expected', [
    ('1 + 2 * 3', 7),
    ('(1 + 2) * 3', 9),
    ('10 - 2 - 3', 5),
    ('7 / 2', 3.5),
    ('7 % 3', 1),
    ('-5 + 2', -3),
    ('3 -5', -2),
    ('2.5 * 2', 5.0),
    ('1 < 2 && 2 <= 2', True),
    ('3 > 4 || 4 >= 4', True),
    ('1 + 1 == 2', True),
    ('"a" != "a"', False),
    ("'b' > 'a'", True),
    ('!true', False),
    ('!!1', True),
    ('null', None),
])
def test_literals_and_operators(text, expected):
    assert evaluate(text) == expected


def test_arithmetic_with_context():
    assert evaluate('price * quantity', price=Decimal('2.50'), quantity=4) == Decimal('10.00')


def test_and_or_return_deciding_operand():
    assert evaluate('a && b', a=1, b='x') == 'x'
    assert evaluate('a && b', a=0, b='x') == 0
    assert evaluate('a || b', a='', b='fallback') == 'fallback'
    assert evaluate('a || b', a='first', b='fallback') == 'first'
    assert evaluate('missing && b', b=1) is None


def test_not_returns_bool():
    assert evaluate('!x', x=0) is True
    assert evaluate('!x', x='text') is False


@pytest.mark.parametrize('text', [
    '1 < "b"',
    '"a" - 1',
    'x * 2',
    '1 / 0',
    '5 % 0',
    'items > 1',
    'true + 1',
])
def test_mismatched_operands_yield_none(text):
    assert evaluate(text, items=[1, 2]) is None


def test_plus_concatenates_strings():
    assert evaluate('"a" + 1') == 'a1'
    assert evaluate('name + "!"', name='ada') == 'ada!'
    assert evaluate('"x" + missing') == 'x'


def test_equality_is_by_kind():
    assert evaluate('x == 1', x=1.0) is True
    assert evaluate('x == 1', x='1') is False
    assert evaluate('x == 1', x=True) is False
    assert evaluate('missing == null') is True
    assert evaluate('a == b', a=[1, {'k': 'v'}], b=(1, {'k': 'v'})) is True
    assert evaluate('a != b', a={'k': 1}, b={'k': 2}) is True


def test_nan_is_never_equal():
    assert evaluate('x == x', x=math.nan) is False


def test_paths():
    context = {'user': {'items': [{'name': 'pen'}, {'name': 'ink'}]}}
    assert evaluate('user.items[1].name', **context) == 'ink'
    assert evaluate('user.items[2].name', **context) is None
    assert evaluate('user.items.name', **context) is None
    assert evaluate('user.name.first', **context) is None
    assert evaluate('user[0]', **context) is None
    assert evaluate('nothing.at.all') is None


def test_path_does_not_read_attributes():
    class User:
        name = 'ada'

    assert evaluate('user.name', user=User()) is None


def test_path_str():
    path = parse_expression('user.items[0].name')
    assert isinstance(path, Path)
    assert str(path) == 'user.items[0].name'
    assert path.segments == ('user', 'items', 0, 'name')


def test_string_literals_unescape():
    assert evaluate(r'"say \"hi\""') == 'say "hi"'
    assert evaluate(r"'it\'s'") == "it's"


def test_precedence_tree_shape():
    tree = parse_expression('a || b && c')
    assert isinstance(tree, BinaryOp)
    assert tree.op == '||'
    assert tree.right.op == '&&'


@pytest.mark.parametrize('text', [
    '',
    '(1 + 2',
    '1 +',
    'a b',
    'a @ b',
    'items[-1]',
    'items[x]',
    'items[1.5]',
    'a.',
    '.a',
    '"unterminated',
    '1 2',
    ')',
])
def test_syntax_errors(text):
    with pytest.raises(TemplateSyntaxError, match='Could not parse expression'):
        parse_expression(text)


def test_syntax_error_position():
    with pytest.raises(TemplateSyntaxError) as excinfo:
        parse_expression('a @ b')
    assert excinfo.value.position == 2


def test_tokenize_ends_with_eof():
    tokens = tokenize('a && !b')
    assert [t.type for t in tokens] == ['NAME', 'OPERATOR', 'OPERATOR', 'NAME', 'EOF']


def test_split_filter_pipeline():
    assert split_filter_pipeline('a || b | upper | truncate:"x|y"') == ['a || b', 'upper', 'truncate:"x|y"']
    assert split_filter_pipeline('(a || b)|lower') == ['(a || b)', 'lower']
    assert split_filter_pipeline('name') == ['name']


def test_filter_arguments():
    args = parse_filter_arguments('8, "a, b" true -1.5 en-GB locale')
    context = Context({'locale': 'en-GB'})
    assert [arg.eval(context) for arg in args] == [8, 'a, b', True, -1.5, 'en-GB', 'en-GB']
    assert isinstance(args[0], Literal)


def test_bare_filter_argument_falls_back_to_its_text():
    [arg] = parse_filter_arguments('locale')
    assert arg.eval(Context()) == 'locale'
    assert arg.eval(Context({'locale': None})) is None
    assert arg.eval(Context({'locale': 'fr'})) == 'fr'


def test_parse_filter():
    name, args = parse_filter('truncate:8')
    assert name == 'truncate'
    assert [arg.value for arg in args] == [8]
    assert parse_filter('upper') == ('upper', [])


@pytest.mark.parametrize('bit', ['', 'bad filter', 'a-b', ':8'])
def test_invalid_filter(bit):
    with pytest.raises(TemplateSyntaxError, match='Invalid filter'):
        parse_filter(bit)


def test_bare_filter_argument_that_is_not_a_path_is_a_top_level_name():
    [arg] = parse_filter_arguments('en-GB')
    assert arg.eval(Context()) == 'en-GB'
    assert arg.eval(Context({'en-GB': 'British English'})) == 'British English'


def test_nesting_up_to_the_limit():
    depth = MAX_NESTING
    assert evaluate('(' * depth + '1' + ')' * depth) == 1
    assert evaluate('!' * depth + 'x', x=1) is True


@pytest.mark.parametrize('text', [
    '(' * (MAX_NESTING + 1) + '1' + ')' * (MAX_NESTING + 1),
    '!' * (MAX_NESTING + 1) + 'x',
    '(' * 1000 + '1' + ')' * 1000,
    '!(' * 500 + 'x' + ')' * 500,
])
def test_nesting_too_deep_is_a_syntax_error(text):
    with pytest.raises(TemplateSyntaxError, match='nested too deeply'):
        parse_expression(text)


def test_nesting_depth_counts_enclosing_levels_only():
    # Siblings do not add up: each group is closed before the next opens.
    group = '(' * MAX_NESTING + '1' + ')' * MAX_NESTING
    assert evaluate(' + '.join([group] * 10)) == 10


@pytest.mark.parametrize('op, expected', [
    ('+', 5000),
    ('*', 1),
    ('-', -4998),
    ('==', False),
])
def test_long_flat_chains_evaluate(op, expected):
    assert evaluate((' %s ' % op).join(['1'] * 5000)) == expected


def test_long_boolean_chains_short_circuit():
    assert evaluate(' || '.join(['a'] * 5000), a='first') == 'first'
    assert evaluate(' && '.join(['a'] * 5000) + ' && b', a=1, b='last') == 'last'
    assert evaluate(' && '.join(['a'] * 5000), a=0) == 0
