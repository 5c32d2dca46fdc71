"""
The expression mini-language used inside ``{{ }}`` tags and by the ``if``,
``elif`` and ``for`` statements.

Grammar, from lowest to highest precedence::

    expression     -> or
    or             -> and ("||" and)*
    and            -> equality ("&&" equality)*
    equality       -> relational (("==" | "!=") relational)*
    relational     -> additive (("<" | "<=" | ">" | ">=") additive)*
    additive       -> multiplicative (("+" | "-") multiplicative)*
    multiplicative -> unary (("*" | "/" | "%") unary)*
    unary          -> "!" unary | primary
    primary        -> NUMBER | "-" NUMBER | STRING | "true" | "false" | "null"
                    | path | "(" expression ")"
    path           -> NAME ("." NAME | "[" INTEGER "]")*

There is no assignment and no function call; the only way to run code is a
filter from the engine's registry.
"""
import logging
import re

from django.utils.text import unescape_string_literal

from .exceptions import TemplateSyntaxError
from .values import (
    BINARY_OPERATORS, MISSING, UNARY_OPERATORS, is_truthy, resolve_path,
)

FILTER_SEPARATOR = '|'
FILTER_ARGUMENT_SEPARATOR = ':'

KEYWORDS = {
    'true': True,
    'false': False,
    'null': None,
}

# Binary operators grouped by precedence, lowest first.
PRECEDENCE = (
    ('||',),
    ('&&',),
    ('==', '!='),
    ('<', '<=', '>', '>='),
    ('+', '-'),
    ('*', '/', '%'),
)

# How many parentheses and "!" may enclose one another in a single expression.
MAX_NESTING = 64

constant_string = r'%(strdq)s|%(strsq)s' % {
    'strdq': r'"[^"\\]*(?:\\.[^"\\]*)*"',  # double-quoted string
    'strsq': r"'[^'\\]*(?:\\.[^'\\]*)*'",  # single-quoted string
}

token_re = re.compile(r"""
    (?P<WHITESPACE>\s+)|
    (?P<NUMBER>\d+(?:\.\d+)?)|
    (?P<STRING>%(constant)s)|
    (?P<NAME>[^\W\d]\w*)|
    (?P<OPERATOR>&&|\|\||==|!=|<=|>=|[-+*/%%<>!])|
    (?P<PUNCT>[()\[\].])
""" % {'constant': constant_string}, re.VERBOSE | re.DOTALL)

filter_re = re.compile(r'^(\w+)(?:%s(.*))?$' % re.escape(FILTER_ARGUMENT_SEPARATOR), re.DOTALL)
filter_arg_re = re.compile(r'(?P<constant>%s)|(?P<bare>[^\s,]+)' % constant_string, re.DOTALL)
number_re = re.compile(r'-?\d+(?:\.\d+)?')

logger = logging.getLogger('stencil.template')


class ExpressionToken:
    def __init__(self, type, value, position):
        self.type = type
        self.value = value
        self.position = position

    def __repr__(self):
        return 'ExpressionToken(%s, %r, pos=%d)' % (self.type, self.value, self.position)


def tokenize(text):
    """
    Split an expression into tokens, ending with an EOF token.
    """
    tokens = []
    position = 0
    while position < len(text):
        match = token_re.match(text, position)
        if match is None:
            raise TemplateSyntaxError(
                "Could not parse expression %r: unexpected character %r at position %d."
                % (text, text[position], position),
                position,
            )
        if match.lastgroup != 'WHITESPACE':
            tokens.append(ExpressionToken(match.lastgroup, match.group(), position))
        position = match.end()
    tokens.append(ExpressionToken('EOF', '', position))
    return tokens


def to_number(text):
    if '.' in text:
        return float(text)
    return int(text)


class Expression:
    """
    Base class for the nodes of an expression tree. eval() never raises for
    missing or mismatched data; it returns None instead.
    """
    def eval(self, context):
        raise NotImplementedError('subclasses of Expression must provide an eval() method')


class Literal(Expression):
    def __init__(self, value):
        self.value = value

    def __repr__(self):
        return '<%s: %r>' % (self.__class__.__name__, self.value)

    def eval(self, context):
        return self.value


class Path(Expression):
    """
    A dotted/bracketed lookup such as ``user.items[0].name``. ``segments``
    holds names (str) and indexes (int); the first segment is always a name.
    """
    def __init__(self, segments):
        self.segments = tuple(segments)

    def __repr__(self):
        return '<%s: %s>' % (self.__class__.__name__, self)

    def __str__(self):
        bits = [self.segments[0]]
        for segment in self.segments[1:]:
            if isinstance(segment, int):
                bits.append('[%d]' % segment)
            else:
                bits.append('.%s' % segment)
        return ''.join(bits)

    def resolve(self, context):
        """
        Return the looked-up value, or MISSING when any step fails.
        """
        value = resolve_path(context, self.segments)
        if value is MISSING:
            logger.debug(
                "Failed lookup for %r in template %r.",
                str(self),
                getattr(context, 'template_name', None) or 'unknown',
            )
        return value

    def eval(self, context):
        value = self.resolve(context)
        if value is MISSING:
            return None
        return value


class UnaryOp(Expression):
    def __init__(self, op, operand):
        self.op = op
        self.operand = operand

    def __repr__(self):
        return '(%s %r)' % (self.op, self.operand)

    def eval(self, context):
        return UNARY_OPERATORS[self.op](self.operand.eval(context))


class BinaryOp(Expression):
    def __init__(self, op, left, right):
        self.op = op
        self.left = left
        self.right = right

    def __repr__(self):
        return '(%r %s %r)' % (self.left, self.op, self.right)

    def eval(self, context):
        # A chain such as 1 + 2 + 3 parses into a left-leaning tree. Walk its
        # left spine with a loop so long chains don't recurse once per term.
        spine = []
        node = self
        while isinstance(node, BinaryOp):
            spine.append(node)
            node = node.left
        value = node.eval(context)
        for node in reversed(spine):
            value = node.apply(value, context)
        return value

    def apply(self, left, context):
        # && and || short-circuit and return the deciding operand.
        if self.op == '&&':
            if not is_truthy(left):
                return left
            return self.right.eval(context)
        if self.op == '||':
            if is_truthy(left):
                return left
            return self.right.eval(context)
        return BINARY_OPERATORS[self.op](left, self.right.eval(context))


class FilterArgument(Expression):
    """
    A bare filter argument. It is looked up as a path when the filter runs
    and falls back to its own source text when the lookup fails, so
    ``formatDate:locale`` uses the ``locale`` variable if there is one and
    the string "locale" otherwise. Tokens that are not valid paths, like
    ``en-GB``, are looked up as one top-level name.
    """
    def __init__(self, path, raw):
        self.path = path
        self.raw = raw

    def __repr__(self):
        return '<%s: %s>' % (self.__class__.__name__, self.raw)

    def eval(self, context):
        value = self.path.resolve(context)
        if value is MISSING:
            return self.raw
        return value


class ExpressionParser:
    """
    Recursive-descent parser turning expression text into an Expression tree.
    """
    def __init__(self, text):
        self.text = text
        self.tokens = tokenize(text)
        self.position = 0
        self.depth = 0

    def parse(self):
        if self.current.type == 'EOF':
            raise self.error('empty expression', self.current)
        expression = self.parse_binary()
        if self.current.type != 'EOF':
            raise self.error('unexpected %r' % self.current.value, self.current)
        return expression

    def parse_binary(self, level=0):
        if level == len(PRECEDENCE):
            return self.parse_unary()
        left = self.parse_binary(level + 1)
        while self.current.type == 'OPERATOR' and self.current.value in PRECEDENCE[level]:
            op = self.advance().value
            left = BinaryOp(op, left, self.parse_binary(level + 1))
        return left

    def parse_unary(self):
        token = self.current
        if self.match('OPERATOR', '!'):
            self.enter(token)
            operand = self.parse_unary()
            self.depth -= 1
            return UnaryOp('!', operand)
        return self.parse_primary()

    def parse_primary(self):
        token = self.current
        if token.type == 'NUMBER':
            self.advance()
            return Literal(to_number(token.value))
        if token.type == 'OPERATOR' and token.value == '-' and self.peek().type == 'NUMBER':
            self.advance()
            return Literal(-to_number(self.advance().value))
        if token.type == 'STRING':
            self.advance()
            return Literal(unescape_string_literal(token.value))
        if token.type == 'NAME':
            if token.value in KEYWORDS:
                self.advance()
                return Literal(KEYWORDS[token.value])
            return self.parse_path()
        if self.match('PUNCT', '('):
            self.enter(token)
            expression = self.parse_binary()
            if not self.match('PUNCT', ')'):
                raise self.error("expected ')'", self.current)
            self.depth -= 1
            return expression
        if token.type == 'EOF':
            raise self.error('unexpected end of expression', token)
        raise self.error('unexpected %r' % token.value, token)

    def parse_path(self):
        segments = [self.expect('NAME', 'expected a name').value]
        while True:
            if self.match('PUNCT', '.'):
                segments.append(self.expect('NAME', "expected a name after '.'").value)
            elif self.match('PUNCT', '['):
                index = self.expect('NUMBER', "expected an integer index after '['")
                if not index.value.isdigit():
                    raise self.error('index must be an integer', index)
                if not self.match('PUNCT', ']'):
                    raise self.error("expected ']'", self.current)
                segments.append(int(index.value))
            else:
                return Path(segments)

    # Token helpers

    @property
    def current(self):
        return self.tokens[self.position]

    def peek(self):
        return self.tokens[min(self.position + 1, len(self.tokens) - 1)]

    def advance(self):
        token = self.current
        if token.type != 'EOF':
            self.position += 1
        return token

    def match(self, type, value):
        if self.current.type == type and self.current.value == value:
            self.advance()
            return True
        return False

    def enter(self, token):
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise self.error(
                'expression nested too deeply (more than %d levels)' % MAX_NESTING, token,
            )

    def expect(self, type, message):
        if self.current.type != type:
            raise self.error(message, self.current)
        return self.advance()

    def error(self, message, token):
        return TemplateSyntaxError(
            'Could not parse expression %r: %s at position %d.'
            % (self.text, message, token.position),
            token.position,
        )


def parse_expression(text):
    """
    Parse the full expression grammar. Raise TemplateSyntaxError on invalid
    input.
    """
    return ExpressionParser(text).parse()


def parse_path(text):
    """
    Parse text that must be exactly one path, e.g. ``user.items[0]``.
    """
    parser = ExpressionParser(text)
    if parser.current.type != 'NAME' or parser.current.value in KEYWORDS:
        raise parser.error('expected a path', parser.current)
    path = parser.parse_path()
    if parser.current.type != 'EOF':
        raise parser.error('unexpected %r' % parser.current.value, parser.current)
    return path


def split_filter_pipeline(text):
    """
    Split the body of a variable tag on top-level ``|``. A ``|`` inside a
    string literal or parentheses, and the ``||`` operator, do not split.

    >>> split_filter_pipeline('a || b | upper | truncate:"x|y"')
    ['a || b', 'upper', 'truncate:"x|y"']
    """
    bits = []
    depth = 0
    quote = None
    start = i = 0
    while i < len(text):
        char = text[i]
        if quote:
            if char == '\\':
                i += 1
            elif char == quote:
                quote = None
        elif char in '"\'':
            quote = char
        elif char == '(':
            depth += 1
        elif char == ')':
            depth = max(depth - 1, 0)
        elif char == FILTER_SEPARATOR and depth == 0:
            if text.startswith(FILTER_SEPARATOR * 2, i):
                i += 2
                continue
            bits.append(text[start:i])
            start = i + 1
        i += 1
    bits.append(text[start:])
    return [bit.strip() for bit in bits]


def parse_filter_arguments(text):
    """
    Compile a filter argument list. Arguments are separated by commas and/or
    whitespace; each is a quoted string, a number, a boolean, or a bare path
    resolved when the filter runs. A bare token that is not a valid path, such
    as ``en-GB``, is looked up as a single top-level name instead; either way
    the token text itself is used when nothing is found.

    >>> parse_filter_arguments('8, "a, b" en-GB')
    [<Literal: 8>, <Literal: 'a, b'>, <FilterArgument: en-GB>]
    """
    args = []
    for match in filter_arg_re.finditer(text):
        constant, bit = match.group('constant', 'bare')
        if constant:
            args.append(Literal(unescape_string_literal(constant)))
        elif bit in ('true', 'false'):
            args.append(Literal(KEYWORDS[bit]))
        elif number_re.fullmatch(bit):
            args.append(Literal(to_number(bit)))
        else:
            try:
                args.append(FilterArgument(parse_path(bit), bit))
            except TemplateSyntaxError:
                args.append(FilterArgument(Path([bit]), bit))
    return args


def parse_filter(bit):
    """
    Compile one pipeline stage, ``name`` or ``name:arg1,arg2``, into a
    ``(name, args)`` pair.
    """
    match = filter_re.match(bit)
    if match is None:
        raise TemplateSyntaxError("Invalid filter: %r" % bit)
    name, arg_string = match.groups()
    return name, parse_filter_arguments(arg_string or '')
