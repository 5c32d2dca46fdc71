"""
This is the stencil template system.

How it works:

The Lexer.tokenize() method converts a template string (i.e., a string
containing markup with template tags) to tokens, which can be either plain
text (TokenType.TEXT), variables (TokenType.VAR), or block statements
(TokenType.BLOCK).

The Parser() class takes a list of tokens in its constructor, and its parse()
method returns a compiled template -- which is, under the hood, a list of
Node objects. The parser keeps an explicit stack of open blocks; a template
that closes a block it never opened, or ends with a block still open, is
rejected with TemplateSyntaxError and no tree is produced.

Each Node is responsible for creating some sort of output -- e.g. simple text
(TextNode), variable values in a given context (VariableNode), results of basic
logic (IfNode) or results of looping (ForNode).

Expressions inside tags ({{ price * quantity }}, {% if a && !b %}) are
compiled by stencil.expressions into small trees that are evaluated against
the context. Evaluation never raises for missing or mismatched data: an
unknown name, a bad index or an impossible comparison simply yields None.

Each Node has a render() method, which takes a Context and returns a string of
the rendered node. The compiled tree is never modified after parsing, so one
Template can be rendered any number of times, from several threads at once.

Sample code:

>>> from stencil import Engine
>>> t = Engine().from_string('<html>{% if test %}<h1>{{ varvalue }}</h1>{% endif %}</html>')
>>> t.render({'test': True, 'varvalue': 'Hello'})
'<html><h1>Hello</h1></html>'
>>> t.render({'test': False, 'varvalue': 'Hello'})
'<html></html>'
"""

import logging
import re
from enum import Enum

from django.utils.html import conditional_escape, escape
from django.utils.safestring import mark_safe
from django.utils.text import get_text_list

from .context import RenderContext, make_context
from .exceptions import DepthExceededError, FilterError, TemplateSyntaxError
from .expressions import (
    KEYWORDS, parse_expression, parse_filter, split_filter_pipeline,
)
from .values import is_list, is_map, is_truthy, stringify

# template syntax constants
BLOCK_TAG_START = '{%'
BLOCK_TAG_END = '%}'
VARIABLE_TAG_START = '{{'
VARIABLE_TAG_END = '}}'

# what to report as the origin for templates that come from strings without
# a name
UNKNOWN_SOURCE = '<unknown source>'

# match a variable or block tag and capture the entire tag, including start/end
# delimiters. Tags are matched shortest-first, may span lines and need at
# least one character between the delimiters.
tag_re = (re.compile('(%s.+?%s|%s.+?%s)' %
          (re.escape(BLOCK_TAG_START), re.escape(BLOCK_TAG_END),
           re.escape(VARIABLE_TAG_START), re.escape(VARIABLE_TAG_END)), re.DOTALL))

for_re = re.compile(r'^for\s+([^\W\d]\w*)\s+in\s+(.+)$', re.DOTALL)

# Used by extract_paths(); does not parse the template.
path_re = re.compile(
    r'%s\s*([\w.\[\]]+)\s*(?:\|[^}]*)?%s|%s\s*for\s+\w+\s+in\s+([\w.\[\]]+)\s*%s' %
    (re.escape(VARIABLE_TAG_START), re.escape(VARIABLE_TAG_END),
     re.escape(BLOCK_TAG_START), re.escape(BLOCK_TAG_END))
)

logger = logging.getLogger('stencil.template')


class TokenType(Enum):
    TEXT = 0
    VAR = 1
    BLOCK = 2


class Template:
    """
    A compiled template. Build it through an Engine (Engine.from_string) so
    it picks up that engine's options; with no engine the default one is
    used.
    """
    def __init__(self, template_string, engine=None, name=None):
        if engine is None:
            from .engine import Engine
            engine = Engine.get_default()
        self.name = name
        self.engine = engine
        self.source = str(template_string)
        # Copy of the engine's filters as they are now; later add_filter() or
        # remove_filter() calls on the engine do not reach this template.
        self.filters = engine.filters
        self.nodelist = self.compile_nodelist()

    def __repr__(self):
        return '<%s: %s>' % (self.__class__.__name__, self.name or UNKNOWN_SOURCE)

    def render(self, context=None):
        "Display stage -- can be called many times"
        render_context = RenderContext(
            template=self,
            filters=self.filters,
            autoescape=self.engine.autoescape,
            max_depth=self.engine.max_depth,
        )
        return self.nodelist.render(make_context(context, render_context))

    def compile_nodelist(self):
        """
        Parse and compile the template source into a nodelist. If debug
        is True and an exception occurs during parsing, the exception is
        annotated with contextual line information where it occurred in the
        template source.
        """
        if self.engine.debug:
            lexer = DebugLexer(self.source)
        else:
            lexer = Lexer(self.source)

        tokens = lexer.tokenize()
        parser = Parser(tokens, self.name or UNKNOWN_SOURCE)

        try:
            return parser.parse()
        except TemplateSyntaxError as e:
            if self.engine.debug:
                e.template_debug = self.get_exception_info(e, e.token)
            raise

    def get_exception_info(self, exception, token):
        """
        Return a dictionary containing contextual line information of where
        the exception occurred in the template: the message, the line number,
        the surrounding source lines and the offending line split into
        before/during/after the token. Only available when the tokens carry
        positions, i.e. when the engine runs with debug=True.
        """
        start, end = token.position
        context_lines = 10
        line = 0
        upto = 0
        source_lines = []
        before = during = after = ""
        for num, next in enumerate(linebreak_iter(self.source)):
            if start >= upto and end <= next:
                line = num
                before = escape(self.source[upto:start])
                during = escape(self.source[start:end])
                after = escape(self.source[end:next])
            source_lines.append((num, escape(self.source[upto:next])))
            upto = next
        total = len(source_lines)

        top = max(1, line - context_lines)
        bottom = min(total, line + 1 + context_lines)

        return {
            'message': str(exception),
            'source_lines': source_lines[top:bottom],
            'before': before,
            'during': during,
            'after': after,
            'top': top,
            'bottom': bottom,
            'total': total,
            'line': line,
            'name': self.name or UNKNOWN_SOURCE,
            'start': start,
            'end': end,
        }


def linebreak_iter(template_source):
    yield 0
    p = template_source.find('\n')
    while p >= 0:
        yield p + 1
        p = template_source.find('\n', p + 1)
    yield len(template_source) + 1


class Token:
    def __init__(self, token_type, contents, position=None, lineno=None):
        """
        A token representing a string from the template.

        token_type
            A TokenType, either .TEXT, .VAR or .BLOCK.

        contents
            The token source string; for tags, the trimmed text between the
            delimiters.

        position
            An optional tuple containing the start and end index of the token
            in the template source. This is used for traceback information
            when debug is on.

        lineno
            The line number the token appears on in the template source.
        """
        self.token_type, self.contents = token_type, contents
        self.lineno = lineno
        self.position = position

    def __str__(self):
        token_name = self.token_type.name.capitalize()
        return ('<%s token: "%s...">' %
                (token_name, self.contents[:20].replace('\n', '')))

    @property
    def command(self):
        "The first word of a block tag, e.g. 'for' or 'endif'."
        bits = self.contents.split(None, 1)
        return bits[0] if bits else ''


class Lexer:
    def __init__(self, template_string):
        self.template_string = template_string

    def tokenize(self):
        """
        Return a list of tokens from a given template_string.
        """
        in_tag = False
        lineno = 1
        result = []
        for bit in tag_re.split(self.template_string):
            if bit:
                result.append(self.create_token(bit, None, lineno, in_tag))
            in_tag = not in_tag
            lineno += bit.count('\n')
        return result

    def create_token(self, token_string, position, lineno, in_tag):
        """
        Convert the given token string into a new Token object and return it.
        If in_tag is True, we are processing something that matched a tag,
        otherwise it should be treated as a literal string.
        """
        if in_tag:
            # The [2:-2] ranges below strip off *_TAG_START and *_TAG_END.
            content = token_string[2:-2].strip()
            if token_string.startswith(VARIABLE_TAG_START):
                return Token(TokenType.VAR, content, position, lineno)
            return Token(TokenType.BLOCK, content, position, lineno)
        return Token(TokenType.TEXT, token_string, position, lineno)


class DebugLexer(Lexer):
    def tokenize(self):
        """
        Split a template string into tokens and annotates each token with its
        start and end position in the source. This is slower than the default
        lexer so only use it when debug is True.
        """
        lineno = 1
        result = []
        upto = 0
        for match in tag_re.finditer(self.template_string):
            start, end = match.span()
            if start > upto:
                token_string = self.template_string[upto:start]
                result.append(self.create_token(token_string, (upto, start), lineno, in_tag=False))
                lineno += token_string.count('\n')
            token_string = self.template_string[start:end]
            result.append(self.create_token(token_string, (start, end), lineno, in_tag=True))
            lineno += token_string.count('\n')
            upto = end
        last_bit = self.template_string[upto:]
        if last_bit:
            result.append(self.create_token(last_bit, (upto, upto + len(last_bit)), lineno, in_tag=False))
        return result


class Frame:
    """
    An open block on the parser stack: its kind ('root', 'for' or 'if'), the
    node that opened it and the node list that new nodes are appended to.
    For an 'if' frame that list is the body of its latest branch.
    """
    def __init__(self, kind, nodelist, node=None, token=None):
        self.kind = kind
        self.nodelist = nodelist
        self.node = node
        self.token = token

    def __repr__(self):
        return '<%s: %s>' % (self.__class__.__name__, self.kind)

    @property
    def closing_tags(self):
        "Block tags that may legally come next to continue or close this frame."
        if self.kind == 'for':
            return ('endfor',)
        if self.kind == 'if':
            if self.node.has_else:
                return ('endif',)
            return ('elif', 'else', 'endif')
        return ()


class Parser:
    def __init__(self, tokens, origin=None):
        self.tokens = tokens
        self.origin = origin
        self.tags = {
            'for': self.do_for,
            'endfor': self.do_endfor,
            'if': self.do_if,
            'elif': self.do_elif,
            'else': self.do_else,
            'endif': self.do_endif,
        }
        self.stack = []

    def parse(self):
        """
        Iterate through the tokens and compile each one into a node appended
        to the innermost open block. Return the root NodeList.
        """
        nodelist = NodeList()
        self.stack = [Frame('root', nodelist)]
        for token in self.tokens:
            # Use the raw values here for TokenType.* for a tiny performance boost.
            if token.token_type.value == 0:  # TokenType.TEXT
                self.extend_nodelist(TextNode(token.contents), token)
            elif token.token_type.value == 1:  # TokenType.VAR
                if not token.contents:
                    raise self.error(token, 'Empty variable tag on line %d' % token.lineno)
                try:
                    filter_expression = self.compile_filter(token.contents)
                except TemplateSyntaxError as e:
                    raise self.error(token, e)
                self.extend_nodelist(VariableNode(filter_expression), token)
            elif token.token_type.value == 2:  # TokenType.BLOCK
                command = token.command
                if not command:
                    raise self.error(token, 'Empty block tag on line %d' % token.lineno)
                try:
                    compile_func = self.tags[command]
                except KeyError:
                    raise self.invalid_block_tag(token, command)
                try:
                    compile_func(token)
                except TemplateSyntaxError as e:
                    raise self.error(token, e)
        if len(self.stack) > 1:
            raise self.unclosed_block_tag()
        return nodelist

    def extend_nodelist(self, node, token):
        # Set origin and token here since we can't modify the node __init__()
        # method.
        node.token = token
        node.origin = self.origin
        self.stack[-1].nodelist.append(node)

    def open_block(self, kind, node, nodelist, token):
        self.extend_nodelist(node, token)
        self.stack.append(Frame(kind, nodelist, node, token))

    def close_block(self, kind, token):
        self.expect_no_arguments(token)
        if self.stack[-1].kind != kind:
            raise self.unexpected_block_tag(token)
        self.stack.pop()

    def current_if_frame(self, token):
        frame = self.stack[-1]
        if frame.kind != 'if':
            raise self.unexpected_block_tag(token)
        if frame.node.has_else:
            raise TemplateSyntaxError(
                "Unexpected '%s' on line %d: '%s' cannot follow 'else'." %
                (token.command, token.lineno, token.command)
            )
        return frame

    def error(self, token, e):
        """
        Return an exception annotated with the originating token.
        """
        if not isinstance(e, Exception):
            e = TemplateSyntaxError(e)
        if getattr(e, 'token', None) is None:
            e.token = token
        return e

    def invalid_block_tag(self, token, command):
        closing_tags = self.stack[-1].closing_tags
        if closing_tags:
            return self.error(
                token,
                "Invalid block tag on line %d: '%s', expected %s." % (
                    token.lineno,
                    command,
                    get_text_list(["'%s'" % p for p in closing_tags], 'or'),
                ),
            )
        return self.error(
            token,
            "Invalid block tag on line %d: '%s'." % (token.lineno, command),
        )

    def unexpected_block_tag(self, token):
        closing_tags = self.stack[-1].closing_tags
        if closing_tags:
            return TemplateSyntaxError(
                "Unexpected '%s' on line %d, expected %s." % (
                    token.command,
                    token.lineno,
                    get_text_list(["'%s'" % p for p in closing_tags], 'or'),
                )
            )
        return TemplateSyntaxError(
            "Unexpected '%s' on line %d." % (token.command, token.lineno)
        )

    def unclosed_block_tag(self):
        frame = self.stack[-1]
        msg = "Unclosed tag on line %d: '%s'. Looking for one of: %s." % (
            frame.token.lineno,
            frame.kind,
            ', '.join(frame.closing_tags),
        )
        return self.error(frame.token, msg)

    def expect_no_arguments(self, token):
        if token.contents != token.command:
            raise TemplateSyntaxError(
                "'%s' takes no arguments (line %d)." % (token.command, token.lineno)
            )

    def parse_condition(self, token):
        bits = token.contents.split(None, 1)
        if len(bits) < 2:
            raise TemplateSyntaxError(
                "Malformed '%s' tag on line %d: a condition is required." %
                (token.command, token.lineno)
            )
        return parse_expression(bits[1])

    def compile_filter(self, token):
        """
        Convenient wrapper for FilterExpression
        """
        return FilterExpression(token)

    # Block tags

    def do_for(self, token):
        """
        Loop over each item of a list, or each value of a mapping, binding it
        to a name for the body of the block::

            {% for athlete in athlete_list %}
                <li>{{ athlete.name }}</li>
            {% endfor %}

        Anything else (None, numbers, strings) renders the body zero times.
        """
        match = for_re.match(token.contents)
        if match is None:
            raise TemplateSyntaxError(
                "Malformed 'for' tag on line %d: expected 'for <name> in <expression>', got %r." %
                (token.lineno, token.contents)
            )
        loopvar, sequence = match.groups()
        node = ForNode(loopvar, parse_expression(sequence.strip()), NodeList())
        self.open_block('for', node, node.nodelist_loop, token)

    def do_endfor(self, token):
        self.close_block('for', token)

    def do_if(self, token):
        """
        Evaluate conditions in order and render the first branch whose
        condition is truthy, or the ``else`` branch::

            {% if athlete_list && coach_list %}
                Both athletes and coaches are available.
            {% elif athlete_list %}
                Only athletes.
            {% else %}
                Nobody.
            {% endif %}
        """
        condition = self.parse_condition(token)
        node = IfNode([(condition, NodeList())])
        self.open_block('if', node, node.conditions_nodelists[0][1], token)

    def do_elif(self, token):
        frame = self.current_if_frame(token)
        condition = self.parse_condition(token)
        nodelist = NodeList()
        frame.node.conditions_nodelists.append((condition, nodelist))
        frame.nodelist = nodelist

    def do_else(self, token):
        self.expect_no_arguments(token)
        frame = self.current_if_frame(token)
        nodelist = NodeList()
        frame.node.conditions_nodelists.append((None, nodelist))
        frame.nodelist = nodelist

    def do_endif(self, token):
        self.close_block('if', token)


class FilterExpression:
    """
    Parse a variable token -- an expression followed by optional filters --
    and resolve it against a context. Sample::

        >>> fe = FilterExpression('user.name|upper|truncate:8')
        >>> fe.var
        <Path: user.name>
        >>> fe.filters
        [('upper', []), ('truncate', [<Literal: 8>])]
    """
    def __init__(self, token):
        self.token = token
        expression, *filter_bits = split_filter_pipeline(token)
        if not expression:
            raise TemplateSyntaxError("Could not find variable at start of %s." % token)
        self.var = parse_expression(expression)
        self.filters = [parse_filter(bit) for bit in filter_bits]

    def resolve(self, context):
        obj = self.var.eval(context)
        filters = context.render_context.filters
        for name, args in self.filters:
            func = filters.get(name)
            if func is None:
                logger.debug(
                    "Skipping unregistered filter '%s' in template '%s'.",
                    name,
                    context.template_name,
                )
                continue
            arg_vals = [arg.eval(context) for arg in args]
            try:
                obj = func(obj, *arg_vals)
            except Exception as e:
                logger.debug(
                    "Exception while applying filter '%s' in template '%s'.",
                    name,
                    context.template_name,
                    exc_info=True,
                )
                raise FilterError(name, e) from e
        return obj

    def __str__(self):
        return self.token


class Node:
    child_nodelists = ('nodelist',)
    token = None
    origin = None

    def render(self, context):
        """
        Return the node rendered as a string.
        """
        pass

    def render_annotated(self, context):
        """
        Render the node. A render error escaping from here is tagged with the
        token of the innermost node it passed through and, if debug is True,
        annotated with contextual line information where it occurred in the
        template. For internal usage this method is preferred over using the
        render method directly.
        """
        try:
            return self.render(context)
        except (FilterError, DepthExceededError) as e:
            if e.token is None:
                e.token = self.token
            template = context.render_context.template
            if (template is not None and template.engine.debug and
                    e.token is not None and not hasattr(e, 'template_debug')):
                e.template_debug = template.get_exception_info(e, e.token)
            raise

    def get_nodes_by_type(self, nodetype):
        """
        Return a list of all nodes (within this node and its nodelist)
        of the given type
        """
        nodes = []
        if isinstance(self, nodetype):
            nodes.append(self)
        for attr in self.child_nodelists:
            nodelist = getattr(self, attr, None)
            if nodelist:
                nodes.extend(nodelist.get_nodes_by_type(nodetype))
        return nodes


class NodeList(list):
    def render(self, context):
        bits = []
        for node in self:
            bits.append(node.render_annotated(context))
        return mark_safe(''.join(bits))

    def get_nodes_by_type(self, nodetype):
        "Return a list of all nodes of the given type"
        nodes = []
        for node in self:
            nodes.extend(node.get_nodes_by_type(nodetype))
        return nodes


class TextNode(Node):
    def __init__(self, s):
        self.s = s

    def __repr__(self):
        return "<%s: %r>" % (self.__class__.__name__, self.s[:25])

    def render(self, context):
        return self.s


def render_value_in_context(value, context):
    """
    Convert any value to a string to become part of a rendered template. This
    means escaping, if required, and conversion to a string. Values already
    marked safe are not escaped a second time.
    """
    value = stringify(value)
    if context.render_context.autoescape:
        return conditional_escape(value)
    return value


class VariableNode(Node):
    def __init__(self, filter_expression):
        self.filter_expression = filter_expression

    def __repr__(self):
        return "<Variable Node: %s>" % self.filter_expression

    def render(self, context):
        output = self.filter_expression.resolve(context)
        return render_value_in_context(output, context)


class ForNode(Node):
    child_nodelists = ('nodelist_loop',)

    def __init__(self, loopvar, sequence, nodelist_loop):
        self.loopvar, self.sequence = loopvar, sequence
        self.nodelist_loop = nodelist_loop

    def __repr__(self):
        return '<%s: for %s in %r, tail_len: %d>' % (
            self.__class__.__name__, self.loopvar, self.sequence, len(self.nodelist_loop),
        )

    def render(self, context):
        values = self.sequence.eval(context)
        if is_map(values):
            values = list(values.values())
        elif not is_list(values):
            return ''
        with context.render_context.push_state(self):
            return ''.join(
                self.nodelist_loop.render(context.push(self.loopvar, item))
                for item in values
            )


class IfNode(Node):

    def __init__(self, conditions_nodelists):
        self.conditions_nodelists = conditions_nodelists

    def __repr__(self):
        return '<%s>' % self.__class__.__name__

    @property
    def has_else(self):
        return any(condition is None for condition, _ in self.conditions_nodelists)

    @property
    def nodelist(self):
        return NodeList(node for _, nodelist in self.conditions_nodelists for node in nodelist)

    def render(self, context):
        for condition, nodelist in self.conditions_nodelists:
            if condition is None or is_truthy(condition.eval(context)):
                with context.render_context.push_state(self):
                    return nodelist.render(context)
        return ''


def extract_paths(template_string):
    """
    Return the set of paths referenced by ``{{ path }}`` tags (with or
    without filters) and ``{% for x in path %}`` tags, without compiling the
    template. Best effort: paths inside larger expressions or conditions are
    not reported, and nothing is validated.

    >>> sorted(extract_paths('{% for i in user.items %}{{ i.name|upper }}{% endfor %}'))
    ['i.name', 'user.items']
    """
    paths = set()
    for match in path_re.finditer(template_string):
        path = match.group(1) or match.group(2)
        if path[0].isdigit() or path in KEYWORDS:
            continue
        paths.add(path)
    return paths
