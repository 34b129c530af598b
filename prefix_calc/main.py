# Command-line prefix-notation calculator REPL: recursive-descent parser, expression tree, evaluator,
# result history, and a thin read-eval-print shell.
#
# Each input line holds one expression in prefix (Polish) notation, e.g. "+ 3 * 8 / 2 3".
# Results of successful lines are kept in a history and can be referenced from later lines as
# $0, $1, ... Values are signed 64-bit integers; division truncates toward zero.
#
# Error reporting:
# - Parse errors name the offending token. A malformed operand is reported as an arity error of its
#   nearest enclosing operator; the inner cause is not shown.
# - Evaluation errors (bad history index, division by zero, factorial of a non-positive number,
#   overflow) only fail the current line. The session keeps prompting.

from __future__ import annotations

import logging
import math
import os
import re
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, TextIO, Tuple, Union

from dotenv import load_dotenv
from prompt_toolkit import PromptSession
from prompt_toolkit.history import InMemoryHistory

logger = logging.getLogger(__name__)

PROMPT = "# "

LOG_LEVEL_ENV = "PREFIX_CALC_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Values are signed 64-bit integers; history indices are unsigned 64-bit.
INT_MIN = -2 ** 63
INT_MAX = 2 ** 63 - 1
INDEX_MAX = 2 ** 64 - 1
MAX_FACTORIAL_ARG = 20  # 21! > INT_MAX

# --------------------------
# Exceptions
# --------------------------

class CalculatorError(Exception):
    """Base class for errors that fail a single input line."""
    pass

class ParseError(CalculatorError):
    """Raised when a token stream is not a well-formed prefix expression."""
    pass

class EvalError(CalculatorError):
    """Raised when a well-formed expression cannot be evaluated."""
    pass

class UnexpectedEndOfInput(ParseError):
    def __init__(self) -> None:
        super().__init__("Expected arguments at the end of input.")

class InvalidVariableName(ParseError):
    def __init__(self, token: str) -> None:
        self.token = token
        super().__init__(f"Expected valid number as a variable name, instead got '{token}'.")

class BinaryOperatorArityError(ParseError):
    def __init__(self, token: str) -> None:
        self.token = token
        super().__init__(f"Binary operator '{token}' expected two arguments.")

class UnaryOperatorArityError(ParseError):
    def __init__(self, token: str) -> None:
        self.token = token
        super().__init__(f"Unary operator '{token}' expected an argument.")

class UnrecognizedToken(ParseError):
    def __init__(self, token: str) -> None:
        self.token = token
        super().__init__(f"Unexpected input '{token}'.")

class InvalidVariableIndex(EvalError):
    def __init__(self, index: int) -> None:
        self.index = index
        super().__init__(f"Invalid variable index '{index}'.")

class DivisionByZero(EvalError):
    def __init__(self) -> None:
        super().__init__("Division by zero.")

class FactorialOfNonPositive(EvalError):
    def __init__(self, value: int) -> None:
        self.value = value
        super().__init__("Expected a positive number as an argument to factorial.")

class IntegerOverflow(EvalError):
    def __init__(self) -> None:
        super().__init__("Integer overflow.")

class TrailingInput(CalculatorError):
    """Raised when tokens remain after a complete expression."""

    def __init__(self, token: str) -> None:
        self.token = token
        super().__init__(f"Expected end of line, instead found '{token}'.")

class NestingTooDeep(CalculatorError):
    """Raised when an expression nests deeper than the interpreter's recursion limit."""

    def __init__(self) -> None:
        super().__init__("Expression is nested too deeply.")

# --------------------------
# Operators
# --------------------------

class BinaryOperator(Enum):
    DIVISION = '/'
    SUBTRACTION = '-'
    MULTIPLICATION = '*'
    ADDITION = '+'

class UnaryOperator(Enum):
    ABS = 'abs'
    FACTORIAL = 'fact'
    NEGATION = 'neg'
    PREDECESSOR = 'pred'
    SIGNUM = 'sgn'
    SUCCESSOR = 'succ'

# Closed symbol tables. Enum values double as the canonical spelling used by render().
BINARY_SYMBOLS: Dict[str, BinaryOperator] = {op.value: op for op in BinaryOperator}

UNARY_SYMBOLS: Dict[str, UnaryOperator] = {op.value: op for op in UnaryOperator}
UNARY_SYMBOLS['!'] = UnaryOperator.FACTORIAL

# --------------------------
# Expression tree
# --------------------------

@dataclass(frozen=True)
class Literal:
    value: int

@dataclass(frozen=True)
class VariableRef:
    index: int

@dataclass(frozen=True)
class UnaryOp:
    op: UnaryOperator
    operand: Node

@dataclass(frozen=True)
class BinaryOp:
    op: BinaryOperator
    left: Node
    right: Node

Node = Union[Literal, VariableRef, UnaryOp, BinaryOp]

# --------------------------
# Parser (recursive descent over whitespace tokens)
# --------------------------

# ASCII digits only: int() would also accept '1_000', surrounding spaces and non-ASCII digits.
_INTEGER_RE = re.compile(r'[+-]?[0-9]+')
_INDEX_RE = re.compile(r'\+?[0-9]+')

# Enough digits for any 64-bit value once leading zeros are dropped.
_MAX_DIGITS = 20

def _bounded_int(text: str, low: int, high: int) -> Optional[int]:
    """Convert a sign-and-digits string, or return None when it falls outside [low, high]."""
    sign = text[0] if text[0] in '+-' else ''
    digits = text[len(sign):].lstrip('0') or '0'
    # int() refuses very long strings, so length is checked first
    if len(digits) > _MAX_DIGITS:
        return None
    value = int(sign + digits)
    return value if low <= value <= high else None

class Parser:
    """Recursive-descent parser for prefix expressions.

    The operator always precedes its operands, so the tree shape follows token order and no
    precedence or associativity rules are needed. parse() reads exactly one expression and leaves
    any remaining tokens in place; checking for the end of the line is the caller's job.
    """

    def __init__(self, tokens: Sequence[str]):
        self.tokens = tokens
        self.pos = 0

    def peek(self) -> Optional[str]:
        """Return the next token without consuming it, or None at the end of the stream."""
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def _advance(self) -> Optional[str]:
        tok = self.peek()
        if tok is not None:
            self.pos += 1
        return tok

    def parse(self) -> Node:
        return self.parse_value()

    def parse_value(self) -> Node:
        tok = self._advance()
        if tok is None:
            raise UnexpectedEndOfInput()
        # Classification order matters: '$' first, then integers, then operators.
        if tok.startswith('$'):
            name = tok[1:]
            index = _bounded_int(name, 0, INDEX_MAX) if _INDEX_RE.fullmatch(name) else None
            if index is None:
                raise InvalidVariableName(tok)
            return VariableRef(index)
        if _INTEGER_RE.fullmatch(tok):
            value = _bounded_int(tok, INT_MIN, INT_MAX)
            # Out-of-range literals fall through and end up unrecognized.
            if value is not None:
                return Literal(value)
        if tok in BINARY_SYMBOLS:
            try:
                left = self.parse_value()
                right = self.parse_value()
            except ParseError:
                raise BinaryOperatorArityError(tok) from None
            return BinaryOp(BINARY_SYMBOLS[tok], left, right)
        if tok in UNARY_SYMBOLS:
            try:
                operand = self.parse_value()
            except ParseError:
                raise UnaryOperatorArityError(tok) from None
            return UnaryOp(UNARY_SYMBOLS[tok], operand)
        raise UnrecognizedToken(tok)

def parse(tokens: Sequence[str]) -> Node:
    """Parse one expression from the start of a token sequence."""
    return Parser(tokens).parse()

# --------------------------
# Evaluator
# --------------------------

def _checked(value: int) -> int:
    if not INT_MIN <= value <= INT_MAX:
        raise IntegerOverflow()
    return value

def _truncating_div(left: int, right: int) -> int:
    # Python's // floors; the calculator rounds toward zero.
    quotient = abs(left) // abs(right)
    return quotient if (left < 0) == (right < 0) else -quotient

def _signum(value: int) -> int:
    return (value > 0) - (value < 0)

def _factorial(value: int) -> int:
    """Product 1 * 2 * ... * value. Zero is rejected along with negative numbers."""
    if value <= 0:
        raise FactorialOfNonPositive(value)
    if value > MAX_FACTORIAL_ARG:
        raise IntegerOverflow()
    return math.factorial(value)

def evaluate(node: Node, history: Sequence[int]) -> int:
    """Evaluate an expression tree against the results of earlier lines.

    Operands are evaluated before their operator, left before right, so when both operands of a
    binary operator would fail the left one's error is reported. Every intermediate value must fit
    in a signed 64-bit integer.
    """
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, VariableRef):
        if 0 <= node.index < len(history):
            return history[node.index]
        raise InvalidVariableIndex(node.index)
    if isinstance(node, UnaryOp):
        val = evaluate(node.operand, history)
        op = node.op
        if op is UnaryOperator.ABS:
            return _checked(abs(val))
        if op is UnaryOperator.FACTORIAL:
            return _factorial(val)
        if op is UnaryOperator.NEGATION:
            return _checked(-val)
        if op is UnaryOperator.PREDECESSOR:
            return _checked(val - 1)
        if op is UnaryOperator.SIGNUM:
            return _signum(val)
        return _checked(val + 1)
    if isinstance(node, BinaryOp):
        left_val = evaluate(node.left, history)
        right_val = evaluate(node.right, history)
        op = node.op
        if op is BinaryOperator.DIVISION:
            if right_val == 0:
                raise DivisionByZero()
            return _checked(_truncating_div(left_val, right_val))
        if op is BinaryOperator.SUBTRACTION:
            return _checked(left_val - right_val)
        if op is BinaryOperator.MULTIPLICATION:
            return _checked(left_val * right_val)
        return _checked(left_val + right_val)
    raise EvalError(f"Unsupported expression node: {type(node).__name__}")

# --------------------------
# Rendering
# --------------------------

def render(node: Node) -> str:
    """Return canonical prefix text for a tree; parsing the result gives back an equal tree."""
    if isinstance(node, Literal):
        return str(node.value)
    if isinstance(node, VariableRef):
        return f"${node.index}"
    if isinstance(node, UnaryOp):
        return f"{node.op.value} {render(node.operand)}"
    if isinstance(node, BinaryOp):
        return f"{node.op.value} {render(node.left)} {render(node.right)}"
    raise TypeError(f"Unsupported expression node: {type(node).__name__}")

# --------------------------
# Line processing
# --------------------------

def process_line(line: str, history: Sequence[int]) -> int:
    """Parse and evaluate one input line. The caller appends the result to the history."""
    tokens = line.split()
    try:
        parser = Parser(tokens)
        tree = parser.parse()
        leftover = parser.peek()
        if leftover is not None:
            raise TrailingInput(leftover)
        logger.debug(f"Parsed {len(tokens)} tokens into {type(tree).__name__}")
        return evaluate(tree, history)
    except RecursionError:
        raise NestingTooDeep() from None

# --------------------------
# Session / REPL
# --------------------------

class Session:
    """Result history for one run of the calculator."""

    def __init__(self):
        self.history: List[int] = []

    def evaluate_line(self, line: str) -> Tuple[bool, str]:
        """Evaluate a single line. Returns (ok, output); the history grows only when ok."""
        try:
            result = process_line(line, self.history)
        except CalculatorError as e:
            logger.debug(f"Line failed: {e}")
            return False, f"Error: {e}"
        text = str(result)
        self.history.append(result)
        logger.debug(f"${len(self.history) - 1} = {text}")
        return True, text

class REPL:
    """Read-Eval-Print Loop over text streams.

    When attached to a terminal, lines are read through prompt_toolkit for line editing and
    arrow-key recall; otherwise the input stream is read line by line.
    """

    def __init__(
        self,
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
        interactive: Optional[bool] = None,
    ):
        self.session = Session()
        self.input = stdin if stdin is not None else sys.stdin
        self.output = stdout if stdout is not None else sys.stdout
        self.error = stderr if stderr is not None else sys.stderr
        if interactive is None:
            interactive = _isatty(self.input) and _isatty(self.output)
        self.prompt_session: Optional[PromptSession] = None
        if interactive:
            self.prompt_session = PromptSession(history=InMemoryHistory())

    @property
    def history(self) -> List[int]:
        return self.session.history

    def _read_line(self) -> Optional[str]:
        """Prompt and read one line. Returns None at end of input."""
        if self.prompt_session is not None:
            try:
                return self.prompt_session.prompt(PROMPT)
            except EOFError:
                return None
        self.output.write(PROMPT)
        self.output.flush()
        line = self.input.readline()
        return line if line else None

    def repl_loop(self) -> None:
        logger.info("Calculator session started")
        while True:
            try:
                line = self._read_line()
            except KeyboardInterrupt:
                print("^C", file=self.output)
                continue
            if line is None:
                break
            ok, out = self.session.evaluate_line(line)
            if ok:
                print(out, file=self.output)
            else:
                print(out, file=self.error)
        logger.info(f"Calculator session ended after {len(self.history)} results")

def _isatty(stream: TextIO) -> bool:
    isatty = getattr(stream, 'isatty', None)
    return bool(isatty and isatty())

# --------------------------
# Configuration / entry point
# --------------------------

def resolve_log_level(name: Optional[str]) -> int:
    """Map a level name such as 'debug' to its logging constant, falling back to WARNING."""
    level = getattr(logging, (name or DEFAULT_LOG_LEVEL).strip().upper(), None)
    if isinstance(level, int):
        return level
    return getattr(logging, DEFAULT_LOG_LEVEL)

def configure_logging() -> int:
    level = resolve_log_level(os.getenv(LOG_LEVEL_ENV))
    logging.basicConfig(level=level, format=LOG_FORMAT)
    return level

def main(argv: Optional[List[str]] = None) -> int:
    # Load environment variables from .env file
    load_dotenv()
    configure_logging()
    repl = REPL()
    repl.repl_loop()
    return 0

if __name__ == '__main__':
    sys.exit(main())
