# latex.py - LaTeX input conversion and LaTeX export
import logging
import re
from typing import Any, List, Optional, Tuple, Union

import sympy as sp
from sympy import Expr, latex as sympy_latex

from .errors import ParseError, message_for

logger = logging.getLogger(__name__)


# macros rendered as plain function names taking one argument
_FUNCTION_MACROS = {
    "sin": "sin", "cos": "cos", "tan": "tan", "sec": "sec", "csc": "csc", "cot": "cot",
    "sinh": "sinh", "cosh": "cosh", "tanh": "tanh",
    "arcsin": "asin", "arccos": "acos", "arctan": "atan",
    "exp": "exp", "ln": "log",
}
_INVERSE = {
    "sin": "asin", "cos": "acos", "tan": "atan", "sec": "asec", "csc": "acsc", "cot": "acot",
    "sinh": "asinh", "cosh": "acosh", "tanh": "atanh",
}
_SYMBOL_MACROS = {
    "pi": " pi ", "theta": " theta ", "phi": " phi ", "alpha": " alpha ", "beta": " beta ",
    "gamma": " gamma ", "delta": " delta ", "mu": " mu ", "sigma": " sigma ", "omega": " omega ",
    "tau": " tau ", "infty": " oo ",
    "cdot": "*", "times": "*", "div": "/", "pm": "+", "mp": "-",
    "ne": "!=", "le": "<=", "leq": "<=", "ge": ">=", "geq": ">=", "lt": "<", "gt": ">",
    "vert": "|", "lvert": "|", "rvert": "|",
}
_SPACING = {",", ";", ":", "!", " ", "quad", "qquad"}
_DELIMITERS = {"(": "(", ")": ")", "[": "(", "]": ")", "|": "|", ".": "", "\\{": "{", "\\}": "}"}
# plain function names that may appear verbatim inside LaTeX input
_PLAIN_NAMES = ("nthRoot", "log10", "sqrt", "sign", "floor", "ceil", "prod", "sum",
                "abs", "exp", "sin", "cos", "tan", "log", "ln")

_SECOND_DERIVATIVE_RE = re.compile(r"\\frac\{d\^\{?2\}?y\}\{dx\^\{?2\}?\}")
_FIRST_DERIVATIVE_RE = re.compile(r"\\frac\{dy\}\{dx\}")
_DIFFERENTIAL_RE = re.compile(r"^(.*?)\s*(?:\\,|\\;|\\!|\s)*d([a-zA-Z])\s*$", re.S)


# ------------------------ LaTeX -> plain text scanner ------------------------
class _Scanner:
    """
    Single pass converter over a normalized LaTeX string.

    Groups ``{...}`` become parenthesised sub-expressions, adjacent letters are
    emitted as separate tokens so that ``xy`` reads as a product.
    """
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def skip_spaces(self) -> None:
        while self.peek().isspace():
            self.pos += 1

    def fail(self, code: str, detail: str) -> None:
        raise ParseError(message_for(code, detail), code=code, equation=self.text)

    def read_macro(self) -> str:
        # assumes text[pos] == '\\'
        self.pos += 1
        start = self.pos
        while self.peek().isalpha():
            self.pos += 1
        if self.pos == start:
            self.pos += 1  # single symbol macro such as \, or \{
        return self.text[start:self.pos]

    def read_group_raw(self) -> str:
        """Raw text of the next argument: a brace group, a macro or a single character."""
        self.skip_spaces()
        ch = self.peek()
        if not ch:
            self.fail("2004", "missing argument")
        if ch == "{":
            depth = 0
            start = self.pos
            while self.pos < len(self.text):
                c = self.text[self.pos]
                if c == "\\":
                    self.pos += 2
                    continue
                if c == "{":
                    depth += 1
                elif c == "}":
                    depth -= 1
                    if depth == 0:
                        self.pos += 1
                        return self.text[start + 1:self.pos - 1]
                self.pos += 1
            self.fail("2001", self.text)
        if ch == "\\":
            start = self.pos
            self.read_macro()
            return self.text[start:self.pos]
        self.pos += 1
        return ch

    def read_optional(self) -> Optional[str]:
        self.skip_spaces()
        if self.peek() != "[":
            return None
        end = self.text.find("]", self.pos)
        if end < 0:
            self.fail("2001", self.text)
        raw = self.text[self.pos + 1:end]
        self.pos = end + 1
        return raw

    def read_parenthesised_raw(self) -> str:
        depth = 0
        start = self.pos
        while self.pos < len(self.text):
            c = self.text[self.pos]
            if c == "(":
                depth += 1
            elif c == ")":
                depth -= 1
                if depth == 0:
                    self.pos += 1
                    return self.text[start + 1:self.pos - 1]
            self.pos += 1
        self.fail("2001", self.text)

    def read_function_argument(self) -> str:
        """Argument of \\sin, \\ln ... : (..), \\left(..\\right), {..} or one term such as ``2x``."""
        self.skip_spaces()
        ch = self.peek()
        if ch == "(":
            return convert(self.read_parenthesised_raw())
        if self.text.startswith("\\left", self.pos):
            start = self.pos
            body = self.read_left_right()
            return body if body else convert(self.text[start:self.pos])
        if ch == "{":
            return convert(self.read_group_raw())
        start = self.pos
        while self.peek() and (self.peek().isalnum() or self.peek() == "."):
            self.pos += 1
        if self.pos > start:
            return convert(self.text[start:self.pos])
        if ch == "\\":
            return convert(self.read_group_raw())
        self.fail("2004", "missing function argument")

    def read_left_right(self) -> str:
        """Consume ``\\left( ... \\right)`` and return the converted inner text."""
        self.pos += len("\\left")
        self.skip_spaces()
        opener = self.read_delimiter()
        depth = 1
        start = self.pos
        while self.pos < len(self.text):
            if self.text.startswith("\\left", self.pos):
                depth += 1
                self.pos += len("\\left")
            elif self.text.startswith("\\right", self.pos):
                depth -= 1
                if depth == 0:
                    inner = self.text[start:self.pos]
                    self.pos += len("\\right")
                    self.skip_spaces()
                    closer = self.read_delimiter()
                    body = convert(inner)
                    if opener == "|":
                        return f"abs({body})"
                    return f"{opener}{body}{closer}"
                self.pos += len("\\right")
            else:
                self.pos += 1
        self.fail("2001", self.text)

    def read_delimiter(self) -> str:
        if self.text.startswith("\\{", self.pos) or self.text.startswith("\\}", self.pos):
            token = self.text[self.pos:self.pos + 2]
            self.pos += 2
        else:
            token = self.peek()
            self.pos += 1
        if token not in _DELIMITERS:
            self.fail("2002", token)
        return _DELIMITERS[token]

    def read_term_raw(self) -> str:
        """Raw text up to the next top-level + - = or end, used as a series body."""
        depth = 0
        start = self.pos
        while self.pos < len(self.text):
            c = self.text[self.pos]
            if c in "({[":
                depth += 1
            elif c in ")}]":
                if depth == 0:
                    break
                depth -= 1
            elif c in "+-=<>" and depth == 0 and self.pos > start:
                break
            elif c == "\\":
                self.pos += 2
                continue
            self.pos += 1
        return self.text[start:self.pos]


def _series(scanner: _Scanner, name: str) -> str:
    lower, upper = None, None
    for _ in range(2):
        scanner.skip_spaces()
        if scanner.peek() == "_":
            scanner.pos += 1
            lower = scanner.read_group_raw()
        elif scanner.peek() == "^":
            scanner.pos += 1
            upper = scanner.read_group_raw()
    if lower is None or upper is None:
        scanner.fail("2003", f"\\{name}")
    if "=" in lower:
        index, lo = lower.split("=", 1)
        index = index.strip()
    else:
        index, lo = "n", lower
    if not re.fullmatch(r"[a-zA-Z]", index):
        scanner.fail("2003", lower)
    scanner.skip_spaces()
    body = convert(scanner.read_term_raw())
    if not body:
        scanner.fail("2003", f"\\{name}")
    return f" {name}({body}, {index}, {convert(lo)}, {convert(upper)})"


def _integral(scanner: _Scanner) -> str:
    lower, upper = None, None
    for _ in range(2):
        scanner.skip_spaces()
        if scanner.peek() == "_":
            scanner.pos += 1
            lower = scanner.read_group_raw()
        elif scanner.peek() == "^":
            scanner.pos += 1
            upper = scanner.read_group_raw()
    rest = scanner.text[scanner.pos:]
    m = _DIFFERENTIAL_RE.match(rest)
    if not m:
        scanner.fail("2003", "\\int without differential")
    scanner.pos = len(scanner.text)
    body, var = convert(m.group(1)), m.group(2)
    if (lower is None) != (upper is None):
        scanner.fail("2003", "\\int")
    if lower is None:
        return f" int({body}, {var})"
    return f" int({body}, {var}, {convert(lower)}, {convert(upper)})"


def convert(text: str) -> str:
    """Convert normalized LaTeX to plain infix text. Raises ParseError."""
    sc = _Scanner(text)
    out: List[str] = []
    while sc.pos < len(text):
        ch = sc.peek()
        if ch == "\\":
            if text.startswith("\\left", sc.pos):
                out.append(sc.read_left_right())
                continue
            if text.startswith("\\right", sc.pos):
                sc.fail("2001", text)
            name = sc.read_macro()
            out.append(_macro(sc, name))
        elif ch == "{":
            out.append(f"({convert(sc.read_group_raw())})")
        elif ch == "}":
            sc.fail("2001", text)
        elif ch in "^_":
            sc.pos += 1
            arg = convert(sc.read_group_raw())
            if ch == "^":
                out.append(f"^({arg})")
            elif re.fullmatch(r"\w+", arg):
                out.append(f"_{arg}")
        elif ch.isalpha():
            word = next((w for w in _PLAIN_NAMES if text.startswith(w + "(", sc.pos)), None)
            if word:
                out.append(f" {word}")
                sc.pos += len(word)
            else:
                out.append(f" {ch}")
                sc.pos += 1
        else:
            out.append(ch)
            sc.pos += 1
    return re.sub(r"\s+", " ", "".join(out)).strip()


def _macro(sc: _Scanner, name: str) -> str:
    if name in _SPACING:
        return " "
    if name in ("{", "}"):
        return name
    if name == "|":
        return "|"
    if name in _SYMBOL_MACROS:
        return _SYMBOL_MACROS[name]
    if name == "frac":
        num = convert(sc.read_group_raw())
        den = convert(sc.read_group_raw())
        return f"(({num})/({den}))"
    if name == "sqrt":
        index = sc.read_optional()
        body = convert(sc.read_group_raw())
        if index is not None:
            return f" nthRoot({body}, {convert(index)})"
        return f" sqrt({body})"
    if name in _FUNCTION_MACROS or name in ("log", "operatorname"):
        return _function(sc, name)
    if name in ("sum", "prod"):
        return _series(sc, name)
    if name == "int":
        return _integral(sc)
    if name in ("mathrm", "text", "mathit"):
        return f" {convert(sc.read_group_raw())}"
    sc.fail("2002", f"\\{name}")


def _function(sc: _Scanner, name: str) -> str:
    if name == "operatorname":
        fn = sc.read_group_raw().strip()
        if not re.fullmatch(r"[A-Za-z]+", fn):
            sc.fail("2002", fn)
    elif name == "log":
        fn = "log10"
        sc.skip_spaces()
        if sc.peek() == "_":
            sc.pos += 1
            base = convert(sc.read_group_raw())
            arg = sc.read_function_argument()
            return f" log({arg}, {base})"
    else:
        fn = _FUNCTION_MACROS[name]

    power = None
    sc.skip_spaces()
    if sc.peek() == "^":
        sc.pos += 1
        power = convert(sc.read_group_raw()).strip()
        if power.replace(" ", "") in ("-1", "(-1)") and name in _INVERSE:
            fn, power = _INVERSE[name], None
    arg = sc.read_function_argument()
    if power is not None:
        return f" {fn}({arg})^({power})"
    return f" {fn}({arg})"


# ------------------------ Public API ------------------------
class LaTeXConverter:
    """
    Conversion between LaTeX and the plain infix syntax of the compiler.

    Methods:
      - normalize : rewrite macro synonyms (\\dfrac, \\neq, \\frac12, \\abs)
      - to_plain  : LaTeX -> plain text, None when the input is malformed
      - convert   : like to_plain but raises ParseError
      - from_expr : sympy Expr -> LaTeX
      - from_plain: plain text -> LaTeX
      - export    : write any sympy Expr to a .tex file
    """

    @staticmethod
    def normalize(latex: str) -> str:
        s = latex.replace("\\dfrac", "\\frac").replace("\\tfrac", "\\frac")
        s = re.sub(r"\\frac\s*([A-Za-z0-9])\s*([A-Za-z0-9])", r"\\frac{\1}{\2}", s)
        s = s.replace("\\neq", "\\ne")
        s = re.sub(r"\\abs\s*\(", "abs(", s)
        s = re.sub(r"\\abs\{([^{}]+)\}", r"abs(\1)", s)
        s = _SECOND_DERIVATIVE_RE.sub("y''", s)
        s = _FIRST_DERIVATIVE_RE.sub("y'", s)
        s = s.replace("^{\\prime\\prime}", "''").replace("^{\\prime}", "'").replace("^\\prime", "'")
        return s

    @staticmethod
    def convert(latex: str) -> str:
        if not latex.strip():
            raise ParseError(message_for("2000"), code="2000")
        if latex.count("{") - latex.count("\\{") != latex.count("}") - latex.count("\\}"):
            raise ParseError(message_for("2001", latex), code="2001", equation=latex)
        return convert(LaTeXConverter.normalize(latex).strip())

    @staticmethod
    def to_plain(latex: str) -> Optional[str]:
        try:
            return LaTeXConverter.convert(latex)
        except ParseError as exc:
            logger.debug("LaTeX conversion failed: %s", exc)
            return None

    @staticmethod
    def from_expr(expr: Union[Expr, Any]) -> str:
        return sympy_latex(sp.sympify(expr))

    @staticmethod
    def from_plain(source: str) -> str:
        """Render plain text as LaTeX; the input is returned unchanged when it does not parse."""
        from .compiler import parse_plain
        try:
            return sympy_latex(parse_plain(source))
        except ParseError:
            return source

    @staticmethod
    def export(expr: Expr, filename: str) -> None:
        """
        Export any sympy Expr to a .tex file as display math.
        """
        with open(filename, 'w') as f:
            f.write("\\[")
            f.write(sympy_latex(expr))
            f.write("\\]")

# End of latex.py
