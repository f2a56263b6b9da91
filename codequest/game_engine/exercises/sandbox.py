"""Restricted interpreter for exercise submissions.

Submissions are parsed with the standard ``ast`` module, checked against a
whitelist of the constructs the bundled exercises need, and run by a small
tree-walking interpreter. Nothing is compiled or exec'd: user code only sees
its own names plus a handful of injected builtins, and it never reaches the
host process or the game state.

Resource limits:
- Every statement, loop iteration and comprehension element costs one step
- Wall-clock budget per submission, shared by every run made under it
- Maximum user-function call depth
- Ceilings on sequence sizes, integer sizes and exponents
- Captured ``print`` output is capped in lines and line length
- Values are sized before they are turned into text
"""

import ast
import operator
import re
import textwrap
import time
from collections import ChainMap
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Optional

from codequest.config import settings


class SandboxError(Exception):
    """Base class for sandbox failures."""


class UnsupportedSyntaxError(SandboxError):
    """Submission uses a construct outside the supported subset."""

    def __init__(self, message: str, lineno: Optional[int] = None):
        self.lineno = lineno
        if lineno is not None:
            message = f"line {lineno}: {message}"
        super().__init__(message)


class SandboxLimitError(SandboxError):
    """A resource ceiling was hit while running user code."""


class StepLimitExceeded(SandboxLimitError):
    """Too many execution steps, usually a loop that never ends."""


class ExecutionTimeout(SandboxLimitError):
    """Wall-clock budget exhausted."""


class CallDepthExceeded(SandboxLimitError):
    """User functions nested too deeply."""


class ResourceLimitExceeded(SandboxLimitError):
    """A value would grow beyond the allowed size."""


@dataclass(frozen=True)
class SandboxLimits:
    """Resource ceilings for one submission."""
    max_steps: int = 100_000
    timeout_seconds: float = 2.0
    max_call_depth: int = 50
    max_output_lines: int = 200
    max_line_length: int = 1_000
    max_sequence_length: int = 100_000
    max_exponent: int = 10_000
    max_int_bits: int = 100_000

    @classmethod
    def from_settings(cls) -> "SandboxLimits":
        return cls(
            max_steps=settings.evaluator_max_steps,
            timeout_seconds=settings.evaluator_timeout_seconds,
            max_call_depth=settings.evaluator_max_call_depth,
            max_output_lines=settings.evaluator_max_output_lines,
        )


# Node types the validator accepts
ALLOWED_NODES: frozenset[type] = frozenset({
    # Statements
    ast.Module, ast.FunctionDef, ast.arguments, ast.arg, ast.Return, ast.Pass,
    ast.Expr, ast.Assign, ast.AugAssign, ast.If, ast.While, ast.For,
    ast.Break, ast.Continue,
    # Expressions
    ast.Constant, ast.Name, ast.List, ast.Tuple, ast.Dict, ast.BinOp,
    ast.UnaryOp, ast.BoolOp, ast.Compare, ast.IfExp, ast.Call, ast.keyword,
    ast.Attribute, ast.Subscript, ast.Slice, ast.ListComp, ast.comprehension,
    ast.JoinedStr, ast.FormattedValue,
    # Contexts and operators
    ast.Load, ast.Store,
    ast.Add, ast.Sub, ast.Mult, ast.Div, ast.FloorDiv, ast.Mod, ast.Pow,
    ast.USub, ast.UAdd, ast.Not, ast.And, ast.Or,
    ast.Eq, ast.NotEq, ast.Lt, ast.LtE, ast.Gt, ast.GtE,
    ast.In, ast.NotIn, ast.Is, ast.IsNot,
})

# Friendlier names for common unsupported constructs
UNSUPPORTED_NAMES: dict[str, str] = {
    "Import": "import statements",
    "ImportFrom": "import statements",
    "ClassDef": "class definitions",
    "Lambda": "lambda expressions",
    "Try": "try/except blocks",
    "TryStar": "try/except blocks",
    "With": "with blocks",
    "Raise": "raise statements",
    "Assert": "assert statements",
    "Delete": "del statements",
    "Global": "global declarations",
    "Nonlocal": "nonlocal declarations",
    "GeneratorExp": "generator expressions",
    "SetComp": "set comprehensions",
    "DictComp": "dict comprehensions",
    "Set": "set literals",
    "Yield": "generators",
    "YieldFrom": "generators",
    "Await": "async code",
    "AsyncFunctionDef": "async code",
    "AsyncFor": "async code",
    "AsyncWith": "async code",
    "Starred": "star unpacking",
    "NamedExpr": "assignment expressions",
    "Match": "match statements",
    "BitAnd": "bitwise operators",
    "BitOr": "bitwise operators",
    "BitXor": "bitwise operators",
    "Invert": "bitwise operators",
    "LShift": "bitwise operators",
    "RShift": "bitwise operators",
    "MatMult": "matrix multiplication",
    "AnnAssign": "annotated assignments",
}

BINARY_OPERATORS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

COMPARISONS: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

# Methods user code may call, per exact value type
SAFE_METHODS: dict[type, frozenset[str]] = {
    list: frozenset({
        "append", "extend", "insert", "pop", "remove", "index", "count",
        "reverse", "sort", "copy", "clear",
    }),
    str: frozenset({
        "upper", "lower", "strip", "lstrip", "rstrip", "split", "join",
        "startswith", "endswith", "find", "index", "count",
        "isdigit", "isalpha", "isalnum", "isspace", "title", "capitalize",
    }),
    dict: frozenset({
        "get", "keys", "values", "items", "pop", "setdefault", "update",
        "copy", "clear",
    }),
}

_FORMAT_WIDTH = re.compile(r"\d+")
_PERCENT_SPEC = re.compile(r"%(?:\([^)]*\))?[-+ #0]*(\*|\d*)(?:\.(\*|\d*))?")


class _Validator(ast.NodeVisitor):
    """Rejects anything outside the supported subset."""

    def __init__(self) -> None:
        self._loop_depth = 0
        self._function_depth = 0
        self._call_targets: set[int] = set()

    def generic_visit(self, node: ast.AST) -> None:
        if type(node) not in ALLOWED_NODES:
            name = type(node).__name__
            label = UNSUPPORTED_NAMES.get(name, name)
            raise UnsupportedSyntaxError(
                f"{label} are not supported in this exercise",
                getattr(node, "lineno", None),
            )
        super().generic_visit(node)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        if node.decorator_list:
            raise UnsupportedSyntaxError("decorators are not supported", node.lineno)
        args = node.args
        if args.vararg or args.kwarg or args.kwonlyargs or args.posonlyargs:
            raise UnsupportedSyntaxError(
                "only plain positional parameters are supported", node.lineno
            )
        self._check_name(node.name, node)
        for arg in args.args:
            self._check_name(arg.arg, node)
        for default in args.defaults:
            self.visit(default)

        # Annotations are never evaluated, so they are not visited
        outer_loops = self._loop_depth
        self._loop_depth = 0
        self._function_depth += 1
        for stmt in node.body:
            self.visit(stmt)
        self._function_depth -= 1
        self._loop_depth = outer_loops

    def visit_Return(self, node: ast.Return) -> None:
        if not self._function_depth:
            raise UnsupportedSyntaxError("'return' outside function", node.lineno)
        self.generic_visit(node)

    def visit_While(self, node: ast.While) -> None:
        self._visit_loop(node)

    def visit_For(self, node: ast.For) -> None:
        self._check_target(node.target)
        self._visit_loop(node)

    def _visit_loop(self, node: ast.While | ast.For) -> None:
        if isinstance(node, ast.For):
            self.visit(node.iter)
        else:
            self.visit(node.test)
        self._loop_depth += 1
        for stmt in node.body:
            self.visit(stmt)
        self._loop_depth -= 1
        for stmt in node.orelse:
            self.visit(stmt)

    def visit_Break(self, node: ast.Break) -> None:
        if not self._loop_depth:
            raise UnsupportedSyntaxError("'break' outside loop", node.lineno)

    def visit_Continue(self, node: ast.Continue) -> None:
        if not self._loop_depth:
            raise UnsupportedSyntaxError("'continue' not properly in loop", node.lineno)

    def visit_Assign(self, node: ast.Assign) -> None:
        for target in node.targets:
            self._check_target(target)
        self.generic_visit(node)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        if not isinstance(node.target, (ast.Name, ast.Subscript)):
            raise UnsupportedSyntaxError("unsupported assignment target", node.lineno)
        self.generic_visit(node)

    def visit_comprehension(self, node: ast.comprehension) -> None:
        if node.is_async:
            raise UnsupportedSyntaxError("async comprehensions are not supported")
        self._check_target(node.target)
        self.generic_visit(node)

    def visit_Name(self, node: ast.Name) -> None:
        self._check_name(node.id, node)
        self.generic_visit(node)

    def visit_Dict(self, node: ast.Dict) -> None:
        if any(key is None for key in node.keys):
            raise UnsupportedSyntaxError("dict unpacking is not supported", node.lineno)
        self.generic_visit(node)

    def visit_Call(self, node: ast.Call) -> None:
        if any(kw.arg is None for kw in node.keywords):
            raise UnsupportedSyntaxError("'**' arguments are not supported", node.lineno)
        if isinstance(node.func, ast.Attribute):
            self._call_targets.add(id(node.func))
        self.generic_visit(node)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if id(node) not in self._call_targets or not isinstance(node.ctx, ast.Load):
            raise UnsupportedSyntaxError(
                "attribute access is only supported for method calls", node.lineno
            )
        if node.attr.startswith("_"):
            raise UnsupportedSyntaxError(
                f"access to '{node.attr}' is not allowed", node.lineno
            )
        self.generic_visit(node)

    def _check_target(self, target: ast.expr) -> None:
        if isinstance(target, (ast.Tuple, ast.List)):
            for element in target.elts:
                self._check_target(element)
        elif not isinstance(target, (ast.Name, ast.Subscript)):
            raise UnsupportedSyntaxError(
                "unsupported assignment target", getattr(target, "lineno", None)
            )

    @staticmethod
    def _check_name(name: str, node: ast.AST) -> None:
        if name.startswith("__"):
            raise UnsupportedSyntaxError(
                f"names starting with '__' are not allowed ('{name}')",
                getattr(node, "lineno", None),
            )


class _ControlFlow(Exception):
    """Internal signal used to unwind loops and calls."""


class _Return(_ControlFlow):
    def __init__(self, value: Any):
        self.value = value


class _Break(_ControlFlow):
    pass


class _Continue(_ControlFlow):
    pass


@dataclass
class UserFunction:
    """A function defined by the submission."""
    name: str
    node: ast.FunctionDef
    defaults: tuple[Any, ...]
    scope: ChainMap = field(repr=False)

    @property
    def params(self) -> list[str]:
        return [arg.arg for arg in self.node.args.args]

    def __repr__(self) -> str:
        return f"<function {self.name}>"


@dataclass(frozen=True)
class _Builtin:
    """A host function exposed to user code."""
    name: str
    func: Callable[..., Any]

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.func(*args, **kwargs)

    def __repr__(self) -> str:
        return f"<built-in function {self.name}>"


class Program:
    """A parsed and validated submission, ready to be instantiated."""

    def __init__(self, tree: ast.Module):
        self._tree = tree

    @property
    def function_names(self) -> list[str]:
        """Top-level function names in declaration order."""
        return [node.name for node in self._tree.body if isinstance(node, ast.FunctionDef)]

    def instantiate(
        self,
        limits: Optional[SandboxLimits] = None,
        deadline: Optional[float] = None,
    ) -> "Interpreter":
        """Run the module body in a fresh scope and return the interpreter.

        Interpreters built for the same submission should share one
        ``deadline`` (a ``time.monotonic()`` value) so the wall-clock budget
        covers all of them together.
        """
        interpreter = Interpreter(limits or SandboxLimits.from_settings(), deadline)
        interpreter.run_module(self._tree)
        return interpreter


def compile_program(source: str) -> Program:
    """Parse and validate a submission.

    Raises:
        SyntaxError: The source is not valid Python.
        UnsupportedSyntaxError: The source uses unsupported constructs.
    """
    tree = ast.parse(textwrap.dedent(source), filename="<submission>", mode="exec")
    _Validator().visit(tree)
    return Program(tree)


class Interpreter:
    """Tree-walking evaluator for validated submissions.

    One interpreter holds one module scope; use a fresh one per test vector
    so state never leaks between runs.
    """

    def __init__(self, limits: SandboxLimits, deadline: Optional[float] = None):
        self.limits = limits
        self.output: list[str] = []
        self.output_truncated = False
        self.globals: dict[str, Any] = {}
        self._builtins: dict[str, _Builtin] = {
            name: _Builtin(name, func)
            for name, func in (
                ("print", self._builtin_print),
                ("len", len),
                ("range", self._builtin_range),
                ("sum", self._builtin_sum),
                ("min", self._builtin_min),
                ("max", self._builtin_max),
                ("abs", abs),
                ("list", self._builtin_list),
                ("sorted", self._builtin_sorted),
                ("str", self._builtin_str),
                ("int", int),
            )
        }
        self._module_scope: ChainMap = ChainMap(self.globals, self._builtins)
        self._steps = 0
        self._depth = 0
        if deadline is None:
            deadline = time.monotonic() + limits.timeout_seconds
        self._deadline = deadline
        self._pending_line = ""

    # -- Public API ---------------------------------------------------------

    def run_module(self, tree: ast.Module) -> None:
        """Execute top-level statements (function definitions, constants)."""
        self._exec_block(tree.body, self._module_scope)

    def functions(self) -> list[UserFunction]:
        """Functions defined at module level, in definition order."""
        return [value for value in self.globals.values() if isinstance(value, UserFunction)]

    def get_function(self, name: str) -> Optional[UserFunction]:
        value = self.globals.get(name)
        return value if isinstance(value, UserFunction) else None

    def call(self, func: UserFunction, args: Iterable[Any]) -> Any:
        """Invoke a user function with positional arguments."""
        self._check_deadline()
        try:
            return self._call_function(func, list(args), {})
        finally:
            self._flush_output()

    # -- Budget -------------------------------------------------------------

    def _tick(self) -> None:
        self._steps += 1
        if self._steps > self.limits.max_steps:
            raise StepLimitExceeded(
                f"Execution stopped after {self.limits.max_steps} steps"
            )
        if self._steps % 1000 == 0:
            self._check_deadline()

    def _check_deadline(self) -> None:
        if time.monotonic() > self._deadline:
            raise ExecutionTimeout(
                f"Execution exceeded {self.limits.timeout_seconds} seconds"
            )

    def _iterate(self, value: Any) -> Iterator[Any]:
        for item in iter(value):
            self._tick()
            yield item

    def _materialize(self, value: Any) -> list[Any]:
        items = []
        for item in self._iterate(value):
            items.append(item)
            if len(items) > self.limits.max_sequence_length:
                raise ResourceLimitExceeded("Sequence too long")
        return items

    # -- Statements ---------------------------------------------------------

    def _exec_block(self, body: list[ast.stmt], scope: ChainMap) -> None:
        for stmt in body:
            self._exec(stmt, scope)

    def _exec(self, node: ast.stmt, scope: ChainMap) -> None:
        self._tick()
        handler = getattr(self, f"_exec_{type(node).__name__}", None)
        if handler is None:
            raise UnsupportedSyntaxError(f"{type(node).__name__} is not supported", node.lineno)
        handler(node, scope)

    def _exec_FunctionDef(self, node: ast.FunctionDef, scope: ChainMap) -> None:
        defaults = tuple(self._eval(d, scope) for d in node.args.defaults)
        scope[node.name] = UserFunction(node.name, node, defaults, scope)

    def _exec_Return(self, node: ast.Return, scope: ChainMap) -> None:
        value = self._eval(node.value, scope) if node.value is not None else None
        raise _Return(value)

    def _exec_Pass(self, node: ast.Pass, scope: ChainMap) -> None:
        pass

    def _exec_Expr(self, node: ast.Expr, scope: ChainMap) -> None:
        self._eval(node.value, scope)

    def _exec_Assign(self, node: ast.Assign, scope: ChainMap) -> None:
        value = self._eval(node.value, scope)
        for target in node.targets:
            self._assign(target, value, scope)

    def _exec_AugAssign(self, node: ast.AugAssign, scope: ChainMap) -> None:
        op = type(node.op)
        value = self._eval(node.value, scope)
        target = node.target
        if isinstance(target, ast.Name):
            current = self._lookup(target.id, scope)
            scope[target.id] = self._binop(op, current, value)
        else:
            container = self._eval(target.value, scope)
            key = self._eval_key(target.slice, scope)
            container[key] = self._binop(op, container[key], value)

    def _exec_If(self, node: ast.If, scope: ChainMap) -> None:
        if self._eval(node.test, scope):
            self._exec_block(node.body, scope)
        else:
            self._exec_block(node.orelse, scope)

    def _exec_While(self, node: ast.While, scope: ChainMap) -> None:
        while self._eval(node.test, scope):
            self._tick()
            try:
                self._exec_block(node.body, scope)
            except _Break:
                break
            except _Continue:
                continue
        else:
            self._exec_block(node.orelse, scope)

    def _exec_For(self, node: ast.For, scope: ChainMap) -> None:
        for item in self._iterate(self._eval(node.iter, scope)):
            self._assign(node.target, item, scope)
            try:
                self._exec_block(node.body, scope)
            except _Break:
                break
            except _Continue:
                continue
        else:
            self._exec_block(node.orelse, scope)

    def _exec_Break(self, node: ast.Break, scope: ChainMap) -> None:
        raise _Break()

    def _exec_Continue(self, node: ast.Continue, scope: ChainMap) -> None:
        raise _Continue()

    def _assign(self, target: ast.expr, value: Any, scope: ChainMap) -> None:
        if isinstance(target, ast.Name):
            scope[target.id] = value
        elif isinstance(target, (ast.Tuple, ast.List)):
            items = self._materialize(value)
            expected = len(target.elts)
            if len(items) > expected:
                raise ValueError(f"too many values to unpack (expected {expected})")
            if len(items) < expected:
                raise ValueError(
                    f"not enough values to unpack (expected {expected}, got {len(items)})"
                )
            for element, item in zip(target.elts, items):
                self._assign(element, item, scope)
        elif isinstance(target, ast.Subscript):
            container = self._eval(target.value, scope)
            container[self._eval_key(target.slice, scope)] = value
        else:
            raise UnsupportedSyntaxError("unsupported assignment target")

    # -- Expressions --------------------------------------------------------

    def _eval(self, node: ast.expr, scope: ChainMap) -> Any:
        handler = getattr(self, f"_eval_{type(node).__name__}", None)
        if handler is None:
            raise UnsupportedSyntaxError(
                f"{type(node).__name__} is not supported", getattr(node, "lineno", None)
            )
        return handler(node, scope)

    def _eval_Constant(self, node: ast.Constant, scope: ChainMap) -> Any:
        return node.value

    def _eval_Name(self, node: ast.Name, scope: ChainMap) -> Any:
        return self._lookup(node.id, scope)

    def _eval_List(self, node: ast.List, scope: ChainMap) -> list[Any]:
        return [self._eval(element, scope) for element in node.elts]

    def _eval_Tuple(self, node: ast.Tuple, scope: ChainMap) -> tuple[Any, ...]:
        return tuple(self._eval(element, scope) for element in node.elts)

    def _eval_Dict(self, node: ast.Dict, scope: ChainMap) -> dict[Any, Any]:
        return {
            self._eval(key, scope): self._eval(value, scope)
            for key, value in zip(node.keys, node.values)
        }

    def _eval_BinOp(self, node: ast.BinOp, scope: ChainMap) -> Any:
        left = self._eval(node.left, scope)
        right = self._eval(node.right, scope)
        return self._binop(type(node.op), left, right)

    def _eval_UnaryOp(self, node: ast.UnaryOp, scope: ChainMap) -> Any:
        operand = self._eval(node.operand, scope)
        if isinstance(node.op, ast.Not):
            return not operand
        if isinstance(node.op, ast.USub):
            return -operand
        return +operand

    def _eval_BoolOp(self, node: ast.BoolOp, scope: ChainMap) -> Any:
        is_and = isinstance(node.op, ast.And)
        value: Any = None
        for operand in node.values:
            value = self._eval(operand, scope)
            if is_and and not value:
                return value
            if not is_and and value:
                return value
        return value

    def _eval_Compare(self, node: ast.Compare, scope: ChainMap) -> bool:
        left = self._eval(node.left, scope)
        for op, comparator in zip(node.ops, node.comparators):
            right = self._eval(comparator, scope)
            if not COMPARISONS[type(op)](left, right):
                return False
            left = right
        return True

    def _eval_IfExp(self, node: ast.IfExp, scope: ChainMap) -> Any:
        if self._eval(node.test, scope):
            return self._eval(node.body, scope)
        return self._eval(node.orelse, scope)

    def _eval_Subscript(self, node: ast.Subscript, scope: ChainMap) -> Any:
        container = self._eval(node.value, scope)
        return container[self._eval_key(node.slice, scope)]

    def _eval_key(self, node: ast.expr, scope: ChainMap) -> Any:
        if isinstance(node, ast.Slice):
            return slice(
                self._eval(node.lower, scope) if node.lower else None,
                self._eval(node.upper, scope) if node.upper else None,
                self._eval(node.step, scope) if node.step else None,
            )
        return self._eval(node, scope)

    def _eval_Call(self, node: ast.Call, scope: ChainMap) -> Any:
        if isinstance(node.func, ast.Attribute):
            target = self._eval(node.func.value, scope)
            func: Any = self._resolve_method(target, node.func.attr)
        else:
            func = self._eval(node.func, scope)

        args = [self._eval(arg, scope) for arg in node.args]
        kwargs = {kw.arg: self._eval(kw.value, scope) for kw in node.keywords}

        if isinstance(func, UserFunction):
            return self._call_function(func, args, kwargs)
        if isinstance(func, _Builtin) or isinstance(node.func, ast.Attribute):
            result = func(*args, **kwargs)
            self._check_deadline()
            return result
        raise TypeError(f"'{type(func).__name__}' object is not callable")

    def _eval_ListComp(self, node: ast.ListComp, scope: ChainMap) -> list[Any]:
        result: list[Any] = []
        self._comprehend(node.generators, 0, node.elt, scope.new_child(), result)
        return result

    def _comprehend(
        self,
        generators: list[ast.comprehension],
        index: int,
        element: ast.expr,
        scope: ChainMap,
        result: list[Any],
    ) -> None:
        if index == len(generators):
            result.append(self._eval(element, scope))
            if len(result) > self.limits.max_sequence_length:
                raise ResourceLimitExceeded("List comprehension result too long")
            return

        generator = generators[index]
        for item in self._iterate(self._eval(generator.iter, scope)):
            self._assign(generator.target, item, scope)
            if all(self._eval(condition, scope) for condition in generator.ifs):
                self._comprehend(generators, index + 1, element, scope, result)

    def _eval_JoinedStr(self, node: ast.JoinedStr, scope: ChainMap) -> str:
        return self._join("", [self._to_text(self._eval(value, scope)) for value in node.values])

    def _eval_FormattedValue(self, node: ast.FormattedValue, scope: ChainMap) -> str:
        value = self._eval(node.value, scope)
        self._text_size(value)
        if node.conversion == ord("r"):
            value = repr(value)
        elif node.conversion == ord("s"):
            value = str(value)
        elif node.conversion == ord("a"):
            value = ascii(value)

        spec = self._eval(node.format_spec, scope) if node.format_spec else ""
        if any(int(width) > self.limits.max_sequence_length for width in _FORMAT_WIDTH.findall(spec)):
            raise ResourceLimitExceeded("Format width too large")
        return format(value, spec)

    # -- Helpers ------------------------------------------------------------

    def _lookup(self, name: str, scope: ChainMap) -> Any:
        try:
            return scope[name]
        except KeyError:
            raise NameError(f"name '{name}' is not defined") from None

    def _binop(self, op: type, left: Any, right: Any) -> Any:
        if op is ast.Pow:
            self._check_power(left, right)
        elif op is ast.Mult:
            self._check_product(left, right)
        elif op is ast.Mod and isinstance(left, str):
            self._check_template(left, right)
        elif op is ast.Add and isinstance(left, (list, tuple, str)) and hasattr(right, "__len__"):
            if len(left) + len(right) > self.limits.max_sequence_length:
                raise ResourceLimitExceeded("Sequence too long")
        return BINARY_OPERATORS[op](left, right)

    def _check_power(self, base: Any, exponent: Any) -> None:
        if not isinstance(exponent, int) or not isinstance(base, (int, float)):
            return
        if abs(exponent) > self.limits.max_exponent and abs(base) > 1:
            raise ResourceLimitExceeded(f"Exponent {exponent} is too large")
        if isinstance(base, int) and exponent > 0:
            if base.bit_length() * exponent > self.limits.max_int_bits:
                raise ResourceLimitExceeded("Integer result too large")

    def _check_product(self, left: Any, right: Any) -> None:
        for sequence, count in ((left, right), (right, left)):
            if isinstance(sequence, (list, tuple, str)) and isinstance(count, int):
                if len(sequence) * count > self.limits.max_sequence_length:
                    raise ResourceLimitExceeded("Sequence too long")
                return
        if isinstance(left, int) and isinstance(right, int):
            if left.bit_length() + right.bit_length() > self.limits.max_int_bits:
                raise ResourceLimitExceeded("Integer result too large")

    def _check_template(self, template: str, args: Any) -> None:
        limit = self.limits.max_sequence_length
        size = len(template)
        for width, precision in _PERCENT_SPEC.findall(template):
            if "*" in (width, precision):
                raise ResourceLimitExceeded("'*' widths are not supported")
            for digits in (width, precision):
                if digits and int(digits) > limit:
                    raise ResourceLimitExceeded("Format width too large")
                size += int(digits or 0)

        if isinstance(args, dict):
            values = list(args.values())
        elif isinstance(args, tuple):
            values = list(args)
        else:
            values = [args]
        size += sum(self._text_size(value) for value in values)
        if size > limit:
            raise ResourceLimitExceeded("Formatted string too long")

    def _text_size(self, value: Any) -> int:
        """Upper bound on the length of ``str(value)``.

        Raises ResourceLimitExceeded as soon as the bound passes the sequence
        ceiling, so the walk itself stays bounded. Shared references count
        once per appearance, the way they print.
        """
        limit = self.limits.max_sequence_length
        size = 0
        pending = [value]
        while pending:
            item = pending.pop()
            if isinstance(item, str):
                size += len(item) + 2
            elif isinstance(item, bool) or item is None:
                size += 5
            elif isinstance(item, int):
                size += item.bit_length() // 3 + 2
            elif isinstance(item, range):
                size += sum(n.bit_length() // 3 + 2 for n in (item.start, item.stop, item.step)) + 12
            elif isinstance(item, (list, tuple)):
                size += 2 * len(item) + 2
                if size <= limit:
                    pending.extend(item)
            elif isinstance(item, dict):
                size += 4 * len(item) + 2
                if size <= limit:
                    pending.extend(item.keys())
                    pending.extend(item.values())
            else:
                size += 32
            if size > limit:
                raise ResourceLimitExceeded("Value too large to convert to text")
        return size

    def _to_text(self, value: Any) -> str:
        if isinstance(value, str):
            return value
        self._text_size(value)
        return str(value)

    def _join(self, separator: str, parts: list[Any]) -> str:
        size = sum(len(part) for part in parts if isinstance(part, str))
        size += len(separator) * max(len(parts) - 1, 0)
        if size > self.limits.max_sequence_length:
            raise ResourceLimitExceeded("Joined string too long")
        return separator.join(parts)

    def _resolve_method(self, target: Any, name: str) -> Callable[..., Any]:
        allowed = SAFE_METHODS.get(type(target), frozenset())
        if name not in allowed:
            raise AttributeError(
                f"'{type(target).__name__}' object has no attribute '{name}'"
            )
        method = getattr(target, name)
        if type(target) is list and name == "extend":
            return lambda iterable: method(self._materialize(iterable))
        if type(target) is str and name == "join":
            return lambda iterable: self._join(target, self._materialize(iterable))
        return method

    def _call_function(
        self,
        func: UserFunction,
        args: list[Any],
        kwargs: dict[str, Any],
    ) -> Any:
        params = func.params
        if len(args) > len(params):
            raise TypeError(
                f"{func.name}() takes {len(params)} positional arguments "
                f"but {len(args)} were given"
            )

        local_vars: dict[str, Any] = dict(zip(params, args))
        for name, value in kwargs.items():
            if name not in params:
                raise TypeError(f"{func.name}() got an unexpected keyword argument '{name}'")
            if name in local_vars:
                raise TypeError(f"{func.name}() got multiple values for argument '{name}'")
            local_vars[name] = value

        first_default = len(params) - len(func.defaults)
        for position, name in enumerate(params):
            if name in local_vars:
                continue
            if position >= first_default:
                local_vars[name] = func.defaults[position - first_default]
            else:
                raise TypeError(f"{func.name}() missing required argument: '{name}'")

        self._depth += 1
        if self._depth > self.limits.max_call_depth:
            self._depth -= 1
            raise CallDepthExceeded(
                f"Maximum call depth of {self.limits.max_call_depth} exceeded"
            )
        try:
            self._exec_block(func.node.body, func.scope.new_child(local_vars))
        except _Return as result:
            return result.value
        finally:
            self._depth -= 1
        return None

    # -- Builtins -----------------------------------------------------------

    def _builtin_print(
        self,
        *args: Any,
        sep: Optional[str] = " ",
        end: Optional[str] = "\n",
    ) -> None:
        sep = " " if sep is None else sep
        end = "\n" if end is None else end
        text = self._join(sep, [self._to_text(arg) for arg in args]) + end
        if len(self.output) >= self.limits.max_output_lines:
            self.output_truncated = True
            return
        *lines, pending = (self._pending_line + text).split("\n")
        for line in lines:
            self._write(line)
        self._pending_line = self._clip(pending)

    def _write(self, line: str) -> None:
        if len(self.output) >= self.limits.max_output_lines:
            self.output_truncated = True
            return
        self.output.append(self._clip(line))

    def _clip(self, line: str) -> str:
        if len(line) <= self.limits.max_line_length:
            return line
        self.output_truncated = True
        return line[:self.limits.max_line_length]

    def _builtin_str(self, value: Any = "") -> str:
        return self._to_text(value)

    def _flush_output(self) -> None:
        if self._pending_line:
            self._write(self._pending_line)
            self._pending_line = ""

    def _builtin_range(self, *args: int) -> range:
        return range(*args)

    def _builtin_sum(self, iterable: Iterable[Any], start: Any = 0) -> Any:
        total = start
        for item in self._iterate(iterable):
            total = total + item
        return total

    def _builtin_min(self, *args: Any) -> Any:
        return self._extreme("min", min, args)

    def _builtin_max(self, *args: Any) -> Any:
        return self._extreme("max", max, args)

    def _extreme(self, name: str, pick: Callable[..., Any], args: tuple[Any, ...]) -> Any:
        if not args:
            raise TypeError(f"{name} expected at least 1 argument, got 0")
        items = self._materialize(args[0]) if len(args) == 1 else list(args)
        if not items:
            raise ValueError(f"{name}() arg is an empty sequence")
        return pick(items)

    def _builtin_list(self, iterable: Iterable[Any] = ()) -> list[Any]:
        return self._materialize(iterable)

    def _builtin_sorted(self, iterable: Iterable[Any], reverse: bool = False) -> list[Any]:
        return sorted(self._materialize(iterable), reverse=reverse)
