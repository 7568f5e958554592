"""Default tool set: files, data, text, system, and arithmetic helpers."""

from __future__ import annotations

import ast
import json
import operator
import os
import re
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from chat_agent.agent.tools import ToolRegistry

MAX_EXPRESSION_CHARS = 1_000
MAX_EXPONENT = 1_000
MAX_RESULT_BITS = 100_000

_BINARY_OPERATORS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
    ast.FloorDiv: operator.floordiv,
}
_UNARY_OPERATORS: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


def build_default_registry() -> ToolRegistry:
    """Create a registry holding every built-in tool."""

    registry = ToolRegistry()
    for category, tools in _CATEGORIES.items():
        for name, function in tools.items():
            registry.register(
                name,
                function,
                category=category,
                description=(function.__doc__ or "").strip().splitlines()[0],
            )
    return registry


def read_file(params: dict[str, Any]) -> str:
    """Read a UTF-8 text file."""

    path = _require_path(params)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if not path.is_file():
        raise ValueError(f"Path is not a file: {path}")
    return path.read_text(params.get("encoding", "utf-8"))


def write_file(params: dict[str, Any]) -> str:
    """Write or append text content to a file."""

    path = _require_path(params)
    content = str(params.get("content", ""))
    encoding = params.get("encoding", "utf-8")
    if params.get("append"):
        with path.open("a", encoding=encoding) as handle:
            handle.write(content)
        return f"Successfully appended to {path}"
    path.write_text(content, encoding)
    return f"Successfully wrote to {path}"


def list_directory(params: dict[str, Any]) -> list[str]:
    """List directory entries, optionally filtered by regex."""

    path = Path(str(params.get("path") or "."))
    if not path.is_dir():
        raise NotADirectoryError(f"Directory not found: {path}")
    entries = sorted(entry.name for entry in path.iterdir())
    pattern = params.get("filter")
    if pattern:
        regex = re.compile(str(pattern))
        entries = [entry for entry in entries if regex.search(entry)]
    return entries


def file_exists(params: dict[str, Any]) -> bool:
    """Check whether a file or directory exists."""

    return Path(str(params.get("path", ""))).exists()


def parse_json(params: dict[str, Any]) -> Any:
    """Parse a JSON string."""

    data = params.get("data")
    if not isinstance(data, str):
        return data
    return json.loads(data)


def parse_csv(params: dict[str, Any]) -> dict[str, Any]:
    """Parse delimited text into headers and row dictionaries."""

    data = str(params.get("data", ""))
    delimiter = params.get("delimiter", ",")
    lines = data.strip().split("\n")
    headers = [header.strip() for header in lines[0].split(delimiter)]
    rows = []
    for line in lines[1:]:
        values = [value.strip() for value in line.split(delimiter)]
        rows.append(
            {
                header: values[index] if index < len(values) else ""
                for index, header in enumerate(headers)
            },
        )
    return {"headers": headers, "rows": rows}


def filter_data(params: dict[str, Any]) -> list[Any]:
    """Keep items whose ``key`` field equals ``value``."""

    data = _require_list(params)
    key = params.get("key")
    value = params.get("value")
    return [item for item in data if isinstance(item, dict) and item.get(key) == value]


def sort_data(params: dict[str, Any]) -> list[Any]:
    """Sort items by the ``key`` field."""

    data = _require_list(params)
    key = params.get("key")
    return sorted(
        data,
        key=lambda item: item.get(key) if isinstance(item, dict) else item,
        reverse=params.get("order", "asc") == "desc",
    )


def word_count(params: dict[str, Any]) -> int:
    """Count whitespace-separated words."""

    return len(str(params.get("text", "")).split())


def grep(params: dict[str, Any]) -> list[str]:
    """Return lines matching a regex pattern."""

    flags = re.IGNORECASE if params.get("caseInsensitive") else 0
    regex = re.compile(str(params.get("pattern", "")), flags)
    return [line for line in str(params.get("text", "")).split("\n") if regex.search(line)]


def replace(params: dict[str, Any]) -> str:
    """Replace regex matches in text."""

    regex = re.compile(str(params.get("pattern", "")))
    count = 0 if params.get("global", True) else 1
    return regex.sub(str(params.get("replacement", "")), str(params.get("text", "")), count=count)


def split(params: dict[str, Any]) -> list[str]:
    """Split text by a delimiter."""

    return str(params.get("text", "")).split(params.get("delimiter", "\n"))


def join(params: dict[str, Any]) -> str:
    """Join a list into text."""

    array = _require_list(params, "array")
    return str(params.get("delimiter", "\n")).join(str(item) for item in array)


def get_env(params: dict[str, Any]) -> str | None:
    """Read an environment variable."""

    return os.getenv(str(params.get("name", "")))


def get_timestamp(params: dict[str, Any]) -> str | int:
    """Current time as ISO string or unix seconds."""

    now = datetime.now(tz=UTC)
    if params.get("format", "iso") == "unix":
        return int(now.timestamp())
    return now.isoformat()


def calculate(params: dict[str, Any]) -> int | float:
    """Evaluate an arithmetic expression."""

    expression = str(params.get("expression", ""))
    if len(expression) > MAX_EXPRESSION_CHARS:
        raise ValueError(f"Expression too long (max {MAX_EXPRESSION_CHARS} characters)")
    try:
        tree = ast.parse(expression, mode="eval")
    except SyntaxError as error:
        raise ValueError(f"Invalid mathematical expression: {expression!r}") from error
    return _eval_arithmetic(tree.body)


def round_number(params: dict[str, Any]) -> float:
    """Round a number to ``decimals`` places."""

    number = params.get("number")
    if isinstance(number, str):
        number = float(number)
    if not isinstance(number, (int, float)):
        raise TypeError("Parameter 'number' must be numeric")
    return round(number, int(params.get("decimals", 0)))


def _eval_arithmetic(node: ast.AST) -> int | float:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        if isinstance(node.value, bool):
            raise ValueError("Invalid mathematical expression: booleans are not numbers")
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        left = _eval_arithmetic(node.left)
        right = _eval_arithmetic(node.right)
        if isinstance(node.op, ast.Pow):
            _check_power(left, right)
        try:
            return _BINARY_OPERATORS[type(node.op)](left, right)
        except ZeroDivisionError as error:
            raise ValueError("Invalid mathematical expression: division by zero") from error
        except OverflowError as error:
            raise ValueError("Invalid mathematical expression: result too large") from error
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[type(node.op)](_eval_arithmetic(node.operand))
    raise ValueError(f"Unsupported element in expression: {ast.dump(node)}")


def _check_power(base: int | float, exponent: int | float) -> None:
    if abs(exponent) > MAX_EXPONENT:
        raise ValueError(f"Invalid mathematical expression: exponent above {MAX_EXPONENT}")
    if isinstance(base, int) and isinstance(exponent, int) and exponent > 0:
        if abs(base).bit_length() * exponent > MAX_RESULT_BITS:
            raise ValueError("Invalid mathematical expression: result too large")


def _require_path(params: dict[str, Any]) -> Path:
    raw = params.get("path")
    if not raw:
        raise ValueError("Parameter 'path' is required")
    return Path(str(raw))


def _require_list(params: dict[str, Any], name: str = "data") -> list[Any]:
    """List parameter, decoding the JSON text a placeholder renders lists to."""

    value = params.get(name)
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as error:
            raise TypeError(f"Parameter '{name}' must be an array: {error}") from error
    if not isinstance(value, list):
        raise TypeError(f"Parameter '{name}' must be an array")
    return value


_CATEGORIES: dict[str, dict[str, Callable[[dict[str, Any]], Any]]] = {
    "file": {
        "readFile": read_file,
        "writeFile": write_file,
        "listDirectory": list_directory,
        "fileExists": file_exists,
    },
    "data": {
        "parseJSON": parse_json,
        "parseCSV": parse_csv,
        "filterData": filter_data,
        "sortData": sort_data,
    },
    "text": {
        "wordCount": word_count,
        "grep": grep,
        "replace": replace,
        "split": split,
        "join": join,
    },
    "system": {
        "getEnv": get_env,
        "getTimestamp": get_timestamp,
    },
    "math": {
        "calculate": calculate,
        "round": round_number,
    },
}
