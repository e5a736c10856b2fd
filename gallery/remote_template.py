"""
Helpers for remote source configuration: dot-path lookup and page templates.

Templates substitute ``{{ expression }}`` blocks where the expression is
restricted to integer arithmetic over the ``page`` variable, e.g.
``{{page}}``, ``{{ (page - 1) * 50 }}``. Nothing else is evaluated.
"""

import ast
import logging
import operator
import re
from typing import Any

logger = logging.getLogger(__name__)

TEMPLATE_PATTERN = re.compile(r'{{(.*?)}}')

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.FloorDiv: operator.floordiv,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


class TemplateError(ValueError):
    """Raised for expressions outside the template language."""
    pass


def get_value_by_path(obj: Any, path: str) -> Any:
    """
    Follow a dot-path through nested dicts and lists.

    An empty path returns the object itself. Numeric parts index into lists.
    Returns None as soon as a part is missing.
    """
    if not path:
        return obj
    current = obj
    for part in path.split('.'):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def evaluate_expression(expression: str, page: int) -> Any:
    """
    Evaluate a template expression with ``page`` bound.

    Raises:
        TemplateError: If the expression uses anything but numbers, ``page``
            and arithmetic operators
    """
    try:
        tree = ast.parse(expression.strip(), mode='eval')
    except SyntaxError as e:
        raise TemplateError(f"Invalid expression {expression!r}: {e}")
    return _evaluate(tree.body, page)


def _evaluate(node: ast.AST, page: int) -> Any:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) \
            and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.Name) and node.id == 'page':
        return page
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _evaluate(node.left, page)
        right = _evaluate(node.right, page)
        try:
            result = _BINARY_OPS[type(node.op)](left, right)
        except ZeroDivisionError:
            raise TemplateError("Division by zero in template expression")
        if isinstance(result, float) and result.is_integer():
            return int(result)
        return result
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_evaluate(node.operand, page))
    raise TemplateError(f"Unsupported template expression: {ast.dump(node)}")


def resolve_template(template: str, page: int) -> str:
    """Substitute every ``{{ expression }}`` block for the given page number."""
    def substitute(match: re.Match) -> str:
        try:
            return str(evaluate_expression(match.group(1), page))
        except TemplateError as e:
            logger.error(f"Error evaluating template expression: {e}")
            return ''

    return TEMPLATE_PATTERN.sub(substitute, template)
