# -*- coding: utf-8 -*-

# Schema Gate
# Copyright (C) 2025 Jwadow
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Value validation capability.

The pipeline only relies on the ``Shape`` protocol: an object with a
``validate(value)`` method returning a ``ValidationResult``. The default
implementation is backed by pydantic ``TypeAdapter`` so any annotation
(models, ``Literal``, containers, scalars) can serve as a shape.

Example:
    >>> shape = as_shape(Dict[str, int])
    >>> shape.validate({"a": 1}).value
    {'a': 1}
    >>> shape.validate({"a": "x"}).success
    False
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from pydantic import TypeAdapter, ValidationError


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating one value against a shape.

    Attributes:
        success: Whether the value satisfied the shape
        value: Validated (possibly coerced) value on success
        diagnostic: Engine-specific description of the failure
    """

    success: bool
    value: Any = None
    diagnostic: Any = None


@runtime_checkable
class Shape(Protocol):
    """Anything that can validate a value."""

    def validate(self, value: Any) -> ValidationResult:
        ...


class PydanticShape:
    """
    Shape backed by a pydantic TypeAdapter.

    Attributes:
        annotation: The Python type the shape validates against
        strict: Disable pydantic's lax coercions (e.g. "1" -> 1)
    """

    def __init__(self, annotation: Any, strict: bool = False):
        self.annotation = annotation
        self.strict = strict
        self._adapter = TypeAdapter(annotation)

    def validate(self, value: Any) -> ValidationResult:
        try:
            validated = self._adapter.validate_python(value, strict=self.strict)
        except ValidationError as e:
            return ValidationResult(success=False, diagnostic=e.errors())
        return ValidationResult(success=True, value=validated)

    def guard(self, value: Any) -> bool:
        """Return True when the value satisfies the shape."""
        return self.validate(value).success

    def __repr__(self) -> str:
        return f"PydanticShape({self.annotation!r})"


def as_shape(value: Any, strict: bool = False) -> Shape:
    """
    Normalize a shape argument.

    Args:
        value: An existing Shape or any annotation pydantic understands
        strict: Forwarded to PydanticShape when wrapping an annotation

    Returns:
        Shape instance
    """
    if isinstance(value, Shape) and not isinstance(value, type):
        return value
    return PydanticShape(value, strict=strict)


def optional_shape(value: Optional[Any]) -> Optional[Shape]:
    """Like as_shape() but passes None through."""
    if value is None:
        return None
    return as_shape(value)


def guard(shape: Shape, value: Any) -> bool:
    """Return True when ``value`` satisfies ``shape``."""
    return shape.validate(value).success
