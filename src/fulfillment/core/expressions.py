"""CEL expressions evaluated against protobuf messages.

Expressions are used for filters and for the values of table columns. They
are compiled against a single variable (`this` for objects, `event` for
events) bound to a message type, and then evaluated once per message.

Messages are converted to CEL values following the protobuf rules: fields that
aren't set read as their default value, so `this.status.state` is zero when
there is no status, and `has(this.metadata.name)` is false when the name is
empty. Enum values are integers.
"""

from __future__ import annotations

import re
from typing import Any

import celpy
from celpy import celtypes
from celpy.celparser import CELParseError
from celpy.evaluation import CELEvalError, Evaluator
from google.protobuf import json_format
from google.protobuf.descriptor import Descriptor, FieldDescriptor
from google.protobuf.message import Message

from fulfillment.core.errors import ExpressionError
from fulfillment.core.fields import is_map, is_repeated

_STRING_LITERAL = re.compile(
    r'[rRbB]{0,2}("""[\s\S]*?"""|\'\'\'[\s\S]*?\'\'\'|"(?:\\.|[^"\\\n])*"|\'(?:\\.|[^\'\\\n])*\')'
)

_UNSIGNED_TYPES = {
    FieldDescriptor.TYPE_UINT32,
    FieldDescriptor.TYPE_UINT64,
    FieldDescriptor.TYPE_FIXED32,
    FieldDescriptor.TYPE_FIXED64,
}

_FLOAT_TYPES = {
    FieldDescriptor.TYPE_FLOAT,
    FieldDescriptor.TYPE_DOUBLE,
}

_WRAPPER_TYPES = {
    "google.protobuf.BoolValue",
    "google.protobuf.BytesValue",
    "google.protobuf.DoubleValue",
    "google.protobuf.FloatValue",
    "google.protobuf.Int32Value",
    "google.protobuf.Int64Value",
    "google.protobuf.StringValue",
    "google.protobuf.UInt32Value",
    "google.protobuf.UInt64Value",
}

# Unset fields of these types read as null:
_NULL_DEFAULT_TYPES = _WRAPPER_TYPES | {"google.protobuf.Value"}


class ExpressionEnv:
    """
    Compiles CEL expressions for one message type.

    Args:
        descriptor: Descriptor of the message type bound to the variable.
        variable: Name of the variable, `this` for objects or `event` for events.
    """

    def __init__(self, descriptor: Descriptor, variable: str = "this"):
        self.descriptor = descriptor
        self.variable = variable
        self._env = celpy.Environment(runner_class=_Runner)
        self._path_rx = re.compile(
            rf"(?<![\w.]){re.escape(variable)}((?:\s*\.\s*[A-Za-z_]\w*)+)(\s*\()?"
        )

    def compile(self, text: str) -> Program:
        """
        Compile an expression.

        Raises:
            ExpressionError: If the syntax is wrong or the expression uses a
                field that doesn't exist in the message type.
        """
        if not text or not text.strip():
            raise ExpressionError("expression is empty", expression=text)
        try:
            ast = self._env.compile(text)
        except CELParseError as exc:
            raise ExpressionError(
                f"failed to parse expression {text!r}: {exc}", expression=text
            ) from exc
        self._check_fields(text)
        return Program(text, self.variable, self._env.program(ast))

    def _check_fields(self, text: str) -> None:
        """Check that the field paths that start with the variable exist in the message type."""
        code = _STRING_LITERAL.sub('""', text)
        for match in self._path_rx.finditer(code):
            names = [name.strip() for name in match.group(1).split(".") if name.strip()]
            if match.group(2):
                # The last name is a method call like `this.metadata.name.startsWith(...)`.
                names = names[:-1]
            current: Descriptor | None = self.descriptor
            path = self.variable
            for name in names:
                if current is None:
                    break
                field = current.fields_by_name.get(name)
                if field is None:
                    raise ExpressionError(
                        f"failed to compile expression {text!r}: type '{current.full_name}' "
                        f"has no field '{name}' (in '{path}.{name}')",
                        expression=text,
                    )
                path = f"{path}.{name}"
                current = _nested_type(field)


class Program:
    """A compiled expression, ready to be evaluated against messages."""

    def __init__(self, text: str, variable: str, runner):
        self.text = text
        self.variable = variable
        self._runner = runner

    def evaluate(self, message: Message) -> Any:
        """
        Evaluate the expression with the message bound to the variable.

        Raises:
            ExpressionError: If the evaluation fails, for example when reading
                a key that isn't in a map or dividing by zero.
        """
        activation = {self.variable: message_value(message)}
        try:
            result = self._runner.evaluate(activation)
        except CELEvalError as exc:
            raise ExpressionError(
                f"failed to evaluate expression {self.text!r}: {exc}", expression=self.text
            ) from exc
        if isinstance(result, CELEvalError):
            raise ExpressionError(
                f"failed to evaluate expression {self.text!r}: {result}", expression=self.text
            )
        return result

    def matches(self, message: Message) -> bool:
        """Evaluate a boolean expression, like a filter."""
        result = self.evaluate(message)
        if not isinstance(result, celtypes.BoolType):
            raise ExpressionError(
                f"expression {self.text!r} returned {type(result).__name__} instead of a boolean",
                expression=self.text,
            )
        return bool(result)


def _nested_type(field: FieldDescriptor) -> Descriptor | None:
    """Return the type to use for the next name in a path, or None to stop checking."""
    if field.type != FieldDescriptor.TYPE_MESSAGE or is_repeated(field):
        return None
    if field.message_type.full_name.startswith("google.protobuf."):
        return None
    return field.message_type


def message_value(message: Message) -> MessageValue:
    """Convert a message to a CEL value."""
    return MessageValue(message)


class MessageValue(celtypes.MapType):
    """
    CEL map holding the fields of a message that are set.

    Declared fields that aren't set aren't members of the map, so `has` is false
    for them, but reading them returns the default value of the field: an empty
    string, zero, an empty list or map, or an empty message.
    """

    def __init__(self, message: Message) -> None:
        super().__init__(
            {
                celtypes.StringType(field.name): _field_value(field, value)
                for field, value in message.ListFields()
            }
        )
        self._message = message

    def __getitem__(self, key: Any) -> Any:
        try:
            return super().__getitem__(key)
        except KeyError:
            field = self._message.DESCRIPTOR.fields_by_name.get(str(key))
            if field is None:
                raise
        return _default_value(field, getattr(self._message, field.name))

    def get(self, key: Any, default: Any = None) -> Any:
        try:
            return self[key]
        except KeyError:
            return default


def _default_value(field: FieldDescriptor, value: Any) -> Any:
    if (
        field.type == FieldDescriptor.TYPE_MESSAGE
        and not is_repeated(field)
        and field.message_type.full_name in _NULL_DEFAULT_TYPES
    ):
        return None
    return _field_value(field, value)


class _Evaluator(Evaluator):
    """Evaluator where `has(e.f)` checks field presence when `e` is a message."""

    def sub_evaluator(self, ast) -> _Evaluator:
        return _Evaluator(ast, activation=self.activation)

    def macro_has_eval(self, exprlist) -> celtypes.BoolType:
        node = exprlist
        while getattr(node, "data", None) != "member_dot":
            children = getattr(node, "children", None)
            if not children or len(children) != 1:
                return super().macro_has_eval(exprlist)
            node = children[0]
        member, name = node.children
        target = self.visit(member)
        if isinstance(target, MessageValue):
            return celtypes.BoolType(celtypes.StringType(name.value) in target)
        return super().macro_has_eval(exprlist)


class _Runner(celpy.InterpretedRunner):
    def evaluate(self, context):
        evaluator = _Evaluator(ast=self.ast, activation=self.new_activation())
        return evaluator.evaluate(context)


def _field_value(field: FieldDescriptor, value: Any) -> Any:
    if is_map(field):
        key_field = field.message_type.fields_by_name["key"]
        value_field = field.message_type.fields_by_name["value"]
        return celtypes.MapType(
            {
                _single_value(key_field, k): _single_value(value_field, v)
                for k, v in value.items()
            }
        )
    if is_repeated(field):
        return celtypes.ListType([_single_value(field, v) for v in value])
    return _single_value(field, value)


def _single_value(field: FieldDescriptor, value: Any) -> Any:
    kind = field.type
    if kind in (FieldDescriptor.TYPE_MESSAGE, FieldDescriptor.TYPE_GROUP):
        return _nested_message_value(value)
    if kind == FieldDescriptor.TYPE_BOOL:
        return celtypes.BoolType(value)
    if kind == FieldDescriptor.TYPE_STRING:
        return celtypes.StringType(value)
    if kind == FieldDescriptor.TYPE_BYTES:
        return celtypes.BytesType(value)
    if kind in _FLOAT_TYPES:
        return celtypes.DoubleType(value)
    if kind in _UNSIGNED_TYPES:
        return celtypes.UintType(value)
    return celtypes.IntType(value)


def _nested_message_value(value: Message) -> Any:
    full_name = value.DESCRIPTOR.full_name
    if full_name == "google.protobuf.Timestamp":
        return celtypes.TimestampType(value.ToJsonString())
    if full_name == "google.protobuf.Duration":
        return celtypes.DurationType(seconds=value.seconds, nanos=value.nanos)
    if full_name in _WRAPPER_TYPES:
        return _single_value(value.DESCRIPTOR.fields_by_name["value"], value.value)
    if full_name.startswith("google.protobuf."):
        return celpy.json_to_cel(json_format.MessageToDict(value))
    return message_value(value)
