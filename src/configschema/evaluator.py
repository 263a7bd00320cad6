"""Requirement Evaluator

Decides whether an option is reachable by evaluating its `requires`
expression against the options defined before it.

Evaluation of one record:
  1. expand MAP / REPEAT helpers and fused AXIS_DRIVER_TYPE_X(...) names
  2. parse the expanded text into an expression tree
  3. walk the tree; calls dispatch to a fixed table of predicates and
     bare identifiers resolve through OTHER(name)

Every name lookup is made relative to the serial id of the record being
evaluated and only sees records with a smaller serial id. A record that
a lookup depends on is itself evaluated (and memoized) on demand.

Any exception while evaluating a record marks it active and keeps the
message on the record.
"""

import logging
from typing import Callable, Dict, List, Optional, Union

from .ast_nodes import (
    Expression, NumberLiteral, StringLiteral, CharLiteral, Identifier,
    BinaryExpression, BinaryOperator, UnaryExpression, UnaryOperator,
    ConditionalExpression, FunctionCall, to_source,
)
from .macros import expand_condition, substitute
from .parser import parse_condition, number_value
from .records import ConfigOption
from .value_types import ValueType, format_value

logger = logging.getLogger(__name__)


class EvaluationError(Exception):
    """Raised when a requirement cannot be evaluated."""
    pass


class Symbol(str):
    """A name with no record and no built-in meaning.

    Behaves like an undefined identifier in a preprocessor expression:
    false in a boolean context, 0 in arithmetic, and equal to its own name
    so enum-style comparisons (MOTHERBOARD == BOARD_X) still work.
    """

    def __bool__(self):
        return False


Value = Union[bool, int, float, str]


def truthy(value) -> bool:
    if isinstance(value, Symbol):
        return False
    if isinstance(value, str):
        return value.strip().lower() not in ('', '0', 'false')
    return bool(value)


def to_number(value) -> Union[int, float]:
    if isinstance(value, Symbol):
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lower() in ('true', 'false'):
            return int(text.lower() == 'true')
        try:
            return number_value(text.lstrip('+'))
        except ValueError:
            pass
        if len(text) == 1:
            return ord(text)
    raise EvaluationError(f"'{value}' is not a number")


def _is_numeric(value) -> bool:
    if isinstance(value, (Symbol, bool, int, float)):
        return True
    try:
        number_value(str(value).strip().lstrip('+'))
        return True
    except ValueError:
        return False


class RequirementEvaluator:
    """Tree-walking interpreter for requirement expressions.

    `schema` must provide `config`, `occurrences_before(name, before)`
    (records named `name` with a smaller serial id, in order) and
    `records_before(before)`.
    """

    def __init__(self, schema):
        self.schema = schema
        self.config = schema.config
        self._context: List[int] = []
        self._macro_depth = 0
        self.predicates: Dict[str, Callable[[List[Expression]], Value]] = {
            'defined': self.fn_defined,
            'ENABLED': self.fn_all,
            'ALL': self.fn_all,
            'BOTH': self.fn_all,
            'DISABLED': self.fn_none,
            'NONE': self.fn_none,
            'ANY': self.fn_any,
            'EITHER': self.fn_any,
            'COUNT_ENABLED': self.fn_count_enabled,
            'MANY': self.fn_many,
            'MB': self.fn_mb,
            'HAS_AXIS': self.fn_has_axis,
            'HAS_EAXIS': self.fn_has_eaxis,
            'HAS_SENSOR': self.fn_has_sensor,
            'ANY_THERMISTOR_IS': self.fn_any_thermistor_is,
            'HAS_SERIAL': self.fn_has_serial,
            'HAS_MAX_TC': self.fn_has_max_tc,
            'TEMP_SENSOR_IS_MAX_TC': self.fn_temp_sensor_is_max_tc,
            'HAS_DRIVER': self.fn_has_driver,
            'AXIS_DRIVER_TYPE': self.fn_axis_driver_type,
            'AXIS_IS_TMC_CONFIG': self.fn_axis_is_tmc_config,
            'DGUS_UI_IS': self.fn_dgus_ui_is,
            'UNUSED_TEMP_SENSOR': self.fn_unused_temp_sensor,
            'PIN_EXISTS': self.fn_pin_exists,
            'OTHER': self.fn_other,
            'CAT': self.fn_cat,
            '_CAT': self.fn_cat,
        }

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def evaluate(self, record: ConfigOption) -> bool:
        """Evaluate and memoize the requirement of *record*."""
        if record.evaled is not None:
            return record.evaled

        if not record.requires:
            record.evaled = True
            return True

        self._context.append(record.serial_id)
        try:
            text = expand_condition(record.requires, self.template_for,
                                    self.value_of, self.config)
            result = truthy(self.visit(parse_condition(text)))
            record.error = None
        except Exception as e:
            logger.debug(f"Evaluating {record.name or '#undef'} "
                         f"'{record.requires}' failed: {e}")
            record.error = str(e)
            result = True
        finally:
            self._context.pop()

        record.evaled = result
        return result

    def evaluate_condition(self, cond: Optional[str], before: int) -> bool:
        """Evaluate a free-standing condition as if at serial id *before*."""
        stand_in = ConfigOption(serial_id=before, section='', name='',
                             enabled=True, requires=cond or None)
        return self.evaluate(stand_in)

    @property
    def before(self) -> int:
        if not self._context:
            raise EvaluationError("No evaluation context")
        return self._context[-1]

    # ------------------------------------------------------------------
    # Lookups (always strictly before the current context)
    # ------------------------------------------------------------------

    def active(self, record: ConfigOption) -> bool:
        return (record.enabled
                and record.is_defined_before(self.before)
                and self.evaluate(record))

    def nearest(self, name: str) -> Optional[ConfigOption]:
        """The last active occurrence of *name* before the current record."""
        for record in reversed(self.schema.occurrences_before(name, self.before)):
            if self.active(record):
                return record
        return None

    def value_of(self, name: str):
        record = self.nearest(name)
        return record.value if record is not None else None

    def template_for(self, name: str):
        record = self.nearest(name)
        if record is None or record.params is None:
            return None
        return record.params, format_value(record.value)

    def is_on(self, name: str) -> bool:
        record = self.nearest(name)
        if record is None:
            return False
        if record.value is None:
            return True
        return format_value(record.value).strip().lower() in self.config.enabled_values

    def nonzero(self, name: str) -> bool:
        record = self.nearest(name)
        return record is not None and truthy(record.value)

    def number_of(self, name: str) -> Optional[Union[int, float]]:
        value = self.value_of(name)
        if value is None:
            return None
        return to_number(value)

    # ------------------------------------------------------------------
    # Argument helpers
    # ------------------------------------------------------------------

    def name_of(self, arg: Expression) -> str:
        """A predicate argument taken as a name, not as a value."""
        if isinstance(arg, Identifier):
            return arg.name
        if isinstance(arg, StringLiteral):
            return arg.value
        if isinstance(arg, NumberLiteral):
            return arg.text
        if isinstance(arg, FunctionCall) and arg.name == 'OTHER' and len(arg.arguments) == 1:
            return self.name_of(arg.arguments[0])
        return str(self.visit(arg))

    def names_of(self, args: List[Expression]) -> List[str]:
        return [self.name_of(arg) for arg in args]

    def int_arg(self, arg: Expression) -> int:
        return int(to_number(self.visit(arg)))

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def fn_defined(self, args: List[Expression]) -> bool:
        return all(self.nearest(name) is not None for name in self.names_of(args))

    def fn_all(self, args: List[Expression]) -> bool:
        return all(self.is_on(name) for name in self.names_of(args))

    def fn_none(self, args: List[Expression]) -> bool:
        return not any(self.is_on(name) for name in self.names_of(args))

    def fn_any(self, args: List[Expression]) -> bool:
        return any(self.is_on(name) for name in self.names_of(args))

    def fn_count_enabled(self, args: List[Expression]) -> int:
        return sum(1 for name in self.names_of(args) if self.is_on(name))

    def fn_many(self, args: List[Expression]) -> bool:
        return self.fn_count_enabled(args) > 1

    def fn_mb(self, args: List[Expression]) -> bool:
        board = self.value_of('MOTHERBOARD')
        if board is None:
            return False
        board = str(board)
        if board.startswith('BOARD_'):
            board = board[len('BOARD_'):]
        wanted = [n[len('BOARD_'):] if n.startswith('BOARD_') else n
                  for n in self.names_of(args)]
        return board in wanted

    def fn_has_axis(self, args: List[Expression]) -> bool:
        return all(self.nearest(f"{axis}_DRIVER_TYPE") is not None
                   for axis in self.names_of(args))

    def fn_has_eaxis(self, args: List[Expression]) -> bool:
        extruders = self.number_of('EXTRUDERS')
        if extruders is None:
            return False
        return all(self.int_arg(arg) < extruders for arg in args)

    def fn_has_sensor(self, args: List[Expression]) -> bool:
        return all(self.nonzero(f"TEMP_SENSOR_{h}") for h in self.names_of(args))

    def _sensor_values(self):
        for sensor_id in self.config.temp_sensor_ids:
            record = self.nearest(f"TEMP_SENSOR_{sensor_id}")
            if record is not None and record.value is not None:
                try:
                    yield to_number(record.value)
                except EvaluationError:
                    continue

    def fn_any_thermistor_is(self, args: List[Expression]) -> bool:
        wanted = [to_number(self.visit(arg)) for arg in args]
        return any(value in wanted for value in self._sensor_values())

    def fn_has_serial(self, args: List[Expression]) -> bool:
        port = self.int_arg(args[0]) if args else 1
        name = 'SERIAL_PORT' if port <= 1 else f"SERIAL_PORT_{port}"
        return self.nearest(name) is not None

    def fn_has_max_tc(self, args: List[Expression]) -> bool:
        return any(value in self.config.thermocouple_sensors
                   for value in self._sensor_values())

    def fn_temp_sensor_is_max_tc(self, args: List[Expression]) -> bool:
        record = self.nearest(f"TEMP_SENSOR_{self.name_of(args[0])}")
        if record is None or record.value is None:
            return False
        return to_number(record.value) in self.config.thermocouple_sensors

    def _driver_types(self) -> List[str]:
        found = []
        for record in self.schema.records_before(self.before):
            if record.name.endswith('_DRIVER_TYPE') and record.value is not None:
                if self.active(record):
                    found.append(str(record.value))
        return found

    def fn_has_driver(self, args: List[Expression]) -> bool:
        present = self._driver_types()
        return any(name in present for name in self.names_of(args))

    def _axis_driver(self, axis: str) -> Optional[str]:
        """Driver type of *axis*, honoring the extruder count for E axes."""
        if axis.startswith('E') and axis[1:].isdigit():
            extruders = self.number_of('EXTRUDERS')
            if extruders is None or int(axis[1:]) >= extruders:
                return None
        record = self.nearest(f"{axis}_DRIVER_TYPE")
        if record is None or record.value is None:
            return None
        return str(record.value)

    def fn_axis_driver_type(self, args: List[Expression]) -> bool:
        if len(args) != 2:
            raise EvaluationError("AXIS_DRIVER_TYPE takes an axis and a driver type")
        axis, driver = self.names_of(args)
        return self._axis_driver(axis) == driver

    def fn_axis_is_tmc_config(self, args: List[Expression]) -> bool:
        return self._axis_driver(self.name_of(args[0])) in self.config.trinamic_drivers

    def fn_dgus_ui_is(self, args: List[Expression]) -> bool:
        ui = self.value_of('DGUS_LCD_UI')
        if ui is None:
            return False
        prefix = 'DGUS_LCD_UI_'
        ui = str(ui)
        ui = ui[len(prefix):] if ui.startswith(prefix) else ui
        return any((n[len(prefix):] if n.startswith(prefix) else n) == ui
                   for n in self.names_of(args))

    def fn_unused_temp_sensor(self, args: List[Expression]) -> bool:
        return not self.nonzero(f"TEMP_SENSOR_{self.name_of(args[0])}")

    def fn_pin_exists(self, args: List[Expression]) -> bool:
        return all(self.nearest(f"{name}_PIN") is not None for name in self.names_of(args))

    def fn_other(self, args: List[Expression]) -> Value:
        """Resolve a bare name to a value, falling back to built-in synonyms."""
        if len(args) != 1:
            raise EvaluationError("OTHER takes one name")
        name = self.name_of(args[0])

        record = self.nearest(name)
        if record is not None:
            if record.value is None:
                return True
            if record.value_type in (ValueType.MACRO, ValueType.UNTYPED) \
                    and isinstance(record.value, str) and record.params is None:
                return self.evaluate_text(record.value)
            return record.value

        if name == 'XY':
            return 2
        if name == 'XYZ':
            return 3
        if name == 'HAS_TRINAMIC_CONFIG':
            present = self._driver_types()
            return any(driver in present for driver in self.config.trinamic_drivers)
        if name == 'HAS_E_TEMP_SENSOR':
            extruders = self.number_of('EXTRUDERS') or 0
            return any(self.nonzero(f"TEMP_SENSOR_{i}") for i in range(int(extruders)))
        if name.startswith('TEMP_SENSOR_'):
            return self.nonzero(name)

        return Symbol(name)

    def fn_cat(self, args: List[Expression]) -> Value:
        """Concatenate names after following enum-valued indirections."""
        parts = []
        for name in self.names_of(args):
            for _ in range(self.config.max_cat_indirections):
                record = self.nearest(name)
                if record is None or record.value_type is not ValueType.ENUM:
                    break
                name = str(record.value)
            parts.append(name)
        return self.fn_other([Identifier(''.join(parts))])

    def evaluate_text(self, text: str) -> Value:
        """Evaluate an option's macro value in the current context."""
        if self._macro_depth >= self.config.max_cat_indirections:
            raise EvaluationError(f"Macro value nested too deeply: '{text}'")
        self._macro_depth += 1
        try:
            expanded = expand_condition(text, self.template_for, self.value_of, self.config)
            return self.visit(parse_condition(expanded))
        finally:
            self._macro_depth -= 1

    # ------------------------------------------------------------------
    # Tree walking
    # ------------------------------------------------------------------

    def visit(self, node: Expression) -> Value:
        return node.accept(self)

    def visit_number_literal(self, node: NumberLiteral) -> Value:
        return node.value

    def visit_string_literal(self, node: StringLiteral) -> Value:
        return node.value

    def visit_char_literal(self, node: CharLiteral) -> Value:
        return node.value

    def visit_identifier(self, node: Identifier) -> Value:
        return self.fn_other([node])

    def visit_function_call(self, node: FunctionCall) -> Value:
        predicate = self.predicates.get(node.name)
        if predicate is not None:
            return predicate(node.arguments)

        # A function-like helper define expands in place
        template = self.template_for(node.name)
        if template is not None:
            params, body = template
            args = [to_source(arg) for arg in node.arguments]
            return self.evaluate_text(substitute(params, body, args))

        raise EvaluationError(f"Unknown function {node.name}()")

    def visit_unary_expression(self, node: UnaryExpression) -> Value:
        value = self.visit(node.operand)
        if node.operator is UnaryOperator.LOGICAL_NOT:
            return not truthy(value)
        if node.operator is UnaryOperator.NEGATE:
            return -to_number(value)
        if node.operator is UnaryOperator.PLUS:
            return to_number(value)
        return ~int(to_number(value))

    def visit_conditional_expression(self, node: ConditionalExpression) -> Value:
        if truthy(self.visit(node.condition)):
            return self.visit(node.then_branch)
        return self.visit(node.else_branch)

    def visit_binary_expression(self, node: BinaryExpression) -> Value:
        op = node.operator
        if op is BinaryOperator.LOGICAL_AND:
            return truthy(self.visit(node.left)) and truthy(self.visit(node.right))
        if op is BinaryOperator.LOGICAL_OR:
            return truthy(self.visit(node.left)) or truthy(self.visit(node.right))

        left = self.visit(node.left)
        right = self.visit(node.right)

        if op in (BinaryOperator.EQUALS, BinaryOperator.NOT_EQUALS):
            if _is_numeric(left) and _is_numeric(right):
                same = to_number(left) == to_number(right)
            else:
                same = str(left) == str(right)
            return same if op is BinaryOperator.EQUALS else not same

        a, b = to_number(left), to_number(right)
        if op is BinaryOperator.LESS_THAN:
            return a < b
        if op is BinaryOperator.LESS_EQUAL:
            return a <= b
        if op is BinaryOperator.GREATER_THAN:
            return a > b
        if op is BinaryOperator.GREATER_EQUAL:
            return a >= b
        if op is BinaryOperator.ADD:
            return a + b
        if op is BinaryOperator.SUBTRACT:
            return a - b
        if op is BinaryOperator.MULTIPLY:
            return a * b
        if op in (BinaryOperator.DIVIDE, BinaryOperator.MODULO):
            if b == 0:
                raise EvaluationError("Division by zero")
            if op is BinaryOperator.MODULO:
                return int(a) % int(b)
            if isinstance(a, int) and isinstance(b, int):
                return int(a / b)
            return a / b
        if op is BinaryOperator.BITWISE_AND:
            return int(a) & int(b)
        if op is BinaryOperator.BITWISE_OR:
            return int(a) | int(b)
        if op is BinaryOperator.BITWISE_XOR:
            return int(a) ^ int(b)
        if op is BinaryOperator.SHIFT_LEFT:
            return int(a) << int(b)
        if op is BinaryOperator.SHIFT_RIGHT:
            return int(a) >> int(b)
        raise EvaluationError(f"Unsupported operator {op.value}")
