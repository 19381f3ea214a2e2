"""Condition Evaluator - Safe evaluation of declarative requirement conditions"""
import operator as op
from typing import Any, Callable, Dict, List

from ..domain.models import ConditionGroup, Condition
from ..domain.enums import ConditionOperator
from ..utils.logger import get_logger

logger = get_logger(__name__)


_MISSING = object()

_NUMERIC: Dict[ConditionOperator, Callable[[float, float], bool]] = {
    ConditionOperator.GREATER_THAN: op.gt,
    ConditionOperator.LESS_THAN: op.lt,
    ConditionOperator.GREATER_THAN_OR_EQUALS: op.ge,
    ConditionOperator.LESS_THAN_OR_EQUALS: op.le,
}


class ConditionEvaluator:
    """
    Evaluate declarative conditions against a data snapshot

    Uses a simple DSL - no eval() or exec(). A condition that cannot be
    evaluated (bad types, unparsable numbers) counts as not met.
    """

    def evaluate(self, condition_group: ConditionGroup, context: Dict[str, Any]) -> bool:
        """True if the group's conditions are met under its AND/OR logic"""
        if not condition_group.conditions:
            return True

        results = [self.evaluate_condition(c, context) for c in condition_group.conditions]

        if condition_group.logic.upper() == "OR":
            return any(results)
        return all(results)

    def failing_conditions(self, condition_group: ConditionGroup, context: Dict[str, Any]) -> List[Condition]:
        """Conditions responsible for a group not being met, empty when it is"""
        if self.evaluate(condition_group, context):
            return []
        return [c for c in condition_group.conditions if not self.evaluate_condition(c, context)]

    def evaluate_condition(self, condition: Condition, context: Dict[str, Any]) -> bool:
        field_value = self._get_field_value(condition.field, context)
        try:
            return self._compare(field_value, condition.operator, condition.value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Condition on {condition.field} could not be evaluated: {e}")
            return False

    def _get_field_value(self, field_path: str, context: Dict[str, Any]) -> Any:
        """
        Resolve a dotted path, e.g. "board.chairman" -> context["board"]["chairman"]
        """
        value: Any = context
        for part in field_path.split("."):
            if not isinstance(value, dict):
                return None
            value = value.get(part, _MISSING)
            if value is _MISSING:
                return None
        return value

    def _compare(self, field_value: Any, operator: ConditionOperator, compare_value: Any) -> bool:
        if operator in _NUMERIC:
            if field_value is None or compare_value is None:
                return False
            return _NUMERIC[operator](float(field_value), float(compare_value))

        if operator == ConditionOperator.EQUALS:
            return field_value == compare_value
        if operator == ConditionOperator.NOT_EQUALS:
            return field_value != compare_value

        if operator == ConditionOperator.CONTAINS:
            return field_value is not None and self._contains(field_value, compare_value)
        if operator == ConditionOperator.NOT_CONTAINS:
            return field_value is None or not self._contains(field_value, compare_value)

        if operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
            options = compare_value if isinstance(compare_value, list) else [compare_value]
            found = field_value in options
            return found if operator == ConditionOperator.IN else not found

        if operator == ConditionOperator.IS_EMPTY:
            return self.is_empty(field_value)
        if operator == ConditionOperator.IS_NOT_EMPTY:
            return not self.is_empty(field_value)

        return False

    @staticmethod
    def _contains(field_value: Any, compare_value: Any) -> bool:
        if isinstance(field_value, (list, tuple, set)):
            return compare_value in field_value
        return str(compare_value) in str(field_value)

    @staticmethod
    def is_empty(value: Any) -> bool:
        if value is None:
            return True
        if isinstance(value, str):
            return not value.strip()
        if isinstance(value, (list, dict, tuple, set)):
            return len(value) == 0
        return False
