"""
Step Validators - Pure predicates over an instance data snapshot

Every guard takes the data snapshot and returns a StepEvaluation. Guards
never touch the store or an external service; anything they need (such as
names already taken) is fetched by the caller into the snapshot first.
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..domain.enums import CheckOutcome, ComplianceCheckKind, ConditionOperator, RequirementType
from ..domain.models import ComplianceCheck, Condition, ConditionGroup, Reason, StepEvaluation
from ..utils.logger import get_logger
from .condition_evaluator import ConditionEvaluator

logger = get_logger(__name__)


MINIMUM_CAPITAL_SEK = 25_000
MINIMUM_BOARD_MEMBERS = 3
MINIMUM_PURPOSE_LENGTH = 50
MINIMUM_NAME_LENGTH = 3
MAXIMUM_NAME_LENGTH = 120

# Words a foundation name may not use
RESERVED_NAMES = frozenset({
    "admin",
    "administrator",
    "system",
    "test",
    "lansstyrelsen",
    "skatteverket",
    "bolagsverket",
    "sverige",
    "sweden",
})

BOARD_MEMBER_FIELDS = ("first_name", "last_name", "personal_number", "email")
CONTACT_PERSON_FIELDS = ("first_name", "last_name", "email", "phone")

Guard = Callable[[Dict[str, Any]], StepEvaluation]

_evaluator = ConditionEvaluator()


def _check(kind: ComplianceCheckKind, passed: bool, detail: str) -> ComplianceCheck:
    return ComplianceCheck(
        kind=kind,
        outcome=CheckOutcome.PASSED if passed else CheckOutcome.FAILED,
        detail=detail,
    )


def _reason_for(check: ComplianceCheck) -> Reason:
    return Reason(code=check.kind.value.upper(), message=check.detail)


def _from_checks(checks: Sequence[ComplianceCheck]) -> StepEvaluation:
    """Fold checks into one evaluation, reporting every failed one"""
    failed = [c for c in checks if not c.passed]
    if failed:
        return StepEvaluation.fail([_reason_for(c) for c in failed], list(checks))
    return StepEvaluation.ok(list(checks))


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).replace(" ", "").replace(",", ""))
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def _board_members(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    members = data.get("board_members") or []
    return [m for m in members if isinstance(m, dict)] if isinstance(members, list) else []


# ============================================================================
# Compliance checks
# ============================================================================

class ComplianceChecker:
    """
    Registration compliance checks

    evaluate() runs all four checks and reports every failure, never just
    the first one.
    """

    def minimum_capital(self, data: Dict[str, Any]) -> ComplianceCheck:
        capital = _to_decimal(data.get("initial_capital"))
        if capital is None:
            return _check(
                ComplianceCheckKind.MINIMUM_CAPITAL, False,
                "Initial capital is missing or not a number"
            )
        if capital < MINIMUM_CAPITAL_SEK:
            return _check(
                ComplianceCheckKind.MINIMUM_CAPITAL, False,
                f"Minimum capital requirement of {MINIMUM_CAPITAL_SEK:,} SEK not met"
            )
        return _check(
            ComplianceCheckKind.MINIMUM_CAPITAL, True,
            f"Minimum capital requirement of {MINIMUM_CAPITAL_SEK:,} SEK met"
        )

    def board_composition(self, data: Dict[str, Any]) -> ComplianceCheck:
        count = len(_board_members(data))
        if count < MINIMUM_BOARD_MEMBERS:
            return _check(
                ComplianceCheckKind.BOARD_COMPOSITION, False,
                f"Board must have at least {MINIMUM_BOARD_MEMBERS} members, has {count}"
            )
        return _check(
            ComplianceCheckKind.BOARD_COMPOSITION, True,
            f"Board composition meets minimum requirement of {MINIMUM_BOARD_MEMBERS} members"
        )

    def purpose_validity(self, data: Dict[str, Any]) -> ComplianceCheck:
        purpose = data.get("purpose")
        length = len(purpose.strip()) if isinstance(purpose, str) else 0
        if length < MINIMUM_PURPOSE_LENGTH:
            return _check(
                ComplianceCheckKind.PURPOSE_VALIDITY, False,
                f"Foundation purpose must be more detailed (minimum {MINIMUM_PURPOSE_LENGTH} characters)"
            )
        return _check(
            ComplianceCheckKind.PURPOSE_VALIDITY, True,
            "Foundation purpose is sufficiently detailed"
        )

    def name_availability(self, data: Dict[str, Any]) -> ComplianceCheck:
        kind = ComplianceCheckKind.NAME_AVAILABILITY
        raw = data.get("foundation_name")
        name = raw.strip() if isinstance(raw, str) else ""

        if not name:
            return _check(kind, False, "Foundation name is required")
        if not MINIMUM_NAME_LENGTH <= len(name) <= MAXIMUM_NAME_LENGTH:
            return _check(
                kind, False,
                f"Foundation name must be {MINIMUM_NAME_LENGTH}-{MAXIMUM_NAME_LENGTH} characters"
            )

        words = set(name.casefold().split())
        reserved = sorted(words & RESERVED_NAMES)
        if reserved:
            return _check(kind, False, f"Foundation name uses reserved words: {', '.join(reserved)}")

        taken = {n.strip().casefold() for n in data.get("unavailable_names") or [] if isinstance(n, str)}
        if name.casefold() in taken:
            return _check(kind, False, f"Foundation name '{name}' is already registered")

        return _check(kind, True, "Foundation name is available and compliant")

    def run_all(self, data: Dict[str, Any]) -> List[ComplianceCheck]:
        return [
            self.minimum_capital(data),
            self.board_composition(data),
            self.purpose_validity(data),
            self.name_availability(data),
        ]

    def evaluate(self, data: Dict[str, Any]) -> StepEvaluation:
        return _from_checks(self.run_all(data))

    __call__ = evaluate


def balanced_ledger(data: Dict[str, Any], field: str = "ledger") -> ComplianceCheck:
    """
    Sum of debits equals sum of credits

    Each line must be one-sided (debit or credit, not both) and non-negative.
    """
    kind = ComplianceCheckKind.BALANCED_LEDGER
    lines = data.get(field) or []
    if not isinstance(lines, list):
        return _check(kind, False, "Ledger must be a list of lines")

    total_debit = Decimal(0)
    total_credit = Decimal(0)
    for number, line in enumerate(lines, start=1):
        if not isinstance(line, dict):
            return _check(kind, False, f"Ledger line {number} is malformed")
        debit = _to_decimal(line.get("debit", 0) or 0)
        credit = _to_decimal(line.get("credit", 0) or 0)
        if debit is None or credit is None:
            return _check(kind, False, f"Ledger line {number} has a non-numeric amount")
        if debit < 0 or credit < 0:
            return _check(kind, False, f"Ledger line {number} has a negative amount")
        if debit and credit:
            return _check(kind, False, f"Ledger line {number} has both a debit and a credit")
        total_debit += debit
        total_credit += credit

    if total_debit != total_credit:
        return _check(kind, False, f"Ledger is unbalanced: debit {total_debit} != credit {total_credit}")
    return _check(kind, True, f"Ledger balances at {total_debit}")


# ============================================================================
# Guard builders
# ============================================================================

def required_fields(*fields: str, code: str = "MISSING_FIELD") -> Guard:
    """Guard requiring each (dotted) field to be present and non-empty"""
    group = ConditionGroup(
        logic="AND",
        conditions=[Condition(field=f, operator=ConditionOperator.IS_NOT_EMPTY) for f in fields],
    )

    def guard(data: Dict[str, Any]) -> StepEvaluation:
        missing = [c.field for c in _evaluator.failing_conditions(group, data)]
        check = _check(
            ComplianceCheckKind.REQUIRED_FIELDS,
            not missing,
            f"Missing required fields: {', '.join(missing)}" if missing else "All required fields present",
        )
        if missing:
            return StepEvaluation.fail(
                [Reason(code=code, message=f"{field} is required") for field in missing],
                [check],
            )
        return StepEvaluation.ok([check])

    return guard


def condition(group: ConditionGroup, code: str, message: str) -> Guard:
    """Guard over a declarative condition group"""

    def guard(data: Dict[str, Any]) -> StepEvaluation:
        passed = _evaluator.evaluate(group, data)
        check = _check(ComplianceCheckKind.CONDITION, passed, message if not passed else "Condition met")
        if passed:
            return StepEvaluation.ok([check])
        return StepEvaluation.fail([Reason(code=code, message=message)], [check])

    return guard


def all_of(*guards: Guard) -> Guard:
    """Run every guard and aggregate all of their reasons"""

    def guard(data: Dict[str, Any]) -> StepEvaluation:
        reasons: List[Reason] = []
        checks: List[ComplianceCheck] = []
        for g in guards:
            evaluation = g(data)
            reasons.extend(evaluation.reasons)
            checks.extend(evaluation.checks)
        if reasons:
            return StepEvaluation.fail(reasons, checks)
        return StepEvaluation.ok(checks)

    return guard


def always_pass(data: Dict[str, Any]) -> StepEvaluation:
    return StepEvaluation.ok()


# ============================================================================
# Registration step guards
# ============================================================================

def board_members_valid(data: Dict[str, Any]) -> StepEvaluation:
    """At least one member, each with name, personal number and e-mail"""
    members = _board_members(data)
    if not members:
        return StepEvaluation.fail([Reason(code="NO_BOARD_MEMBERS", message="At least one board member is required")])

    reasons: List[Reason] = []
    for position, member in enumerate(members, start=1):
        missing = [f for f in BOARD_MEMBER_FIELDS if _evaluator.is_empty(member.get(f))]
        if missing:
            reasons.append(Reason(
                code="INVALID_BOARD_MEMBER",
                message=f"Board member {position} is missing: {', '.join(missing)}",
            ))
    return StepEvaluation.fail(reasons) if reasons else StepEvaluation.ok()


contact_person_valid = required_fields(*(f"contact_person.{f}" for f in CONTACT_PERSON_FIELDS))


def signatories(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [m for m in _board_members(data) if m.get("is_signatory")]


def signatures_complete(data: Dict[str, Any]) -> StepEvaluation:
    """Every signatory board member has signed, matched on personal number"""
    required = signatories(data)
    if not required:
        return StepEvaluation.fail([
            Reason(code="NO_SIGNATORY", message="At least one board member must be an authorized signatory")
        ])

    signed = {
        s.get("personal_number")
        for s in data.get("signatures") or []
        if isinstance(s, dict) and s.get("personal_number")
    }
    unsigned = [m for m in required if m.get("personal_number") not in signed]
    check = _check(
        ComplianceCheckKind.SIGNATURES,
        not unsigned,
        "All signatories have signed" if not unsigned else f"{len(unsigned)} signatory signature(s) missing",
    )
    if unsigned:
        return StepEvaluation.fail(
            [
                Reason(
                    code="MISSING_SIGNATURE",
                    message=f"{m.get('first_name', '')} {m.get('last_name', '')} has not signed".strip(),
                )
                for m in unsigned
            ],
            [check],
        )
    return StepEvaluation.ok([check])


# ============================================================================
# Regulatory requirements
# ============================================================================

def _board_registration(data: Dict[str, Any]) -> StepEvaluation:
    members = _board_members(data)
    checks = [
        _check(
            ComplianceCheckKind.BOARD_COMPOSITION,
            len(members) >= MINIMUM_BOARD_MEMBERS,
            f"Minimum {MINIMUM_BOARD_MEMBERS} board members required",
        )
    ]
    chairman = bool(data.get("chairman_appointed")) or any(m.get("role") == "chairman" for m in members)
    checks.append(_check(ComplianceCheckKind.REQUIRED_FIELDS, chairman, "Board chairman must be appointed"))
    return _from_checks(checks)


_REQUIREMENTS: Dict[RequirementType, Guard] = {
    RequirementType.ANNUAL_REPORT: all_of(
        required_fields("financial_statement", "activity_report", "board_resolution"),
        lambda data: _from_checks([balanced_ledger(data)]),
    ),
    RequirementType.TAX_FILING: required_fields("income_statement", "expense_records", "donation_records"),
    RequirementType.BOARD_REGISTRATION: _board_registration,
}


def validate_requirement(requirement_type: Any, data: Dict[str, Any]) -> StepEvaluation:
    """Validate a regulatory requirement package; unknown types fail"""
    try:
        requirement = RequirementType(requirement_type)
    except (ValueError, TypeError):
        logger.info(f"Unknown compliance requirement type: {requirement_type}")
        return StepEvaluation.fail([
            Reason(code="UNKNOWN_REQUIREMENT", message=f"Unknown compliance requirement type: {requirement_type}")
        ])
    return _REQUIREMENTS[requirement](data)
