"""Numeric reconciliation of reasoned split plans.

Every plan coming back from a reasoner passes through reconcile_plan()
before it reaches a caller: amounts are rounded to display precision, the
participant roster is checked against the request, and the sum of owes is
held to the total within TOLERANCE.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal

from app.errors import InvariantViolation, ReasoningError
from app.receipt.base import Receipt
from app.split.base import Participant, SplitPlan

logger = logging.getLogger("splitter")

TOLERANCE = Decimal("0.01")

# Display decimals per currency; anything unlisted uses 2
CURRENCY_DECIMALS: dict[str, int] = {
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "JPY": 0,
    "CAD": 2,
    "AUD": 2,
    "CHF": 2,
    "HKD": 2,
    "SGD": 2,
    "THB": 2,
    "KRW": 0,
    "INR": 2,
    "CNY": 2,
    "NZD": 2,
    "MXN": 2,
}


def currency_decimals(currency: str | None) -> int:
    return CURRENCY_DECIMALS.get((currency or "").upper(), 2)


def to_decimal(value: float) -> Decimal:
    return Decimal(str(value))


def round_amount(value: float, currency: str | None) -> float:
    exponent = Decimal(1).scaleb(-currency_decimals(currency))
    return float(to_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP))


def owed_total(plan: SplitPlan) -> Decimal:
    return sum((to_decimal(p.owes) for p in plan.participants), Decimal(0))


def round_plan(plan: SplitPlan) -> SplitPlan:
    currency = plan.currency
    return plan.model_copy(update={
        "total": round_amount(plan.total, currency),
        "participants": [
            p.model_copy(update={
                "paid": round_amount(p.paid, currency),
                "owes": round_amount(p.owes, currency),
            })
            for p in plan.participants
        ],
    })


def check_roster(plan: SplitPlan, participants: list[Participant]) -> None:
    """The plan must name exactly the requested participants, once each."""
    expected = {p.identifier.casefold(): p.identifier for p in participants}
    seen = [p.identifier.casefold() for p in plan.participants]

    duplicates = sorted({key for key in seen if seen.count(key) > 1})
    missing = [name for key, name in expected.items() if key not in seen]
    unknown = [p.identifier for p in plan.participants if p.identifier.casefold() not in expected]
    if duplicates or missing or unknown:
        raise ReasoningError(
            "Split plan participants do not match the request",
            missing=missing,
            unknown=unknown,
            duplicates=duplicates,
        )

    if plan.payer.casefold() not in expected:
        raise ReasoningError(f"Split plan payer {plan.payer!r} is not a participant")


def check_receipt_total(plan: SplitPlan, receipt: Receipt | None) -> None:
    if receipt is None or receipt.total is None:
        return
    expected = to_decimal(round_amount(receipt.total, plan.currency))
    if abs(expected - to_decimal(plan.total)) > TOLERANCE:
        raise InvariantViolation(
            f"Split plan total {plan.total} does not match the receipt total {receipt.total}",
            expected_total=float(expected),
            plan_total=plan.total,
        )


def allocate_minor_units(total_minor: int, weights: list[Decimal]) -> list[int]:
    """Split total_minor in proportion to weights by largest remainder.

    Every share is floored, then the leftover units go one each to the
    largest fractional parts, earlier participants first on ties.
    """
    total_weight = sum(weights, Decimal(0))
    exact = [total_minor * weight / total_weight for weight in weights]
    shares = [int(value) for value in exact]
    leftover = total_minor - sum(shares)
    by_remainder = sorted(range(len(exact)), key=lambda i: exact[i] - shares[i], reverse=True)
    for i in by_remainder[:leftover]:
        shares[i] += 1
    return shares


def carried_over(plan: SplitPlan, prior_plan: SplitPlan | None) -> set[int]:
    """Indexes of participants whose owes are unchanged from prior_plan."""
    if prior_plan is None:
        return set()
    prior = {p.identifier.casefold(): to_decimal(p.owes) for p in round_plan(prior_plan).participants}
    return {
        i for i, p in enumerate(plan.participants)
        if prior.get(p.identifier.casefold()) == to_decimal(p.owes)
    }


def rescale_plan(plan: SplitPlan, prior_plan: SplitPlan | None = None) -> SplitPlan:
    """Scale owes proportionally so they sum to the plan total.

    On a refinement turn only the participants whose owes changed from
    prior_plan are rescaled; the rest keep their previous amounts.
    """
    scale = 10 ** currency_decimals(plan.currency)
    total_minor = int(to_decimal(plan.total) * scale)
    original = owed_total(plan)

    fixed = carried_over(plan, prior_plan)
    adjustable = [i for i in range(len(plan.participants)) if i not in fixed]
    weights = [to_decimal(plan.participants[i].owes) for i in adjustable]
    target = total_minor - sum(int(to_decimal(plan.participants[i].owes) * scale) for i in fixed)

    if not adjustable or target < 0 or any(w < 0 for w in weights) or sum(weights, Decimal(0)) <= 0:
        raise InvariantViolation(
            f"Split plan cannot be rescaled: shares add up to {original} but the total is {plan.total}",
            expected_total=plan.total,
            owed_total=float(original),
            carried_over=[plan.participants[i].identifier for i in sorted(fixed)],
        )

    owes = {i: Decimal(share) / scale for i, share in zip(adjustable, allocate_minor_units(target, weights))}
    note = (
        f"The individual shares added up to {original} instead of the total {plan.total}; "
        "they were rescaled proportionally to match."
    )
    if fixed:
        note += " Amounts unchanged from the previous plan were kept."
    logger.warning(
        "Split plan rescaled",
        extra={"extra_data": {
            "owed_total": float(original),
            "total": plan.total,
            "carried_over": len(fixed),
        }},
    )
    return plan.model_copy(update={
        "participants": [
            p.model_copy(update={"owes": float(owes[i])}) if i in owes else p
            for i, p in enumerate(plan.participants)
        ],
        "open_questions": [*plan.open_questions, note],
    })


def reconcile_plan(
    plan: SplitPlan,
    participants: list[Participant],
    receipt: Receipt | None = None,
    policy: str = "strict",
    prior_plan: SplitPlan | None = None,
) -> SplitPlan:
    """Return a new, rounded plan whose owes sum to its total.

    policy "strict" raises InvariantViolation when the owes drift from the
    total; "rescale" corrects them proportionally and records an open question.
    """
    rounded = round_plan(plan)
    check_roster(rounded, participants)
    check_receipt_total(rounded, receipt)

    drift = owed_total(rounded) - to_decimal(rounded.total)
    if abs(drift) <= TOLERANCE:
        return rounded

    if policy == "rescale":
        return rescale_plan(rounded, prior_plan)

    raise InvariantViolation(
        f"Split shares add up to {owed_total(rounded)} but the total is {rounded.total}",
        expected_total=rounded.total,
        owed_total=float(owed_total(rounded)),
    )
