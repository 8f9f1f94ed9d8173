from app.inference import ValidationOutcome
from app.models import InferenceRecord
from app.receipt.base import Receipt
from app.split.base import SplitPlan


def serialize_receipt(receipt: Receipt) -> dict:
    return {
        "currency": receipt.currency,
        "total": receipt.total,
        "subtotal": receipt.subtotal,
        "tax": receipt.tax,
        "tip": receipt.tip,
        "items": [{"name": item.name, "price": item.price} for item in receipt.items],
    }


def serialize_plan(plan: SplitPlan) -> dict:
    return {
        "summary": plan.summary,
        "currency": plan.currency,
        "total": plan.total,
        "payer": plan.payer,
        "participants": [
            {
                "identifier": p.identifier,
                "paid": p.paid,
                "owes": p.owes,
                "comment": p.comment,
            }
            for p in plan.participants
        ],
        "openQuestions": list(plan.open_questions),
    }


def serialize_metadata(validation: ValidationOutcome) -> dict:
    return {
        "model": validation.model,
        "provider": validation.provider,
        "isValid": validation.is_valid,
        "chatId": validation.chat_id,
    }


def serialize_inference_record(record: InferenceRecord) -> dict:
    return {
        "id": record.id,
        "kind": record.kind,
        "chatId": record.chat_id,
        "provider": record.provider,
        "model": record.model,
        "isValid": record.is_valid,
        "createdAt": record.created_at.isoformat(),
    }
