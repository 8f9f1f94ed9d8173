import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.config import Settings
from app.database import get_db
from app.deps import build_image_source, get_settings, get_split_session
from app.inference import ValidationOutcome
from app.models import InferenceRecord
from app.orchestrator import SplitSession
from app.ratelimit import INFERENCE_RATE_LIMIT, limiter
from app.schemas import ParseReceiptIn, SplitExpenseIn
from app.serializers import serialize_inference_record, serialize_metadata, serialize_plan, serialize_receipt

logger = logging.getLogger("splitter")

# Spelling kept for existing clients
router = APIRouter(prefix="/reciepts", tags=["receipts"])


def _record_inference(db: Session, kind: str, validation: ValidationOutcome) -> None:
    db.add(
        InferenceRecord(
            kind=kind,
            chat_id=validation.chat_id,
            provider=validation.provider,
            model=validation.model,
            is_valid=validation.is_valid,
        )
    )


@router.post("/parse")
@limiter.limit(INFERENCE_RATE_LIMIT)
async def parse_receipt(
    request: Request,
    data: ParseReceiptIn,
    session: SplitSession = Depends(get_split_session),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
):
    image = build_image_source(data.image_url, data.base64_image, settings.max_image_bytes)

    result = await session.parse(image)

    _record_inference(db, "parse", result.validation)
    db.commit()

    logger.info(
        "Receipt parsed",
        extra={"extra_data": {
            "chat_id": result.validation.chat_id,
            "items_count": len(result.receipt.items),
            "is_valid": result.validation.is_valid,
        }},
    )
    return {
        "success": True,
        "receipt": serialize_receipt(result.receipt),
        "metadata": serialize_metadata(result.validation),
    }


@router.post("/split")
@limiter.limit(INFERENCE_RATE_LIMIT)
async def split_expense(
    request: Request,
    data: SplitExpenseIn,
    session: SplitSession = Depends(get_split_session),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
):
    image = None
    if data.receipt is None and (data.image_url or data.base64_image):
        image = build_image_source(data.image_url, data.base64_image, settings.max_image_bytes)

    result = await session.split(
        data.instructions,
        data.participants,
        receipt=data.receipt,
        prior_plan=data.prior_plan,
        image=image,
    )

    if result.receipt_validation is not None:
        _record_inference(db, "parse", result.receipt_validation)
    _record_inference(db, "split", result.validation)
    db.commit()

    response = {
        "success": True,
        "split": serialize_plan(result.plan),
        "metadata": serialize_metadata(result.validation),
    }
    if result.receipt is not None:
        response["receipt"] = serialize_receipt(result.receipt)
        response["receiptMetadata"] = serialize_metadata(result.receipt_validation)
    return response


@router.get("/inferences/{chat_id}")
def get_inference(chat_id: str, db: Session = Depends(get_db)):
    record = (
        db.query(InferenceRecord)
        .filter(InferenceRecord.chat_id == chat_id)
        .order_by(InferenceRecord.created_at.desc())
        .first()
    )
    if not record:
        raise HTTPException(status_code=404, detail="Inference not found")
    return serialize_inference_record(record)
