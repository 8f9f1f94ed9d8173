import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, String, DateTime

from app.database import Base


def new_uuid():
    return str(uuid.uuid4())


class InferenceRecord(Base):
    """Audit trail of paid inference calls and their settlement result."""

    __tablename__ = "inference_records"

    id = Column(String, primary_key=True, default=new_uuid)
    kind = Column(String(20), nullable=False)  # "parse" or "split"
    chat_id = Column(String(255), nullable=False, index=True)
    provider = Column(String(255), nullable=False)
    model = Column(String(255), nullable=False)
    is_valid = Column(Boolean, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
