"""
SQLAlchemy model for the local mirror of saved receipts.
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, JSON, String

from app.receipts.database import Base


class SavedReceiptModel(Base):
    __tablename__ = "saved_receipts"

    id = Column(String, primary_key=True)  # upstream record id
    owner = Column(String(64), nullable=False, index=True)
    file_path = Column(String)
    original_name = Column(String)
    job_id = Column(String)
    month_year_key = Column(String(16), nullable=False, default="Unknown Month", index=True)
    extracted_json = Column(JSON, nullable=False)
    created_at = Column(String)  # as reported upstream
    synced_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
