from sqlalchemy import Column, Integer, String, DateTime, Text
from sqlalchemy.sql import func
from deliveryaddr.db.session import Base

class AddressLog(Base):
    """
    Address Log Model (주소 검증 이력 모델)
    Stores the original input and the resolution result.
    """
    __tablename__ = "address_logs"

    id = Column(Integer, primary_key=True, index=True)
    raw_text = Column(Text, nullable=False, comment="Original Input (원본 주소)")

    # Resolution Results (검증 결과)
    standard_address = Column(String, nullable=True, comment="Road Name Address (도로명 주소)")
    detail_address = Column(String, nullable=True, comment="Detail Address (상세 주소)")
    normalized_detail_address = Column(String, nullable=True, comment="Normalized Detail (정규화 상세주소)")
    zip_no = Column(String, nullable=True)
    buld_nm = Column(String, nullable=True, comment="Building Name (건물명)")

    # Status (상태)
    # valid, warning, invalid
    status = Column(String, default="invalid")
    reason_code = Column(String, nullable=True)
    warning_message = Column(String, nullable=True)
    error_message = Column(String, nullable=True, comment="Error Message if failed")

    # Metadata
    created_at = Column(DateTime(timezone=True), server_default=func.now())
