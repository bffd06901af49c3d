from sqlalchemy import Column, Integer, String, Float, DateTime, Text, Boolean, Index
from sqlalchemy.sql import func
from deliveryaddr.db.session import Base

class AddressLearningData(Base):
    """
    Detail address corrections (상세주소 학습 데이터)
    Rows with pattern_regex double as the regex pattern store.
    """
    __tablename__ = "address_learning_data"

    id = Column(Integer, primary_key=True, index=True)
    original_detail_address = Column(String, nullable=False, index=True)  # 원본 상세주소 (101 1001)
    corrected_detail_address = Column(String, nullable=False)             # 교정 상세주소 (101동 1001호)
    building_type = Column(String, nullable=False, default="general")     # apartment / villa / general
    correction_type = Column(String, nullable=True)                       # hyphen_to_unit 등

    confidence_score = Column(Float, default=0.8)
    occurrence_count = Column(Integer, default=1)
    success_count = Column(Integer, default=0)
    user_confirmed = Column(Boolean, default=False)

    # Pattern analysis (정규식 패턴)
    error_pattern = Column(String, nullable=True)
    problem_description = Column(Text, nullable=True)
    pattern_regex = Column(String, nullable=True)
    solution_description = Column(Text, nullable=True)

    # AI pattern analysis (AI 패턴 분석 결과)
    conversion_template = Column(String, nullable=True)                   # $1동 $2호
    similar_patterns = Column(Text, nullable=True)                        # JSON 배열
    extracted_memo = Column(String, nullable=True)
    analyzed_at = Column(DateTime(timezone=True), nullable=True)
    ai_model = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    last_used_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index('ix_learning_lookup', 'original_detail_address', 'building_type'),
    )
