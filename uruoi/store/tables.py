# uruoi/store/tables.py
from datetime import timezone
from sqlalchemy import Column, String, Float, Boolean, Integer, DateTime, ForeignKey, TypeDecorator
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """SQLite에는 naive UTC로 저장하고, 읽을 때는 UTC timezone-aware datetime으로 돌려줍니다."""
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class ContainerRow(Base):
    __tablename__ = "containers"

    id = Column(String(64), primary_key=True)
    name = Column(String(64), nullable=False)
    empty_weight = Column(Float, nullable=False)
    is_archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False)
    sort_order = Column(Integer, nullable=False, default=0, index=True)

    # 그릇 삭제 시 연결된 기록도 함께 삭제
    records = relationship(
        "WaterRecordRow",
        back_populates="container",
        cascade="all, delete",
    )


class WaterRecordRow(Base):
    __tablename__ = "water_records"

    id = Column(String(64), primary_key=True)
    # 관계가 끊겨도 남는 그릇 ID (동기화/복구용)
    container_id = Column(String(64), nullable=False, index=True)
    container_key = Column(String(64), ForeignKey("containers.id"), nullable=True)
    start_time = Column(UTCDateTime, nullable=False, index=True)
    start_weight = Column(Float, nullable=False)
    end_time = Column(UTCDateTime, nullable=True)
    end_weight = Column(Float, nullable=True)
    cat_count = Column(Integer, nullable=False)
    weather_condition = Column(String(64), nullable=True)
    temperature = Column(Float, nullable=True)
    note = Column(String(255), nullable=True)
    created_by_device_id = Column(String(64), nullable=True)

    container = relationship("ContainerRow", back_populates="records")
