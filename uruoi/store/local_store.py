# uruoi/store/local_store.py
import logging
from datetime import datetime
from contextlib import contextmanager
from typing import Any, Callable, Iterable, List, Optional, Set

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from uruoi.core.exceptions import LocalPersistenceError
from uruoi.models.container import Container
from uruoi.models.water_record import WaterRecord
from uruoi.store.tables import Base, ContainerRow, WaterRecordRow


def _container_from_row(row: ContainerRow) -> Container:
    return Container(
        id=row.id,
        name=row.name,
        empty_weight=row.empty_weight,
        is_archived=row.is_archived,
        created_at=row.created_at,
        sort_order=row.sort_order,
    )


def _record_from_row(row: WaterRecordRow) -> WaterRecord:
    return WaterRecord(
        id=row.id,
        container_id=row.container_id,
        start_time=row.start_time,
        start_weight=row.start_weight,
        end_time=row.end_time,
        end_weight=row.end_weight,
        cat_count=row.cat_count,
        weather_condition=row.weather_condition,
        temperature=row.temperature,
        note=row.note,
        created_by_device_id=row.created_by_device_id,
    )


class LocalStore:
    """
    기기 로컬 임베디드 저장소(SQLite) 어댑터.

    하나의 장수(long-lived) 세션에 변경을 쌓아 두고 save()에서 한 번에 커밋합니다.
    이 객체는 스레드 안전하지 않으므로 반드시 StoreDispatcher의 소유 스레드에서만 사용해야 합니다.
    반환 값은 항상 세션과 분리된 엔티티(dataclass) 복사본입니다.
    """
    def __init__(self, database_url: str):
        engine_kwargs = {}
        if database_url.startswith('sqlite'):
            engine_kwargs['connect_args'] = {'check_same_thread': False}
            if database_url in ('sqlite://', 'sqlite:///:memory:'):
                # 메모리 DB는 연결 하나를 공유해야 같은 데이터를 봅니다.
                engine_kwargs['poolclass'] = StaticPool
        self.engine = create_engine(database_url, **engine_kwargs)
        Base.metadata.create_all(self.engine)
        self._session = sessionmaker(bind=self.engine, expire_on_commit=False)()
        logging.info(f"LocalStore initialized ({self.engine.url.render_as_string(hide_password=True)})")

    # --- 조회 ---

    def fetch_containers(self, include_archived: bool = True, ids: Optional[Iterable[str]] = None) -> List[Container]:
        query = self._session.query(ContainerRow)
        if not include_archived:
            query = query.filter(ContainerRow.is_archived.is_(False))
        if ids is not None:
            query = query.filter(ContainerRow.id.in_(list(ids)))
        query = query.order_by(ContainerRow.sort_order, ContainerRow.created_at)
        return [_container_from_row(row) for row in query.all()]

    def get_container(self, container_id: str) -> Optional[Container]:
        row = self._session.get(ContainerRow, container_id)
        return _container_from_row(row) if row else None

    def existing_container_ids(self, ids: Iterable[str]) -> Set[str]:
        ids = list(ids)
        if not ids:
            return set()
        rows = self._session.query(ContainerRow.id).filter(ContainerRow.id.in_(ids)).all()
        return {row.id for row in rows}

    def next_sort_order(self) -> int:
        rows = self._session.query(ContainerRow.sort_order).all()
        return max((row.sort_order for row in rows), default=-1) + 1

    def fetch_records(self,
                      container_id: Optional[str] = None,
                      active: Optional[bool] = None,
                      started_from: Optional[datetime] = None,
                      started_until: Optional[datetime] = None,
                      ids: Optional[Iterable[str]] = None,
                      newest_first: bool = True,
                      limit: Optional[int] = None) -> List[WaterRecord]:
        """
        조건에 맞는 기록을 startTime 순으로 조회합니다.

        Args:
            container_id: 특정 그릇의 기록만
            active: True면 진행 중(endTime 없음), False면 종료된 기록만
            started_from / started_until: startTime 범위 (양 끝 포함)
            ids: 특정 ID 목록만
            newest_first: startTime 내림차순 여부
            limit: 최대 개수
        """
        query = self._session.query(WaterRecordRow)
        if container_id is not None:
            query = query.filter(WaterRecordRow.container_id == container_id)
        if active is True:
            query = query.filter(WaterRecordRow.end_time.is_(None))
        elif active is False:
            query = query.filter(WaterRecordRow.end_time.is_not(None))
        if started_from is not None:
            query = query.filter(WaterRecordRow.start_time >= started_from)
        if started_until is not None:
            query = query.filter(WaterRecordRow.start_time <= started_until)
        if ids is not None:
            query = query.filter(WaterRecordRow.id.in_(list(ids)))
        order = WaterRecordRow.start_time.desc() if newest_first else WaterRecordRow.start_time.asc()
        query = query.order_by(order)
        if limit is not None:
            query = query.limit(limit)
        return [_record_from_row(row) for row in query.all()]

    def get_record(self, record_id: str) -> Optional[WaterRecord]:
        row = self._session.get(WaterRecordRow, record_id)
        return _record_from_row(row) if row else None

    # --- 변경 (save() 전까지는 세션에만 반영) ---

    def upsert_container(self, container: Container) -> None:
        """같은 ID가 있으면 모든 필드를 덮어쓰고, 없으면 새로 추가합니다."""
        row = self._session.get(ContainerRow, container.id)
        if row is None:
            row = ContainerRow(id=container.id)
            self._session.add(row)
        row.name = container.name
        row.empty_weight = container.empty_weight
        row.is_archived = container.is_archived
        row.created_at = container.created_at
        row.sort_order = container.sort_order

    def upsert_record(self, record: WaterRecord) -> None:
        """같은 ID가 있으면 모든 필드를 덮어쓰고, 없으면 새로 추가합니다. 그릇 관계도 다시 연결합니다."""
        # 새 행이 값이 채워지기 전에 flush되지 않도록 조회 중 autoflush를 끔
        with self._session.no_autoflush:
            row = self._session.get(WaterRecordRow, record.id)
            if row is None:
                row = WaterRecordRow(id=record.id)
            row.container_id = record.container_id
            row.start_time = record.start_time
            row.start_weight = record.start_weight
            row.end_time = record.end_time
            row.end_weight = record.end_weight
            row.cat_count = record.cat_count
            row.weather_condition = record.weather_condition
            row.temperature = record.temperature
            row.note = record.note
            row.created_by_device_id = record.created_by_device_id
            container_row = self._session.get(ContainerRow, record.container_id)
            if container_row is not None:
                row.container = container_row
            self._session.add(row)

    def delete_container(self, container_id: str) -> List[str]:
        """
        그릇을 삭제합니다. 관계로 연결된 기록은 함께 삭제(cascade)됩니다.

        Returns:
            함께 삭제된 기록 ID 목록. 그릇이 없으면 빈 목록.
        """
        row = self._session.get(ContainerRow, container_id)
        if row is None:
            return []
        cascaded_ids = [record.id for record in row.records]
        self._session.delete(row)
        return cascaded_ids

    def delete_record(self, record_id: str) -> bool:
        row = self._session.get(WaterRecordRow, record_id)
        if row is None:
            return False
        self._session.delete(row)
        return True

    def delete_all_records(self) -> int:
        return self._session.query(WaterRecordRow).delete(synchronize_session='fetch')

    def delete_all_containers(self) -> int:
        return self._session.query(ContainerRow).delete(synchronize_session='fetch')

    # --- 커밋 ---

    def save(self) -> None:
        """쌓인 변경을 커밋합니다. 실패하면 세션을 롤백하고 LocalPersistenceError를 발생시킵니다."""
        try:
            self._session.commit()
        except SQLAlchemyError as e:
            logging.error(f"Local store commit failed: {e}", exc_info=True)
            self._session.rollback()
            raise LocalPersistenceError("로컬 데이터 저장에 실패했습니다.", cause=e) from e

    def rollback(self) -> None:
        self._session.rollback()

    @contextmanager
    def transaction(self):
        """
        하나의 작업 단위. 블록 안에서 예외가 나면 세션을 롤백해 다음 작업이 깨끗한 세션에서 시작하게 합니다.
        SQLAlchemy 오류는 LocalPersistenceError로 바꿔 다시 발생시킵니다.
        """
        try:
            yield self
        except SQLAlchemyError as e:
            logging.error(f"Local store operation failed: {e}", exc_info=True)
            self._session.rollback()
            raise LocalPersistenceError("로컬 데이터 저장에 실패했습니다.", cause=e) from e
        except Exception:
            self._session.rollback()
            raise

    def run_in_transaction(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        with self.transaction():
            return fn(*args, **kwargs)

    def close(self) -> None:
        self._session.close()
        self.engine.dispose()
