# uruoi/api/containers/services.py
import dataclasses
import logging
from typing import List, Optional, Tuple

from uruoi.core.exceptions import NotFoundError
from uruoi.models.container import Container
from uruoi.services.base import BaseLocalService
from uruoi.services.firestore_service import CONTAINERS_COLLECTION, RECORDS_COLLECTION


class ContainerService(BaseLocalService):
    """물그릇(Container)의 생성, 수정, 보관, 삭제, 정렬을 전담하는 서비스 클래스."""

    def _require(self, container_id: str) -> Container:
        container = self.local_store.get_container(container_id)
        if container is None:
            raise NotFoundError(f"그릇을 찾을 수 없습니다: {container_id}")
        return container

    def _save_container(self, container: Container) -> Container:
        container.validate()
        self.local_store.upsert_container(container)
        self.local_store.save()
        return container

    # --- 조회 ---

    def list_containers(self, include_archived: bool = False) -> List[Container]:
        return self._run(self.local_store.fetch_containers, include_archived)

    def get_container(self, container_id: str) -> Container:
        return self._run(self._require, container_id)

    # --- 변경 ---

    def add_container(self, name: str, empty_weight: float) -> Container:
        """새 그릇을 목록 맨 뒤에 추가합니다."""
        def _add() -> Container:
            container = Container.create(name, empty_weight, sort_order=self.local_store.next_sort_order())
            return self._save_container(container)

        container = self._run(_add)
        logging.info(f"Container created: {container.id} ({container.name})")
        self._sync_upsert(container)
        return container

    def update_container(self, container_id: str,
                         name: Optional[str] = None,
                         empty_weight: Optional[float] = None) -> Container:
        """이름/빈 그릇 무게를 부분 수정합니다."""
        def _update() -> Container:
            container = self._require(container_id)
            changes = {}
            if name is not None:
                changes['name'] = name.strip()
            if empty_weight is not None:
                changes['empty_weight'] = empty_weight
            return self._save_container(dataclasses.replace(container, **changes))

        container = self._run(_update)
        logging.info(f"Container updated: {container.id}")
        self._sync_upsert(container)
        return container

    def archive_container(self, container_id: str) -> Container:
        """소프트 삭제. 과거 기록은 그대로 남고 목록에서만 숨겨집니다."""
        def _archive() -> Container:
            container = self._require(container_id)
            container.is_archived = True
            return self._save_container(container)

        container = self._run(_archive)
        logging.info(f"Container archived: {container.id}")
        self._sync_upsert(container)
        return container

    def hard_delete_container(self, container_id: str) -> List[str]:
        """
        그릇과 연결된 기록을 모두 삭제합니다.
        원격에는 그릇 문서와 함께 삭제된 기록 문서들도 각각 삭제를 요청합니다.

        Returns:
            함께 삭제된 기록 ID 목록
        """
        def _delete() -> List[str]:
            self._require(container_id)
            cascaded = self.local_store.delete_container(container_id)
            self.local_store.save()
            return cascaded

        cascaded_ids = self._run(_delete)
        logging.info(f"Container deleted: {container_id} (records: {len(cascaded_ids)})")
        self._sync_delete(CONTAINERS_COLLECTION, container_id)
        for record_id in cascaded_ids:
            self._sync_delete(RECORDS_COLLECTION, record_id)
        return cascaded_ids

    def reorder_containers(self, ordered_ids: List[str]) -> List[Container]:
        """
        전달된 ID 순서대로 sortOrder를 0부터 다시 매깁니다.
        목록에 없는 그릇은 그 뒤에 기존 순서대로 붙습니다. 값이 바뀐 그릇만 원격에 반영합니다.
        """
        def _reorder() -> Tuple[List[Container], List[Container]]:
            containers = {c.id: c for c in self.local_store.fetch_containers()}
            unique_ids = list(dict.fromkeys(ordered_ids))
            missing = [cid for cid in unique_ids if cid not in containers]
            if missing:
                raise NotFoundError(f"그릇을 찾을 수 없습니다: {', '.join(missing)}")

            seen = set(unique_ids)
            ordered = [containers[cid] for cid in unique_ids]
            ordered += [c for c in containers.values() if c.id not in seen]

            changed = []
            for index, container in enumerate(ordered):
                if container.sort_order != index:
                    container.sort_order = index
                    self.local_store.upsert_container(container)
                    changed.append(container)
            if changed:
                self.local_store.save()
            return ordered, changed

        ordered, changed = self._run(_reorder)
        logging.info(f"Containers reordered ({len(changed)} changed)")
        for container in changed:
            self._sync_upsert(container)
        return ordered
