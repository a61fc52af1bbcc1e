"""In-memory registry of live service processes."""

from collections.abc import Iterator
from typing import final

from fleetd.exceptions import DuplicateServiceError

from ._models import ServiceRecord


@final
class ServiceRegistry:
    """Maps object ids to the pids running them.

    The registry is rebuilt from RESTORE commands after a daemon restart and
    holds exactly the services whose process has not yet been reaped. It is
    only touched from the owning event loop, so no locking is needed.
    """

    __slots__ = ("_by_object", "_by_pid")

    def __init__(self) -> None:
        self._by_object: dict[str, ServiceRecord] = {}
        self._by_pid: dict[int, ServiceRecord] = {}

    def check_available(self, object_id: str) -> None:
        """Ensure no live service owns object_id.

        Raises:
            DuplicateServiceError: If a live record already exists.
        """
        existing = self._by_object.get(object_id)
        if existing is not None:
            msg = f"Object '{object_id}' is already served by pid {existing.pid}"
            raise DuplicateServiceError(msg, object_id=object_id, pid=existing.pid)

    def add(self, record: ServiceRecord) -> None:
        """Register a freshly spawned service.

        Raises:
            DuplicateServiceError: If a live record already owns the object id.
        """
        self.check_available(record.object_id)
        self._by_object[record.object_id] = record
        self._by_pid[record.pid] = record

    def remove_pid(self, pid: int) -> ServiceRecord | None:
        """Drop the record for a reaped pid, returning it if one existed."""
        record = self._by_pid.pop(pid, None)
        if record is not None:
            del self._by_object[record.object_id]
        return record

    def get(self, object_id: str) -> ServiceRecord | None:
        return self._by_object.get(object_id)

    @property
    def object_ids(self) -> frozenset[str]:
        return frozenset(self._by_object)

    @property
    def pids(self) -> frozenset[int]:
        return frozenset(self._by_pid)

    def __contains__(self, object_id: object) -> bool:
        return object_id in self._by_object

    def __iter__(self) -> Iterator[ServiceRecord]:
        return iter(list(self._by_object.values()))

    def __len__(self) -> int:
        return len(self._by_object)
