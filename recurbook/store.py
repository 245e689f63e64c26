"""Persistence collaborators for recurrence families.

The lifecycle manager only talks to the FamilyStore interface. Two stores
ship with the package:

  - InMemoryFamilyStore: dict-backed, used by tests and embedding callers
  - YamlFamilyStore: the in-memory store written through to a directory of
    family-<id>.yaml files (see loader.py)

Stores hand out deep copies of families. Writers save a whole family back;
status changes of a single instance go through compare_and_set_status(),
which is the guard against two concurrent confirm/skip calls on the same
pending instance. For YamlFamilyStore the guard also holds across processes:
its lock is a file lock on the data directory, and the directory is re-read
each time the lock is taken.
"""

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, ContextManager, Optional

from . import constants, loader
from .errors import AppointmentNotFoundError, FamilyNotFoundError
from .schema import Appointment, FamilyHistory, GlobalConfig, RecurrenceFamily
from .types import AppointmentStatus, FamilyStatus

try:
    import fcntl  # POSIX advisory lock
except ImportError:
    fcntl = None

logger = logging.getLogger(__name__)


class FamilyStore(ABC):
    """Interface between the lifecycle manager and storage."""

    #: Re-entrant lock held across multi-step writes so readers see either the
    #: state before or after a transition, never the middle of one.
    lock: ContextManager[Any]

    @abstractmethod
    def new_family_id(self) -> int:
        """Reserve a family id."""

    @abstractmethod
    def new_appointment_id(self) -> int:
        """Reserve an appointment id."""

    @abstractmethod
    def add_family(self, family: RecurrenceFamily) -> None:
        """Insert a new family."""

    @abstractmethod
    def get_family(self, family_id: int) -> RecurrenceFamily:
        """Return a copy of a family.

        Raises:
            FamilyNotFoundError: If no family has that id
        """

    @abstractmethod
    def list_families(self, status: Optional[FamilyStatus] = None) -> list[RecurrenceFamily]:
        """Return copies of all families (optionally filtered by status), by id."""

    @abstractmethod
    def save_family(self, family: RecurrenceFamily) -> None:
        """Replace a stored family with the given state."""

    @abstractmethod
    def remove_family(self, family_id: int) -> None:
        """Delete a family record."""

    @abstractmethod
    def find_appointment(self, appointment_id: int) -> tuple[RecurrenceFamily, Appointment]:
        """Return (family copy, appointment within that copy).

        Raises:
            AppointmentNotFoundError: If no family owns an appointment with that id
        """

    @abstractmethod
    def compare_and_set_status(
        self,
        appointment_id: int,
        expected: AppointmentStatus,
        new: AppointmentStatus,
    ) -> bool:
        """Atomically set an appointment's status if it is still ``expected``.

        Returns:
            True if the status was changed, False if it no longer matched
        """

    @abstractmethod
    def archive_history(self, history: FamilyHistory) -> None:
        """Keep the instances of a deleted family."""

    @abstractmethod
    def list_histories(self) -> list[FamilyHistory]:
        """Return retained histories of deleted families."""


class InMemoryFamilyStore(FamilyStore):
    """Dict-backed family store guarded by a re-entrant lock."""

    def __init__(self, families: Optional[list[RecurrenceFamily]] = None):
        self.lock = threading.RLock()
        self._families: dict[int, RecurrenceFamily] = {}
        self._appointment_index: dict[int, int] = {}
        self._histories: dict[int, FamilyHistory] = {}
        self._last_family_id = 0
        self._last_appointment_id = 0

        for family in families or []:
            self._put(family)

    def new_family_id(self) -> int:
        with self.lock:
            self._last_family_id += 1
            return self._last_family_id

    def new_appointment_id(self) -> int:
        with self.lock:
            self._last_appointment_id += 1
            return self._last_appointment_id

    def add_family(self, family: RecurrenceFamily) -> None:
        with self.lock:
            if family.id in self._families:
                raise ValueError(f"Family {family.id} already exists")
            self._put(family)
            self._persist(self._families[family.id])

    def get_family(self, family_id: int) -> RecurrenceFamily:
        with self.lock:
            family = self._families.get(family_id)
            if family is None:
                raise FamilyNotFoundError(f"Recurrence family {family_id} not found")
            return family.model_copy(deep=True)

    def list_families(self, status: Optional[FamilyStatus] = None) -> list[RecurrenceFamily]:
        with self.lock:
            return [
                family.model_copy(deep=True)
                for family_id, family in sorted(self._families.items())
                if status is None or family.status == status
            ]

    def save_family(self, family: RecurrenceFamily) -> None:
        with self.lock:
            if family.id not in self._families:
                raise FamilyNotFoundError(f"Recurrence family {family.id} not found")
            self._put(family)
            self._persist(self._families[family.id])

    def remove_family(self, family_id: int) -> None:
        with self.lock:
            family = self._families.pop(family_id, None)
            if family is None:
                raise FamilyNotFoundError(f"Recurrence family {family_id} not found")
            self._appointment_index = {
                appt_id: fam_id
                for appt_id, fam_id in self._appointment_index.items()
                if fam_id != family_id
            }
            self._persist_removal(family_id)

    def find_appointment(self, appointment_id: int) -> tuple[RecurrenceFamily, Appointment]:
        with self.lock:
            family_id = self._appointment_index.get(appointment_id)
            if family_id is None:
                raise AppointmentNotFoundError(
                    f"Appointment {appointment_id} not found or not part of a recurrence family"
                )
            family = self.get_family(family_id)
            return family, family.get_appointment(appointment_id)

    def compare_and_set_status(
        self,
        appointment_id: int,
        expected: AppointmentStatus,
        new: AppointmentStatus,
    ) -> bool:
        with self.lock:
            family_id = self._appointment_index.get(appointment_id)
            if family_id is None:
                raise AppointmentNotFoundError(f"Appointment {appointment_id} not found")

            family = self._families[family_id]
            appointment = family.get_appointment(appointment_id)
            if appointment.status != expected:
                logger.debug(
                    "Status of appointment %d is %s, not %s; not changing it to %s",
                    appointment_id,
                    appointment.status.value,
                    expected.value,
                    new.value,
                )
                return False

            appointment.status = new
            self._persist(family)
            return True

    def archive_history(self, history: FamilyHistory) -> None:
        with self.lock:
            self._histories[history.family_id] = history.model_copy(deep=True)
            self._persist_history(history)

    def list_histories(self) -> list[FamilyHistory]:
        with self.lock:
            return [h.model_copy(deep=True) for _, h in sorted(self._histories.items())]

    def _put(self, family: RecurrenceFamily) -> None:
        stored = family.model_copy(deep=True)
        self._families[stored.id] = stored
        self._appointment_index = {
            appt_id: fam_id
            for appt_id, fam_id in self._appointment_index.items()
            if fam_id != stored.id
        }
        for appointment in stored.appointments:
            self._appointment_index[appointment.id] = stored.id

        self._last_family_id = max(self._last_family_id, stored.id)
        if stored.appointments:
            self._last_appointment_id = max(
                self._last_appointment_id, max(a.id for a in stored.appointments)
            )

    # Write-through hooks for subclasses backed by real storage
    def _persist(self, family: RecurrenceFamily) -> None:
        pass

    def _persist_removal(self, family_id: int) -> None:
        pass

    def _persist_history(self, history: FamilyHistory) -> None:
        pass



class DirectoryLock:
    """Re-entrant lock shared by threads and processes working on one directory.

    The outermost ``with`` block takes an exclusive ``flock`` on the lock file
    and runs ``on_acquire``. When it exits, ``on_release`` is called with
    whether the block finished without an exception, and the flock is dropped.
    Nested blocks in the same thread only count depth. Where fcntl is not
    available only threads of the current process are excluded.
    """

    def __init__(
        self,
        path: Path,
        on_acquire: Optional[Callable[[], None]] = None,
        on_release: Optional[Callable[[bool], None]] = None,
    ):
        self.path = path
        self.on_acquire = on_acquire
        self.on_release = on_release
        self._thread_lock = threading.RLock()
        self._depth = 0
        self._file = None

    def __enter__(self) -> "DirectoryLock":
        self._thread_lock.acquire()
        if self._depth == 0:
            try:
                self._lock_file()
                if self.on_acquire is not None:
                    self.on_acquire()
            except BaseException:
                self._unlock_file()
                self._thread_lock.release()
                raise
        self._depth += 1
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._depth -= 1
        try:
            if self._depth == 0:
                try:
                    if self.on_release is not None:
                        self.on_release(exc_type is None)
                finally:
                    self._unlock_file()
        finally:
            self._thread_lock.release()

    def _lock_file(self) -> None:
        if fcntl is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self.path.open("a")
        fcntl.flock(self._file.fileno(), fcntl.LOCK_EX)

    def _unlock_file(self) -> None:
        if self._file is None:
            return
        try:
            fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
        finally:
            self._file.close()
            self._file = None


class YamlFamilyStore(InMemoryFamilyStore):
    """Family store persisted as one YAML file per family in a directory.

    Each outermost use of ``lock`` re-reads the directory while holding a
    file lock, so compare-and-set and id allocation see what other processes
    wrote. Changes are buffered until that block exits cleanly and are then
    written once per family, each file replaced atomically. A block that
    raises writes nothing. Ids handed out by new_family_id() and
    new_appointment_id() are only reserved until the enclosing block ends.
    """

    def __init__(self, directory: Path):
        super().__init__()
        self.directory = Path(directory)
        self.config: GlobalConfig = loader.load_config(self.directory)
        self._dirty: set[int] = set()
        self._removed: set[int] = set()
        self._dirty_histories: set[int] = set()
        self.lock = DirectoryLock(
            self.directory / constants.LOCK_FILENAME,
            on_acquire=self._reload,
            on_release=self._flush,
        )

    def _reload(self) -> None:
        self._families.clear()
        self._appointment_index.clear()
        self._histories.clear()
        self._last_family_id = 0
        self._last_appointment_id = 0
        self._clear_pending_writes()

        for family in loader.load_families_from_directory(self.directory):
            self._put(family)

        for history in loader.load_histories_from_directory(self.directory):
            self._histories[history.family_id] = history
            self._last_family_id = max(self._last_family_id, history.family_id)
            if history.appointments:
                self._last_appointment_id = max(
                    self._last_appointment_id, max(a.id for a in history.appointments)
                )

    def _flush(self, committed: bool) -> None:
        try:
            if not committed:
                if self._dirty or self._removed or self._dirty_histories:
                    logger.debug("Discarding unsaved changes to %s", self.directory)
                return

            for family_id in sorted(self._dirty_histories):
                loader.save_history_file(self.directory, self._histories[family_id])
            for family_id in sorted(self._dirty):
                loader.save_family_file(self.directory, self._families[family_id])
            for family_id in sorted(self._removed):
                loader.remove_family_file(self.directory, family_id)
        finally:
            self._clear_pending_writes()

    def _clear_pending_writes(self) -> None:
        self._dirty.clear()
        self._removed.clear()
        self._dirty_histories.clear()

    def _persist(self, family: RecurrenceFamily) -> None:
        self._dirty.add(family.id)
        self._removed.discard(family.id)

    def _persist_removal(self, family_id: int) -> None:
        self._removed.add(family_id)
        self._dirty.discard(family_id)

    def _persist_history(self, history: FamilyHistory) -> None:
        self._dirty_histories.add(history.family_id)
