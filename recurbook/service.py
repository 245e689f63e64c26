"""Application-facing operations over recurrence families.

RecurringService is what a web handler, a scheduled job or the CLI calls. It
wires a FamilyStore, a RecurrenceFamilyManager and an OccurrenceProjector
together under one GlobalConfig and adds the read-side summaries.
"""

import logging
from datetime import date
from typing import Any, Callable, NamedTuple, Optional, Union

from .lifecycle import InstanceAction, RecurrenceFamilyManager
from .projection import OccurrenceCount, OccurrenceProjector, RevenueProjection
from .recurrence import describe_rule
from .schema import (
    Appointment,
    FamilyHistory,
    GlobalConfig,
    RecurrenceFamily,
    RecurrenceRule,
    ServiceTemplate,
)
from .status import BOOKED_STATUSES, is_terminal
from .store import FamilyStore
from .types import AppointmentStatus, FamilyStatus

logger = logging.getLogger(__name__)


class FamilySummary(NamedTuple):
    """A family with the counts shown in family listings."""

    family: RecurrenceFamily
    rule_summary: str
    unconfirmed_count: int
    confirmed_count: int
    upcoming_count: int
    total_count: int


class RecurringService:
    """Entry point for managing recurring appointments."""

    def __init__(
        self,
        store: FamilyStore,
        manager: Optional[RecurrenceFamilyManager] = None,
        config: Optional[GlobalConfig] = None,
        clock: Callable[[], date] = date.today,
    ):
        self.store = store
        self.config = config or getattr(store, "config", None) or GlobalConfig()
        self.manager = manager or RecurrenceFamilyManager(store, clock=clock)
        self.clock = self.manager.clock
        self.projector = OccurrenceProjector(
            engine=self.manager.engine,
            min_steps=self.config.min_projection_steps,
            max_occurrences_per_month=self.config.max_occurrences_per_month,
        )

    # Queries

    def list_families(self, status: Optional[FamilyStatus] = None) -> list[FamilySummary]:
        """List families with their instance counts, optionally filtered by status."""
        today = self.clock()
        return [self._summarize(f, today) for f in self.store.list_families(status)]

    def list_active_families(self) -> list[FamilySummary]:
        """
        List active families.

        When ``stop_missed_on_sync`` is enabled, families whose pending
        instance has already passed are stopped first and so are not listed.
        """
        if self.config.stop_missed_on_sync:
            self.manager.stop_missed_families()
        return self.list_families(FamilyStatus.ACTIVE)

    def list_stopped_families(self) -> list[FamilySummary]:
        return self.list_families(FamilyStatus.STOPPED)

    def get_family(self, family_id: int) -> RecurrenceFamily:
        """Return a family with its full instance history, sorted by date."""
        family = self.store.get_family(family_id)
        family.appointments.sort(key=lambda a: (a.date, a.time, a.id))
        return family

    def list_histories(self) -> list[FamilyHistory]:
        return self.store.list_histories()

    # Lifecycle

    def create_family(
        self,
        client_id: Optional[int],
        template: Union[ServiceTemplate, dict[str, Any]],
        start_date: date,
        rule: Union[RecurrenceRule, dict[str, Any]],
        time: Optional[str] = None,
        admin_id: Optional[int] = None,
        confirmed: bool = False,
    ) -> RecurrenceFamily:
        return self.manager.create_family(
            client_id,
            template,
            start_date,
            rule,
            time=time or self.config.default_time,
            admin_id=admin_id,
            confirmed=confirmed,
        )

    def update_family_rule(
        self,
        family_id: int,
        rule: Union[RecurrenceRule, dict[str, Any]],
    ) -> RecurrenceFamily:
        return self.manager.update_rule(family_id, rule)

    def confirm_instance(self, instance_id: int) -> InstanceAction:
        return self.manager.confirm(instance_id)

    def skip_instance(self, instance_id: int) -> InstanceAction:
        return self.manager.skip(instance_id)

    def confirm_and_reschedule_instance(
        self,
        instance_id: int,
        new_date: date,
        new_time: Optional[str] = None,
    ) -> InstanceAction:
        return self.manager.confirm_and_reschedule(instance_id, new_date, new_time)

    def move_instance(
        self,
        instance_id: int,
        new_date: date,
        new_time: Optional[str] = None,
    ) -> Appointment:
        return self.manager.move(instance_id, new_date, new_time)

    def reschedule_appointment(
        self,
        appointment_id: int,
        new_date: date,
        new_time: Optional[str] = None,
    ) -> Appointment:
        return self.manager.reschedule(appointment_id, new_date, new_time)

    def complete_appointment(self, appointment_id: int) -> Appointment:
        return self.manager.complete(appointment_id)

    def stop_family(self, family_id: int) -> RecurrenceFamily:
        return self.manager.stop(family_id)

    def restart_family(
        self,
        family_id: int,
        start_date: date,
        time: Optional[str] = None,
    ) -> InstanceAction:
        return self.manager.restart(family_id, start_date, time)

    def delete_family(self, family_id: int) -> FamilyHistory:
        return self.manager.delete(family_id)

    def sync(self, today: Optional[date] = None) -> list[int]:
        """
        Run the periodic sweep over active families.

        Returns:
            Ids of families stopped because their pending instance passed
        """
        stopped = self.manager.stop_missed_families(today)
        logger.info("Sync stopped %d families with missed instances", len(stopped))
        return stopped

    # Projection

    def project_occurrences(
        self,
        family_id: int,
        year: int,
        month: int,
        exclude_existing: bool = False,
    ) -> OccurrenceCount:
        """
        Project a family's occurrences onto a month.

        Raises:
            FamilyNotFoundError: If the family does not exist
            AnchorMissingError: If the family has nothing to project from
        """
        family = self.store.get_family(family_id)
        return self.projector.project_family(family, year, month, exclude_existing)

    def project_revenue(self, year: int, month: int) -> RevenueProjection:
        """Estimate a month's revenue from all active families."""
        families = self.store.list_families(FamilyStatus.ACTIVE)
        return self.projector.project_revenue(families, year, month)

    def _summarize(self, family: RecurrenceFamily, today: date) -> FamilySummary:
        upcoming = sum(
            1
            for a in family.appointments
            if a.date >= today and not is_terminal(a.status)
        )
        return FamilySummary(
            family=family,
            rule_summary=describe_rule(family.rule),
            unconfirmed_count=family.count_by_status(AppointmentStatus.UNCONFIRMED),
            confirmed_count=family.count_by_status(*BOOKED_STATUSES),
            upcoming_count=upcoming,
            total_count=len(family.appointments),
        )
