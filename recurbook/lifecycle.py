"""Lifecycle of recurrence families and their materialized instances.

A family always has at most one ``unconfirmed`` instance, the pending
occurrence waiting for an admin to confirm or skip it. Acting on that instance
generates the next one from the family rule, so the family advances one
occurrence at a time.

Stopping a family freezes it: existing instances are untouched and nothing
new is generated until it is restarted. Only a stopped family can be deleted.
"""

import logging
from datetime import date
from typing import Any, Callable, NamedTuple, Optional, Union

from . import constants
from .errors import PreconditionViolation
from .recurrence import RecurrenceEngine
from .schema import (
    Appointment,
    FamilyHistory,
    RecurrenceFamily,
    RecurrenceRule,
    ServiceTemplate,
    parse_rule,
)
from .status import ensure_transition
from .store import FamilyStore
from .types import AppointmentStatus, FamilyStatus
from .utils import validate_time

logger = logging.getLogger(__name__)


class InstanceAction(NamedTuple):
    """Outcome of acting on a family's pending instance."""

    family: RecurrenceFamily
    instance: Appointment
    next_instance: Optional[Appointment]


class RecurrenceFamilyManager:
    """Applies lifecycle operations to families held in a FamilyStore.

    Args:
        store: Family store
        engine: Date calculator (a default RecurrenceEngine if omitted)
        clock: Callable returning today's date
    """

    def __init__(
        self,
        store: FamilyStore,
        engine: Optional[RecurrenceEngine] = None,
        clock: Callable[[], date] = date.today,
    ):
        self.store = store
        self.engine = engine or RecurrenceEngine()
        self.clock = clock

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_family(
        self,
        client_id: Optional[int],
        template: Union[ServiceTemplate, dict[str, Any]],
        start_date: date,
        rule: Union[RecurrenceRule, dict[str, Any]],
        time: str = constants.DEFAULT_TIME,
        admin_id: Optional[int] = None,
        confirmed: bool = False,
    ) -> RecurrenceFamily:
        """
        Create an active family anchored at start_date.

        The family starts with one seed instance on start_date. It is
        ``unconfirmed``, or, when ``confirmed`` is set, it is booked straight
        away and the next occurrence becomes the pending instance.

        Raises:
            InvalidRuleError: If the rule is invalid
            ValueError: If the time or template is invalid
        """
        rule = parse_rule(rule)
        validate_time(time)
        if not isinstance(template, ServiceTemplate):
            template = ServiceTemplate(**template)

        with self.store.lock:
            family = RecurrenceFamily(
                id=self.store.new_family_id(),
                status=FamilyStatus.ACTIVE,
                rule=rule,
                template=template,
                client_id=client_id,
                admin_id=admin_id,
                time=time,
                anchor_date=start_date,
                created_on=self.clock(),
            )
            seed_status = (
                AppointmentStatus.CONFIRMED if confirmed else AppointmentStatus.UNCONFIRMED
            )
            self._add_instance(family, start_date, time, seed_status)
            if confirmed:
                self._generate_next(family, start_date)

            self.store.add_family(family)

        logger.info(
            "Created recurrence family %d (%s) for client %s starting %s",
            family.id,
            rule.type,
            client_id,
            start_date,
        )
        return family

    # ------------------------------------------------------------------
    # Pending instance
    # ------------------------------------------------------------------

    def confirm(self, instance_id: int) -> InstanceAction:
        """
        Confirm a family's pending instance and generate the next one.

        Raises:
            AppointmentNotFoundError: If the instance does not exist
            PreconditionViolation: If the instance is not pending (including
                a second confirm of the same instance)
        """
        return self._act_on_pending(instance_id, AppointmentStatus.CONFIRMED)

    def skip(self, instance_id: int) -> InstanceAction:
        """
        Skip a family's pending instance and generate the next one.

        The skipped instance is kept as ``cancelled`` so history shows it.
        """
        return self._act_on_pending(instance_id, AppointmentStatus.CANCELLED)

    def confirm_and_reschedule(
        self,
        instance_id: int,
        new_date: date,
        new_time: Optional[str] = None,
    ) -> InstanceAction:
        """
        Confirm the pending instance on a different date.

        The family is re-anchored on new_date, so the next instance (and all
        later ones) follow from the new date.
        """
        if new_time is not None:
            validate_time(new_time)

        with self.store.lock:
            family, instance = self.store.find_appointment(instance_id)
            self._ensure_pending(family, instance)
            self._compare_and_set(instance, AppointmentStatus.CONFIRMED)

            family = self.store.get_family(family.id)
            instance = family.get_appointment(instance_id)
            old_date = instance.date
            instance.date = new_date
            if new_time is not None:
                instance.time = new_time
            family.anchor_date = new_date

            next_instance = self._advance(family, new_date)
            self.store.save_family(family)

        logger.info(
            "Confirmed instance %d of family %d moved from %s to %s",
            instance_id,
            family.id,
            old_date,
            new_date,
        )
        return InstanceAction(family, instance, next_instance)

    def move(
        self,
        instance_id: int,
        new_date: date,
        new_time: Optional[str] = None,
    ) -> Appointment:
        """
        Re-date the pending instance without confirming it.

        A move log line is appended to the instance notes and the family is
        re-anchored on new_date.
        """
        with self.store.lock:
            family, instance = self.store.find_appointment(instance_id)
            self._ensure_pending(family, instance)

            new_time = validate_time(new_time) if new_time is not None else instance.time
            old_time_text = f" {instance.time}" if instance.time != new_time else ""
            move_log = (
                f"[Moved from {instance.date.isoformat()}{old_time_text} "
                f"to {new_date.isoformat()} {new_time} on {self.clock().isoformat()}]"
            )
            instance.notes = f"{instance.notes}\n{move_log}" if instance.notes else move_log

            old_date = instance.date
            instance.date = new_date
            instance.time = new_time
            family.anchor_date = new_date
            family.next_appointment_date = new_date
            self.store.save_family(family)

        logger.info(
            "Moved pending instance %d of family %d from %s to %s",
            instance_id,
            family.id,
            old_date,
            new_date,
        )
        return instance

    # ------------------------------------------------------------------
    # Booked instances
    # ------------------------------------------------------------------

    def reschedule(
        self,
        appointment_id: int,
        new_date: date,
        new_time: Optional[str] = None,
    ) -> Appointment:
        """
        Reschedule a booked instance.

        The booked instance becomes ``rescheduled_old`` and a copy on the new
        date is added to the family as ``rescheduled_new``.

        Returns:
            The new instance
        """
        if new_time is not None:
            validate_time(new_time)

        with self.store.lock:
            family, appointment = self.store.find_appointment(appointment_id)
            ensure_transition(appointment.status, AppointmentStatus.RESCHEDULED_OLD)

            appointment.status = AppointmentStatus.RESCHEDULED_OLD
            replacement = appointment.model_copy(
                update={
                    "id": self.store.new_appointment_id(),
                    "date": new_date,
                    "time": new_time or appointment.time,
                    "status": AppointmentStatus.RESCHEDULED_NEW,
                }
            )
            family.appointments.append(replacement)
            self.store.save_family(family)

        logger.info(
            "Rescheduled appointment %d of family %d to %s as appointment %d",
            appointment_id,
            family.id,
            new_date,
            replacement.id,
        )
        return replacement

    def complete(self, appointment_id: int) -> Appointment:
        """Mark a booked instance as completed."""
        with self.store.lock:
            family, appointment = self.store.find_appointment(appointment_id)
            ensure_transition(appointment.status, AppointmentStatus.COMPLETED)
            appointment.status = AppointmentStatus.COMPLETED
            self.store.save_family(family)

        logger.info("Completed appointment %d of family %d", appointment_id, family.id)
        return appointment

    # ------------------------------------------------------------------
    # Family status
    # ------------------------------------------------------------------

    def stop(self, family_id: int) -> RecurrenceFamily:
        """Stop generating instances. Existing instances are left as they are."""
        with self.store.lock:
            family = self.store.get_family(family_id)
            if not family.is_active:
                raise PreconditionViolation(f"Family {family_id} is already stopped")
            family.status = FamilyStatus.STOPPED
            self.store.save_family(family)

        logger.info("Stopped recurrence family %d", family_id)
        return family

    def restart(
        self,
        family_id: int,
        start_date: date,
        time: Optional[str] = None,
    ) -> InstanceAction:
        """
        Restart a stopped family with a new pending instance on start_date.

        A pending instance left over from before the stop is dropped as
        ``deleted`` so the family keeps a single pending instance.

        Raises:
            PreconditionViolation: If the family is not stopped or start_date
                is in the past
        """
        today = self.clock()
        if start_date < today:
            raise PreconditionViolation(
                f"Cannot restart family {family_id} on {start_date}: date is before today ({today})"
            )
        if time is not None:
            validate_time(time)

        with self.store.lock:
            family = self.store.get_family(family_id)
            if family.is_active:
                raise PreconditionViolation(f"Family {family_id} is not stopped")

            stale = family.pending_instance
            if stale is not None:
                ensure_transition(stale.status, AppointmentStatus.DELETED)
                stale.status = AppointmentStatus.DELETED
                logger.debug("Dropped stale pending instance %d of family %d", stale.id, family_id)

            family.status = FamilyStatus.ACTIVE
            family.anchor_date = start_date
            if time is not None:
                family.time = time
            instance = self._add_instance(
                family, start_date, family.time, AppointmentStatus.UNCONFIRMED
            )
            self.store.save_family(family)

        logger.info("Restarted recurrence family %d on %s", family_id, start_date)
        return InstanceAction(family, instance, None)

    def delete(self, family_id: int) -> FamilyHistory:
        """
        Delete a stopped family.

        The pending instance (if any) is dropped as ``deleted``. Every other
        instance is kept in a FamilyHistory so past work is not lost.

        Raises:
            PreconditionViolation: If the family is still active
        """
        with self.store.lock:
            family = self.store.get_family(family_id)
            if family.is_active:
                raise PreconditionViolation(
                    f"Family {family_id} must be stopped before it can be deleted"
                )

            pending = family.pending_instance
            if pending is not None:
                ensure_transition(pending.status, AppointmentStatus.DELETED)
                pending.status = AppointmentStatus.DELETED

            history = FamilyHistory(
                family_id=family.id,
                rule=family.rule,
                template=family.template,
                client_id=family.client_id,
                deleted_on=self.clock(),
                appointments=[
                    a for a in family.appointments if a.status != AppointmentStatus.DELETED
                ],
            )
            self.store.archive_history(history)
            self.store.remove_family(family_id)

        logger.info(
            "Deleted recurrence family %d, keeping %d instances in history",
            family_id,
            len(history.appointments),
        )
        return history

    def update_rule(
        self,
        family_id: int,
        rule: Union[RecurrenceRule, dict[str, Any]],
    ) -> RecurrenceFamily:
        """
        Replace a family's rule.

        Past instances keep their dates. When the family is active and has an
        acted-on (confirmed or cancelled) instance, the pending instance is
        re-dated to the new rule's next occurrence after the later of that
        instance and the family anchor. A pending instance that is itself the
        anchor (set by restart or move) keeps its date.
        """
        rule = parse_rule(rule)

        with self.store.lock:
            family = self.store.get_family(family_id)
            old_type = family.rule.type
            family.rule = rule

            pending = family.pending_instance
            last_acted_on = family.last_acted_on
            if family.is_active and pending is not None and last_acted_on is not None:
                anchor = family.anchor_date
                if pending.date == anchor:
                    logger.debug(
                        "Pending instance %d of family %d is the anchor; keeping %s",
                        pending.id,
                        family_id,
                        pending.date,
                    )
                else:
                    after = max(last_acted_on.date, anchor or last_acted_on.date)
                    new_date = self.engine.next_occurrence(rule, after, family.anchor_day)
                    logger.debug(
                        "Re-dating pending instance %d of family %d from %s to %s",
                        pending.id,
                        family_id,
                        pending.date,
                        new_date,
                    )
                    pending.date = new_date
                    family.next_appointment_date = new_date

            self.store.save_family(family)

        logger.info("Updated rule of family %d from %s to %s", family_id, old_type, rule.type)
        return family

    def stop_missed_families(self, today: Optional[date] = None) -> list[int]:
        """
        Stop every active family whose pending instance date has passed.

        Returns:
            Ids of the families that were stopped
        """
        today = today or self.clock()
        stopped = []

        with self.store.lock:
            for family in self.store.list_families(FamilyStatus.ACTIVE):
                pending = family.pending_instance
                if pending is None or pending.date >= today:
                    continue

                family.status = FamilyStatus.STOPPED
                self.store.save_family(family)
                stopped.append(family.id)
                logger.warning(
                    "Stopped family %d: pending instance %d on %s was never confirmed",
                    family.id,
                    pending.id,
                    pending.date,
                )

        return stopped

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _act_on_pending(self, instance_id: int, new_status: AppointmentStatus) -> InstanceAction:
        with self.store.lock:
            family, instance = self.store.find_appointment(instance_id)
            self._ensure_pending(family, instance)
            self._compare_and_set(instance, new_status)

            family = self.store.get_family(family.id)
            instance = family.get_appointment(instance_id)
            next_instance = self._advance(family, instance.date)
            self.store.save_family(family)

        logger.info(
            "Instance %d of family %d on %s is now %s",
            instance_id,
            family.id,
            instance.date,
            new_status.value,
        )
        return InstanceAction(family, instance, next_instance)

    def _ensure_pending(self, family: RecurrenceFamily, instance: Appointment) -> None:
        if instance.status != AppointmentStatus.UNCONFIRMED:
            raise PreconditionViolation(
                f"Appointment {instance.id} is {instance.status.value}, not unconfirmed"
            )
        pending = family.pending_instance
        if pending is None or pending.id != instance.id:
            raise PreconditionViolation(
                f"Appointment {instance.id} is not the pending instance of family {family.id}"
            )

    def _compare_and_set(self, instance: Appointment, new_status: AppointmentStatus) -> None:
        ensure_transition(instance.status, new_status)
        if not self.store.compare_and_set_status(
            instance.id, AppointmentStatus.UNCONFIRMED, new_status
        ):
            raise PreconditionViolation(f"Appointment {instance.id} was already acted on")

    def _advance(self, family: RecurrenceFamily, after: date) -> Optional[Appointment]:
        """Generate the next pending instance, or clear it for a stopped family."""
        if not family.is_active:
            family.next_appointment_date = None
            return None
        return self._generate_next(family, after)

    def _generate_next(self, family: RecurrenceFamily, after: date) -> Appointment:
        next_date = self.engine.next_occurrence(family.rule, after, family.anchor_day)
        return self._add_instance(family, next_date, family.time, AppointmentStatus.UNCONFIRMED)

    def _add_instance(
        self,
        family: RecurrenceFamily,
        on_date: date,
        time: str,
        status: AppointmentStatus,
    ) -> Appointment:
        if status == AppointmentStatus.UNCONFIRMED and family.pending_instance is not None:
            raise PreconditionViolation(f"Family {family.id} already has a pending instance")

        appointment = Appointment(
            id=self.store.new_appointment_id(),
            family_id=family.id,
            client_id=family.client_id,
            date=on_date,
            time=time,
            price=family.template.price,
            address=family.template.address,
            status=status,
            notes=family.template.notes,
        )
        family.appointments.append(appointment)
        if status == AppointmentStatus.UNCONFIRMED:
            family.next_appointment_date = on_date

        logger.debug(
            "Added %s instance %d on %s to family %d",
            status.value,
            appointment.id,
            on_date,
            family.id,
        )
        return appointment
