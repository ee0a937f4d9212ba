"""
Ticket Value Objects
====================

Immutable value objects and stateless calculations for the ticket domain.

``LifecyclePolicy`` is the single place the policy constants live; it is
passed explicitly into every calculation that needs it.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from repairdesk.config import (
    GENERAL_POOL_SPECIALTY,
    ResolutionOption,
    ServiceType,
    TicketStatus,
    WarrantyStatus,
)


DateLike = Union[date, datetime]


class LifecyclePolicy(BaseModel):
    """
    Lifecycle policy loaded from settings or YAML.

    This is a value object - immutable and defined by its attributes.
    """
    model_config = ConfigDict(frozen=True)

    warranty_months: int = Field(default=24, ge=0, description="Repair warranty in calendar months")
    return_window_days: int = Field(default=15, ge=0, description="Return window in days")
    capacity_limit: int = Field(default=5, ge=1, description="Active tickets per technician for auto-assignment")
    general_pool_specialty: str = Field(
        default=GENERAL_POOL_SPECIALTY,
        description="Specialty of the catch-all technician pool"
    )


def _as_date(value: DateLike) -> date:
    return value.date() if isinstance(value, datetime) else value


def _as_utc_datetime(value: DateLike) -> datetime:
    """Dates become midnight UTC; naive datetimes are read as UTC."""
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class EligibilityEvaluator:
    """
    Pure functions for warranty and return eligibility.

    Both bounds are inclusive: a purchase exactly on the threshold is
    still eligible / under warranty.
    """

    @staticmethod
    def days_since_purchase(purchase_date: DateLike, now: DateLike) -> int:
        """
        Elapsed days between purchase and ``now``, rounded up.

        The purchase is taken as midnight UTC of its date, so any part of a
        day counts as a full day. Two plain dates give their exact difference.
        """
        elapsed = abs(_as_utc_datetime(now) - _as_utc_datetime(purchase_date))
        return math.ceil(elapsed.total_seconds() / 86400)

    @staticmethod
    def months_since_purchase(purchase_date: DateLike, now: DateLike) -> int:
        """Calendar-month difference; the day of month is ignored."""
        p, n = _as_date(purchase_date), _as_date(now)
        return (n.year - p.year) * 12 + (n.month - p.month)

    @classmethod
    def evaluate(
        cls,
        purchase_date: DateLike,
        service_type: ServiceType,
        now: DateLike,
        policy: LifecyclePolicy
    ) -> WarrantyStatus:
        """
        Compute the warranty/return label for a submission.

        Args:
            purchase_date: Date the device was bought
            service_type: Repair or Return
            now: Evaluation time
            policy: Active lifecycle policy

        Returns:
            WarrantyStatus label
        """
        if service_type == ServiceType.RETURN:
            days = cls.days_since_purchase(purchase_date, now)
            if days <= policy.return_window_days:
                return WarrantyStatus.ELIGIBLE_FOR_RETURN
            return WarrantyStatus.RETURN_PERIOD_EXPIRED

        months = cls.months_since_purchase(purchase_date, now)
        if months <= policy.warranty_months:
            return WarrantyStatus.UNDER_WARRANTY
        return WarrantyStatus.OUT_OF_WARRANTY


@dataclass(frozen=True)
class ServiceProfile:
    """Starting point of a ticket by service type."""
    initial_status: TicketStatus
    resolution_options: Tuple[ResolutionOption, ...]
    auto_assign: bool

    @classmethod
    def for_service(cls, service_type: ServiceType) -> "ServiceProfile":
        if service_type == ServiceType.RETURN:
            return cls(
                initial_status=TicketStatus.PENDING_VALIDATION,
                resolution_options=(ResolutionOption.REFUND, ResolutionOption.REPLACEMENT),
                auto_assign=False,
            )
        return cls(
            initial_status=TicketStatus.SUBMITTED,
            resolution_options=(ResolutionOption.REPAIR,),
            auto_assign=True,
        )


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of a status change request that was accepted."""
    previous_status: TicketStatus
    new_status: TicketStatus

    @property
    def changed(self) -> bool:
        return self.previous_status != self.new_status
