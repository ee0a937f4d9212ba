"""
Configuration Module
====================

Application settings and lifecycle constants using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/repairdesk",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Lifecycle Policy ==========
    warranty_months: int = Field(
        default=24,
        description="Calendar months a repair stays under warranty",
        ge=0
    )
    return_window_days: int = Field(
        default=15,
        description="Days after purchase a return may be filed",
        ge=0
    )
    capacity_limit: int = Field(
        default=5,
        description="Max active tickets auto-assigned to one technician",
        ge=1
    )
    policy_config_path: Path = Field(
        default=Path("lifecycle_policy.yaml"),
        description="Path to lifecycle policy YAML file"
    )
    serialize_assignments: bool = Field(
        default=True,
        description="Serialize auto-assignment so capacity is never overshot"
    )

    # ========== SMTP Notifications ==========
    smtp_host: Optional[str] = Field(default=None, description="SMTP server host")
    smtp_port: int = Field(default=587, description="SMTP server port", ge=1, le=65535)
    smtp_username: Optional[str] = Field(default=None, description="SMTP username")
    smtp_password: Optional[str] = Field(default=None, description="SMTP password")
    smtp_use_tls: bool = Field(default=True, description="Use STARTTLS")
    smtp_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for SMTP operations",
        ge=0.1,
        le=60
    )
    mail_from: str = Field(
        default="Electronics R&R System <system@electronics-rr.com>",
        description="Sender address for status emails"
    )

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for escalation notices"
    )
    slack_channel: str = Field(
        default="#repair-escalations",
        description="Slack channel for escalation notices"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class ServiceType(str, Enum):
    """Kind of service a customer requests."""
    REPAIR = "Repair"
    RETURN = "Return"


class DeviceType(str, Enum):
    """Device types accepted at submission."""
    SMARTPHONE = "Smartphone"
    LAPTOP = "Laptop"
    TV = "TV"
    OTHER = "Other"


class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    SUBMITTED = "Submitted"
    PENDING_VALIDATION = "Pending Validation"
    IN_PROGRESS = "In Progress"
    WAITING_FOR_PARTS = "Waiting for Parts"
    SHIPPING = "Shipping"
    READY_FOR_PICKUP = "Ready for Pickup"
    SHIPPED_BACK = "Shipped Back"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class WarrantyStatus(str, Enum):
    """Eligibility label computed once at creation."""
    UNDER_WARRANTY = "Under Warranty"
    OUT_OF_WARRANTY = "Out of Warranty"
    ELIGIBLE_FOR_RETURN = "Eligible for Return"
    RETURN_PERIOD_EXPIRED = "Return Period Expired"


class ResolutionOption(str, Enum):
    """Outcomes a customer may receive."""
    REFUND = "Refund"
    REPLACEMENT = "Replacement"
    REPAIR = "Repair"


class Role(str, Enum):
    """Actor roles."""
    CUSTOMER = "Customer"
    TECHNICIAN = "Technician"
    EMPLOYEE = "Employee"
    MANAGER = "Manager"
    ADMIN = "Admin"


class DeliveryMethod(str, Enum):
    """How the device reaches the service centre and gets back."""
    COURIER = "Courier"
    DROPOFF = "Drop-off"


class CommentType(str, Enum):
    """Internal comment categories."""
    NOTE = "Note"
    WAITING_FOR_PARTS = "Waiting for Parts"
    ESCALATION = "Escalation"
    SLA_RISK = "SLA Risk"


# ========== Lists for validation ==========

TERMINAL_STATUSES = frozenset({TicketStatus.COMPLETED, TicketStatus.CANCELLED})

# Stored as plain strings: the store may still hold legacy "Closed"/"Rejected" rows
WORKLOAD_EXCLUDED_STATUSES = frozenset({"Completed", "Closed", "Cancelled", "Rejected"})

STAFF_ROLES = frozenset({Role.TECHNICIAN, Role.EMPLOYEE, Role.MANAGER, Role.ADMIN})
ASSIGNER_ROLES = frozenset({Role.EMPLOYEE, Role.MANAGER, Role.ADMIN})
SUBMITTER_ROLES = frozenset({Role.CUSTOMER, Role.EMPLOYEE, Role.MANAGER, Role.ADMIN})
ANALYTICS_ROLES = frozenset({Role.MANAGER, Role.ADMIN})

GENERAL_POOL_SPECIALTY = DeviceType.OTHER.value
