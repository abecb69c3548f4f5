"""Staff and external locum models (read-only inputs to payroll)."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from clinic_payroll.models.base import Base, TimestampMixin


class StaffMember(Base, TimestampMixin):
    """Employed staff member with a pay profile."""

    __tablename__ = "staff_member"

    staff_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    job_title: Mapped[str | None] = mapped_column(String, nullable=True)

    # Pay profile
    pay_method: Mapped[str] = mapped_column(String, nullable=False, default="fixed")
    pay_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    home_location_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("location.location_id", ondelete="SET NULL"),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "pay_method IN ('fixed', 'prorated', 'daily')",
            name="staff_member_pay_method_check",
        ),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ExternalLocum(Base, TimestampMixin):
    """External locum, always paid per worked day."""

    __tablename__ = "external_locum"

    locum_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[str | None] = mapped_column(String, nullable=True)
    daily_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
