# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment API schemas.

Requests accept camelCase (``participantId``) as sent by the back-office
client and snake_case field names. Responses are rendered in camelCase.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from coursedesk.models.common import DocumentType, PaymentMethod, PaymentState
from coursedesk.utils.datetime import parse_iso_date

NOTES_MAX_LENGTH = 500


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


def _normalize_payment_date(value: Any) -> Any:
    if value is None or value == "":
        return None
    return parse_iso_date(value)


class AdmissionRequest(_CamelModel):
    """Request to admit a participant into a course."""

    participant_id: str = Field(min_length=1, max_length=36)
    course_id: str = Field(min_length=1, max_length=36)
    payment_state: PaymentState = PaymentState.PENDING
    amount_paid: Decimal = Field(default=Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    payment_method: PaymentMethod | None = None
    payment_date: date | None = None
    attended: bool = False
    notes: str | None = Field(default=None, max_length=NOTES_MAX_LENGTH)

    @field_validator("payment_state", mode="before")
    @classmethod
    def normalize_payment_state(cls, value: Any) -> Any:
        return PaymentState.normalize(value) if value is not None else PaymentState.PENDING

    @field_validator("payment_method", mode="before")
    @classmethod
    def normalize_payment_method(cls, value: Any) -> Any:
        if value == "":
            return None
        return PaymentMethod.normalize(value)

    @field_validator("payment_date", mode="before")
    @classmethod
    def normalize_payment_date(cls, value: Any) -> Any:
        return _normalize_payment_date(value)

    @field_validator("notes")
    @classmethod
    def strip_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None


class EnrollmentUpdateRequest(_CamelModel):
    """Partial update of payment and attendance fields.

    Only fields present in the request body are applied. Nullable fields
    (payment method, payment date, notes) are cleared by an explicit null.
    """

    payment_state: PaymentState | None = None
    amount_paid: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    payment_method: PaymentMethod | None = None
    payment_date: date | None = None
    attended: bool | None = None
    notes: str | None = Field(default=None, max_length=NOTES_MAX_LENGTH)

    @field_validator("payment_state", mode="before")
    @classmethod
    def normalize_payment_state(cls, value: Any) -> Any:
        return PaymentState.normalize(value)

    @field_validator("payment_method", mode="before")
    @classmethod
    def normalize_payment_method(cls, value: Any) -> Any:
        if value == "":
            return None
        return PaymentMethod.normalize(value)

    @field_validator("payment_date", mode="before")
    @classmethod
    def normalize_payment_date(cls, value: Any) -> Any:
        return _normalize_payment_date(value)

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> Self:
        for name in ("payment_state", "amount_paid", "attended"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        """Fields explicitly sent by the caller, keyed by column name."""
        changes: dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if name == "notes" and isinstance(value, str):
                value = value.strip() or None
            if isinstance(value, (PaymentState, PaymentMethod)):
                value = value.value
            changes[name] = value
        return changes


class ParticipantSummary(_CamelModel):
    """Participant display fields embedded in enrollment responses."""

    id: str
    document_type: DocumentType
    document_number: str
    full_name: str
    email: str | None = None


class CourseSummary(_CamelModel):
    """Course display fields embedded in enrollment responses."""

    id: str
    title: str
    max_seats: int | None = None
    filled_seats: int


class EnrollmentResponse(_CamelModel):
    """An enrollment as returned by the API."""

    id: str
    code: str
    participant_id: str
    course_id: str
    payment_state: PaymentState
    amount_paid: float
    payment_method: PaymentMethod | None = None
    payment_date: date | None = None
    attended: bool
    notes: str | None = None
    registrar_id: str
    created_at: datetime
    updated_at: datetime
    participant: ParticipantSummary | None = None
    course: CourseSummary | None = None


class EnrollmentEnvelope(_CamelModel):
    """Successful single-enrollment response."""

    success: bool = True
    enrollment: EnrollmentResponse
    message: str | None = None


class EnrollmentListResponse(_CamelModel):
    """Successful listing response."""

    success: bool = True
    enrollments: list[EnrollmentResponse]
    total: int


class EnrollmentDeletedResponse(_CamelModel):
    """Successful removal response."""

    success: bool = True
    message: str
    code: str
    course_id: str
