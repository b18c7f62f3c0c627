"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
Response models read domain dataclasses directly via from_attributes.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from trustnet.domain.models import Relationship, ReportReason, ReportStatus, TransactionStatus


class CreateTransferRequest(BaseModel):
    """Request model for creating a transfer request."""

    amount: Decimal = Field(..., description="Amount to send (must be positive)")
    currency: str = Field(..., min_length=3, max_length=3, description="Currency to send")
    target_currency: str = Field(
        ..., min_length=3, max_length=3, description="Currency to receive"
    )
    rate: Decimal | None = Field(None, description="Exchange rate; configured rate if omitted")
    notes: str | None = Field(None, max_length=500)


class UpdateTransferRequest(BaseModel):
    """Request model for updating an open transfer request."""

    amount: Decimal | None = None
    rate: Decimal | None = None
    notes: str | None = Field(None, max_length=500)


class MatchRequest(BaseModel):
    partner_transaction_id: str = Field(..., min_length=1)


class ConfirmMatchRequest(BaseModel):
    accept: bool
    requester_transaction_id: str | None = None


class ProofUploadRequest(BaseModel):
    proof_ref: str = Field(..., min_length=1, description="Uploaded image id")


class CompleteRequest(BaseModel):
    confirmed: bool


class ReportIssueRequest(BaseModel):
    reason: str = Field(..., description="no_response, payment_issue, wrong_amount or other")
    details: str = Field("", max_length=2000)


class SendMessageRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=2000)


class MarkReadRequest(BaseModel):
    message_index: int | None = Field(None, ge=0, description="Omit to mark all as read")


class _DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class PartyModel(_DomainModel):
    user_id: str | None
    amount: Decimal
    currency: str


class MessageModel(_DomainModel):
    from_user_id: str
    from_user_name: str
    to_user_id: str
    message: str
    timestamp: datetime
    read: bool


class ProofModel(_DomainModel):
    user_id: str
    image_id: str
    uploaded_at: datetime


class ReportModel(_DomainModel):
    user_id: str
    reason: ReportReason
    details: str
    timestamp: datetime
    status: ReportStatus


class TimestampsModel(_DomainModel):
    created: datetime
    match_requested: datetime | None
    matched: datetime | None
    completed: datetime | None


class TransactionResponse(_DomainModel):
    """Response model for a transaction record."""

    transaction_id: str
    initiator: PartyModel
    recipient: PartyModel
    rate: Decimal
    status: TransactionStatus
    notes: str | None
    relationship: Relationship | None
    pending_partner_transaction_id: str | None
    partner_transaction_id: str | None
    messages: list[MessageModel]
    proofs: list[ProofModel]
    reports: list[ReportModel]
    timestamps: TimestampsModel


class TransactionDetailsResponse(_DomainModel):
    transaction: TransactionResponse
    initiator_name: str | None
    recipient_name: str | None


class PartnerModel(_DomainModel):
    user_id: str
    name: str
    trust_score: int
    completed_transactions: int
    relationship: Relationship | None


class ActiveTransactionResponse(_DomainModel):
    exists: bool
    transaction: TransactionResponse | None
    role: str | None
    partner: PartnerModel | None
    pending_confirmation: bool
    incoming_request: TransactionResponse | None


class MatchCandidateModel(_DomainModel):
    transaction_id: str
    partner_user_id: str
    partner_name: str
    relationship: Relationship
    amount: Decimal
    currency: str
    target_amount: Decimal
    target_currency: str
    rate: Decimal
    trust_score: int
    completed_transactions: int
    notes: str | None


class MatchPreviewResponse(_DomainModel):
    transaction_id: str
    partner_transaction_id: str
    partner_user_id: str
    partner_name: str | None
    relationship: Relationship
    send_amount: Decimal
    send_currency: str
    receive_amount: Decimal
    receive_currency: str
    partner_trust_score: int | None
    partner_completed_transactions: int | None


class MatchConfirmationResponse(_DomainModel):
    accepted: bool
    transaction: TransactionResponse
    requester_transaction: TransactionResponse


class ProofReceiptResponse(_DomainModel):
    transaction: TransactionResponse
    proofs_count: int
    completed: bool


class CompletionResponse(_DomainModel):
    transaction: TransactionResponse
    already_completed: bool


class MarkReadResponse(BaseModel):
    marked: int


class ErrorDetail(BaseModel):
    reason: str
    message: str
    current_status: TransactionStatus | None = None


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: ErrorDetail
