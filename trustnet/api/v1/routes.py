"""
API v1 routes.

Defines REST endpoints for the transfer request lifecycle. The acting user
is identified by the X-User-Id header set by the chat layer in front;
operator routes take the X-Operator-Token header instead.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from trustnet.api.dependencies import get_acting_user, get_exchange_service, require_operator
from trustnet.api.models import (
    ActiveTransactionResponse,
    CompleteRequest,
    CompletionResponse,
    ConfirmMatchRequest,
    CreateTransferRequest,
    ErrorResponse,
    MarkReadRequest,
    MarkReadResponse,
    MatchCandidateModel,
    MatchConfirmationResponse,
    MatchPreviewResponse,
    MatchRequest,
    MessageModel,
    ProofReceiptResponse,
    ProofUploadRequest,
    ReportIssueRequest,
    ReportModel,
    SendMessageRequest,
    TransactionDetailsResponse,
    TransactionResponse,
    UpdateTransferRequest,
)
from trustnet.domain.results import Outcome, Result
from trustnet.domain.service import ExchangeService

router = APIRouter(prefix="/transfers", tags=["v1"])

# Operator actions: no acting user, guarded by the operator token instead
operator_router = APIRouter(
    prefix="/operator/transfers",
    tags=["v1"],
    dependencies=[Depends(require_operator)],
)

_STATUS_BY_OUTCOME = {
    Outcome.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    Outcome.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    Outcome.PARTNER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    Outcome.NOT_AUTHORIZED: status.HTTP_403_FORBIDDEN,
    Outcome.NOT_IN_NETWORK: status.HTTP_403_FORBIDDEN,
    Outcome.WRONG_STATE: status.HTTP_409_CONFLICT,
    Outcome.NO_PENDING_REQUEST: status.HTTP_409_CONFLICT,
    Outcome.ALREADY_UPLOADED: status.HTTP_409_CONFLICT,
    Outcome.ACTIVE_TRANSACTION_EXISTS: status.HTTP_409_CONFLICT,
    Outcome.CONFLICT: status.HTTP_409_CONFLICT,
    Outcome.NOT_CONFIRMED: status.HTTP_400_BAD_REQUEST,
}

_ERRORS: dict[int | str, dict[str, Any]] = {
    403: {"model": ErrorResponse, "description": "Not allowed for this user"},
    404: {"model": ErrorResponse, "description": "Transaction or user not found"},
    409: {"model": ErrorResponse, "description": "Transaction in the wrong state"},
    422: {"model": ErrorResponse, "description": "Validation error"},
}

_OPERATOR_ERRORS: dict[int | str, dict[str, Any]] = {
    401: {"description": "Missing operator token"},
    403: {"description": "Invalid operator token"},
}


def _unwrap(result: Result) -> Any:
    """
    Return the result value or raise the matching HTTP error.

    Validation outcomes not listed in the table map to 422.
    """
    if result.ok:
        return result.value
    raise HTTPException(
        status_code=_STATUS_BY_OUTCOME.get(
            result.outcome, status.HTTP_422_UNPROCESSABLE_ENTITY
        ),
        detail={
            "reason": result.outcome.value,
            "message": result.message,
            "current_status": result.current_status.value if result.current_status else None,
        },
    )


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Create a transfer request",
)
async def create_transfer(
    request_data: CreateTransferRequest,
    user_id: str = Depends(get_acting_user),
    service: ExchangeService = Depends(get_exchange_service),
) -> TransactionResponse:
    """
    Open a new transfer request for the acting user.

    - **amount**: amount to send
    - **currency** / **target_currency**: supported currency codes
    - **rate**: optional, the configured rate is used when omitted
    """
    transaction = _unwrap(
        service.create_transfer_request(
            user_id,
            request_data.amount,
            request_data.currency,
            request_data.target_currency,
            rate=request_data.rate,
            notes=request_data.notes,
        )
    )
    return TransactionResponse.model_validate(transaction)


@router.get(
    "/active",
    response_model=ActiveTransactionResponse,
    responses=_ERRORS,
    summary="Get the acting user's active transaction",
)
async def get_active(
    user_id: str = Depends(get_acting_user),
    service: ExchangeService = Depends(get_exchange_service),
) -> ActiveTransactionResponse:
    view = _unwrap(service.get_active_transaction(user_id))
    return ActiveTransactionResponse.model_validate(view)


@router.get(
    "/{transaction_id}",
    response_model=TransactionDetailsResponse,
    responses={404: {"model": ErrorResponse, "description": "Transaction not found"}},
    summary="Get a transaction by id",
)
async def get_transaction(
    transaction_id: str,
    service: ExchangeService = Depends(get_exchange_service),
) -> TransactionDetailsResponse:
    details = service.get_transaction_by_id(transaction_id)
    if details is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"reason": Outcome.NOT_FOUND.value, "message": "Transaction not found"},
        )
    return TransactionDetailsResponse.model_validate(details)


@router.patch(
    "/{transaction_id}",
    response_model=TransactionResponse,
    responses=_ERRORS,
    summary="Update an open transfer request",
)
async def update_transfer(
    transaction_id: str,
    request_data: UpdateTransferRequest,
    user_id: str = Depends(get_acting_user),
    service: ExchangeService = Depends(get_exchange_service),
) -> TransactionResponse:
    transaction = _unwrap(
        service.update_transfer_request(
            user_id,
            transaction_id,
            amount=request_data.amount,
            rate=request_data.rate,
            notes=request_data.notes,
        )
    )
    return TransactionResponse.model_validate(transaction)


@router.get(
    "/{transaction_id}/matches",
    response_model=list[MatchCandidateModel],
    responses=_ERRORS,
    summary="List compatible offers inside the trust network",
)
async def find_matches(
    transaction_id: str,
    user_id: str = Depends(get_acting_user),
    service: ExchangeService = Depends(get_exchange_service),
) -> list[MatchCandidateModel]:
    candidates = _unwrap(service.find_matching_transfers(user_id, transaction_id))
    return [MatchCandidateModel.model_validate(candidate) for candidate in candidates]


@router.post(
    "/{transaction_id}/match-requests",
    response_model=MatchPreviewResponse,
    responses=_ERRORS,
    summary="Ask the owner of another offer to match",
)
async def request_match(
    transaction_id: str,
    request_data: MatchRequest,
    user_id: str = Depends(get_acting_user),
    service: ExchangeService = Depends(get_exchange_service),
) -> MatchPreviewResponse:
    preview = _unwrap(
        service.initiate_match_request(
            user_id, transaction_id, request_data.partner_transaction_id
        )
    )
    return MatchPreviewResponse.model_validate(preview)


@router.post(
    "/{transaction_id}/match-requests/confirm",
    response_model=MatchConfirmationResponse,
    responses=_ERRORS,
    summary="Accept or reject a pending match request",
)
async def confirm_match(
    transaction_id: str,
    request_data: ConfirmMatchRequest,
    user_id: str = Depends(get_acting_user),
    service: ExchangeService = Depends(get_exchange_service),
) -> MatchConfirmationResponse:
    """
    Answer a match request targeting the acting user's offer.

    When several requests are pending, **requester_transaction_id** picks
    one; otherwise the oldest request is answered.
    """
    confirmation = _unwrap(
        service.confirm_match_request(
            user_id,
            transaction_id,
            request_data.accept,
            requester_transaction_id=request_data.requester_transaction_id,
        )
    )
    return MatchConfirmationResponse.model_validate(confirmation)


@router.post(
    "/{transaction_id}/proofs",
    response_model=ProofReceiptResponse,
    responses=_ERRORS,
    summary="Record proof of payment",
)
async def upload_proof(
    transaction_id: str,
    request_data: ProofUploadRequest,
    user_id: str = Depends(get_acting_user),
    service: ExchangeService = Depends(get_exchange_service),
) -> ProofReceiptResponse:
    receipt = _unwrap(
        service.upload_proof_of_payment(user_id, transaction_id, request_data.proof_ref)
    )
    return ProofReceiptResponse.model_validate(receipt)


@router.post(
    "/{transaction_id}/complete",
    response_model=CompletionResponse,
    responses=_ERRORS,
    summary="Confirm receipt and complete the exchange",
)
async def complete(
    transaction_id: str,
    request_data: CompleteRequest,
    user_id: str = Depends(get_acting_user),
    service: ExchangeService = Depends(get_exchange_service),
) -> CompletionResponse:
    result = _unwrap(
        service.complete_transaction(user_id, transaction_id, request_data.confirmed)
    )
    return CompletionResponse.model_validate(result)


@router.post(
    "/{transaction_id}/cancel",
    response_model=TransactionResponse,
    responses=_ERRORS,
    summary="Cancel a transaction",
)
async def cancel(
    transaction_id: str,
    user_id: str = Depends(get_acting_user),
    service: ExchangeService = Depends(get_exchange_service),
) -> TransactionResponse:
    transaction = _unwrap(service.cancel_transaction(user_id, transaction_id))
    return TransactionResponse.model_validate(transaction)


@router.post(
    "/{transaction_id}/reports",
    response_model=ReportModel,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Report an issue with a transaction",
)
async def report_issue(
    transaction_id: str,
    request_data: ReportIssueRequest,
    user_id: str = Depends(get_acting_user),
    service: ExchangeService = Depends(get_exchange_service),
) -> ReportModel:
    report = _unwrap(
        service.report_issue(user_id, transaction_id, request_data.reason, request_data.details)
    )
    return ReportModel.model_validate(report)


@operator_router.post(
    "/{transaction_id}/reports/{report_index}/resolve",
    response_model=ReportModel,
    responses={**_ERRORS, **_OPERATOR_ERRORS},
    summary="Mark a report as resolved",
)
async def resolve_report(
    transaction_id: str,
    report_index: int,
    service: ExchangeService = Depends(get_exchange_service),
) -> ReportModel:
    report = _unwrap(service.resolve_report(transaction_id, report_index))
    return ReportModel.model_validate(report)


@router.post(
    "/{transaction_id}/messages",
    response_model=MessageModel,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Send a message to the counterparty",
)
async def send_message(
    transaction_id: str,
    request_data: SendMessageRequest,
    user_id: str = Depends(get_acting_user),
    service: ExchangeService = Depends(get_exchange_service),
) -> MessageModel:
    message = _unwrap(service.send_message(user_id, transaction_id, request_data.text))
    return MessageModel.model_validate(message)


@router.get(
    "/{transaction_id}/messages",
    response_model=list[MessageModel],
    responses=_ERRORS,
    summary="List the messages of a transaction",
)
async def get_messages(
    transaction_id: str,
    user_id: str = Depends(get_acting_user),
    service: ExchangeService = Depends(get_exchange_service),
) -> list[MessageModel]:
    messages = _unwrap(service.get_messages(user_id, transaction_id))
    return [MessageModel.model_validate(message) for message in messages]


@router.post(
    "/{transaction_id}/messages/read",
    response_model=MarkReadResponse,
    responses=_ERRORS,
    summary="Mark messages addressed to the acting user as read",
)
async def mark_read(
    transaction_id: str,
    request_data: MarkReadRequest,
    user_id: str = Depends(get_acting_user),
    service: ExchangeService = Depends(get_exchange_service),
) -> MarkReadResponse:
    marked = _unwrap(
        service.mark_message_as_read(user_id, transaction_id, request_data.message_index)
    )
    return MarkReadResponse(marked=marked)
