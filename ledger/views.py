"""
Ledger API Views

REST API endpoints for member payments. Request bodies are checked here so
the services only ever see well-formed input.
"""

from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response
from rest_framework.exceptions import ValidationError
import logging

from ledger.exceptions import (
    AmountExceedsDue,
    DocumentNotFoundOrMissingFields,
    InvalidAmount,
    LedgerError,
    MemberAlreadyExists,
    TransactionConflict,
    UnknownError,
)
from ledger.models import Member
from ledger.services import LedgerService
from ledger.timestamps import InvalidTimestamp, Timestamp

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    DocumentNotFoundOrMissingFields.code: status.HTTP_404_NOT_FOUND,
    AmountExceedsDue.code: status.HTTP_400_BAD_REQUEST,
    InvalidAmount.code: status.HTTP_400_BAD_REQUEST,
    MemberAlreadyExists.code: status.HTTP_409_CONFLICT,
    'AdminAlreadyExists': status.HTTP_409_CONFLICT,
    TransactionConflict.code: status.HTTP_409_CONFLICT,
    UnknownError.code: status.HTTP_400_BAD_REQUEST,
}


def error_response(exc):
    """Map a ledger error to ``{message, error}`` with its HTTP status."""
    code = status.HTTP_400_BAD_REQUEST
    message = UnknownError.default_message
    if isinstance(exc, LedgerError):
        code = ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST)
        if not isinstance(exc, UnknownError):
            message = exc.message
        error = exc.code
    else:
        error = UnknownError.code
    return Response({'message': message, 'error': error}, status=code)


def validation_response(exc):
    return Response(
        {'message': 'Validation Error', 'error': exc.detail},
        status=status.HTTP_400_BAD_REQUEST
    )


def require_object(data, field, allowed):
    value = data.get(field) if isinstance(data, dict) else None
    if not isinstance(value, dict):
        raise ValidationError({field: 'This field is required'})
    unknown = set(value) - set(allowed)
    if unknown:
        raise ValidationError({field: f"Unknown fields: {', '.join(sorted(unknown))}"})
    return value


def require_string(data, field):
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError({field: 'This field is required'})
    return value


def require_number(data, field):
    value = data.get(field)
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValidationError({field: 'Must be a number'})
    return value


def require_timestamp(data, field):
    if field not in data:
        raise ValidationError({field: 'This field is required'})
    try:
        return Timestamp.from_wire(data[field])
    except InvalidTimestamp as e:
        raise ValidationError({field: str(e)})


def reject_unknown(data, allowed):
    if not isinstance(data, dict):
        raise ValidationError({'body': 'Expected a JSON object'})
    unknown = set(data) - set(allowed)
    if unknown:
        raise ValidationError({'body': f"Unknown fields: {', '.join(sorted(unknown))}"})


@api_view(['POST'])
def add_payment(request):
    """
    Record a payment against a member's plan.

    POST /api/payments/

    Body:
    {
        "meta": {"gymId": "gym-1", "userId": "uid-1", "planId": "<uuid>"},
        "data": {
            "date": {"seconds": 1706659200, "nanoseconds": 0},
            "amount": 500,
            "addedBy": "admin-uid"
        }
    }

    Returns:
        201 Created: payment receipt
        400 Bad Request: invalid input or amount exceeds due
        404 Not Found: member or plan not found
        409 Conflict: concurrent updates kept winning
    """
    try:
        reject_unknown(request.data, ['meta', 'data'])
        meta = require_object(request.data, 'meta', ['gymId', 'userId', 'planId'])
        data = require_object(request.data, 'data', ['date', 'amount', 'addedBy'])

        payment = LedgerService.add_payment(
            gym_id=require_string(meta, 'gymId'),
            user_id=require_string(meta, 'userId'),
            plan_id=require_string(meta, 'planId'),
            amount=require_number(data, 'amount'),
            date=require_timestamp(data, 'date'),
            added_by=require_string(data, 'addedBy'),
        )
        return Response(
            {'message': 'Payment added successfully', 'data': payment.receipt()},
            status=status.HTTP_201_CREATED
        )
    except ValidationError as e:
        return validation_response(e)
    except LedgerError as e:
        return error_response(e)


@api_view(['POST'])
def delete_payment(request):
    """
    Remove a payment and reverse it on the plan and member totals.

    POST /api/payments/delete/

    Body: {"gymId": ..., "userId": ..., "planId": ..., "paymentId": ...}
    """
    try:
        reject_unknown(request.data, ['gymId', 'userId', 'planId', 'paymentId'])
        LedgerService.delete_payment(
            gym_id=require_string(request.data, 'gymId'),
            user_id=require_string(request.data, 'userId'),
            plan_id=require_string(request.data, 'planId'),
            payment_id=require_string(request.data, 'paymentId'),
        )
        return Response({'message': 'Payment deleted successfully'}, status=status.HTTP_200_OK)
    except ValidationError as e:
        return validation_response(e)
    except LedgerError as e:
        return error_response(e)


@api_view(['GET'])
def list_payments(request, gym_id, user_id, plan_id):
    """
    GET /api/gyms/{gym_id}/members/{user_id}/plans/{plan_id}/payments/
    """
    try:
        payments = LedgerService.list_payments(gym_id, user_id, plan_id)
    except LedgerError as e:
        return error_response(e)
    return Response(
        {'message': 'ok', 'data': [payment.receipt() for payment in payments]},
        status=status.HTTP_200_OK
    )


@api_view(['POST'])
def create_member(request):
    """
    Create a member with their first plan and first payment.

    POST /api/members/

    Body:
    {
        "gym_id": "gym-1", "userId": "uid-1", "planId": "<catalog uuid>",
        "name": "...", "email": "...", "phone": "...", "gender": "male",
        "dob": "...", "address": "...", "trainingType": "general",
        "joinedAt": "2024-01-31T00:00:00Z", "paidAmount": 500,
        "notes": "...", "createdBy": "admin-uid"
    }
    """
    fields = [
        'gym_id', 'userId', 'planId', 'name', 'email', 'phone', 'gender', 'dob',
        'address', 'trainingType', 'joinedAt', 'paidAmount', 'notes', 'createdBy',
    ]
    try:
        reject_unknown(request.data, fields)
        data = request.data

        gender = require_string(data, 'gender')
        if gender not in dict(Member.GENDER_CHOICES):
            raise ValidationError({'gender': "Must be one of 'male', 'female'"})
        training_type = require_string(data, 'trainingType')
        if training_type not in dict(Member.TRAINING_TYPES):
            raise ValidationError({'trainingType': "Must be one of 'general', 'personal'"})
        notes = data.get('notes', '')
        if not isinstance(notes, str):
            raise ValidationError({'notes': 'Must be a string'})

        member, plan = LedgerService.create_member(
            gym_id=require_string(data, 'gym_id'),
            user_id=require_string(data, 'userId'),
            catalog_plan_id=require_string(data, 'planId'),
            joined_at=require_timestamp(data, 'joinedAt'),
            paid_amount=require_number(data, 'paidAmount'),
            created_by=require_string(data, 'createdBy'),
            name=require_string(data, 'name'),
            email=require_string(data, 'email'),
            phone=require_string(data, 'phone'),
            gender=gender,
            dob=require_string(data, 'dob'),
            address=require_string(data, 'address'),
            training_type=training_type,
            notes=notes,
        )
        return Response(
            {
                'message': 'Member added successfully',
                'data': {
                    'userId': member.user_id,
                    'planId': str(plan.id),
                    'totalToBePaid': str(member.total_to_be_paid),
                    'totalPaid': str(member.total_paid),
                    'totalDue': str(member.total_due),
                    'expiresAt': Timestamp.from_datetime(plan.expires_at).to_wire(),
                },
            },
            status=status.HTTP_201_CREATED
        )
    except ValidationError as e:
        return validation_response(e)
    except LedgerError as e:
        return error_response(e)


@api_view(['PATCH'])
def update_member(request, gym_id, user_id):
    """
    Update a member's profile.

    PATCH /api/gyms/{gym_id}/members/{user_id}/
    """
    field_map = {
        'name': 'name', 'email': 'email', 'phone': 'phone', 'gender': 'gender',
        'dob': 'dob', 'address': 'address', 'trainingType': 'training_type', 'notes': 'notes',
    }
    try:
        reject_unknown(request.data, field_map)
        changes = {}
        for key, value in request.data.items():
            if not isinstance(value, str):
                raise ValidationError({key: 'Must be a string'})
            changes[field_map[key]] = value

        try:
            LedgerService.update_member_profile(gym_id, user_id, **changes)
        except ValueError as e:
            raise ValidationError({'body': str(e)})
        return Response({'message': 'Member updated successfully'}, status=status.HTTP_200_OK)
    except ValidationError as e:
        return validation_response(e)
    except LedgerError as e:
        return error_response(e)
