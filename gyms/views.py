"""
Gym API Views

Endpoints for creating admin profiles and catalog plans.
"""

from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response
from rest_framework.exceptions import ValidationError

from gyms.services import GymService
from ledger.exceptions import LedgerError
from ledger.views import error_response, reject_unknown, require_string, validation_response


@api_view(['POST'])
def create_admin(request):
    """
    Store the profile of an admin account.

    POST /api/admins/

    Body: {"userId", "name", "email", "phone", "gender", "gym_id"}
    """
    try:
        reject_unknown(request.data, ['userId', 'name', 'email', 'phone', 'gender', 'gym_id'])
        admin = GymService.create_admin(
            user_id=require_string(request.data, 'userId'),
            name=require_string(request.data, 'name'),
            email=require_string(request.data, 'email'),
            phone=require_string(request.data, 'phone'),
            gender=require_string(request.data, 'gender'),
            gym_id=require_string(request.data, 'gym_id'),
        )
        return Response(
            {
                'message': 'Admin created successfully',
                'data': {'userId': admin.user_id, 'gym_id': admin.gym_id},
            },
            status=status.HTTP_201_CREATED
        )
    except ValidationError as e:
        return validation_response(e)
    except LedgerError as e:
        return error_response(e)


@api_view(['POST'])
def create_plan(request):
    """
    Add a plan to a gym's catalog.

    POST /api/plans/

    Body: {"name": "Quarterly", "price": 1200, "months": 3, "gym_id": "gym-1"}
    """
    try:
        reject_unknown(request.data, ['name', 'price', 'months', 'gym_id'])
        price = request.data.get('price')
        months = request.data.get('months')
        if isinstance(price, bool) or not isinstance(price, (int, float)):
            raise ValidationError({'price': 'Must be a number'})
        if isinstance(months, bool) or not isinstance(months, int):
            raise ValidationError({'months': 'Must be a whole number'})

        try:
            plan = GymService.create_plan(
                gym_id=require_string(request.data, 'gym_id'),
                name=require_string(request.data, 'name'),
                price=price,
                months=months,
            )
        except ValueError as e:
            raise ValidationError({'body': str(e)})
        return Response(
            {
                'message': 'Plan created successfully',
                'data': {
                    'planId': str(plan.id),
                    'name': plan.name,
                    'price': str(plan.price),
                    'months': plan.months,
                },
            },
            status=status.HTTP_201_CREATED
        )
    except ValidationError as e:
        return validation_response(e)
