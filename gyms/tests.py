"""
Tests for Gym Services

Tests cover:
- Admin profile creation and gym id normalization
- Catalog plan validation
- The admin and plan endpoints
"""

from decimal import Decimal
from django.test import TestCase
from rest_framework.test import APIClient

from events.models import Event
from gyms.models import GymAdmin, SubscriptionPlan
from gyms.services import AdminAlreadyExists, GymService


class GymServiceTests(TestCase):
    """Test gym services."""

    def create_admin(self, gym_id='  Iron-Gym '):
        return GymService.create_admin(
            user_id='admin-001',
            name='Priya',
            email='priya@example.com',
            phone='9876543210',
            gender='female',
            gym_id=gym_id,
        )

    def test_create_admin_normalizes_gym_id(self):
        admin = self.create_admin()

        self.assertEqual(admin.gym_id, 'iron-gym')
        self.assertTrue(Event.objects.filter(event_type='ADMIN_CREATED', gym_id='iron-gym').exists())

    def test_duplicate_admin_is_rejected(self):
        self.create_admin()

        with self.assertRaises(AdminAlreadyExists):
            self.create_admin(gym_id='iron-gym')
        self.assertEqual(GymAdmin.objects.count(), 1)

    def test_create_plan(self):
        plan = GymService.create_plan('iron-gym', 'Quarterly', 1200, 3)

        plan.refresh_from_db()
        self.assertEqual(plan.price, Decimal('1200.00'))
        self.assertEqual(plan.months, 3)

    def test_create_plan_rejects_invalid_price_and_months(self):
        for price, months in [
            (0, 1), (-10, 1), ('abc', 1), ('12.345', 1), (1e30, 1),
            (100, 0), (100, 1.5), (100, True),
        ]:
            with self.assertRaises(ValueError, msg=f'{price}, {months}'):
                GymService.create_plan('iron-gym', 'Broken', price, months)
        self.assertEqual(SubscriptionPlan.objects.count(), 0)


class GymApiTests(TestCase):
    """Test admin and plan endpoints."""

    def setUp(self):
        self.client = APIClient()

    def test_create_admin(self):
        body = {
            'userId': 'admin-001',
            'name': 'Priya',
            'email': 'priya@example.com',
            'phone': '9876543210',
            'gender': 'female',
            'gym_id': 'Iron-Gym',
        }

        response = self.client.post('/api/admins/', body, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['data']['gym_id'], 'iron-gym')

        response = self.client.post('/api/admins/', body, format='json')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['error'], 'AdminAlreadyExists')

    def test_create_admin_requires_all_fields(self):
        response = self.client.post('/api/admins/', {'userId': 'admin-001'}, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['message'], 'Validation Error')

    def test_create_plan(self):
        response = self.client.post('/api/plans/', {
            'name': 'Annual',
            'price': 1200,
            'months': 12,
            'gym_id': 'iron-gym',
        }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertTrue(SubscriptionPlan.objects.filter(pk=response.data['data']['planId']).exists())

    def test_create_plan_rejects_sub_cent_price(self):
        response = self.client.post('/api/plans/', {
            'name': 'Annual',
            'price': 1200.005,
            'months': 12,
            'gym_id': 'iron-gym',
        }, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertFalse(SubscriptionPlan.objects.exists())

    def test_create_plan_rejects_non_numeric_price(self):
        response = self.client.post('/api/plans/', {
            'name': 'Annual',
            'price': '1200',
            'months': 12,
            'gym_id': 'iron-gym',
        }, format='json')

        self.assertEqual(response.status_code, 400)
