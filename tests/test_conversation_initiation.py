"""
Tests for starting a conversation ("Contact Seller").

Test Coverage:
- First contact creates an ACTIVE conversation with one system message
- Repeated contact returns the same conversation
- Self-purchase and availability rules
- API status codes (201 new, 200 existing) and error bodies
"""

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from core import services
from core.exceptions import NotFoundError, PolicyViolation
from core.models import Conversation, Message, Product

User = get_user_model()


def create_user(username):
    return User.objects.create_user(
        username=username,
        email=f'{username}@test.com',
        password='testpass123'
    )


def create_product(seller, **kwargs):
    params = {
        'name': 'Mini Fridge',
        'price': Decimal('80.00'),
        'stock_quantity': 1,
        'product_available': True,
    }
    params.update(kwargs)
    return Product.objects.create(seller=seller, **params)


class InitiateConversationServiceTests(TestCase):
    """Engine-level tests for initiate_conversation."""

    def setUp(self):
        self.buyer = create_user('buyer')
        self.seller = create_user('seller')
        self.product = create_product(self.seller)

    def test_creates_active_conversation(self):
        conversation, created = services.initiate_conversation(self.product.id, self.buyer)

        self.assertTrue(created)
        self.assertEqual(conversation.status, Conversation.STATUS_ACTIVE)
        self.assertEqual(conversation.buyer, self.buyer)
        self.assertEqual(conversation.seller, self.seller)
        self.assertEqual(conversation.product, self.product)

    def test_creates_one_unread_system_message(self):
        conversation, _ = services.initiate_conversation(self.product.id, self.buyer)

        messages = list(conversation.messages.all())
        self.assertEqual(len(messages), 1)

        message = messages[0]
        self.assertEqual(message.message_type, Message.TYPE_SYSTEM)
        self.assertIsNone(message.sender)
        self.assertFalse(message.is_read)
        self.assertIn('Mini Fridge', message.content)
        self.assertIn('Buyer: buyer', message.content)
        self.assertIn('Seller: seller', message.content)

    def test_second_initiation_returns_same_conversation(self):
        first, first_created = services.initiate_conversation(self.product.id, self.buyer)
        second, second_created = services.initiate_conversation(self.product.id, self.buyer)

        self.assertTrue(first_created)
        self.assertFalse(second_created)
        self.assertEqual(first.id, second.id)
        self.assertEqual(Conversation.objects.count(), 1)
        self.assertEqual(Message.objects.filter(conversation=first).count(), 1)

    def test_existing_conversation_returned_after_product_unavailable(self):
        conversation, _ = services.initiate_conversation(self.product.id, self.buyer)

        self.product.product_available = False
        self.product.save()

        again, created = services.initiate_conversation(self.product.id, self.buyer)
        self.assertFalse(created)
        self.assertEqual(again.id, conversation.id)

    def test_different_buyers_get_separate_conversations(self):
        other_buyer = create_user('otherbuyer')

        first, _ = services.initiate_conversation(self.product.id, self.buyer)
        second, _ = services.initiate_conversation(self.product.id, other_buyer)

        self.assertNotEqual(first.id, second.id)
        self.assertEqual(Conversation.objects.filter(product=self.product).count(), 2)

    def test_seller_cannot_contact_self(self):
        with self.assertRaises(PolicyViolation) as ctx:
            services.initiate_conversation(self.product.id, self.seller)

        self.assertEqual(ctx.exception.code, 'self_purchase')
        self.assertEqual(Conversation.objects.count(), 0)
        self.assertEqual(Message.objects.count(), 0)

    def test_self_purchase_checked_before_availability(self):
        sold_out = create_product(self.seller, name='Sold Out Desk', stock_quantity=0)

        with self.assertRaises(PolicyViolation) as ctx:
            services.initiate_conversation(sold_out.id, self.seller)
        self.assertEqual(ctx.exception.code, 'self_purchase')

    def test_unavailable_product_rejected(self):
        unavailable = create_product(self.seller, name='Old Bike', product_available=False)

        with self.assertRaises(PolicyViolation) as ctx:
            services.initiate_conversation(unavailable.id, self.buyer)
        self.assertEqual(ctx.exception.code, 'unavailable')
        self.assertEqual(Conversation.objects.count(), 0)

    def test_out_of_stock_product_rejected(self):
        out_of_stock = create_product(self.seller, name='Toaster', stock_quantity=0)

        with self.assertRaises(PolicyViolation) as ctx:
            services.initiate_conversation(out_of_stock.id, self.buyer)
        self.assertEqual(ctx.exception.code, 'unavailable')

    def test_missing_product(self):
        with self.assertRaises(NotFoundError):
            services.initiate_conversation(999999, self.buyer)


class InitiateConversationAPITests(TestCase):
    """Tests for POST /api/conversations/initiate/."""

    url = '/api/conversations/initiate/'

    def setUp(self):
        self.client = APIClient()
        self.buyer = create_user('buyer')
        self.seller = create_user('seller')
        self.product = create_product(self.seller)

        self.buyer_token = str(RefreshToken.for_user(self.buyer).access_token)
        self.seller_token = str(RefreshToken.for_user(self.seller).access_token)

    def test_new_conversation_returns_201(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {self.buyer_token}')
        response = self.client.post(self.url, {'product_id': self.product.id}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Conversation.STATUS_ACTIVE)
        self.assertEqual(response.data['user_role'], 'buyer')
        self.assertEqual(response.data['other_participant']['id'], self.seller.id)
        self.assertTrue(response.data['can_approve'])
        self.assertTrue(response.data['can_cancel'])
        self.assertEqual(response.data['last_message']['sender_type'], 'system')

    def test_existing_conversation_returns_200(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {self.buyer_token}')
        first = self.client.post(self.url, {'product_id': self.product.id}, format='json')
        second = self.client.post(self.url, {'product_id': self.product.id}, format='json')

        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(first.data['id'], second.data['id'])

    def test_own_product_returns_400_with_code(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {self.seller_token}')
        response = self.client.post(self.url, {'product_id': self.product.id}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'self_purchase')
        self.assertEqual(
            response.data['detail'],
            'You cannot initiate a conversation for your own product'
        )

    def test_missing_product_returns_404(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {self.buyer_token}')
        response = self.client.post(self.url, {'product_id': 999999}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'not_found')

    def test_missing_product_id_returns_400(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {self.buyer_token}')
        response = self.client.post(self.url, {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('product_id', response.data)

    def test_requires_authentication(self):
        response = self.client.post(self.url, {'product_id': self.product.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_get_not_allowed(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {self.buyer_token}')
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
