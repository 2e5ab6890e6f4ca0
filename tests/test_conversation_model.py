"""
Tests for the Conversation, Message, Product and Order models.

Test Coverage:
- Status transition table
- Participant constraints (unique triple, buyer != seller, seller owns product)
- Role helpers
- Message content and sender rules
- QuerySet helpers used by the engine
"""

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.test import TestCase, override_settings

from core.models import Conversation, Message, Order, Product

User = get_user_model()


def create_user(username, **kwargs):
    """Create a test user with given parameters."""
    return User.objects.create_user(
        username=username,
        email=f'{username}@test.com',
        password='testpass123',
        **kwargs
    )


def create_product(seller, name='Desk Lamp', price='25.00', stock=1, available=True):
    """Create a test product."""
    return Product.objects.create(
        seller=seller,
        name=name,
        price=Decimal(price),
        stock_quantity=stock,
        product_available=available
    )


class ProductModelTests(TestCase):
    """Tests for Product validation and availability helpers."""

    def setUp(self):
        self.seller = create_user('seller')

    def test_price_must_be_positive(self):
        with self.assertRaises(ValidationError):
            create_product(self.seller, price='0.00')

    def test_name_cannot_be_blank(self):
        with self.assertRaises(ValidationError):
            create_product(self.seller, name='   ')

    def test_is_available_requires_flag_and_stock(self):
        self.assertTrue(create_product(self.seller, stock=2).is_available())
        self.assertFalse(create_product(self.seller, stock=0).is_available())
        self.assertFalse(create_product(self.seller, available=False).is_available())

    def test_mark_as_sold(self):
        product = create_product(self.seller, stock=3)
        product.mark_as_sold()
        product.refresh_from_db()
        self.assertFalse(product.product_available)
        self.assertEqual(product.stock_quantity, 0)

    def test_mark_as_sold_skips_image_check(self):
        product = create_product(self.seller)
        Product.objects.filter(pk=product.pk).update(image='product_images/missing.png')
        product.refresh_from_db()

        product.mark_as_sold()

        product.refresh_from_db()
        self.assertFalse(product.product_available)
        self.assertEqual(product.image.name, 'product_images/missing.png')


class ConversationModelTests(TestCase):
    """Tests for the Conversation model."""

    def setUp(self):
        self.buyer = create_user('buyer')
        self.seller = create_user('seller')
        self.outsider = create_user('outsider')
        self.product = create_product(self.seller)

    def _create_conversation(self, **kwargs):
        params = {'buyer': self.buyer, 'seller': self.seller, 'product': self.product}
        params.update(kwargs)
        return Conversation.objects.create(**params)

    # ========================================================================
    # Creation and constraints
    # ========================================================================

    def test_new_conversation_is_active(self):
        conversation = self._create_conversation()
        self.assertEqual(conversation.status, Conversation.STATUS_ACTIVE)
        self.assertIsNotNone(conversation.created_at)
        self.assertIsNotNone(conversation.updated_at)

    def test_duplicate_triple_rejected_by_validation(self):
        self._create_conversation()
        with self.assertRaises(ValidationError):
            self._create_conversation()

    def test_duplicate_triple_rejected_by_database(self):
        self._create_conversation()
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Conversation.objects.bulk_create([
                    Conversation(buyer=self.buyer, seller=self.seller, product=self.product)
                ])

    def test_buyer_cannot_be_seller(self):
        with self.assertRaises(ValidationError):
            self._create_conversation(buyer=self.seller)

    def test_buyer_equal_seller_rejected_by_database(self):
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Conversation.objects.bulk_create([
                    Conversation(buyer=self.seller, seller=self.seller, product=self.product)
                ])

    def test_seller_must_own_product(self):
        with self.assertRaises(ValidationError) as ctx:
            self._create_conversation(seller=self.outsider)
        self.assertIn('seller', ctx.exception.message_dict)

    # ========================================================================
    # Status transitions
    # ========================================================================

    def test_transition_table(self):
        conversation = self._create_conversation()
        self.assertTrue(conversation.can_transition_to(Conversation.STATUS_BUYER_APPROVED))
        self.assertTrue(conversation.can_transition_to(Conversation.STATUS_SELLER_APPROVED))
        self.assertTrue(conversation.can_transition_to(Conversation.STATUS_CANCELLED))
        self.assertFalse(conversation.can_transition_to(Conversation.STATUS_COMPLETED))

        self.assertTrue(conversation.can_transition_to(
            Conversation.STATUS_COMPLETED, from_status=Conversation.STATUS_SELLER_APPROVED
        ))
        self.assertFalse(conversation.can_transition_to(
            Conversation.STATUS_ACTIVE, from_status=Conversation.STATUS_BUYER_APPROVED
        ))

    def test_terminal_statuses_have_no_exits(self):
        for terminal in Conversation.TERMINAL_STATUSES:
            self.assertEqual(Conversation.VALID_TRANSITIONS[terminal], [])

    def test_save_rejects_invalid_transition(self):
        conversation = self._create_conversation()
        conversation.status = Conversation.STATUS_COMPLETED
        with self.assertRaises(ValidationError) as ctx:
            conversation.save()
        self.assertEqual(
            ctx.exception.message_dict['status'],
            ['Invalid status transition from ACTIVE to COMPLETED.']
        )

    def test_save_rejects_leaving_terminal_status(self):
        conversation = self._create_conversation()
        conversation.status = Conversation.STATUS_CANCELLED
        conversation.save()

        conversation.status = Conversation.STATUS_ACTIVE
        with self.assertRaises(ValidationError):
            conversation.save()

        conversation.refresh_from_db()
        self.assertEqual(conversation.status, Conversation.STATUS_CANCELLED)

    # ========================================================================
    # Role helpers
    # ========================================================================

    def test_role_of(self):
        conversation = self._create_conversation()
        self.assertEqual(conversation.role_of(self.buyer), Conversation.ROLE_BUYER)
        self.assertEqual(conversation.role_of(self.seller), Conversation.ROLE_SELLER)
        self.assertIsNone(conversation.role_of(self.outsider))
        self.assertIsNone(conversation.role_of(None))

    def test_other_participant(self):
        conversation = self._create_conversation()
        self.assertEqual(conversation.other_participant(self.buyer), self.seller)
        self.assertEqual(conversation.other_participant(self.seller), self.buyer)
        self.assertIsNone(conversation.other_participant(self.outsider))

    def test_can_be_approved_by(self):
        conversation = self._create_conversation(status=Conversation.STATUS_ACTIVE)
        self.assertTrue(conversation.can_be_approved_by(self.buyer))
        self.assertTrue(conversation.can_be_approved_by(self.seller))
        self.assertFalse(conversation.can_be_approved_by(self.outsider))

        conversation.status = Conversation.STATUS_BUYER_APPROVED
        self.assertFalse(conversation.can_be_approved_by(self.buyer))
        self.assertTrue(conversation.can_be_approved_by(self.seller))

        conversation.status = Conversation.STATUS_COMPLETED
        self.assertFalse(conversation.can_be_approved_by(self.seller))
        self.assertFalse(conversation.can_be_cancelled())


class MessageModelTests(TestCase):
    """Tests for the Message model."""

    def setUp(self):
        self.buyer = create_user('buyer')
        self.seller = create_user('seller')
        self.product = create_product(self.seller)
        self.conversation = Conversation.objects.create(
            buyer=self.buyer, seller=self.seller, product=self.product
        )

    def test_text_message_requires_sender(self):
        with self.assertRaises(ValidationError):
            Message.objects.create(conversation=self.conversation, content='Hello')

    def test_system_message_cannot_have_sender(self):
        with self.assertRaises(ValidationError):
            Message.objects.create(
                conversation=self.conversation,
                sender=self.buyer,
                content='Conversation started',
                message_type=Message.TYPE_SYSTEM
            )

    def test_content_cannot_be_blank(self):
        with self.assertRaises(ValidationError):
            Message.objects.create(conversation=self.conversation, sender=self.buyer, content='  ')

    def test_text_message_length_limit(self):
        Message.objects.create(conversation=self.conversation, sender=self.buyer, content='a' * 1000)
        with self.assertRaises(ValidationError):
            Message.objects.create(conversation=self.conversation, sender=self.buyer, content='a' * 1001)

    @override_settings(MESSAGE_MAX_LENGTH=10)
    def test_text_message_length_limit_is_configurable(self):
        with self.assertRaises(ValidationError):
            Message.objects.create(conversation=self.conversation, sender=self.buyer, content='a' * 11)

    def test_system_message_exempt_from_length_limit(self):
        message = Message.objects.create(
            conversation=self.conversation,
            content='a' * 1500,
            message_type=Message.TYPE_SYSTEM
        )
        self.assertEqual(len(message.content), 1500)

    def test_sender_type(self):
        text = Message.objects.create(conversation=self.conversation, sender=self.buyer, content='Hi')
        system = Message.objects.create(
            conversation=self.conversation,
            content='Notice',
            message_type=Message.TYPE_SYSTEM
        )
        self.assertEqual(text.sender_type, Message.SENDER_USER)
        self.assertEqual(system.sender_type, Message.SENDER_SYSTEM)
        self.assertEqual(system.get_sender_display_name(), 'System')
        self.assertTrue(text.belongs_to(self.buyer))
        self.assertFalse(text.belongs_to(self.seller))

    def test_unread_for_includes_system_messages(self):
        Message.objects.create(conversation=self.conversation, sender=self.buyer, content='Hi')
        Message.objects.create(conversation=self.conversation, content='Notice', message_type=Message.TYPE_SYSTEM)

        self.assertEqual(Message.objects.unread_for(self.conversation, self.seller).count(), 2)
        self.assertEqual(Message.objects.unread_for(self.conversation, self.buyer).count(), 1)

    def test_mark_read_for_is_idempotent(self):
        Message.objects.create(conversation=self.conversation, sender=self.buyer, content='Hi')
        Message.objects.create(conversation=self.conversation, sender=self.buyer, content='Still there?')

        self.assertEqual(Message.objects.mark_read_for(self.conversation, self.seller), 2)
        self.assertEqual(Message.objects.mark_read_for(self.conversation, self.seller), 0)

    def test_length_limit_counts_escaped_script_tags_as_typed(self):
        stored = '&lt;script>' + 'a' * 983 + '&lt;/script&gt;'
        message = Message.objects.create(conversation=self.conversation, sender=self.buyer, content=stored)
        self.assertEqual(len(message.content), 1009)

        with self.assertRaises(ValidationError):
            Message.objects.create(
                conversation=self.conversation, sender=self.buyer, content='&lt;script>' + 'a' * 993
            )

    def test_length_error_names_the_limit(self):
        with self.assertRaises(ValidationError) as ctx:
            Message.objects.create(conversation=self.conversation, sender=self.buyer, content='a' * 1001)
        self.assertEqual(
            ctx.exception.message_dict['content'],
            ['Message content is too long (maximum 1000 characters).']
        )

    def test_only_system_messages_record_triggering_user(self):
        with self.assertRaises(ValidationError):
            Message.objects.create(
                conversation=self.conversation,
                sender=self.buyer,
                triggered_by=self.buyer,
                content='Hi'
            )

    def test_triggering_user_does_not_see_system_message_as_unread(self):
        Message.objects.create(
            conversation=self.conversation,
            content='Buyer approved',
            message_type=Message.TYPE_SYSTEM,
            triggered_by=self.buyer
        )

        self.assertEqual(Message.objects.unread_for(self.conversation, self.buyer).count(), 0)
        self.assertEqual(Message.objects.unread_for(self.conversation, self.seller).count(), 1)
        self.assertFalse(Conversation.objects.with_unread_for(self.buyer).exists())
        self.assertTrue(Conversation.objects.with_unread_for(self.seller).exists())


class OrderModelTests(TestCase):
    """Tests for the Order model."""

    def setUp(self):
        self.buyer = create_user('buyer')
        self.seller = create_user('seller')
        self.product = create_product(self.seller)
        self.conversation = Conversation.objects.create(
            buyer=self.buyer, seller=self.seller, product=self.product
        )

    def test_one_order_per_conversation(self):
        Order.objects.create(user=self.buyer, conversation=self.conversation, total_amount=Decimal('25.00'))
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Order.objects.create(user=self.buyer, conversation=self.conversation, total_amount=Decimal('25.00'))

    def test_mark_as_completed_sets_timestamp(self):
        order = Order(user=self.buyer, conversation=self.conversation, total_amount=Decimal('25.00'))
        self.assertIsNone(order.completed_at)
        order.mark_as_completed()
        self.assertIsNotNone(order.completed_at)
