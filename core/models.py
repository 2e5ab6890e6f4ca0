"""
Data model for the Student Marketplace.

Products are listed by sellers, buyers contact sellers through a Conversation
tied to one product, and a completed Conversation produces an Order.
"""

from decimal import Decimal

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Count, Exists, OuterRef, Prefetch, Q, Subquery
from django.db.models.functions import Coalesce
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .validators import unescaped_length, validate_phone_number, validate_product_image


class User(AbstractUser):
    """
    Marketplace user. Any user can both sell and buy.

    Additional fields:
    - email: Required, unique email address
    - phone_number: Optional phone number with validation
    - university_name: User's educational institution
    - created_at: Account creation timestamp
    - updated_at: Last update timestamp
    """

    email = models.EmailField(
        _('email address'),
        unique=True,
        blank=False,
        null=False,
        error_messages={
            'unique': _('A user with that email already exists.'),
        },
        help_text=_('Required. Enter a valid email address.')
    )

    phone_number = models.CharField(
        _('phone number'),
        max_length=20,
        blank=True,
        default='',
        validators=[validate_phone_number],
        help_text=_('Optional. Enter phone number in international format.')
    )

    university_name = models.CharField(
        _('university name'),
        max_length=200,
        blank=True,
        default='',
        help_text=_('Educational institution name.')
    )

    created_at = models.DateTimeField(
        _('created at'),
        auto_now_add=True,
        help_text=_('Timestamp when the account was created.')
    )

    updated_at = models.DateTimeField(
        _('updated at'),
        auto_now=True,
        help_text=_('Timestamp when the account was last updated.')
    )

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']

    def __str__(self):
        return self.username

    def save(self, *args, **kwargs):
        # Case-insensitive uniqueness
        if self.email:
            self.email = self.email.lower()
        super().save(*args, **kwargs)


def product_image_upload_path(instance, filename):
    """
    Generate upload path for product images.

    Path format: product_images/{seller_id}/{filename}
    """
    seller_id = instance.seller_id or 'temp'
    return f'product_images/{seller_id}/{filename}'


class Product(models.Model):
    """
    Product listed by a seller.

    The conversation engine reads price, availability and stock from here and
    only ever writes back to deactivate a product once its sale completes.
    """

    seller = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='products',
        help_text=_('User selling this product')
    )

    name = models.CharField(
        _('name'),
        max_length=200,
        help_text=_('Name of the product')
    )

    description = models.TextField(
        _('description'),
        blank=True,
        default='',
        help_text=_('Detailed description of the product')
    )

    brand = models.CharField(
        _('brand'),
        max_length=100,
        blank=True,
        default=''
    )

    category = models.CharField(
        _('category'),
        max_length=100,
        blank=True,
        default=''
    )

    price = models.DecimalField(
        _('price'),
        max_digits=10,
        decimal_places=2,
        help_text=_('Price in USD (must be greater than 0)')
    )

    product_available = models.BooleanField(
        _('product available'),
        default=True,
        help_text=_('Whether the product can still be bought')
    )

    stock_quantity = models.PositiveIntegerField(
        _('stock quantity'),
        default=1,
        help_text=_('Units left in stock')
    )

    image = models.ImageField(
        _('image'),
        upload_to=product_image_upload_path,
        blank=True,
        null=True,
        validators=[validate_product_image],
        help_text=_('Optional. Product picture (max 5MB, formats: jpg, png, webp).')
    )

    created_at = models.DateTimeField(
        _('created at'),
        auto_now_add=True
    )

    updated_at = models.DateTimeField(
        _('updated at'),
        auto_now=True
    )

    class Meta:
        verbose_name = _('product')
        verbose_name_plural = _('products')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['product_available'], name='product_available_idx'),
            models.Index(fields=['category'], name='product_category_idx'),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Name is not empty
        - Price is greater than 0

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if not self.name or not self.name.strip():
            raise ValidationError({
                'name': _('Product name cannot be empty.')
            })

        if self.price is not None and self.price <= 0:
            raise ValidationError({
                'price': _('Price must be greater than 0.')
            })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def is_available(self):
        """
        Check if the product can be negotiated for.

        Returns:
            bool: True if flagged available and at least one unit is in stock
        """
        return self.product_available and self.stock_quantity > 0

    def mark_as_sold(self):
        """
        Deactivate the product after a completed sale.

        The image is not revalidated, so a file missing from storage does not
        block the sale.
        """
        self.product_available = False
        self.stock_quantity = 0
        self.full_clean(exclude=['image'])
        super().save(update_fields=['product_available', 'stock_quantity', 'updated_at'])


# ============================================================================
# Conversation Models
# ============================================================================

class ConversationQuerySet(models.QuerySet):
    """Read-side lookups over conversations."""

    def for_participant(self, user):
        """Conversations where user is buyer or seller, most recently active first."""
        return self.filter(
            Q(buyer=user) | Q(seller=user)
        ).order_by('-updated_at', '-id')

    def requiring_approval_from(self, user):
        """Conversations where the other party approved and user's approval would complete the deal."""
        return self.filter(
            Q(status=Conversation.STATUS_SELLER_APPROVED, buyer=user) |
            Q(status=Conversation.STATUS_BUYER_APPROVED, seller=user)
        ).order_by('-updated_at', '-id')

    def with_unread_for(self, user):
        """Participant conversations holding at least one unread message addressed to user."""
        unread = Message.objects.filter(
            conversation=OuterRef('pk'),
            is_read=False,
        ).addressed_to(user)
        return self.for_participant(user).filter(Exists(unread))

    def with_inbox_data(self, user):
        """
        Annotate each row with what an inbox entry shows for user.

        Adds ``unread_message_count`` and a ``latest_messages`` list holding
        at most the newest message, so listing costs a fixed number of queries.
        """
        unread = (
            Message.objects.filter(conversation=OuterRef('pk'), is_read=False)
            .addressed_to(user)
            .order_by()
            .values('conversation')
            .annotate(total=Count('id'))
            .values('total')
        )
        latest = Message.objects.select_related('sender').order_by('-sent_at', '-id')
        return self.annotate(
            unread_message_count=Coalesce(Subquery(unread, output_field=models.IntegerField()), 0)
        ).prefetch_related(
            Prefetch('messages', queryset=latest[:1], to_attr='latest_messages')
        )


class Conversation(models.Model):
    """
    Negotiation between one buyer and one seller about one product.

    Status transitions:
    - ACTIVE -> BUYER_APPROVED, SELLER_APPROVED, CANCELLED
    - BUYER_APPROVED -> COMPLETED, CANCELLED
    - SELLER_APPROVED -> COMPLETED, CANCELLED
    - COMPLETED, CANCELLED: terminal

    Status is only ever changed by core.services. Rows are never deleted;
    cancelled and completed conversations are kept as history.
    """

    STATUS_ACTIVE = 'ACTIVE'
    STATUS_BUYER_APPROVED = 'BUYER_APPROVED'
    STATUS_SELLER_APPROVED = 'SELLER_APPROVED'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CANCELLED = 'CANCELLED'

    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_BUYER_APPROVED, 'Buyer Approved'),
        (STATUS_SELLER_APPROVED, 'Seller Approved'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    VALID_TRANSITIONS = {
        STATUS_ACTIVE: [STATUS_BUYER_APPROVED, STATUS_SELLER_APPROVED, STATUS_CANCELLED],
        STATUS_BUYER_APPROVED: [STATUS_COMPLETED, STATUS_CANCELLED],
        STATUS_SELLER_APPROVED: [STATUS_COMPLETED, STATUS_CANCELLED],
        STATUS_COMPLETED: [],
        STATUS_CANCELLED: [],
    }

    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

    ROLE_BUYER = 'buyer'
    ROLE_SELLER = 'seller'

    buyer = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='buyer_conversations',
        help_text=_('User interested in buying the product')
    )

    seller = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='seller_conversations',
        help_text=_('Owner of the product')
    )

    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name='conversations',
        help_text=_('Product being negotiated')
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_ACTIVE,
        help_text=_('Current approval status of the conversation')
    )

    created_at = models.DateTimeField(
        _('created at'),
        auto_now_add=True,
        help_text=_('Timestamp when the conversation was started')
    )

    updated_at = models.DateTimeField(
        _('updated at'),
        default=timezone.now,
        help_text=_('Timestamp of the latest activity (message or status change)')
    )

    objects = ConversationQuerySet.as_manager()

    class Meta:
        verbose_name = _('conversation')
        verbose_name_plural = _('conversations')
        ordering = ['-updated_at']
        indexes = [
            models.Index(fields=['status'], name='conversation_status_idx'),
            models.Index(fields=['updated_at'], name='conversation_updated_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['buyer', 'seller', 'product'],
                name='unique_conversation_per_buyer_seller_product'
            ),
            models.CheckConstraint(
                condition=~Q(buyer=models.F('seller')),
                name='conversation_buyer_not_seller'
            ),
        ]

    def __str__(self):
        return f"Conversation #{self.pk}: {self.buyer} -> {self.seller} about {self.product}"

    def clean(self):
        """
        Validate participants and status transitions.

        Raises:
            ValidationError: If buyer and seller are the same user, the seller
                does not own the product, or the status change is not allowed
        """
        super().clean()

        if self.buyer_id and self.seller_id and self.buyer_id == self.seller_id:
            raise ValidationError({
                'buyer': _('Buyer and seller cannot be the same user.')
            })

        if self.seller_id and self.product_id and self.product.seller_id != self.seller_id:
            raise ValidationError({
                'seller': _('Conversation seller must match the product seller.')
            })

        if self.pk is not None:
            old_status = (
                Conversation.objects.filter(pk=self.pk)
                .values_list('status', flat=True)
                .first()
            )
            if old_status is not None and not self.can_transition_to(self.status, from_status=old_status):
                raise ValidationError({
                    'status': _('Invalid status transition from %(old)s to %(new)s.') % {
                        'old': old_status,
                        'new': self.status,
                    }
                })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def can_transition_to(self, new_status, from_status=None):
        """
        Check if a transition to new_status is allowed.

        Args:
            new_status: Target status
            from_status: Status to transition from (defaults to current status)

        Returns:
            bool: True if the transition is valid or a no-op
        """
        current_status = from_status or self.status
        if new_status == current_status:
            return True
        return new_status in self.VALID_TRANSITIONS.get(current_status, [])

    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def is_participant(self, user):
        return user is not None and user.pk in (self.buyer_id, self.seller_id)

    def role_of(self, user):
        """
        Resolve the role user plays in this conversation.

        Returns:
            str or None: ROLE_BUYER, ROLE_SELLER, or None for non-participants
        """
        if user is None or user.pk is None:
            return None
        if user.pk == self.buyer_id:
            return self.ROLE_BUYER
        if user.pk == self.seller_id:
            return self.ROLE_SELLER
        return None

    def other_participant(self, user):
        role = self.role_of(user)
        if role == self.ROLE_BUYER:
            return self.seller
        if role == self.ROLE_SELLER:
            return self.buyer
        return None

    def can_be_approved_by(self, user):
        """True if user may approve from the current status."""
        role = self.role_of(user)
        if role is None or self.is_terminal():
            return False
        if role == self.ROLE_BUYER:
            return self.status != self.STATUS_BUYER_APPROVED
        return self.status != self.STATUS_SELLER_APPROVED

    def can_be_cancelled(self):
        return not self.is_terminal()


class MessageQuerySet(models.QuerySet):
    """
    Read-side lookups over messages.

    is_read is a single flag per message, which is only meaningful because a
    conversation has exactly two participants: a message that one participant
    did not send has exactly one possible reader.
    """

    def in_conversation(self, conversation):
        return self.filter(conversation=conversation).order_by('sent_at', 'id')

    def addressed_to(self, user):
        """
        Messages user should read: not sent by user, and for system messages,
        not produced by user's own action.
        """
        return self.filter(
            Q(sender__isnull=True) | ~Q(sender=user)
        ).filter(
            Q(triggered_by__isnull=True) | ~Q(triggered_by=user)
        )

    def unread_for(self, conversation, user):
        """Unread messages in conversation addressed to user."""
        return self.filter(
            conversation=conversation,
            is_read=False,
        ).addressed_to(user)

    def mark_read_for(self, conversation, user):
        """
        Bulk-mark every unread message addressed to user as read.

        Returns:
            int: Number of messages updated
        """
        return self.unread_for(conversation, user).update(is_read=True)

    def search(self, conversation, term):
        return self.filter(
            conversation=conversation,
            content__icontains=term,
        ).order_by('-sent_at', '-id')


class Message(models.Model):
    """
    Message in a conversation thread.

    A message is either written by a participant (TEXT, sender set) or
    generated by the engine on a state change (SYSTEM_MESSAGE, no sender).
    Only is_read changes after creation.
    """

    TYPE_TEXT = 'TEXT'
    TYPE_SYSTEM = 'SYSTEM_MESSAGE'

    MESSAGE_TYPE_CHOICES = [
        (TYPE_TEXT, 'Text'),
        (TYPE_SYSTEM, 'System Message'),
    ]

    SENDER_USER = 'user'
    SENDER_SYSTEM = 'system'

    MAX_TEXT_LENGTH = 1000

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name='messages',
        help_text=_('Conversation this message belongs to')
    )

    sender = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sent_messages',
        help_text=_('Author of the message; empty for system messages')
    )

    triggered_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='triggered_messages',
        help_text=_('For system messages, the participant whose action produced it')
    )

    content = models.TextField(
        _('content'),
        help_text=_('Message body')
    )

    message_type = models.CharField(
        _('message type'),
        max_length=20,
        choices=MESSAGE_TYPE_CHOICES,
        default=TYPE_TEXT
    )

    sent_at = models.DateTimeField(
        _('sent at'),
        default=timezone.now,
        help_text=_('Timestamp when the message was sent')
    )

    is_read = models.BooleanField(
        _('is read'),
        default=False,
        help_text=_('Whether the recipient has opened the conversation since this message')
    )

    objects = MessageQuerySet.as_manager()

    class Meta:
        verbose_name = _('message')
        verbose_name_plural = _('messages')
        ordering = ['sent_at', 'id']
        indexes = [
            models.Index(fields=['conversation', 'sent_at'], name='message_conv_sent_idx'),
            models.Index(fields=['conversation', 'is_read'], name='message_conv_read_idx'),
        ]

    def __str__(self):
        return f"{self.get_sender_display_name()}: {self.content[:50]}"

    def clean(self):
        """
        Validate message content.

        Ensures:
        - Content is not empty
        - TEXT messages do not exceed MESSAGE_MAX_LENGTH characters
        - TEXT messages have a sender and system messages do not

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if not self.content or not self.content.strip():
            raise ValidationError({
                'content': _('Message content cannot be empty.')
            })

        if self.message_type == self.TYPE_TEXT:
            max_length = getattr(settings, 'MESSAGE_MAX_LENGTH', self.MAX_TEXT_LENGTH)
            # Stored text is sanitized; measure it as typed.
            if unescaped_length(self.content) > max_length:
                raise ValidationError({
                    'content': _('Message content is too long (maximum %(max_length)s characters).') % {
                        'max_length': max_length
                    }
                })
            if not self.sender_id:
                raise ValidationError({
                    'sender': _('Text messages must have a sender.')
                })
            if self.triggered_by_id:
                raise ValidationError({
                    'triggered_by': _('Only system messages record a triggering user.')
                })
        elif self.sender_id:
            raise ValidationError({
                'sender': _('System messages cannot have a sender.')
            })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    @property
    def sender_type(self):
        """Either SENDER_SYSTEM or SENDER_USER."""
        if self.message_type == self.TYPE_SYSTEM or self.sender_id is None:
            return self.SENDER_SYSTEM
        return self.SENDER_USER

    def is_system_message(self):
        return self.sender_type == self.SENDER_SYSTEM

    def belongs_to(self, user):
        return self.sender_id is not None and user is not None and self.sender_id == user.pk

    def get_sender_display_name(self):
        if self.is_system_message():
            return 'System'
        return str(self.sender)


# ============================================================================
# Order Model
# ============================================================================

class OrderQuerySet(models.QuerySet):

    def for_user(self, user):
        return self.filter(user=user).order_by('-order_date', '-id')

    def completed(self):
        return self.filter(completed_at__isnull=False)


class Order(models.Model):
    """
    Purchase record written when both parties approve a conversation.

    One order per conversation at most.
    """

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='orders',
        help_text=_('Buyer who purchased the product')
    )

    conversation = models.OneToOneField(
        Conversation,
        on_delete=models.PROTECT,
        related_name='order',
        help_text=_('Conversation that produced this order')
    )

    total_amount = models.DecimalField(
        _('total amount'),
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text=_('Product price at completion time')
    )

    order_date = models.DateTimeField(
        _('order date'),
        default=timezone.now
    )

    completed_at = models.DateTimeField(
        _('completed at'),
        null=True,
        blank=True,
        help_text=_('Timestamp when both parties approved')
    )

    objects = OrderQuerySet.as_manager()

    class Meta:
        verbose_name = _('order')
        verbose_name_plural = _('orders')
        ordering = ['-order_date']
        indexes = [
            models.Index(fields=['order_date'], name='order_date_idx'),
        ]

    def __str__(self):
        return f"Order #{self.pk} by {self.user} ({self.total_amount})"

    def mark_as_completed(self, when=None):
        self.completed_at = when or timezone.now()
