"""
Conversation and transaction approval engine.

Every operation is request-scoped and runs synchronously. Operations that write
more than one row run inside a single transaction.atomic() block; operations
that change a conversation's status lock the conversation row with
select_for_update() and decide the transition from the locked state, so the
first of two racing requests wins and the second fails with PolicyViolation.
"""

import logging
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from .exceptions import AuthorizationError, NotFoundError, PolicyViolation, ValidationError
from .models import Conversation, Message, Order, Product
from .validators import sanitize_message_content, validate_message_content

logger = logging.getLogger(__name__)


# ============================================================================
# Lookups and role resolution
# ============================================================================

def resolve_role(conversation, user):
    """
    Resolve whether user is the buyer or the seller of conversation.

    Returns:
        str: Conversation.ROLE_BUYER or Conversation.ROLE_SELLER

    Raises:
        AuthorizationError: If user is not a participant
    """
    role = conversation.role_of(user)
    if role is None:
        raise AuthorizationError('You are not authorized to access this conversation')
    return role


def _load_conversation(conversation_id, lock=False):
    queryset = Conversation.objects.all()
    if lock:
        queryset = queryset.select_for_update()
    else:
        queryset = queryset.select_related('buyer', 'seller', 'product')
    try:
        return queryset.get(pk=conversation_id)
    except Conversation.DoesNotExist:
        raise NotFoundError(f'Conversation not found with ID: {conversation_id}')


def get_conversation(conversation_id, user):
    """
    Fetch a conversation the user participates in.

    Raises:
        NotFoundError: If the conversation does not exist
        AuthorizationError: If user is not a participant
    """
    conversation = _load_conversation(conversation_id)
    resolve_role(conversation, user)
    return conversation


def get_user_conversations(user):
    """All conversations where user is buyer or seller, most recently active first."""
    return Conversation.objects.for_participant(user).with_inbox_data(user).select_related(
        'buyer', 'seller', 'product'
    )


def get_unread_conversation_count(user):
    """Number of conversations holding at least one unread message addressed to user."""
    return Conversation.objects.with_unread_for(user).count()


def get_conversations_requiring_approval(user):
    """Conversations where the other party approved and user's approval would complete the deal."""
    return Conversation.objects.requiring_approval_from(user).with_inbox_data(user).select_related(
        'buyer', 'seller', 'product'
    )


def get_notifications(user):
    """
    Derive the inbox badge counts for user.

    Nothing is cached; clients poll this every
    NOTIFICATION_POLL_INTERVAL_SECONDS.

    Returns:
        dict: unread_conversations, pending_approvals, pending_approvals_list,
        total_notifications, has_notifications, poll_interval_seconds
    """
    unread_count = get_unread_conversation_count(user)
    pending = list(get_conversations_requiring_approval(user))
    total = unread_count + len(pending)

    return {
        'unread_conversations': unread_count,
        'pending_approvals': len(pending),
        'pending_approvals_list': pending,
        'total_notifications': total,
        'has_notifications': total > 0,
        'poll_interval_seconds': settings.NOTIFICATION_POLL_INTERVAL_SECONDS,
    }


# ============================================================================
# System messages
# ============================================================================

def create_system_message(conversation, content, triggered_by=None):
    """
    Append an engine-generated message and bump the conversation's activity time.

    System messages have no sender, start unread and skip the user-input
    length limit. When triggered_by is given, the message counts as unread
    only for the other participant.
    """
    if not content or not content.strip():
        raise ValidationError('System message content cannot be empty', code='empty_message')

    message = Message.objects.create(
        conversation=conversation,
        sender=None,
        triggered_by=triggered_by,
        content=content.strip(),
        message_type=Message.TYPE_SYSTEM,
        is_read=False,
    )

    conversation.updated_at = message.sent_at
    conversation.save(update_fields=['updated_at'])

    return message


# ============================================================================
# Conversation lifecycle
# ============================================================================

def initiate_conversation(product_id, buyer):
    """
    Start (or resume) the conversation between buyer and the product's seller.

    Calling this again for the same buyer and product returns the existing
    conversation untouched, so a "Contact Seller" click can be retried.

    Args:
        product_id: Primary key of the product
        buyer: Authenticated user who wants to buy

    Returns:
        tuple: (Conversation, created)

    Raises:
        NotFoundError: If the product does not exist
        PolicyViolation: If buyer owns the product, or a new conversation is
            needed and the product is unavailable
    """
    try:
        product = Product.objects.select_related('seller').get(pk=product_id)
    except Product.DoesNotExist:
        raise NotFoundError(f'Product not found with ID: {product_id}')

    seller = product.seller

    if buyer.pk == seller.pk:
        raise PolicyViolation(
            'You cannot initiate a conversation for your own product',
            code='self_purchase'
        )

    lookup = {'buyer': buyer, 'seller': seller, 'product': product}

    existing = Conversation.objects.filter(**lookup).first()
    if existing is not None:
        return existing, False

    if not product.is_available():
        raise PolicyViolation(
            'Product is no longer available for purchase',
            code='unavailable'
        )

    try:
        with transaction.atomic():
            conversation = Conversation.objects.create(
                status=Conversation.STATUS_ACTIVE,
                **lookup
            )
            create_system_message(
                conversation,
                f'Conversation started for {product.name}. '
                f'Buyer: {buyer.username}, Seller: {seller.username}. '
                f'Please discuss payment method, pickup location, and any other details.',
                triggered_by=buyer
            )
    except (IntegrityError, DjangoValidationError):
        # A concurrent request created the same conversation first.
        existing = Conversation.objects.filter(**lookup).first()
        if existing is None:
            raise
        return existing, False

    logger.info(
        f"Conversation initiated. "
        f"Conversation ID: {conversation.id}, "
        f"Product: {product.name} (ID: {product.id}), "
        f"Buyer: {buyer.username} (ID: {buyer.id}), "
        f"Seller: {seller.username} (ID: {seller.id})"
    )

    return conversation, True


def approve_transaction(conversation_id, user):
    """
    Record user's approval of the deal.

    The first approval moves the conversation to BUYER_APPROVED or
    SELLER_APPROVED. The second party's approval completes it: the status
    becomes COMPLETED, an Order is written and the product is deactivated, all
    in the same transaction. Each successful call appends exactly one system
    message.

    Raises:
        NotFoundError: If the conversation does not exist
        AuthorizationError: If user is not a participant
        PolicyViolation: If the conversation is terminal, user already approved,
            or the product was sold elsewhere before completion
    """
    with transaction.atomic():
        conversation = _load_conversation(conversation_id, lock=True)
        role = resolve_role(conversation, user)
        current_status = conversation.status

        if current_status == Conversation.STATUS_COMPLETED:
            raise PolicyViolation('Transaction has already been completed', code='already_completed')
        if current_status == Conversation.STATUS_CANCELLED:
            raise PolicyViolation('Cannot approve a cancelled transaction', code='cancelled')

        if role == Conversation.ROLE_BUYER:
            own_approval = Conversation.STATUS_BUYER_APPROVED
            other_approval = Conversation.STATUS_SELLER_APPROVED
        else:
            own_approval = Conversation.STATUS_SELLER_APPROVED
            other_approval = Conversation.STATUS_BUYER_APPROVED

        if current_status == own_approval:
            raise PolicyViolation('You have already approved this transaction', code='already_approved')

        if current_status == other_approval:
            new_status = Conversation.STATUS_COMPLETED
        else:
            new_status = own_approval

        now = timezone.now()
        conversation.status = new_status
        conversation.updated_at = now
        conversation.save(update_fields=['status', 'updated_at'])

        if new_status == Conversation.STATUS_COMPLETED:
            order = _complete_transaction(conversation, now)
            create_system_message(
                conversation,
                '🎉 Transaction completed successfully! Both parties have approved. '
                "The product has been marked as sold and added to buyer's order history.",
                triggered_by=user
            )
            logger.info(
                f"Transaction completed. "
                f"Conversation ID: {conversation.id}, "
                f"Order ID: {order.id}, "
                f"Amount: {order.total_amount}, "
                f"Completed by: {user.username} ({role})"
            )
        else:
            create_system_message(
                conversation,
                f'{role.capitalize()} ({user.username}) has approved the transaction. '
                f'Waiting for the other party to approve.',
                triggered_by=user
            )
            logger.info(
                f"Transaction approved. "
                f"Conversation ID: {conversation.id}, "
                f"Old Status: {current_status}, "
                f"New Status: {new_status}, "
                f"User: {user.username} (ID: {user.id})"
            )

    return conversation


def _complete_transaction(conversation, completed_at):
    """Write the Order and deactivate the product. Must run inside the caller's transaction."""
    product = Product.objects.select_for_update().get(pk=conversation.product_id)

    if not product.product_available:
        raise PolicyViolation(
            'Product is no longer available for purchase',
            code='unavailable'
        )

    order = Order(
        user_id=conversation.buyer_id,
        conversation=conversation,
        total_amount=product.price,
        order_date=completed_at,
    )
    order.mark_as_completed(completed_at)
    order.full_clean()
    order.save()

    product.mark_as_sold()
    conversation.product = product

    return order


def cancel_conversation(conversation_id, user):
    """
    Cancel a conversation that has not completed yet.

    The product stays available and no order is written.

    Raises:
        NotFoundError: If the conversation does not exist
        AuthorizationError: If user is not a participant
        PolicyViolation: If the conversation is already completed or cancelled
    """
    with transaction.atomic():
        conversation = _load_conversation(conversation_id, lock=True)
        role = resolve_role(conversation, user)

        if conversation.status == Conversation.STATUS_COMPLETED:
            raise PolicyViolation('Cannot cancel a completed transaction', code='already_completed')
        if conversation.status == Conversation.STATUS_CANCELLED:
            raise PolicyViolation('Conversation is already cancelled', code='already_cancelled')

        old_status = conversation.status
        conversation.status = Conversation.STATUS_CANCELLED
        conversation.updated_at = timezone.now()
        conversation.save(update_fields=['status', 'updated_at'])

        create_system_message(
            conversation,
            f'{role.capitalize()} ({user.username}) has cancelled this transaction.',
            triggered_by=user
        )

    logger.info(
        f"Conversation cancelled. "
        f"Conversation ID: {conversation.id}, "
        f"Old Status: {old_status}, "
        f"Cancelled by: {user.username} ({role})"
    )

    return conversation


# ============================================================================
# Messages
# ============================================================================

def _clean_content(content, max_length):
    try:
        return validate_message_content(content, max_length=max_length)
    except DjangoValidationError as e:
        raise ValidationError(e.messages[0], code=e.code)


def send_message(conversation_id, content, sender):
    """
    Post a text message from a participant.

    Messaging is allowed in every status except CANCELLED, including after
    completion.

    Returns:
        Message: The created message

    Raises:
        NotFoundError: If the conversation does not exist
        AuthorizationError: If sender is not a participant
        PolicyViolation: If the conversation is cancelled
        ValidationError: If content is empty or too long
    """
    max_length = settings.MESSAGE_MAX_LENGTH

    with transaction.atomic():
        conversation = _load_conversation(conversation_id, lock=True)
        resolve_role(conversation, sender)

        if conversation.status == Conversation.STATUS_CANCELLED:
            raise PolicyViolation('Cannot send messages to a cancelled conversation', code='cancelled')

        trimmed = _clean_content(content, max_length)
        sanitized = sanitize_message_content(trimmed)
        if not sanitized:
            raise ValidationError('Message content cannot be empty.', code='empty_message')

        message = Message.objects.create(
            conversation=conversation,
            sender=sender,
            content=sanitized,
            message_type=Message.TYPE_TEXT,
            is_read=False,
        )

        conversation.updated_at = message.sent_at
        conversation.save(update_fields=['updated_at'])

    logger.info(
        f"Message sent. "
        f"Message ID: {message.id}, "
        f"Conversation ID: {conversation.id}, "
        f"Sender: {sender.username} (ID: {sender.id})"
    )

    return message


def get_conversation_messages(conversation_id, user):
    """
    Return the whole thread oldest-first and acknowledge the other party's messages.

    Messages are returned as they were before the read-marking, so callers
    can still tell which ones were new.
    """
    with transaction.atomic():
        conversation = get_conversation(conversation_id, user)
        messages = list(
            Message.objects.in_conversation(conversation).select_related('sender')
        )
        marked = Message.objects.mark_read_for(conversation, user)

    if marked:
        logger.debug(
            f"Marked {marked} messages as read for user {user.username} "
            f"in conversation {conversation_id}"
        )

    return messages


def mark_messages_as_read(conversation_id, user):
    """
    Mark every unread message user did not send as read.

    Returns:
        int: Number of messages marked; 0 when called again
    """
    conversation = get_conversation(conversation_id, user)
    return Message.objects.mark_read_for(conversation, user)


def get_unread_message_count(conversation_id, user):
    conversation = get_conversation(conversation_id, user)
    return Message.objects.unread_for(conversation, user).count()


def get_last_message(conversation_id, user):
    conversation = get_conversation(conversation_id, user)
    return Message.objects.in_conversation(conversation).select_related('sender').last()


def search_messages(conversation_id, term, user):
    """
    Case-insensitive substring search within one conversation, newest first.

    Raises:
        ValidationError: If term is blank
        NotFoundError: If the conversation does not exist
        AuthorizationError: If user is not a participant
    """
    if term is None or not term.strip():
        raise ValidationError('Search term cannot be empty', code='blank_search_term')

    conversation = get_conversation(conversation_id, user)
    return list(
        Message.objects.search(conversation, term.strip()).select_related('sender')
    )


def get_messages_by_type(conversation_id, message_type, user):
    """
    Return messages of one type, oldest first.

    Raises:
        ValidationError: If message_type is not TEXT or SYSTEM_MESSAGE
    """
    normalized = (message_type or '').strip().upper()
    valid_types = [choice for choice, _label in Message.MESSAGE_TYPE_CHOICES]
    if normalized not in valid_types:
        raise ValidationError(
            f"Message type must be one of: {', '.join(valid_types)}",
            code='invalid_message_type'
        )

    conversation = get_conversation(conversation_id, user)
    return list(
        Message.objects.in_conversation(conversation)
        .filter(message_type=normalized)
        .select_related('sender')
    )


# ============================================================================
# Orders
# ============================================================================

def get_user_orders(user):
    """Orders placed by user, newest first."""
    return Order.objects.for_user(user).select_related('conversation__product', 'conversation__seller')


def get_order_summary(user):
    orders = Order.objects.filter(user=user)
    total_spent = orders.aggregate(total=Sum('total_amount'))['total']
    return {
        'total_orders': orders.count(),
        'total_spent': total_spent if total_spent is not None else Decimal('0.00'),
    }
