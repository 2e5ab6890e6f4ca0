"""
API views for the Student Marketplace conversation and approval workflow.

Views stay thin: they validate request shape, call core.services and render
the result. Business rules and locking live in the engine.
"""

import logging
from rest_framework_simplejwt.views import TokenObtainPairView
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle

from . import services
from .exceptions import ConversationError
from .serializers import (
    EmailTokenObtainPairSerializer,
    ConversationSerializer,
    ConversationInitiateSerializer,
    MessageSerializer,
    MessageCreateSerializer,
    MessageSearchSerializer,
    NotificationSerializer,
    OrderSerializer,
)

logger = logging.getLogger(__name__)


class EmailTokenObtainPairView(TokenObtainPairView):
    """
    Token view accepting an email address or username with a password.
    """
    serializer_class = EmailTokenObtainPairSerializer


class ConversationAPIView(APIView):
    """
    Shared plumbing for conversation endpoints.

    Maps ConversationError subclasses to their HTTP status with a
    ``{"detail", "code"}`` body and logs every rejection with the caller's
    IP address.
    """
    permission_classes = [IsAuthenticated]

    def get_client_ip(self, request):
        """
        Get client IP address from request.
        Handles proxy headers for accurate IP detection.
        """
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            ip = x_forwarded_for.split(',')[0]
        else:
            ip = request.META.get('REMOTE_ADDR')
        return ip

    def engine_error_response(self, request, error, action, conversation_id=None):
        logger.warning(
            f"{action} rejected. "
            f"Reason: {error.message} ({error.code}), "
            f"Conversation ID: {conversation_id}, "
            f"User: {request.user.username} (ID: {request.user.id}), "
            f"IP: {self.get_client_ip(request)}"
        )
        return Response(error.as_response_data(), status=error.status_code)

    def unexpected_error_response(self, request, action, conversation_id=None):
        logger.error(
            f"Unexpected error during {action.lower()}. "
            f"Conversation ID: {conversation_id}, "
            f"User: {request.user.username} (ID: {request.user.id}), "
            f"IP: {self.get_client_ip(request)}",
            exc_info=True
        )
        return Response(
            {'detail': 'An unexpected error occurred. Please try again later.', 'code': 'server_error'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    def method_not_allowed_response(self, method):
        return Response(
            {'detail': f'Method "{method}" not allowed.'},
            status=status.HTTP_405_METHOD_NOT_ALLOWED
        )


# ============================================================================
# Conversation lifecycle
# ============================================================================

class ConversationInitiateView(ConversationAPIView):
    """
    API endpoint for the "Contact Seller" action.

    POST /api/conversations/initiate/
    Headers: Authorization: Bearer <access_token>
    Request body: {"product_id": 12}

    Success responses:
    - 201: New conversation (with its opening system message)
    - 200: Conversation already existed for this buyer and product

    Error responses:
    - 400: Own product (self_purchase) or product unavailable (unavailable)
    - 401: Missing, invalid, or expired JWT token
    - 404: Product not found
    """

    def post(self, request, *args, **kwargs):
        serializer = ConversationInitiateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        product_id = serializer.validated_data['product_id']

        try:
            conversation, created = services.initiate_conversation(product_id, request.user)
        except ConversationError as e:
            return self.engine_error_response(request, e, 'Conversation initiation')
        except Exception:
            return self.unexpected_error_response(request, 'Conversation initiation')

        response_serializer = ConversationSerializer(conversation, context={'request': request})
        return Response(
            response_serializer.data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )

    def get(self, request, *args, **kwargs):
        """GET method not allowed."""
        return self.method_not_allowed_response('GET')

    def put(self, request, *args, **kwargs):
        """PUT method not allowed."""
        return self.method_not_allowed_response('PUT')

    def delete(self, request, *args, **kwargs):
        """DELETE method not allowed."""
        return self.method_not_allowed_response('DELETE')


class ConversationListView(ConversationAPIView):
    """
    Inbox of the authenticated user.

    GET /api/conversations/

    Success response (200):
    {
        "conversations": [...],
        "unread_count": 2,
        "pending_approvals_count": 1
    }
    """

    def get(self, request, *args, **kwargs):
        conversations = services.get_user_conversations(request.user)
        serializer = ConversationSerializer(conversations, many=True, context={'request': request})

        return Response({
            'conversations': serializer.data,
            'unread_count': services.get_unread_conversation_count(request.user),
            'pending_approvals_count': services.get_conversations_requiring_approval(request.user).count(),
        }, status=status.HTTP_200_OK)


class ConversationDetailView(ConversationAPIView):
    """
    GET /api/conversations/<id>/

    Returns the conversation with the caller's role, the other participant and
    whether approve/cancel are currently available to the caller.
    """

    def get(self, request, *args, **kwargs):
        conversation_id = kwargs.get('pk')
        try:
            conversation = services.get_conversation(conversation_id, request.user)
        except ConversationError as e:
            return self.engine_error_response(request, e, 'Conversation access', conversation_id)

        serializer = ConversationSerializer(conversation, context={'request': request})
        return Response(serializer.data, status=status.HTTP_200_OK)


class ConversationApproveView(ConversationAPIView):
    """
    API endpoint for approving the deal.

    POST /api/conversations/<id>/approve/

    The second party's approval completes the transaction: an order is written
    and the product is deactivated.

    Error responses:
    - 400: already_approved, already_completed or cancelled
    - 403: Caller is not a participant
    - 404: Conversation not found
    """

    def post(self, request, *args, **kwargs):
        conversation_id = kwargs.get('pk')
        try:
            conversation = services.approve_transaction(conversation_id, request.user)
        except ConversationError as e:
            return self.engine_error_response(request, e, 'Transaction approval', conversation_id)
        except Exception:
            return self.unexpected_error_response(request, 'Transaction approval', conversation_id)

        logger.info(
            f"Approval recorded. "
            f"Conversation ID: {conversation_id}, "
            f"Status: {conversation.status}, "
            f"User: {request.user.username} (ID: {request.user.id}), "
            f"IP: {self.get_client_ip(request)}"
        )

        serializer = ConversationSerializer(conversation, context={'request': request})
        return Response(serializer.data, status=status.HTTP_200_OK)

    def get(self, request, *args, **kwargs):
        """GET method not allowed."""
        return self.method_not_allowed_response('GET')

    def put(self, request, *args, **kwargs):
        """PUT method not allowed."""
        return self.method_not_allowed_response('PUT')

    def delete(self, request, *args, **kwargs):
        """DELETE method not allowed."""
        return self.method_not_allowed_response('DELETE')


class ConversationCancelView(ConversationAPIView):
    """
    API endpoint for cancelling a conversation.

    POST /api/conversations/<id>/cancel/

    Error responses:
    - 400: already_completed or already_cancelled
    - 403: Caller is not a participant
    - 404: Conversation not found
    """

    def post(self, request, *args, **kwargs):
        conversation_id = kwargs.get('pk')
        try:
            conversation = services.cancel_conversation(conversation_id, request.user)
        except ConversationError as e:
            return self.engine_error_response(request, e, 'Conversation cancellation', conversation_id)
        except Exception:
            return self.unexpected_error_response(request, 'Conversation cancellation', conversation_id)

        logger.info(
            f"Cancellation recorded. "
            f"Conversation ID: {conversation_id}, "
            f"User: {request.user.username} (ID: {request.user.id}), "
            f"IP: {self.get_client_ip(request)}"
        )

        serializer = ConversationSerializer(conversation, context={'request': request})
        return Response(serializer.data, status=status.HTTP_200_OK)

    def get(self, request, *args, **kwargs):
        """GET method not allowed."""
        return self.method_not_allowed_response('GET')

    def put(self, request, *args, **kwargs):
        """PUT method not allowed."""
        return self.method_not_allowed_response('PUT')

    def delete(self, request, *args, **kwargs):
        """DELETE method not allowed."""
        return self.method_not_allowed_response('DELETE')


# ============================================================================
# Messages
# ============================================================================

class ConversationMessagesView(ConversationAPIView):
    """
    Message thread of a conversation.

    GET /api/conversations/<id>/messages/
        Returns all messages oldest first and marks the other party's
        messages as read.

    POST /api/conversations/<id>/messages/
        Request body: {"content": "Can we meet at the library?"}
        Returns the created message (201). Rate limited.
    """
    throttle_scope = 'messages'

    def get_throttles(self):
        if self.request.method == 'POST':
            return [ScopedRateThrottle()]
        return []

    def get(self, request, *args, **kwargs):
        conversation_id = kwargs.get('pk')
        try:
            messages = services.get_conversation_messages(conversation_id, request.user)
        except ConversationError as e:
            return self.engine_error_response(request, e, 'Message listing', conversation_id)

        serializer = MessageSerializer(messages, many=True, context={'request': request})
        return Response(serializer.data, status=status.HTTP_200_OK)

    def post(self, request, *args, **kwargs):
        conversation_id = kwargs.get('pk')

        serializer = MessageCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            message = services.send_message(
                conversation_id,
                serializer.validated_data['content'],
                request.user
            )
        except ConversationError as e:
            return self.engine_error_response(request, e, 'Message send', conversation_id)
        except Exception:
            return self.unexpected_error_response(request, 'Message send', conversation_id)

        response_serializer = MessageSerializer(message, context={'request': request})
        return Response(response_serializer.data, status=status.HTTP_201_CREATED)


class MessageMarkReadView(ConversationAPIView):
    """
    PUT /api/conversations/<id>/mark-read/

    Success response (200):
    {"marked_count": 3, "unread_count": 0}
    """

    def put(self, request, *args, **kwargs):
        conversation_id = kwargs.get('pk')
        try:
            marked = services.mark_messages_as_read(conversation_id, request.user)
            remaining = services.get_unread_message_count(conversation_id, request.user)
        except ConversationError as e:
            return self.engine_error_response(request, e, 'Mark as read', conversation_id)

        return Response({
            'marked_count': marked,
            'unread_count': remaining,
        }, status=status.HTTP_200_OK)

    def get(self, request, *args, **kwargs):
        """GET method not allowed."""
        return self.method_not_allowed_response('GET')

    def post(self, request, *args, **kwargs):
        """POST method not allowed."""
        return self.method_not_allowed_response('POST')


class MessageSearchView(ConversationAPIView):
    """
    GET /api/conversations/<id>/messages/search/?q=<term>

    Case-insensitive search within one conversation, newest first.
    """

    def get(self, request, *args, **kwargs):
        conversation_id = kwargs.get('pk')

        serializer = MessageSearchSerializer(data=request.query_params)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            messages = services.search_messages(
                conversation_id,
                serializer.validated_data['q'],
                request.user
            )
        except ConversationError as e:
            return self.engine_error_response(request, e, 'Message search', conversation_id)

        return Response({
            'count': len(messages),
            'results': MessageSerializer(messages, many=True, context={'request': request}).data,
        }, status=status.HTTP_200_OK)


class UnreadMessageCountView(ConversationAPIView):
    """GET /api/conversations/<id>/messages/unread-count/"""

    def get(self, request, *args, **kwargs):
        conversation_id = kwargs.get('pk')
        try:
            count = services.get_unread_message_count(conversation_id, request.user)
        except ConversationError as e:
            return self.engine_error_response(request, e, 'Unread count', conversation_id)

        return Response({'unread_count': count}, status=status.HTTP_200_OK)


class MessagesByTypeView(ConversationAPIView):
    """GET /api/conversations/<id>/messages/type/<message_type>/"""

    def get(self, request, *args, **kwargs):
        conversation_id = kwargs.get('pk')
        try:
            messages = services.get_messages_by_type(
                conversation_id,
                kwargs.get('message_type'),
                request.user
            )
        except ConversationError as e:
            return self.engine_error_response(request, e, 'Message filter', conversation_id)

        serializer = MessageSerializer(messages, many=True, context={'request': request})
        return Response(serializer.data, status=status.HTTP_200_OK)


# ============================================================================
# Notifications and orders
# ============================================================================

class NotificationsView(ConversationAPIView):
    """
    GET /api/conversations/notifications/

    Polled by the client every poll_interval_seconds.

    Success response (200):
    {
        "unread_conversations": 2,
        "pending_approvals": 1,
        "pending_approvals_list": [...],
        "total_notifications": 3,
        "has_notifications": true,
        "poll_interval_seconds": 30
    }
    """

    def get(self, request, *args, **kwargs):
        notifications = services.get_notifications(request.user)
        serializer = NotificationSerializer(notifications, context={'request': request})
        return Response(serializer.data, status=status.HTTP_200_OK)


class OrderHistoryView(ConversationAPIView):
    """
    GET /api/orders/

    Orders of the authenticated buyer, newest first, with totals.
    """

    def get(self, request, *args, **kwargs):
        orders = services.get_user_orders(request.user)
        summary = services.get_order_summary(request.user)
        serializer = OrderSerializer(orders, many=True, context={'request': request})

        return Response({
            'orders': serializer.data,
            'total_orders': summary['total_orders'],
            'total_spent': str(summary['total_spent']),
        }, status=status.HTTP_200_OK)
