"""
Serializers for authentication, conversations, messages and orders.

Conversation serializers only render; every write goes through core.services.
"""

from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework import serializers
from django.contrib.auth import get_user_model

from .models import Conversation, Message, Order, Product

User = get_user_model()


class EmailTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Token serializer that takes an email address (or a username) in the
    ``email`` field.

    core.backends.EmailOrUsernameBackend does the lookup.
    """
    username_field = 'email'

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if 'username' in self.fields:
            del self.fields['username']
        if 'email' not in self.fields:
            self.fields['email'] = serializers.CharField()


class UserSummarySerializer(serializers.ModelSerializer):
    """
    Public view of a conversation participant.

    Excludes password, phone number, staff flags and permissions.
    """

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'university_name']
        read_only_fields = fields


class ProductSummarySerializer(serializers.ModelSerializer):
    """Product as shown in a conversation header or an order line."""

    image_url = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            'id',
            'name',
            'brand',
            'category',
            'price',
            'product_available',
            'stock_quantity',
            'image_url',
        ]
        read_only_fields = fields

    def get_image_url(self, obj):
        """
        Generate full URL for the product image.

        Returns:
            str: Full URL to the image, or None if no image uploaded
        """
        if obj.image:
            request = self.context.get('request')
            if request is not None:
                return request.build_absolute_uri(obj.image.url)
            return obj.image.url
        return None


class MessageSerializer(serializers.ModelSerializer):
    """
    Message in a thread.

    sender is null for system messages; sender_type says which kind it is
    so clients do not have to infer it.
    """

    conversation_id = serializers.IntegerField(read_only=True)
    sender = UserSummarySerializer(read_only=True, allow_null=True)
    sender_type = serializers.CharField(read_only=True)

    class Meta:
        model = Message
        fields = [
            'id',
            'conversation_id',
            'sender',
            'sender_type',
            'message_type',
            'content',
            'sent_at',
            'is_read',
        ]
        read_only_fields = fields


class ConversationSerializer(serializers.ModelSerializer):
    """
    Conversation as seen by the requesting participant.

    Role-dependent fields (user_role, other_participant, can_approve,
    can_cancel, unread_count) are computed for request.user.
    """

    buyer = UserSummarySerializer(read_only=True)
    seller = UserSummarySerializer(read_only=True)
    product = ProductSummarySerializer(read_only=True)
    user_role = serializers.SerializerMethodField()
    other_participant = serializers.SerializerMethodField()
    can_approve = serializers.SerializerMethodField()
    can_cancel = serializers.SerializerMethodField()
    unread_count = serializers.SerializerMethodField()
    last_message = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = [
            'id',
            'buyer',
            'seller',
            'product',
            'status',
            'created_at',
            'updated_at',
            'user_role',
            'other_participant',
            'can_approve',
            'can_cancel',
            'unread_count',
            'last_message',
        ]
        read_only_fields = fields

    def _get_user(self):
        request = self.context.get('request')
        return getattr(request, 'user', None)

    def get_user_role(self, obj):
        return obj.role_of(self._get_user())

    def get_other_participant(self, obj):
        other = obj.other_participant(self._get_user())
        if other is None:
            return None
        return UserSummarySerializer(other, context=self.context).data

    def get_can_approve(self, obj):
        return obj.can_be_approved_by(self._get_user())

    def get_can_cancel(self, obj):
        return obj.is_participant(self._get_user()) and obj.can_be_cancelled()

    def get_unread_count(self, obj):
        # Set by ConversationQuerySet.with_inbox_data on list endpoints
        if hasattr(obj, 'unread_message_count'):
            return obj.unread_message_count
        user = self._get_user()
        if not obj.is_participant(user):
            return 0
        return Message.objects.unread_for(obj, user).count()

    def get_last_message(self, obj):
        if hasattr(obj, 'latest_messages'):
            last = obj.latest_messages[0] if obj.latest_messages else None
        else:
            last = Message.objects.in_conversation(obj).select_related('sender').last()
        if last is None:
            return None
        return MessageSerializer(last, context=self.context).data


class ConversationInitiateSerializer(serializers.Serializer):
    """Request body for POST /api/conversations/initiate/."""
    product_id = serializers.IntegerField(
        required=True,
        min_value=1,
        help_text='ID of the product the buyer wants to discuss'
    )


class MessageCreateSerializer(serializers.Serializer):
    """
    Request body for POST /api/conversations/<id>/messages/.

    Blank and oversized content are rejected by the engine so the error
    carries the same code whatever the entry point.
    """
    content = serializers.CharField(
        required=True,
        allow_blank=True,
        trim_whitespace=False,
        help_text='Message text (max 1000 characters after trimming)'
    )


class MessageSearchSerializer(serializers.Serializer):
    """Query parameters for message search."""
    q = serializers.CharField(
        required=True,
        allow_blank=True,
        trim_whitespace=False,
        help_text='Case-insensitive search term'
    )


class NotificationSerializer(serializers.Serializer):
    """Inbox badge counts returned by core.services.get_notifications."""

    unread_conversations = serializers.IntegerField()
    pending_approvals = serializers.IntegerField()
    pending_approvals_list = ConversationSerializer(many=True)
    total_notifications = serializers.IntegerField()
    has_notifications = serializers.BooleanField()
    poll_interval_seconds = serializers.IntegerField()


class OrderSerializer(serializers.ModelSerializer):
    """
    Completed purchase in the buyer's order history.

    Product and seller come from the originating conversation.
    """

    conversation_id = serializers.IntegerField(read_only=True)
    product = serializers.SerializerMethodField()
    seller = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id',
            'conversation_id',
            'product',
            'seller',
            'total_amount',
            'order_date',
            'completed_at',
        ]
        read_only_fields = fields

    def get_product(self, obj):
        return ProductSummarySerializer(obj.conversation.product, context=self.context).data

    def get_seller(self, obj):
        return UserSummarySerializer(obj.conversation.seller, context=self.context).data
