"""
Django admin configuration for marketplace models.

Conversation status, messages and orders are written by core.services, so
the admin shows them read-only.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import Conversation, Message, Order, Product, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Custom admin interface for User model.

    Extends Django's UserAdmin to include custom fields.
    """

    list_display = [
        'username',
        'email',
        'university_name',
        'is_staff',
        'is_active',
        'created_at',
    ]

    list_filter = [
        'is_staff',
        'is_superuser',
        'is_active',
        'created_at',
    ]

    search_fields = [
        'email',
        'username',
        'first_name',
        'last_name',
        'university_name',
    ]

    ordering = ['-created_at']

    fieldsets = (
        (None, {
            'fields': ('username', 'password')
        }),
        (_('Personal Info'), {
            'fields': (
                'first_name',
                'last_name',
                'email',
                'phone_number',
                'university_name',
            )
        }),
        (_('Permissions'), {
            'fields': (
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions',
            ),
            'classes': ('collapse',),
        }),
        (_('Important Dates'), {
            'fields': ('last_login', 'date_joined', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': (
                'username',
                'email',
                'password1',
                'password2',
                'university_name',
            ),
        }),
    )

    readonly_fields = ['created_at', 'updated_at', 'last_login', 'date_joined']

    date_hierarchy = 'created_at'

    list_per_page = 25

    def get_readonly_fields(self, request, obj=None):
        if obj:  # Editing an existing object
            return self.readonly_fields
        return []


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    """Admin interface for Product model."""

    list_display = [
        'name',
        'seller',
        'price',
        'category',
        'product_available',
        'stock_quantity',
        'created_at',
    ]

    list_filter = [
        'product_available',
        'category',
        'created_at',
    ]

    search_fields = [
        'name',
        'description',
        'brand',
        'seller__email',
        'seller__username',
    ]

    readonly_fields = ['created_at', 'updated_at']

    ordering = ['-created_at']

    list_per_page = 25

    fieldsets = (
        (None, {
            'fields': ('seller', 'name', 'description', 'image')
        }),
        (_('Pricing & Stock'), {
            'fields': ('price', 'brand', 'category', 'product_available', 'stock_quantity')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


class MessageInline(admin.TabularInline):
    """Read-only thread shown under a conversation."""
    model = Message
    extra = 0
    fields = ['sent_at', 'sender', 'triggered_by', 'message_type', 'content', 'is_read']
    readonly_fields = fields
    ordering = ['sent_at', 'id']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    """Admin interface for Conversation model."""

    list_display = [
        'id',
        'buyer',
        'seller',
        'product',
        'status',
        'created_at',
        'updated_at',
    ]

    list_filter = [
        'status',
        'created_at',
    ]

    search_fields = [
        'buyer__email',
        'buyer__username',
        'seller__email',
        'seller__username',
        'product__name',
    ]

    readonly_fields = ['buyer', 'seller', 'product', 'status', 'created_at', 'updated_at']

    ordering = ['-updated_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    inlines = [MessageInline]

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """Admin interface for Message model."""

    list_display = [
        'id',
        'conversation',
        'sender',
        'message_type',
        'is_read',
        'sent_at',
    ]

    list_filter = [
        'message_type',
        'is_read',
        'sent_at',
    ]

    search_fields = [
        'content',
        'sender__email',
        'sender__username',
    ]

    readonly_fields = ['conversation', 'sender', 'triggered_by', 'message_type', 'content', 'sent_at', 'is_read']

    ordering = ['-sent_at']

    list_per_page = 50


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Admin interface for Order model."""

    list_display = [
        'id',
        'user',
        'conversation',
        'total_amount',
        'order_date',
        'completed_at',
    ]

    list_filter = [
        'order_date',
        'completed_at',
    ]

    search_fields = [
        'user__email',
        'user__username',
        'conversation__product__name',
    ]

    readonly_fields = ['user', 'conversation', 'total_amount', 'order_date', 'completed_at']

    ordering = ['-order_date']

    date_hierarchy = 'order_date'

    list_per_page = 25
