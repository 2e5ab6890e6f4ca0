"""
URL configuration for student_marketplace project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import (
    TokenRefreshView,
    TokenVerifyView,
)
from core.views import (
    EmailTokenObtainPairView,
    ConversationInitiateView,
    ConversationListView,
    ConversationDetailView,
    ConversationApproveView,
    ConversationCancelView,
    ConversationMessagesView,
    MessageMarkReadView,
    MessageSearchView,
    UnreadMessageCountView,
    MessagesByTypeView,
    NotificationsView,
    OrderHistoryView,
)


urlpatterns = [
    path('admin/', admin.site.urls),

    # Conversation endpoints
    path('api/conversations/', ConversationListView.as_view(), name='conversation_list'),
    path('api/conversations/initiate/', ConversationInitiateView.as_view(), name='conversation_initiate'),
    path('api/conversations/notifications/', NotificationsView.as_view(), name='conversation_notifications'),
    path('api/conversations/<int:pk>/', ConversationDetailView.as_view(), name='conversation_detail'),
    path('api/conversations/<int:pk>/approve/', ConversationApproveView.as_view(), name='conversation_approve'),
    path('api/conversations/<int:pk>/cancel/', ConversationCancelView.as_view(), name='conversation_cancel'),
    path('api/conversations/<int:pk>/mark-read/', MessageMarkReadView.as_view(), name='conversation_mark_read'),

    # Message endpoints
    path('api/conversations/<int:pk>/messages/', ConversationMessagesView.as_view(), name='conversation_messages'),
    path('api/conversations/<int:pk>/messages/search/', MessageSearchView.as_view(), name='message_search'),
    path('api/conversations/<int:pk>/messages/unread-count/', UnreadMessageCountView.as_view(), name='message_unread_count'),
    path(
        'api/conversations/<int:pk>/messages/type/<str:message_type>/',
        MessagesByTypeView.as_view(),
        name='messages_by_type'
    ),

    # Order endpoints
    path('api/orders/', OrderHistoryView.as_view(), name='order_history'),

    # JWT Authentication endpoints
    path('api/token/', EmailTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('api/token/verify/', TokenVerifyView.as_view(), name='token_verify'),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
