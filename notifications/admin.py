from django.contrib import admin
from .models import Notification, NotificationTemplate

@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('recipient', 'trigger', 'subject', 'status', 'created_at', 'sent_at')
    search_fields = ('recipient', 'subject', 'trigger')
    list_filter = ('status', 'trigger', 'created_at')

@admin.register(NotificationTemplate)
class NotificationTemplateAdmin(admin.ModelAdmin):
    list_display = ('trigger', 'name', 'subject', 'is_active', 'updated_at')
    search_fields = ('trigger', 'name', 'subject')
    list_filter = ('is_active',)
