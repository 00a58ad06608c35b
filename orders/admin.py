from django.contrib import admin

from .models import Order, OrderNote


class OrderNoteInline(admin.TabularInline):
    model = OrderNote
    extra = 0
    can_delete = False
    readonly_fields = ("content", "is_customer_note", "created_at")

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "status", "email", "total", "currency", "payment_method", "transaction_id", "created_at")
    list_filter = ("status", "payment_method", "currency", "created_at")
    search_fields = ("email", "transaction_id", "order_key")
    readonly_fields = ("order_key", "transaction_id", "paid_at", "metadata", "created_at", "updated_at")
    date_hierarchy = "created_at"
    inlines = [OrderNoteInline]


@admin.register(OrderNote)
class OrderNoteAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "is_customer_note", "created_at")
    list_filter = ("is_customer_note", "created_at")
    search_fields = ("content",)
    readonly_fields = ("order", "content", "is_customer_note", "created_at")
    date_hierarchy = "created_at"

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
