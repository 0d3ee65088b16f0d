# accounting/admin.py
"""
Django admin configuration for accounting models.

The admin is for viewing only. All mutations go through the command layer
(accounting/commands.py), which enforces the posting workflow and writes
the audit trail.
"""

from django.contrib import admin

from .models import Account, JournalEntry, JournalEntryAudit, JournalLine


class ReadOnlyModelAdmin(admin.ModelAdmin):
    """Base admin class for models that change only through commands."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class ReadOnlyInline(admin.TabularInline):
    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class JournalLineInline(ReadOnlyInline):
    model = JournalLine
    extra = 0
    readonly_fields = ["line_no", "account", "description", "debit", "credit", "currency"]
    fields = readonly_fields


class JournalEntryAuditInline(ReadOnlyInline):
    model = JournalEntryAudit
    extra = 0
    readonly_fields = ["action", "actor", "old_values", "new_values", "comment", "created_at"]
    fields = readonly_fields


@admin.register(Account)
class AccountAdmin(ReadOnlyModelAdmin):
    list_display = ["code", "name", "account_type", "status", "is_cash_equivalent", "company"]
    list_filter = ["company", "account_type", "status", "is_cash_equivalent"]
    search_fields = ["code", "name"]
    ordering = ["company", "code"]


@admin.register(JournalEntry)
class JournalEntryAdmin(ReadOnlyModelAdmin):
    list_display = ["entry_number", "date", "memo", "status", "currency", "company", "posted_at"]
    list_filter = ["company", "status", "source_module"]
    search_fields = ["entry_number", "memo", "reference"]
    date_hierarchy = "date"
    inlines = [JournalLineInline, JournalEntryAuditInline]
