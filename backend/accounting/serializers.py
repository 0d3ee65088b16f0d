# accounting/serializers.py
"""
Serializers for accounting API.

Note: These serializers are used for:
1. Input shape validation
2. Output formatting

Business validation (accounts in scope, amounts, balance) happens in
commands.py so that every problem is reported in one error payload.
"""

from rest_framework import serializers

from .models import Account, JournalEntry, JournalEntryAudit, JournalLine


# =============================================================================
# Account Serializers
# =============================================================================

class AccountSerializer(serializers.ModelSerializer):
    has_transactions = serializers.SerializerMethodField()
    parent_code = serializers.CharField(source="parent.code", read_only=True, default=None)

    class Meta:
        model = Account
        fields = [
            "id", "public_id", "code", "name",
            "account_type", "normal_balance", "status",
            "parent", "parent_code", "is_cash_equivalent", "description",
            "has_transactions", "created_at", "updated_at",
        ]
        read_only_fields = fields

    def get_has_transactions(self, obj):
        # Use annotated value if available (from list view), else query
        if hasattr(obj, "_has_transactions"):
            return obj._has_transactions
        return obj.journal_lines.exists()


class AccountCreateSerializer(serializers.Serializer):
    """Serializer for creating accounts via command."""
    code = serializers.CharField(max_length=20)
    name = serializers.CharField(max_length=255)
    account_type = serializers.ChoiceField(choices=Account.AccountType.choices)
    parent_id = serializers.IntegerField(required=False, allow_null=True)
    is_cash_equivalent = serializers.BooleanField(required=False, default=False)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    status = serializers.ChoiceField(
        choices=Account.Status.choices, required=False, default=Account.Status.ACTIVE,
    )


class AccountUpdateSerializer(serializers.Serializer):
    """Serializer for updating accounts via command."""
    code = serializers.CharField(max_length=20, required=False)
    name = serializers.CharField(max_length=255, required=False)
    account_type = serializers.ChoiceField(choices=Account.AccountType.choices, required=False)
    parent_id = serializers.IntegerField(required=False, allow_null=True)
    status = serializers.ChoiceField(choices=Account.Status.choices, required=False)
    is_cash_equivalent = serializers.BooleanField(required=False)
    description = serializers.CharField(required=False, allow_blank=True)


# =============================================================================
# Journal Entry Serializers
# =============================================================================

class JournalLineSerializer(serializers.ModelSerializer):
    account_code = serializers.CharField(source="account.code", read_only=True)
    account_name = serializers.CharField(source="account.name", read_only=True)

    class Meta:
        model = JournalLine
        fields = [
            "line_no", "account", "account_code", "account_name",
            "description", "debit", "credit", "currency",
        ]
        read_only_fields = fields


class JournalEntrySerializer(serializers.ModelSerializer):
    """
    Full journal entry serializer with nested lines.
    Used for retrieval and display.
    """
    lines = JournalLineSerializer(many=True, read_only=True)
    total_debit = serializers.DecimalField(max_digits=18, decimal_places=2, read_only=True)
    total_credit = serializers.DecimalField(max_digits=18, decimal_places=2, read_only=True)
    is_balanced = serializers.BooleanField(read_only=True)

    class Meta:
        model = JournalEntry
        fields = [
            "id", "public_id", "entry_number", "date", "memo", "reference",
            "currency", "status", "source_module", "source_document",
            "posted_at", "posted_by", "voided_at", "voided_by", "void_reason",
            "created_at", "created_by", "updated_at",
            "lines", "total_debit", "total_credit", "is_balanced",
        ]
        read_only_fields = fields


class JournalLineInputSerializer(serializers.Serializer):
    """
    Shape of one journal line in a request.

    Amounts stay strings here; commands parse them so that every invalid
    amount is reported together with the other line errors.
    """
    account_id = serializers.IntegerField(required=False, allow_null=True)
    account_code = serializers.CharField(max_length=20, required=False, allow_blank=True)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    debit = serializers.CharField(required=False, allow_blank=True, allow_null=True, default="0")
    credit = serializers.CharField(required=False, allow_blank=True, allow_null=True, default="0")
    currency = serializers.CharField(max_length=3, required=False, allow_blank=True, default="")


class JournalEntryCreateSerializer(serializers.Serializer):
    date = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    memo = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    currency = serializers.CharField(max_length=3, required=False, allow_blank=True, allow_null=True)
    source_module = serializers.CharField(max_length=50, required=False, default="manual")
    source_document = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    lines = JournalLineInputSerializer(many=True, required=False, default=list)


class JournalEntryUpdateSerializer(serializers.Serializer):
    date = serializers.CharField(required=False)
    memo = serializers.CharField(max_length=255, required=False, allow_blank=True)
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True)
    lines = JournalLineInputSerializer(many=True, required=False)


class JournalEntryVoidSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class JournalEntryAuditSerializer(serializers.ModelSerializer):
    actor_email = serializers.CharField(source="actor.email", read_only=True, default=None)

    class Meta:
        model = JournalEntryAudit
        fields = ["action", "actor", "actor_email", "old_values", "new_values", "comment", "created_at"]
        read_only_fields = fields
