from rest_framework import serializers

from .models import Company, User


class CompanySerializer(serializers.ModelSerializer):
    tenant = serializers.CharField(source="tenant.slug", read_only=True)

    class Meta:
        model = Company
        fields = ("public_id", "tenant", "name", "slug", "default_currency", "is_active")


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ("id", "email", "name")


class SwitchCompanySerializer(serializers.Serializer):
    company_id = serializers.UUIDField()
