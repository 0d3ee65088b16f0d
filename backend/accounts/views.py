from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from accounting.exceptions import NotFoundError
from .authz import build_actor
from .models import Company
from .serializers import CompanySerializer, SwitchCompanySerializer, UserSerializer


class MeView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        user = request.user
        company = user.active_company
        payload = {
            "user": UserSerializer(user).data,
            "company": CompanySerializer(company).data if company else None,
            "role": None,
            "permissions": [],
        }
        if company:
            actor = build_actor(user, company)
            payload["role"] = actor.role
            payload["permissions"] = sorted(actor.perms)
        return Response(payload)


class SwitchCompanyView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = SwitchCompanySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        company = Company.objects.select_related("tenant").filter(
            public_id=serializer.validated_data["company_id"],
            memberships__user=request.user,
        ).first()
        if company is None:
            raise NotFoundError("Company not found.")

        # Validates tenant status and membership before switching.
        actor = build_actor(request.user, company)
        request.user.active_company = company
        request.user.save(update_fields=["active_company"])
        return Response(
            {"company": CompanySerializer(company).data, "role": actor.role},
            status=status.HTTP_200_OK,
        )
