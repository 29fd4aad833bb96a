from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status, permissions
from django.shortcuts import get_object_or_404
from drf_yasg.utils import swagger_auto_schema

from .serializers import (
    PayoutMethodSerializer,
    PayoutMethodCreateSerializer,
    SetPayoutMethodFlagsSerializer,
)
from .models import PayoutMethod
from .providers.stripe import StripeProvider


class PayoutMethodListCreateView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="List the current member's payout methods",
        responses={200: PayoutMethodSerializer(many=True)}
    )
    def get(self, request):
        methods = PayoutMethod.objects.filter(user=request.user)
        return Response(PayoutMethodSerializer(methods, many=True).data)

    @swagger_auto_schema(
        operation_summary="Add a payout method",
        request_body=PayoutMethodCreateSerializer,
        responses={201: PayoutMethodSerializer(), 400: "Validation error"}
    )
    def post(self, request):
        serializer = PayoutMethodCreateSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        method = serializer.save()
        return Response(PayoutMethodSerializer(method).data, status=status.HTTP_201_CREATED)


class PayoutMethodDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Set default/active flags on a payout method",
        request_body=SetPayoutMethodFlagsSerializer,
        responses={200: PayoutMethodSerializer(), 404: "Not found"}
    )
    def patch(self, request, method_id):
        method = get_object_or_404(PayoutMethod, id=method_id, user=request.user)
        serializer = SetPayoutMethodFlagsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        if serializer.validated_data.get('is_default'):
            PayoutMethod.objects.filter(user=request.user, provider=method.provider).exclude(id=method.id).update(is_default=False)
        for field, value in serializer.validated_data.items():
            setattr(method, field, value)
        method.save()
        return Response(PayoutMethodSerializer(method).data)

    @swagger_auto_schema(operation_summary="Remove a payout method", responses={204: "Deleted"})
    def delete(self, request, method_id):
        method = get_object_or_404(PayoutMethod, id=method_id, user=request.user)
        method.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class StripeOnboardingLinkView(APIView):
    """Returns a Stripe onboarding link for one of the member's Stripe payout methods."""
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(operation_summary="Create a Stripe Connect onboarding link")
    def post(self, request, method_id):
        method = get_object_or_404(PayoutMethod, id=method_id, user=request.user, provider='stripe')
        link = StripeProvider().get_account_link(method.stripe_account_id)
        code = status.HTTP_200_OK if link.get('status') == 'success' else status.HTTP_400_BAD_REQUEST
        return Response(link, status=code)


class StripePayoutStatusView(APIView):
    """Refreshes payouts_enabled from the member's connected account."""
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(operation_summary="Refresh a Stripe payout method's status", responses={200: PayoutMethodSerializer()})
    def post(self, request, method_id):
        method = get_object_or_404(PayoutMethod, id=method_id, user=request.user, provider='stripe')
        result = StripeProvider().get_account_status(method.stripe_account_id)
        if result.get('status') != 'success':
            return Response(result, status=status.HTTP_400_BAD_REQUEST)

        method.payouts_enabled = result['payouts_enabled']
        method.save(update_fields=['payouts_enabled', 'updated_at'])
        return Response(PayoutMethodSerializer(method).data)
