from __future__ import annotations

import logging
from datetime import datetime, timezone

from django.core.exceptions import PermissionDenied
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from .errors import UnexpectedError
from .serializers import PaymentVerificationSerializer, RegistrationIntakeSerializer
from .tools.security import ClientFingerprint, EventType, record_security_event
from .tools.signup import begin_registration, verify_payment

logger = logging.getLogger(__name__)


class HealthView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request):
        return Response(
            {
                "status": "ok",
                "timestamp": datetime.now(tz=timezone.utc).isoformat(),
            }
        )


class PublicPipelineView(APIView):
    """Unauthenticated JSON endpoint that audits anything it did not expect."""

    authentication_classes = []
    permission_classes = [AllowAny]
    unexpected_error_event = ""

    def options(self, request, *args, **kwargs):
        return Response(status=status.HTTP_200_OK)

    def handle_exception(self, exc):
        if not isinstance(exc, (APIException, Http404, PermissionDenied)):
            logger.exception("Unexpected error in %s", self.__class__.__name__)
            record_security_event(
                self.unexpected_error_event,
                fingerprint=ClientFingerprint.from_request(self.request),
                error_message=str(exc),
                metadata={"exception": exc.__class__.__name__},
            )
            exc = UnexpectedError()
        return super().handle_exception(exc)


class RegistrationIntakeView(PublicPipelineView):
    unexpected_error_event = EventType.REGISTRATION_ERROR

    def post(self, request):
        serializer = RegistrationIntakeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        ticket = begin_registration(
            email=data["email"],
            password=data["password"],
            restaurant_name=data["restaurant_name"],
            restaurant_description=data.get("restaurant_description") or "",
            plan_id=data["plan_id"],
            billing_cycle=data["billing_cycle"],
            fingerprint=ClientFingerprint.from_request(request),
        )
        return Response(ticket.as_response())


class PaymentVerificationView(PublicPipelineView):
    unexpected_error_event = EventType.VERIFICATION_ERROR

    def post(self, request):
        serializer = PaymentVerificationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = verify_payment(
            payment_id=data["payment_id"],
            subscription_id=data["subscription_id"],
            signature=data["signature"],
            fingerprint=ClientFingerprint.from_request(request),
        )
        return Response(result.as_response())
