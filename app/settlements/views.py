"""
DRF views for the settlements app.

Endpoints:
    GET  /api/v1/settlements/trips/{trip_id}/plan/     - Current (or ?version=) plan
    GET  /api/v1/settlements/trips/{trip_id}/status/   - Confirmation status, polled
    POST /api/v1/settlements/trips/{trip_id}/confirm/  - Confirm as the current user
    POST /api/v1/settlements/trips/{trip_id}/finalize/ - Finalize a fully confirmed plan
    POST /api/v1/settlements/trips/{trip_id}/trigger/  - Compute the plan from the input provider

Related files:
    - services/: SettlementService, ConfirmationCoordinator
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Security:
    - All endpoints require authentication
    - A participant can only confirm for themselves (their user id)
    - Only members of the plan can finalize it
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.services import ServiceResult
from settlements.serializers import (
    ConfirmationStatusSerializer,
    ConfirmRequestSerializer,
    FinalizeRequestSerializer,
    SettlementPlanSerializer,
)
from settlements.services import ConfirmationCoordinator, SettlementService

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "PLAN_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "UNKNOWN_PARTICIPANT": status.HTTP_409_CONFLICT,
    "NOT_FULLY_CONFIRMED": status.HTTP_409_CONFLICT,
    "STALE_PLAN_VERSION": status.HTTP_409_CONFLICT,
    "SETTLEMENT_COMPLETED": status.HTTP_409_CONFLICT,
    "SETTLEMENT_NOT_OPEN": status.HTTP_409_CONFLICT,
    "LOCK_ACQUISITION_FAILED": status.HTTP_409_CONFLICT,
    "TRIP_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "RATE_UNAVAILABLE": status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def error_response(result: ServiceResult) -> Response:
    """Map a failed ServiceResult to a response; unknown codes are 400."""
    code = ERROR_STATUS.get(result.error_code or "", status.HTTP_400_BAD_REQUEST)
    return Response(result.to_response(), status=code)


class SettlementPlanView(APIView):
    """
    Get a trip's settlement plan.

    GET /api/v1/settlements/trips/{trip_id}/plan/?version=2

    Response:
        200 OK: Plan with legs, net balances and summary
        404 Not Found: No plan computed yet (or no such version)
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_settlement_plan",
        summary="Get settlement plan",
        parameters=[
            OpenApiParameter(
                name="version",
                type=int,
                required=False,
                description="Plan version; current version when omitted",
            ),
        ],
        responses={
            200: OpenApiResponse(response=SettlementPlanSerializer, description="Plan"),
            404: OpenApiResponse(description="No plan for this trip"),
        },
        tags=["Settlements"],
    )
    def get(self, request, trip_id):
        version = request.query_params.get("version")
        if version is not None:
            try:
                version = int(version)
            except ValueError:
                return Response(
                    {"success": False, "error": "version must be an integer"},
                    status=status.HTTP_400_BAD_REQUEST,
                )

        result = SettlementService.get_plan(trip_id, version=version)
        if not result:
            return error_response(result)
        return Response(SettlementPlanSerializer(result.data).data)


class ConfirmationStatusView(APIView):
    """
    Poll the confirmation status of a trip's current plan.

    GET /api/v1/settlements/trips/{trip_id}/status/

    Response:
        200 OK: Per-participant confirmations and aggregate state
        404 Not Found: No plan computed yet
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_settlement_status",
        summary="Get confirmation status",
        responses={
            200: OpenApiResponse(response=ConfirmationStatusSerializer),
            404: OpenApiResponse(description="No plan for this trip"),
        },
        tags=["Settlements"],
    )
    def get(self, request, trip_id):
        result = ConfirmationCoordinator.get_status(trip_id)
        if not result:
            return error_response(result)
        return Response(ConfirmationStatusSerializer(result.data).data)


class ConfirmPlanView(APIView):
    """
    Confirm the current plan as the authenticated user.

    POST /api/v1/settlements/trips/{trip_id}/confirm/

    Request body:
        {"plan_version": 3}   (optional)

    Response:
        200 OK: Updated confirmation status (also on repeat confirmations)
        404 Not Found: No plan computed yet
        409 Conflict: Unknown participant or stale plan version
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="confirm_settlement_plan",
        summary="Confirm settlement plan",
        request=ConfirmRequestSerializer,
        responses={
            200: OpenApiResponse(response=ConfirmationStatusSerializer),
            404: OpenApiResponse(description="No plan for this trip"),
            409: OpenApiResponse(description="Unknown participant or stale plan version"),
        },
        tags=["Settlements"],
    )
    def post(self, request, trip_id):
        serializer = ConfirmRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ConfirmationCoordinator.confirm(
            trip_id,
            participant_id=str(request.user.pk),
            plan_version=serializer.validated_data.get("plan_version"),
        )
        if not result:
            return error_response(result)
        return Response(ConfirmationStatusSerializer(result.data).data)


class FinalizePlanView(APIView):
    """
    Finalize a fully confirmed plan.

    POST /api/v1/settlements/trips/{trip_id}/finalize/

    Request body:
        {"plan_version": 3}

    Response:
        200 OK: Completed plan
        404 Not Found: No plan computed yet
        409 Conflict: Not fully confirmed, stale plan version, or the
            caller is not part of the plan
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="finalize_settlement_plan",
        summary="Finalize settlement plan",
        request=FinalizeRequestSerializer,
        responses={
            200: OpenApiResponse(response=SettlementPlanSerializer),
            404: OpenApiResponse(description="No plan for this trip"),
            409: OpenApiResponse(
                description="Not fully confirmed, stale version or not a participant"
            ),
        },
        tags=["Settlements"],
    )
    def post(self, request, trip_id):
        serializer = FinalizeRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ConfirmationCoordinator.finalize(
            trip_id,
            plan_version=serializer.validated_data["plan_version"],
            participant_id=str(request.user.pk),
        )
        if not result:
            return error_response(result)

        logger.info(
            f"Settlement finalized by user {request.user.pk}",
            extra={"trip_id": str(trip_id), "plan_version": result.data.version},
        )
        return Response(SettlementPlanSerializer(result.data).data)


class TriggerSettlementView(APIView):
    """
    Start (or refresh) a trip's settlement.

    POST /api/v1/settlements/trips/{trip_id}/trigger/

    Trip facts, expenses and rates come from SETTLEMENT_INPUT_PROVIDER.
    Triggering again with unchanged expenses returns the same plan version.

    Response:
        200 OK: Current plan
        400 Bad Request: Malformed expense (error_code names the problem)
        404 Not Found: Trip unknown to the input provider
        409 Conflict: Trip not over yet, settlement completed, caller not a
            trip member, or another recompute in progress
        422 Unprocessable Entity: No exchange rate for an expense
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="trigger_settlement",
        summary="Trigger settlement",
        request=None,
        responses={
            200: OpenApiResponse(response=SettlementPlanSerializer),
            400: OpenApiResponse(description="Invalid expense record"),
            404: OpenApiResponse(description="Unknown trip"),
            409: OpenApiResponse(description="Settlement not open, completed or busy"),
            422: OpenApiResponse(description="Exchange rate unavailable"),
        },
        tags=["Settlements"],
    )
    def post(self, request, trip_id):
        result = SettlementService.trigger(trip_id, participant_id=str(request.user.pk))
        if not result:
            return error_response(result)

        logger.info(
            f"Settlement triggered by user {request.user.pk}",
            extra={"trip_id": str(trip_id), "plan_version": result.data.version},
        )
        return Response(SettlementPlanSerializer(result.data).data)
