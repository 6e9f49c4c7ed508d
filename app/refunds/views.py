"""
API views for refunds.

Provides:
- RefundCreateView: Refund a sold line item
- RefundResumeView: Operator resume of a partially failed refund
- RefundHistoryView: Latest refunds, optionally per branch
- RefundDetailView: One refund with customer, sale and product details
- RefundStatsView: Refund totals per period
- RefundAnalyticsView: Refund breakdowns per day, method, status and reason
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from refunds.serializers import (
    RefundAnalyticsQuerySerializer,
    RefundAnalyticsSerializer,
    RefundCreateSerializer,
    RefundDetailSerializer,
    RefundHistoryQuerySerializer,
    RefundResultSerializer,
    RefundSerializer,
    RefundStatsQuerySerializer,
    RefundStatsSerializer,
)
from refunds.services.orchestrator import RefundOrchestrator
from refunds.services.queries import RefundQueryService
from refunds.services.types import RefundResult

NOT_FOUND_CODES = {"SALE_ITEM_NOT_FOUND", "REFUND_NOT_FOUND"}
CONFLICT_CODES = {
    "ALREADY_REFUNDED",
    "REFUND_PENDING_RESUME",
    "REFUND_IN_PROGRESS",
    "INVALID_REFUND_STATE",
}


def status_for_result(result: RefundResult) -> int:
    """Map a RefundResult to its HTTP status code."""
    if result.success:
        return status.HTTP_201_CREATED
    if result.error_code == "VALIDATION_ERROR":
        return status.HTTP_400_BAD_REQUEST
    if result.error_code in NOT_FOUND_CODES:
        return status.HTTP_404_NOT_FOUND
    if result.error_code in CONFLICT_CODES:
        return status.HTTP_409_CONFLICT
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def validation_error_response(errors) -> Response:
    return Response(
        {
            "success": False,
            "error": "Invalid request",
            "errorCode": "VALIDATION_ERROR",
            "errors": errors,
        },
        status=status.HTTP_400_BAD_REQUEST,
    )


class RefundCreateView(APIView):
    """
    Refund a sold line item.

    POST /api/v1/refunds/

    Response:
        201 Created: Refund completed
        400 Bad Request: Validation error (amount, method, missing customer)
        404 Not Found: Sale item doesn't exist
        409 Conflict: Already refunded or a refund is in progress
        500 Internal Server Error: Failed, partially failed or outcome unknown
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_refund",
        summary="Refund a sale item",
        description=(
            "Reverse a sold line item: create the refund record, restock inventory, "
            "credit the customer's account for account refunds and mark the item "
            "refunded. Tries a single-transaction path first and falls back to a "
            "resumable step-by-step saga."
        ),
        request=RefundCreateSerializer,
        responses={
            201: OpenApiResponse(response=RefundResultSerializer, description="Refund completed"),
            400: OpenApiResponse(response=RefundResultSerializer, description="Validation error"),
            404: OpenApiResponse(
                response=RefundResultSerializer, description="Sale item not found"
            ),
            409: OpenApiResponse(
                response=RefundResultSerializer,
                description="Item already refunded or refund in progress",
            ),
            500: OpenApiResponse(
                response=RefundResultSerializer,
                description="Refund failed, partially failed or outcome unknown",
            ),
        },
        tags=["Refunds"],
    )
    def post(self, request):
        serializer = RefundCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        result = RefundOrchestrator.process_refund(serializer.to_request())
        return Response(result.to_response(), status=status_for_result(result))


class RefundResumeView(APIView):
    """
    Resume a partially failed refund.

    POST /api/v1/refunds/{refund_id}/resume/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="resume_refund",
        summary="Resume a partially failed refund",
        description=(
            "Continue a refund from the step after its last completed step. "
            "Steps that already committed are not applied again."
        ),
        request=None,
        responses={
            201: OpenApiResponse(response=RefundResultSerializer, description="Refund completed"),
            404: OpenApiResponse(response=RefundResultSerializer, description="Refund not found"),
            409: OpenApiResponse(
                response=RefundResultSerializer,
                description="Refund not resumable or in progress",
            ),
            500: OpenApiResponse(response=RefundResultSerializer, description="Failed again"),
        },
        tags=["Refunds"],
    )
    def post(self, request, refund_id):
        result = RefundOrchestrator.resume_refund(refund_id)
        return Response(result.to_response(), status=status_for_result(result))


class RefundHistoryView(APIView):
    """
    List the latest refunds.

    GET /api/v1/refunds/history/?branchId=&limit=&offset=
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_refund_history",
        summary="Refund history",
        parameters=[
            OpenApiParameter("branchId", OpenApiTypes.UUID, description="Filter by branch"),
            OpenApiParameter("limit", OpenApiTypes.INT, description="Max results (default 50)"),
            OpenApiParameter("offset", OpenApiTypes.INT, description="Results to skip"),
        ],
        responses={
            200: RefundSerializer(many=True),
            400: OpenApiResponse(description="Invalid query parameters"),
        },
        tags=["Refunds"],
    )
    def get(self, request):
        query = RefundHistoryQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return validation_error_response(query.errors)

        result = RefundQueryService.get_refund_history(
            branch_id=query.validated_data.get("branchId"),
            limit=query.validated_data["limit"],
            offset=query.validated_data["offset"],
        )
        if not result:
            return Response(
                {"success": False, "error": result.error, "errorCode": result.error_code},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response(
            {"success": True, "data": RefundSerializer(result.data, many=True).data}
        )


class RefundStatsView(APIView):
    """
    Refund totals for a period.

    GET /api/v1/refunds/stats/?branchId=&period=today|week|month
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_refund_stats",
        summary="Refund statistics",
        parameters=[
            OpenApiParameter("branchId", OpenApiTypes.UUID, description="Filter by branch"),
            OpenApiParameter(
                "period",
                OpenApiTypes.STR,
                enum=["today", "week", "month"],
                description="Time window (default today)",
            ),
        ],
        responses={
            200: RefundStatsSerializer,
            400: OpenApiResponse(description="Invalid query parameters"),
        },
        tags=["Refunds"],
    )
    def get(self, request):
        query = RefundStatsQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return validation_error_response(query.errors)

        result = RefundQueryService.get_refund_stats(
            branch_id=query.validated_data.get("branchId"),
            period=query.validated_data["period"],
        )
        if not result:
            return Response(
                {"success": False, "error": result.error, "errorCode": result.error_code},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response(
            {"success": True, "data": RefundStatsSerializer(result.data).data}
        )


class RefundDetailView(APIView):
    """
    One refund with its items, customer and branch.

    GET /api/v1/refunds/{refund_id}/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_refund",
        summary="Refund details",
        responses={
            200: RefundDetailSerializer,
            404: OpenApiResponse(description="Refund not found"),
        },
        tags=["Refunds"],
    )
    def get(self, request, refund_id):
        result = RefundQueryService.get_refund_detail(refund_id)
        if not result:
            return Response(
                {"success": False, "error": result.error, "errorCode": result.error_code},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(
            {"success": True, "data": RefundDetailSerializer(result.data).data}
        )


class RefundAnalyticsView(APIView):
    """
    Daily, method, status and top-reason breakdowns.

    GET /api/v1/refunds/analytics/?branchId=&period=week|month
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_refund_analytics",
        summary="Refund analytics",
        parameters=[
            OpenApiParameter("branchId", OpenApiTypes.UUID, description="Filter by branch"),
            OpenApiParameter(
                "period",
                OpenApiTypes.STR,
                enum=["week", "month"],
                description="Time window (default week)",
            ),
        ],
        responses={
            200: RefundAnalyticsSerializer,
            400: OpenApiResponse(description="Invalid query parameters"),
        },
        tags=["Refunds"],
    )
    def get(self, request):
        query = RefundAnalyticsQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return validation_error_response(query.errors)

        result = RefundQueryService.get_refund_analytics(
            branch_id=query.validated_data.get("branchId"),
            period=query.validated_data["period"],
        )
        if not result:
            return Response(
                {"success": False, "error": result.error, "errorCode": result.error_code},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response(
            {"success": True, "data": RefundAnalyticsSerializer(result.data).data}
        )
