"""Dependency injection for FastAPI endpoints"""

from datetime import date
from fastapi import Request
from cuotas_gateway.infrastructure.clients.disbursement import DisbursementClient
from cuotas_gateway.infrastructure.clients.payment_gateway import PaymentGatewayClient


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_today() -> date:
    """Business date used for installment states and migration control"""
    return date.today()


def get_payment_gateway_client() -> PaymentGatewayClient:
    """Provide payment gateway client instance"""
    return PaymentGatewayClient()


def get_disbursement_client() -> DisbursementClient:
    """Provide disbursement webhook client instance"""
    return DisbursementClient()
