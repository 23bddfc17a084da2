"""API response helpers."""

from .response import ApiResponse, ResponseMeta, api_response

__all__ = ["ApiResponse", "ResponseMeta", "api_response"]
