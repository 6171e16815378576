"""
RateLimitMiddleware: runs the IngressGuard before URL dispatch.

Allowed requests continue down the stack and get the quota headers on the way
out. Rejected requests short-circuit with HTTP 429, a JSON body and a
Retry-After header. Exempt paths pass through untouched.
"""

from django.http import JsonResponse

from .config import RateLimitConfig
from .guard import IngressGuard


TOO_MANY_REQUESTS_MESSAGE = "Too many requests, please try again later."


class RateLimitMiddleware:
    def __init__(self, get_response, guard=None):
        self.get_response = get_response
        self.guard = guard or IngressGuard(RateLimitConfig.from_settings())

    def __call__(self, request):
        decision = self.guard.check(request)
        if decision is None:
            return self.get_response(request)

        if not decision.allowed:
            response = JsonResponse({"detail": TOO_MANY_REQUESTS_MESSAGE}, status=429)
        else:
            response = self.get_response(request)

        for header, value in decision.headers().items():
            response[header] = value
        return response
