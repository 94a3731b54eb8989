from asgiref.sync import iscoroutinefunction
from django.utils.functional import SimpleLazyObject

from .checks import clear_perm_cache
from .dml import DMLOrchestrator


class SecureDmlMiddleware:
    """Expose ``request.dml`` for the current user and clear the permission
    cache after each request."""

    def __init__(self, get_response):
        self.get_response = get_response
        self._is_async = iscoroutinefunction(get_response)

    def _attach(self, request):
        request.dml = SimpleLazyObject(lambda: DMLOrchestrator.for_user(request.user))

    def __call__(self, request):
        if self._is_async:
            return self._acall(request)
        self._attach(request)
        try:
            response = self.get_response(request)
        finally:
            clear_perm_cache()
        return response

    async def _acall(self, request):
        self._attach(request)
        try:
            response = await self.get_response(request)
        finally:
            clear_perm_cache()
        return response
