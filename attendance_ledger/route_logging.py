from __future__ import annotations

from fastapi.routing import APIRoute
from starlette.requests import Request

from attendance_ledger.request_context import current_actor, current_endpoint


class EndpointNameRoute(APIRoute):
    """Labels queries issued while a ledger route runs with its method and path template."""

    def get_route_handler(self):
        original_handler = super().get_route_handler()
        endpoint_label = f"{','.join(sorted(self.methods or ()))} {self.path_format}"

        async def labelled_handler(request: Request):
            endpoint_token = current_endpoint.set(endpoint_label)
            actor_token = current_actor.set('anonymous')
            try:
                return await original_handler(request)
            finally:
                current_actor.reset(actor_token)
                current_endpoint.reset(endpoint_token)

        return labelled_handler
