"""Vapi voice AI platform."""

from ..connections.factories import create_api_key_connection

vapi_api_key = create_api_key_connection(
    id="vapi_connection_api-key",
    name="API Key",
    description="Connect using an API Key",
    validate_url="https://api.vapi.ai/assistant?limit=1",
)
