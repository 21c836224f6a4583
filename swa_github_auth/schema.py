"""Schema for the Static Web Apps client principal."""
from collections.abc import Mapping
from typing import Any

import marshmallow
from flask_marshmallow import Marshmallow
from marshmallow import fields, pre_load

ma = Marshmallow()

# snake_case spellings some callers use instead of the documented camelCase
_SNAKE_CASE_KEYS = {
    "identity_provider": "identityProvider",
    "user_id": "userId",
    "user_details": "userDetails",
    "access_token": "accessToken",
    "user_roles": "userRoles",
}


class ClientPrincipalSchema(ma.Schema):  # type:ignore[name-defined]
    """Client principal, either bare or wrapped in 'clientPrincipal'."""

    identity_provider = fields.String(
        data_key="identityProvider", load_default=None, allow_none=True
    )
    user_id = fields.String(
        data_key="userId", load_default=None, allow_none=True
    )
    user_details = fields.String(
        data_key="userDetails", load_default=None, allow_none=True
    )
    access_token = fields.String(
        data_key="accessToken", load_default=None, allow_none=True
    )
    user_roles = fields.List(
        fields.String(),
        data_key="userRoles",
        load_default=list,
        allow_none=True,
    )

    @pre_load
    def normalize_keys(self, data: Any, **_: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        wrapped = data.get("clientPrincipal")
        rest = dict(wrapped if isinstance(wrapped, Mapping) else data)
        for snake, camel in _SNAKE_CASE_KEYS.items():
            value = rest.pop(snake, None)
            if not rest.get(camel) and value:
                rest[camel] = value
        return rest


principal_schema = ClientPrincipalSchema(unknown=marshmallow.EXCLUDE)
