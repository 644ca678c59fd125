from flask import current_app, request

ENTITY_STORE_KEY = "surprizely.entity_store"
SESSION_STORE_KEY = "surprizely.session_store"


def get_store():
    return current_app.extensions[ENTITY_STORE_KEY]


def get_session_store():
    return current_app.extensions[SESSION_STORE_KEY]


def client_ip() -> str:
    """Peer address; ProxyFix has already swapped in the hop our proxy appended."""
    return request.remote_addr or "unknown"


def parse_body(schema):
    """Validate the JSON body against a pydantic schema; errors surface as 400s."""
    data = request.get_json(silent=True) or {}
    return schema.model_validate(data)
