"""Exception hierarchy for the ENS bridge."""
import orjson


class BridgeError(Exception):
    """Base exception for bridge errors"""
    pass


class ConfigError(BridgeError):
    """Raised when a component is used without the settings it needs"""
    pass


class AuthError(BridgeError):
    """Raised when the Salesforce JWT bearer exchange fails"""

    def __init__(self, message: str, status_code: int | None = None, detail: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class SinkError(BridgeError):
    """Raised when a record cannot be delivered to the sink"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def parse_salesforce_error(response_text: str) -> str:
    """Extract a readable message from a Salesforce error response.

    The OAuth endpoint returns {"error": "...", "error_description": "..."};
    the REST API returns [{"message": "...", "errorCode": "...", "fields": []}].
    Returns "code: message" when parseable, raw text otherwise.
    """
    try:
        body = orjson.loads(response_text)
    except orjson.JSONDecodeError:
        return response_text

    if isinstance(body, dict) and body.get("error"):
        desc = body.get("error_description", "")
        return f"{body['error']}: {desc}" if desc else str(body["error"])
    if isinstance(body, list) and body and isinstance(body[0], dict):
        messages = [
            f"{e.get('errorCode')}: {e.get('message')}" if e.get("errorCode") else str(e.get("message"))
            for e in body
            if isinstance(e, dict)
        ]
        return "; ".join(messages)
    return response_text
