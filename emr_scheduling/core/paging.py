import base64, binascii, json
from emr_scheduling.core.errors import ValidationError

def encode_cursor(obj: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(obj, separators=(",",":")).encode()).decode()

def decode_cursor(token: str | None) -> dict | None:
    if not token: return None
    try:
        data = json.loads(base64.urlsafe_b64decode(token.encode()).decode())
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise ValidationError("Malformed pagination cursor", field="cursor")
    if not isinstance(data, dict):
        raise ValidationError("Malformed pagination cursor", field="cursor")
    return data
