import uuid
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from pydantic import BaseModel
from emr_scheduling.core.config import settings

http_bearer = HTTPBearer(auto_error=False)

class Principal(BaseModel):
    user_id: uuid.UUID
    org_id: uuid.UUID
    roles: list[str] = []
    scopes: list[str] = []
    # set for accounts linked to a doctor profile
    doctor_id: uuid.UUID | None = None

    @property
    def is_doctor(self) -> bool:
        return "doctor" in self.roles and "admin" not in self.roles

def _decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG], audience=settings.REQUIRED_AUDIENCE)
        return payload
    except JWTError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}")

async def get_principal(creds: HTTPAuthorizationCredentials | None = Depends(http_bearer)) -> Principal:
    # In local/test, allow missing token and use default org
    if creds is None and settings.ENV in ("local", "test"):
        return Principal(user_id=uuid.uuid4(), org_id=uuid.UUID(settings.DEFAULT_ORG_ID), roles=["admin"], scopes=["*"])
    if creds is None:
        raise HTTPException(status_code=401, detail="Missing token")

    data = _decode_token(creds.credentials)
    user_id = uuid.UUID(str(data.get("sub") or data.get("user_id")))
    org_id = uuid.UUID(str(data.get("org_id") or settings.DEFAULT_ORG_ID))
    doctor_id = data.get("doctor_id")
    return Principal(
        user_id=user_id,
        org_id=org_id,
        roles=data.get("roles", []),
        scopes=data.get("scopes", []),
        doctor_id=uuid.UUID(str(doctor_id)) if doctor_id else None,
    )

def require_scopes(*needed: str):
    def dep(principal: Principal = Depends(get_principal)) -> Principal:
        if "*" in principal.scopes:
            return principal
        if not set(needed).issubset(set(principal.scopes)):
            raise HTTPException(status_code=403, detail="Insufficient scopes")
        return principal
    return dep

CLINICAL_ROLES = {"doctor", "admin"}

def ensure_clinical_role(principal: Principal) -> None:
    if not CLINICAL_ROLES & set(principal.roles):
        raise HTTPException(status_code=403, detail="Only doctors can start or complete visits")

def ensure_own_doctor(principal: Principal, doctor_id: uuid.UUID) -> None:
    """Doctors may only act on their own schedule."""
    if not principal.is_doctor:
        return
    if principal.doctor_id is None:
        raise HTTPException(status_code=403, detail="Doctor profile is not linked to this account")
    if principal.doctor_id != doctor_id:
        raise HTTPException(status_code=403, detail="You can only access your own schedule")
