from fastapi import Header, HTTPException
from jose import JWTError, jwt

from tier_checkout.config import JWT_SECRET


def verify_token(authorization: str = Header(...)):
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer" or not JWT_SECRET:
            raise JWTError("unsupported scheme or missing secret")
        return jwt.decode(token, JWT_SECRET, algorithms=["HS256"])
    except (ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")
