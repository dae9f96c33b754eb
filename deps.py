"""
Request dependencies shared by the routers.

Authentication itself happens upstream; these only decode the bearer token
and pull out the company the caller acts for. Every service call receives
that company id explicitly.
"""
from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt

from config import settings


def verify_token(request: Request) -> dict:
     """Decode the bearer JWT of the request."""
     auth = request.headers.get("Authorization")
     if not auth or not auth.startswith("Bearer "):
          raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")
     if not settings.jwt_secret:
          raise HTTPException(
               status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
               detail="Token verification is not configured",
          )
     token = auth.split(" ", 1)[1]
     try:
          return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
     except JWTError:
          raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")


def get_company_id(token: dict = Depends(verify_token)) -> str:
     """Company scope of the caller, from the ``company_id`` claim."""
     company_id = token.get("company_id") or token.get("companyId")
     if not company_id:
          raise HTTPException(
               status_code=status.HTTP_403_FORBIDDEN,
               detail="Token is not scoped to a company",
          )
     return str(company_id)
