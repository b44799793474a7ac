"""
Short lived signed download links for wallet passes
"""
from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from errors import ForbiddenError

SALT = "wallet-pass-download"


class SignedUrlSigner:
    # Signs a customer id so a pass can be downloaded without a bearer token

    def __init__(self, secret_key: str, max_age_minutes: int = 15):
        self.serializer = URLSafeTimedSerializer(secret_key, salt=SALT)
        self.max_age = max_age_minutes * 60

    def sign(self, customer_id: int) -> str:
        return self.serializer.dumps({"customer_id": customer_id})

    def verify(self, token: Optional[str], customer_id: int):
        # Expired, tampered or foreign tokens all fail the same way
        if not token:
            raise ForbiddenError("URL inválida o expirada.")
        try:
            payload = self.serializer.loads(token, max_age=self.max_age)
        except BadSignature:
            raise ForbiddenError("URL inválida o expirada.")

        if payload.get("customer_id") != customer_id:
            raise ForbiddenError("URL inválida o expirada.")
