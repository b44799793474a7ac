"""
Google Wallet service - keeps loyalty objects in sync and builds "save to wallet" links
"""
import os
import time
from typing import Dict, Any, Optional

import structlog
from google.auth import jwt
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

from config import GoogleWalletSettings
from errors import LoyaltyCardMissingError, WalletConfigurationError, WalletServiceError
from models.customer import Customer

logger = structlog.get_logger(__name__)

SCOPES = ["https://www.googleapis.com/auth/wallet_object.issuer"]
API_BASE = "https://walletobjects.googleapis.com/walletobjects/v1"
SAVE_URL = "https://pay.google.com/gp/v/save/"


class GoogleWalletService:
    """
    Publishes loyalty cards through the Google Wallet Objects REST API.

    The save link carries a compact JWT that only references the object id,
    so the object itself has to exist before the link is handed out.
    """

    def __init__(self, settings: GoogleWalletSettings,
                 credentials: Optional[service_account.Credentials] = None,
                 session: Optional[AuthorizedSession] = None):
        self.settings = settings
        self._credentials = credentials
        self._session = session

    def validate_configuration(self):
        if self._credentials is None:
            path = self.settings.service_account_path
            if not path or not os.path.exists(path):
                raise WalletConfigurationError(f"Google Wallet service account file not found at: {path}")
        if not self.settings.issuer_id:
            raise WalletConfigurationError("Google Wallet issuer id is not configured")

    @property
    def credentials(self) -> service_account.Credentials:
        if self._credentials is None:
            self._credentials = service_account.Credentials.from_service_account_file(
                self.settings.service_account_path, scopes=SCOPES)
        return self._credentials

    @property
    def session(self) -> AuthorizedSession:
        if self._session is None:
            self._session = AuthorizedSession(self.credentials)
        return self._session

    @property
    def class_id(self) -> str:
        return f"{self.settings.issuer_id}.{self.settings.class_id}"

    def object_id(self, customer_id: int) -> str:
        return f"{self.settings.issuer_id}.loyalty_{customer_id}"

    def generate_save_url(self, customer: Customer) -> str:
        if not customer.loyalty_card:
            raise LoyaltyCardMissingError()
        self.validate_configuration()

        self.ensure_class_exists()
        loyalty_object = self.upsert_object(customer)
        token = self.sign_save_jwt(loyalty_object["id"])
        logger.info("google_save_url_generated", customer_id=customer.customer_id)
        return SAVE_URL + token

    def class_payload(self) -> Dict[str, Any]:
        return {
            "id": self.class_id,
            "issuerName": self.settings.issuer_name,
            "programName": self.settings.program_name,
            "reviewStatus": "UNDER_REVIEW",
            "hexBackgroundColor": "#008938",
        }

    def object_payload(self, customer: Customer) -> Dict[str, Any]:
        tier_name = customer.customer_type.name if customer.customer_type else "Regular"
        return {
            "id": self.object_id(customer.customer_id),
            "classId": self.class_id,
            "state": "ACTIVE",
            "accountId": customer.loyalty_card,
            "accountName": customer.name,
            "loyaltyPoints": {"label": "Puntos", "balance": {"int": customer.points or 0}},
            "barcode": {
                "type": "CODE_128",
                "value": customer.loyalty_card,
                "alternateText": customer.loyalty_card,
            },
            "textModulesData": [{"id": "tier_info", "header": "Nivel", "body": tier_name}],
        }

    def ensure_class_exists(self):
        response = self.session.get(f"{API_BASE}/loyaltyClass/{self.class_id}")
        if response.status_code == 200:
            return
        if response.status_code != 404:
            raise WalletServiceError(f"Failed to verify Google Wallet class: HTTP {response.status_code}")

        response = self.session.post(f"{API_BASE}/loyaltyClass", json=self.class_payload())
        if response.status_code not in (200, 201):
            raise WalletServiceError(f"Failed to create Google Wallet class: HTTP {response.status_code}")
        logger.info("google_class_created", class_id=self.class_id)

    def upsert_object(self, customer: Customer) -> Dict[str, Any]:
        # Update first, insert when the object does not exist yet
        payload = self.object_payload(customer)
        response = self.session.put(f"{API_BASE}/loyaltyObject/{payload['id']}", json=payload)
        if response.status_code == 404:
            response = self.session.post(f"{API_BASE}/loyaltyObject", json=payload)
        if response.status_code not in (200, 201):
            raise WalletServiceError(f"Failed to save Google Wallet object: HTTP {response.status_code}")
        return response.json()

    def sign_save_jwt(self, object_id: str) -> str:
        credentials = self.credentials
        claims = {
            "iss": credentials.service_account_email,
            "aud": "google",
            "typ": "savetowallet",
            "iat": int(time.time()),
            "origins": [],
            "payload": {"loyaltyObjects": [{"id": object_id}]},
        }
        return jwt.encode(credentials.signer, claims).decode("utf-8")

    def update_customer_object(self, customer: Customer):
        # Points listener; customers who never saved the card are skipped
        if not customer or not customer.loyalty_card or not self.settings.issuer_id:
            return
        payload = self.object_payload(customer)
        response = self.session.patch(f"{API_BASE}/loyaltyObject/{payload['id']}", json=payload)
        if response.status_code == 404:
            return
        if response.status_code not in (200, 201):
            raise WalletServiceError(f"Failed to update Google Wallet object: HTTP {response.status_code}")
        logger.info("google_object_updated", customer_id=customer.customer_id, points=customer.points)
