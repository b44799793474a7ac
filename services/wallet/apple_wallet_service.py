"""
Apple Wallet service - builds signed .pkpass loyalty cards and backs the pass web service
"""
import hashlib
import hmac
import io
import json
import os
import zipfile
from datetime import datetime
from typing import Callable, Dict, List, Any, Optional, Tuple

import structlog
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs7, pkcs12

from config import AppleWalletSettings
from errors import LoyaltyCardMissingError, NotFoundError, WalletConfigurationError
from models.customer import Customer
from database.customer_repository import CustomerRepository
from database.loyalty_repository import WalletRegistrationRepository

logger = structlog.get_logger(__name__)

SERIAL_PREFIX = "loyalty-"
IMAGE_FILES = ["icon.png", "icon@2x.png", "icon@3x.png", "strip.png", "strip@2x.png", "strip@3x.png"]
WEBSITE = "https://restaurantesgt.com"
TERMS = ("Programa de lealtad. Los puntos se acumulan con cada compra y pueden canjearse por productos. "
         "Sujeto a términos y condiciones del programa.")


def serial_for(customer_id: int) -> str:
    return f"{SERIAL_PREFIX}{customer_id}"


def customer_id_from_serial(serial_number: str) -> Optional[int]:
    if not serial_number.startswith(SERIAL_PREFIX):
        return None
    value = serial_number[len(SERIAL_PREFIX):]
    return int(value) if value.isdigit() else None


def format_card_number(card_number: str) -> str:
    # Groups of four for the barcode caption
    return " ".join(card_number[i:i + 4] for i in range(0, len(card_number), 4))


class AppleWalletService:
    """
    Issues Apple Wallet store cards for loyalty customers.

    The archive holds pass.json, any configured images, manifest.json with the
    SHA-1 of every file and a detached PKCS#7 signature of the manifest.
    """

    def __init__(self, settings: AppleWalletSettings, customer_repository: CustomerRepository,
                 registration_repository: WalletRegistrationRepository,
                 clock: Callable[[], datetime] = datetime.now):
        self.settings = settings
        self.customer_repo = customer_repository
        self.registration_repo = registration_repository
        self.clock = clock

    # ---- pass generation ----

    def validate_configuration(self):
        settings = self.settings
        if not settings.certificate_path or not os.path.exists(settings.certificate_path):
            raise WalletConfigurationError(f"Apple Wallet certificate not found at: {settings.certificate_path}")
        if not settings.wwdr_certificate_path or not os.path.exists(settings.wwdr_certificate_path):
            raise WalletConfigurationError(
                f"Apple WWDR certificate not found at: {settings.wwdr_certificate_path}")
        if not settings.team_identifier:
            raise WalletConfigurationError("Apple Wallet team identifier is not configured")

    def generate_pass(self, customer: Customer) -> bytes:
        if not customer.loyalty_card:
            raise LoyaltyCardMissingError()
        self.validate_configuration()

        files: Dict[str, bytes] = {
            "pass.json": json.dumps(self.build_pass_data(customer), ensure_ascii=False).encode("utf-8"),
        }
        files.update(self._read_images())

        manifest = json.dumps({name: hashlib.sha1(content).hexdigest() for name, content in files.items()},
                              sort_keys=True).encode("utf-8")
        files["manifest.json"] = manifest
        files["signature"] = self.sign_manifest(manifest)

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for name, content in files.items():
                archive.writestr(name, content)

        logger.info("apple_pass_generated", customer_id=customer.customer_id, files=len(files))
        return buffer.getvalue()

    def build_pass_data(self, customer: Customer) -> Dict[str, Any]:
        settings = self.settings
        tier_name = customer.customer_type.name if customer.customer_type else "Regular"
        barcode = {
            "message": customer.loyalty_card,
            "format": "PKBarcodeFormatCode128",
            "messageEncoding": "iso-8859-1",
            "altText": format_card_number(customer.loyalty_card),
        }

        pass_data: Dict[str, Any] = {
            "formatVersion": 1,
            "passTypeIdentifier": settings.pass_type_identifier,
            "serialNumber": serial_for(customer.customer_id),
            "teamIdentifier": settings.team_identifier,
            "organizationName": settings.organization_name,
            "description": f"Tarjeta de lealtad {settings.organization_name}",
            "logoText": settings.organization_name,
            "foregroundColor": "rgb(255, 255, 255)",
            "backgroundColor": "rgb(0, 137, 56)",
            "labelColor": "rgb(242, 183, 0)",
            "storeCard": {
                "headerFields": [
                    {"key": "tier", "label": "NIVEL", "value": tier_name,
                     "textAlignment": "PKTextAlignmentRight"},
                ],
                "secondaryFields": [
                    {"key": "name", "label": "MIEMBRO", "value": customer.name},
                    {"key": "points", "label": "PUNTOS", "value": customer.points,
                     "textAlignment": "PKTextAlignmentRight"},
                ],
                "backFields": [
                    {"key": "member", "label": "Miembro", "value": customer.name},
                    {"key": "email", "label": "Email", "value": customer.email},
                    {"key": "card_full", "label": "Número de Tarjeta", "value": customer.loyalty_card},
                    {"key": "website", "label": "Sitio Web", "value": WEBSITE},
                    {"key": "terms", "label": "Términos y Condiciones", "value": TERMS},
                ],
            },
            "barcode": barcode,
            "barcodes": [dict(barcode)],
        }

        if settings.web_service_url:
            pass_data["webServiceURL"] = settings.web_service_url
            pass_data["authenticationToken"] = self.auth_token(customer.customer_id)
        return pass_data

    def sign_manifest(self, manifest: bytes) -> bytes:
        # Detached DER signature with the WWDR intermediate attached
        settings = self.settings
        with open(settings.certificate_path, "rb") as f:
            password = settings.certificate_password.encode("utf-8") if settings.certificate_password else None
            try:
                key, certificate, _ = pkcs12.load_key_and_certificates(f.read(), password)
            except ValueError as e:
                raise WalletConfigurationError(f"Unable to read Apple Wallet certificate: {e}") from e
        if key is None or certificate is None:
            raise WalletConfigurationError("Apple Wallet certificate has no private key")

        with open(settings.wwdr_certificate_path, "rb") as f:
            wwdr_data = f.read()
        if wwdr_data.lstrip().startswith(b"-----BEGIN"):
            wwdr = x509.load_pem_x509_certificate(wwdr_data)
        else:
            wwdr = x509.load_der_x509_certificate(wwdr_data)

        return (
            pkcs7.PKCS7SignatureBuilder()
            .set_data(manifest)
            .add_signer(certificate, key, hashes.SHA256())
            .add_certificate(wwdr)
            .sign(serialization.Encoding.DER, [pkcs7.PKCS7Options.DetachedSignature, pkcs7.PKCS7Options.Binary])
        )

    def _read_images(self) -> Dict[str, bytes]:
        images = {}
        if not self.settings.images_path:
            return images
        for name in IMAGE_FILES:
            path = os.path.join(self.settings.images_path, name)
            if os.path.exists(path):
                with open(path, "rb") as f:
                    images[name] = f.read()
        return images

    # ---- web service authentication ----

    def auth_token(self, customer_id: int) -> str:
        secret = (self.settings.auth_secret or "").encode("utf-8")
        return hmac.new(secret, f"apple-wallet-{customer_id}".encode("utf-8"), hashlib.sha256).hexdigest()

    def validate_auth_token(self, token: Optional[str], serial_number: str) -> bool:
        customer_id = customer_id_from_serial(serial_number)
        if not token or customer_id is None:
            return False
        if not self.customer_repo.get_customer(customer_id):
            return False
        return hmac.compare_digest(self.auth_token(customer_id), token)

    # ---- device registrations ----

    def register_device(self, device_library_identifier: str, pass_type_identifier: str,
                        serial_number: str, push_token: str) -> bool:
        """
        Register a device for pass updates.

        Returns True when a new registration was created and False when an
        existing one was found (its push token is refreshed if it changed).
        """
        customer_id = customer_id_from_serial(serial_number)
        if customer_id is None or not self.customer_repo.get_customer(customer_id):
            raise NotFoundError("Pase no encontrado.")

        existing = self.registration_repo.find(device_library_identifier, pass_type_identifier, serial_number)
        if existing:
            if existing.push_token != push_token:
                self.registration_repo.update_push_token(existing.registration_id, push_token, self.clock())
            return False

        self.registration_repo.create(device_library_identifier, push_token, pass_type_identifier,
                                      serial_number, customer_id, self.clock())
        logger.info("apple_device_registered", customer_id=customer_id,
                    device_library_identifier=device_library_identifier)
        return True

    def unregister_device(self, device_library_identifier: str, pass_type_identifier: str, serial_number: str):
        self.registration_repo.delete(device_library_identifier, pass_type_identifier, serial_number)

    def updated_serial_numbers(self, device_library_identifier: str, pass_type_identifier: str,
                               passes_updated_since: Optional[str] = None) -> Optional[Dict[str, Any]]:
        # None means nothing changed for this device
        since = None
        if passes_updated_since and passes_updated_since.isdigit():
            since = datetime.fromtimestamp(int(passes_updated_since))

        rows = self.registration_repo.updated_serials(device_library_identifier, pass_type_identifier, since)
        if not rows:
            return None

        serial_numbers: List[str] = []
        for serial_number, _ in rows:
            if serial_number not in serial_numbers:
                serial_numbers.append(serial_number)
        updated = [moment for _, moment in rows if moment is not None]
        last_updated = max(updated) if updated else self.clock()
        return {"serialNumbers": serial_numbers, "lastUpdated": str(int(last_updated.timestamp()))}

    def latest_pass(self, serial_number: str) -> Tuple[bytes, datetime]:
        customer_id = customer_id_from_serial(serial_number)
        customer = self.customer_repo.get_customer(customer_id) if customer_id is not None else None
        if not customer:
            raise NotFoundError("Pase no encontrado.")
        return self.generate_pass(customer), customer.points_updated_at or self.clock()
