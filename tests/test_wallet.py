"""
Tests for Apple and Google wallet passes and signed download links
"""
import hashlib
import io
import json
import os
import shutil
import tempfile
import time
import unittest
import zipfile
from datetime import datetime
from unittest import mock

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs7, pkcs12
from cryptography.x509.oid import NameOID
from google.auth import jwt
from google.oauth2 import service_account

from config import AppleWalletSettings, GoogleWalletSettings, Settings
from core.ordering_platform import OrderingPlatform
from errors import (
    ForbiddenError, LoyaltyCardMissingError, NotFoundError, WalletConfigurationError, WalletServiceError,
)
from models.loyalty import PointsTransactionType
from services.wallet import GoogleWalletService, SignedUrlSigner, customer_id_from_serial, serial_for
from services.wallet.google_wallet_service import SAVE_URL
from support import PlatformTestCase

PASS_TYPE = "pass.gt.loyalty.test"
P12_PASSWORD = "secreto"


def self_signed(common_name: str):
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(datetime(2025, 1, 1))
        .not_valid_after(datetime(2035, 1, 1))
        .sign(key, hashes.SHA256())
    )
    return key, certificate


class FakeResponse:
    def __init__(self, status_code: int, payload=None):
        self.status_code = status_code
        self.payload = payload or {}

    def json(self):
        return self.payload


class FakeSession:
    """Replays queued responses per HTTP method and records every call"""

    def __init__(self, **responses):
        self.responses = {method: list(queue) for method, queue in responses.items()}
        self.calls = []

    def _respond(self, method, url, json=None):
        self.calls.append((method, url, json))
        return self.responses[method].pop(0)

    def get(self, url, **kwargs):
        return self._respond("get", url, kwargs.get("json"))

    def post(self, url, **kwargs):
        return self._respond("post", url, kwargs.get("json"))

    def put(self, url, **kwargs):
        return self._respond("put", url, kwargs.get("json"))

    def patch(self, url, **kwargs):
        return self._respond("patch", url, kwargs.get("json"))


class TestSerials(unittest.TestCase):
    """Test cases for pass serial numbers"""

    def test_round_trip_and_rejects(self):
        self.assertEqual(serial_for(12), "loyalty-12")
        self.assertEqual(customer_id_from_serial("loyalty-12"), 12)
        self.assertIsNone(customer_id_from_serial("loyalty-abc"))
        self.assertIsNone(customer_id_from_serial("other-12"))


class TestSignedUrlSigner(unittest.TestCase):
    """Test cases for SignedUrlSigner"""

    def setUp(self):
        self.signer = SignedUrlSigner("test-secret", max_age_minutes=15)

    def test_valid_token(self):
        self.signer.verify(self.signer.sign(7), 7)

    def test_rejects_other_customer_and_tampering(self):
        token = self.signer.sign(7)
        with self.assertRaises(ForbiddenError):
            self.signer.verify(token, 8)
        with self.assertRaises(ForbiddenError):
            self.signer.verify(token + "x", 7)
        with self.assertRaises(ForbiddenError):
            self.signer.verify(None, 7)
        with self.assertRaises(ForbiddenError):
            SignedUrlSigner("other-secret").verify(token, 7)

    def test_expired_token(self):
        with mock.patch("time.time", return_value=time.time() - 16 * 60):
            token = self.signer.sign(7)
        with self.assertRaises(ForbiddenError):
            self.signer.verify(token, 7)


class TestAppleWalletService(PlatformTestCase):
    """Test cases for AppleWalletService"""

    @classmethod
    def setUpClass(cls):
        cls.cert_dir = tempfile.mkdtemp()
        key, certificate = self_signed("Pass Type ID: " + PASS_TYPE)
        _, wwdr = self_signed("Apple Worldwide Developer Relations")

        cls.p12_path = os.path.join(cls.cert_dir, "pass.p12")
        with open(cls.p12_path, "wb") as f:
            f.write(pkcs12.serialize_key_and_certificates(
                b"pass", key, certificate, None,
                serialization.BestAvailableEncryption(P12_PASSWORD.encode("utf-8"))))

        cls.wwdr_path = os.path.join(cls.cert_dir, "wwdr.pem")
        with open(cls.wwdr_path, "wb") as f:
            f.write(wwdr.public_bytes(serialization.Encoding.PEM))

        cls.images_path = os.path.join(cls.cert_dir, "images")
        os.mkdir(cls.images_path)
        with open(os.path.join(cls.images_path, "icon.png"), "wb") as f:
            f.write(b"\x89PNG fake icon")

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(cls.cert_dir)

    def make_settings(self) -> Settings:
        settings = super().make_settings()
        settings.apple_wallet = AppleWalletSettings(
            certificate_path=self.p12_path,
            certificate_password=P12_PASSWORD,
            wwdr_certificate_path=self.wwdr_path,
            pass_type_identifier=PASS_TYPE,
            team_identifier="TEAM123456",
            web_service_url="https://api.example.com",
            auth_secret="wallet-secret",
            images_path=self.images_path,
        )
        return settings

    def setUp(self):
        super().setUp()
        self.customer_id = self.make_customer()
        self.wallet = self.platform.apple_wallet
        self.serial = serial_for(self.customer_id)

    def customer(self):
        return self.platform.customer_repo.get_customer(self.customer_id)

    def bonus(self, points: int):
        self.platform.points_service.add_adjustment(self.customer_id, points, "Bono",
                                                    PointsTransactionType.BONUS.value)

    def test_generate_pass_archive(self):
        self.bonus(150)
        archive = zipfile.ZipFile(io.BytesIO(self.wallet.generate_pass(self.customer())))

        self.assertEqual(sorted(archive.namelist()), ["icon.png", "manifest.json", "pass.json", "signature"])
        manifest = json.loads(archive.read("manifest.json"))
        for name in ("pass.json", "icon.png"):
            self.assertEqual(manifest[name], hashlib.sha1(archive.read(name)).hexdigest())

        pass_data = json.loads(archive.read("pass.json"))
        self.assertEqual(pass_data["serialNumber"], self.serial)
        self.assertEqual(pass_data["passTypeIdentifier"], PASS_TYPE)
        self.assertEqual(pass_data["storeCard"]["secondaryFields"][1]["value"], 150)
        self.assertEqual(pass_data["barcodes"][0]["altText"], "8000 1234 1234 1234")
        self.assertEqual(pass_data["authenticationToken"], self.wallet.auth_token(self.customer_id))

        # Signer and WWDR certificates travel with the detached signature
        certificates = pkcs7.load_der_pkcs7_certificates(archive.read("signature"))
        self.assertEqual(len(certificates), 2)

    def test_pass_without_web_service(self):
        self.wallet.settings.web_service_url = None
        pass_data = self.wallet.build_pass_data(self.customer())
        self.assertNotIn("webServiceURL", pass_data)
        self.assertNotIn("authenticationToken", pass_data)
        self.assertEqual(pass_data["storeCard"]["headerFields"][0]["value"], "Regular")

    def test_missing_loyalty_card(self):
        customer_id = self.make_customer(name="Luis", email="luis@example.com", api_token="token-luis",
                                         loyalty_card=None)
        with self.assertRaises(LoyaltyCardMissingError):
            self.wallet.generate_pass(self.platform.customer_repo.get_customer(customer_id))

    def test_configuration_errors(self):
        self.wallet.settings.certificate_password = "equivocada"
        with self.assertRaises(WalletConfigurationError):
            self.wallet.generate_pass(self.customer())

        self.wallet.settings.certificate_path = os.path.join(self.cert_dir, "missing.p12")
        with self.assertRaises(WalletConfigurationError):
            self.wallet.generate_pass(self.customer())

    def test_auth_token(self):
        token = self.wallet.auth_token(self.customer_id)
        self.assertTrue(self.wallet.validate_auth_token(token, self.serial))
        self.assertFalse(self.wallet.validate_auth_token(token, serial_for(self.customer_id + 1)))
        self.assertFalse(self.wallet.validate_auth_token("forged", self.serial))
        self.assertFalse(self.wallet.validate_auth_token(None, self.serial))
        self.assertFalse(self.wallet.validate_auth_token(token, "bogus"))

    def test_register_and_unregister_device(self):
        self.assertTrue(self.wallet.register_device("device-1", PASS_TYPE, self.serial, "push-a"))
        self.assertFalse(self.wallet.register_device("device-1", PASS_TYPE, self.serial, "push-b"))

        [registration] = self.platform.registration_repo.list_for_customer(self.customer_id)
        self.assertEqual(registration.push_token, "push-b")

        with self.assertRaises(NotFoundError):
            self.wallet.register_device("device-1", PASS_TYPE, "loyalty-9999", "push-a")

        self.wallet.unregister_device("device-1", PASS_TYPE, self.serial)
        self.assertEqual(self.platform.registration_repo.list_for_customer(self.customer_id), [])

    def test_updated_serial_numbers(self):
        self.assertIsNone(self.wallet.updated_serial_numbers("device-1", PASS_TYPE))

        self.bonus(10)
        self.wallet.register_device("device-1", PASS_TYPE, self.serial, "push-a")
        updated = self.wallet.updated_serial_numbers("device-1", PASS_TYPE)
        self.assertEqual(updated["serialNumbers"], [self.serial])
        self.assertEqual(updated["lastUpdated"], str(int(self.start.timestamp())))

        # Nothing changed since the last sync
        self.assertIsNone(self.wallet.updated_serial_numbers("device-1", PASS_TYPE, updated["lastUpdated"]))

        self.clock.advance(minutes=5)
        self.bonus(5)
        later = self.wallet.updated_serial_numbers("device-1", PASS_TYPE, updated["lastUpdated"])
        self.assertEqual(later["serialNumbers"], [self.serial])

    def test_latest_pass(self):
        self.bonus(10)
        content, last_modified = self.wallet.latest_pass(self.serial)
        self.assertTrue(zipfile.is_zipfile(io.BytesIO(content)))
        self.assertEqual(last_modified, self.start)

        with self.assertRaises(NotFoundError):
            self.wallet.latest_pass("loyalty-9999")


class TestGoogleWalletService(PlatformTestCase):
    """Test cases for GoogleWalletService"""

    @classmethod
    def setUpClass(cls):
        key, _ = self_signed("wallet")
        pem = key.private_bytes(serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8,
                                serialization.NoEncryption()).decode("utf-8")
        cls.credentials = service_account.Credentials.from_service_account_info({
            "client_email": "wallet@example.iam.gserviceaccount.com",
            "token_uri": "https://oauth2.googleapis.com/token",
            "private_key": pem,
            "private_key_id": "test-key",
        })

    def setUp(self):
        super().setUp()
        self.customer_id = self.make_customer()
        self.settings = GoogleWalletSettings(issuer_id="3388000000012345678")

    def service(self, session: FakeSession) -> GoogleWalletService:
        return GoogleWalletService(self.settings, credentials=self.credentials, session=session)

    def customer(self):
        return self.platform.customer_repo.get_customer(self.customer_id)

    def test_save_url_creates_class_and_object(self):
        object_id = f"3388000000012345678.loyalty_{self.customer_id}"
        session = FakeSession(
            get=[FakeResponse(404)],
            post=[FakeResponse(200), FakeResponse(200, {"id": object_id})],
            put=[FakeResponse(404)],
        )

        url = self.service(session).generate_save_url(self.customer())

        self.assertTrue(url.startswith(SAVE_URL))
        claims = jwt.decode(url[len(SAVE_URL):], verify=False)
        self.assertEqual(claims["typ"], "savetowallet")
        self.assertEqual(claims["iss"], "wallet@example.iam.gserviceaccount.com")
        self.assertEqual(claims["payload"]["loyaltyObjects"], [{"id": object_id}])

        methods = [call[0] for call in session.calls]
        self.assertEqual(methods, ["get", "post", "put", "post"])
        created_object = session.calls[-1][2]
        self.assertEqual(created_object["barcode"]["type"], "CODE_128")
        self.assertEqual(created_object["loyaltyPoints"]["balance"], {"int": 0})

    def test_existing_class_and_object_are_updated(self):
        object_id = f"3388000000012345678.loyalty_{self.customer_id}"
        session = FakeSession(get=[FakeResponse(200)], put=[FakeResponse(200, {"id": object_id})])
        self.service(session).generate_save_url(self.customer())
        self.assertEqual([call[0] for call in session.calls], ["get", "put"])

    def test_provider_errors(self):
        session = FakeSession(get=[FakeResponse(500)])
        with self.assertRaises(WalletServiceError):
            self.service(session).generate_save_url(self.customer())

        session = FakeSession(get=[FakeResponse(200)], put=[FakeResponse(403)])
        with self.assertRaises(WalletServiceError):
            self.service(session).generate_save_url(self.customer())

    def test_configuration_required(self):
        with self.assertRaises(WalletConfigurationError):
            GoogleWalletService(GoogleWalletSettings(issuer_id="1")).generate_save_url(self.customer())
        self.settings.issuer_id = None
        with self.assertRaises(WalletConfigurationError):
            self.service(FakeSession()).generate_save_url(self.customer())

    def test_missing_loyalty_card(self):
        customer_id = self.make_customer(name="Luis", email="luis@example.com", api_token="token-luis",
                                         loyalty_card=None)
        with self.assertRaises(LoyaltyCardMissingError):
            self.service(FakeSession()).generate_save_url(self.platform.customer_repo.get_customer(customer_id))

    def test_update_customer_object(self):
        session = FakeSession(patch=[FakeResponse(200), FakeResponse(404), FakeResponse(500)])
        service = self.service(session)

        service.update_customer_object(self.customer())
        self.assertEqual(session.calls[0][2]["accountId"], "8000123412341234")
        # Customers who never saved the card are skipped quietly
        service.update_customer_object(self.customer())
        with self.assertRaises(WalletServiceError):
            service.update_customer_object(self.customer())

    def test_platform_registers_listener_only_with_issuer(self):
        self.assertEqual(self.platform.points_service.wallet_listeners, [])

        settings = self.make_settings()
        settings.google_wallet = GoogleWalletSettings(issuer_id="3388000000012345678")
        platform = OrderingPlatform(settings, self.clock)
        self.assertEqual(len(platform.points_service.wallet_listeners), 1)


if __name__ == '__main__':
    unittest.main()
