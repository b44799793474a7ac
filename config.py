"""
Application configuration loaded from environment variables
"""
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AppleWalletSettings:
    """Apple Wallet (.pkpass) settings"""
    certificate_path: Optional[str] = None
    certificate_password: Optional[str] = None
    wwdr_certificate_path: Optional[str] = None
    pass_type_identifier: str = "pass.gt.loyalty.card"
    team_identifier: Optional[str] = None
    organization_name: str = "Restaurantes GT"
    web_service_url: Optional[str] = None
    auth_secret: Optional[str] = None
    images_path: Optional[str] = None


@dataclass
class GoogleWalletSettings:
    """Google Wallet loyalty object settings"""
    issuer_id: Optional[str] = None
    class_id: str = "loyalty_card"
    program_name: str = "Programa de Lealtad"
    issuer_name: str = "Restaurantes GT"
    service_account_path: Optional[str] = None


@dataclass
class Settings:
    """Top level application settings"""
    database_path: str = "ordering.db"
    secret_key: str = "change-me"
    delivery_fee: Decimal = Decimal("0.00")
    cart_ttl_days: int = 7
    signed_url_minutes: int = 15
    log_level: str = "INFO"
    log_json: bool = False
    apple_wallet: AppleWalletSettings = None
    google_wallet: GoogleWalletSettings = None

    def __post_init__(self):
        if self.apple_wallet is None:
            self.apple_wallet = AppleWalletSettings()
        if self.google_wallet is None:
            self.google_wallet = GoogleWalletSettings()

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        # Load .env first; variables already set in the environment win
        load_dotenv(env_file)

        secret_key = os.getenv("SECRET_KEY", "change-me")

        apple = AppleWalletSettings(
            certificate_path=os.getenv("APPLE_WALLET_CERTIFICATE_PATH"),
            certificate_password=os.getenv("APPLE_WALLET_CERTIFICATE_PASSWORD"),
            wwdr_certificate_path=os.getenv("APPLE_WALLET_WWDR_CERTIFICATE_PATH"),
            pass_type_identifier=os.getenv("APPLE_WALLET_PASS_TYPE_ID", "pass.gt.loyalty.card"),
            team_identifier=os.getenv("APPLE_WALLET_TEAM_ID"),
            organization_name=os.getenv("APPLE_WALLET_ORGANIZATION_NAME", "Restaurantes GT"),
            web_service_url=os.getenv("APPLE_WALLET_WEB_SERVICE_URL"),
            auth_secret=os.getenv("APPLE_WALLET_AUTH_SECRET", secret_key),
            images_path=os.getenv("APPLE_WALLET_IMAGES_PATH"),
        )

        google = GoogleWalletSettings(
            issuer_id=os.getenv("GOOGLE_WALLET_ISSUER_ID"),
            class_id=os.getenv("GOOGLE_WALLET_CLASS_ID", "loyalty_card"),
            program_name=os.getenv("GOOGLE_WALLET_PROGRAM_NAME", "Programa de Lealtad"),
            issuer_name=os.getenv("GOOGLE_WALLET_ISSUER_NAME", "Restaurantes GT"),
            service_account_path=os.getenv("GOOGLE_WALLET_SERVICE_ACCOUNT_PATH"),
        )

        return cls(
            database_path=os.getenv("DATABASE_PATH", "ordering.db"),
            secret_key=secret_key,
            delivery_fee=Decimal(os.getenv("DELIVERY_FEE", "0.00")),
            cart_ttl_days=int(os.getenv("CART_TTL_DAYS", 7)),
            signed_url_minutes=int(os.getenv("SIGNED_URL_MINUTES", 15)),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_json=_env_bool("LOG_JSON"),
            apple_wallet=apple,
            google_wallet=google,
        )
