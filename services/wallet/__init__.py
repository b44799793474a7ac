from .apple_wallet_service import AppleWalletService, serial_for, customer_id_from_serial
from .google_wallet_service import GoogleWalletService
from .signed_urls import SignedUrlSigner

__all__ = ['AppleWalletService', 'GoogleWalletService', 'SignedUrlSigner', 'serial_for', 'customer_id_from_serial']
