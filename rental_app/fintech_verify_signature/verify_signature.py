import hashlib
import hmac

from core.settings import settings


class FintechsVerifySignature:
    @staticmethod
    def verify_paystack_signature(
        signature: str | None, body: bytes, secret: str | None = None
    ) -> bool:
        secret = secret or settings.PAYSTACK_SECRET_KEY
        if not signature or not secret:
            return False

        expected = hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()

        return hmac.compare_digest(expected, signature)
