from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class CaptchaError(RuntimeError):
    pass


@dataclass(frozen=True)
class HCaptchaVerifier:
    secret_key: str
    verify_url: str = "https://hcaptcha.com/siteverify"
    timeout_seconds: int = 10

    def _post(self, fields: dict[str, str]) -> dict:
        body = urllib.parse.urlencode(fields).encode("utf-8")
        req = urllib.request.Request(self.verify_url, data=body, method="POST")
        req.add_header("Content-Type", "application/x-www-form-urlencoded")
        req.add_header("Accept", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            raise CaptchaError(f"HTTP {e.code} from hCaptcha") from e
        except (urllib.error.URLError, OSError) as e:
            raise CaptchaError(f"hCaptcha unreachable: {e}") from e
        try:
            data = json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise CaptchaError("Invalid JSON from hCaptcha") from e
        return data if isinstance(data, dict) else {}

    def verify(self, token: str, remote_ip: str | None = None) -> tuple[bool, str | None]:
        """
        Returns (ok, error). Fails closed: no secret or an unreachable service
        means the token is not accepted.
        """
        if not self.secret_key:
            return False, "hCaptcha configuration error"
        if not token:
            return False, "Captcha token missing"
        fields = {"secret": self.secret_key, "response": token}
        if remote_ip and remote_ip != "unknown":
            fields["remoteip"] = remote_ip
        try:
            data = self._post(fields)
        except CaptchaError as e:
            logger.error("hCaptcha verification error: %s", e)
            return False, "Verification service error"
        if not data.get("success"):
            codes = data.get("error-codes") or []
            return False, ", ".join(codes) if codes else "Verification failed"
        return True, None


def verifier_from_config(config) -> HCaptchaVerifier:
    return HCaptchaVerifier(
        secret_key=config.get("HCAPTCHA_SECRET_KEY") or "",
        verify_url=config.get("HCAPTCHA_VERIFY_URL") or "https://hcaptcha.com/siteverify",
    )
