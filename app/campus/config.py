import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    site_name: str
    site_url: str
    default_locale: str

    smtp_server: str
    smtp_port: str
    smtp_use_tls: bool
    smtp_username: str
    smtp_password: str
    email_from: str
    notification_emails: tuple[str, ...]

    hcaptcha_secret_key: str
    hcaptcha_site_key: str
    hcaptcha_verify_url: str

    certificate_base_url: str
    certificate_prefix: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_list(name: str, default: str = "") -> tuple[str, ...]:
    raw = _getenv(name, default)
    return tuple(x.strip() for x in raw.split(",") if x.strip())


def load_settings() -> Settings:
    site_url = _getenv("SITE_URL", "http://localhost:5000").rstrip("/")
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///campus.db"),
        site_name=_getenv("SITE_NAME", "Campus"),
        site_url=site_url,
        default_locale=_getenv("DEFAULT_LOCALE", "tr"),
        smtp_server=_getenv("SMTP_SERVER", ""),
        smtp_port=_getenv("SMTP_PORT", "587"),
        smtp_use_tls=_getenv("SMTP_USE_TLS", "1").lower() in ("1", "true", "yes"),
        smtp_username=_getenv("SMTP_USERNAME", ""),
        smtp_password=_getenv("SMTP_PASSWORD", ""),
        email_from=_getenv("EMAIL_FROM", "") or _getenv("SMTP_USERNAME", ""),
        notification_emails=_getenv_list("NOTIFICATION_EMAILS", "info@campus.example"),
        hcaptcha_secret_key=_getenv("HCAPTCHA_SECRET_KEY", ""),
        hcaptcha_site_key=_getenv("HCAPTCHA_SITE_KEY", ""),
        hcaptcha_verify_url=_getenv("HCAPTCHA_VERIFY_URL", "https://hcaptcha.com/siteverify"),
        certificate_base_url=_getenv("CERTIFICATE_BASE_URL", f"{site_url}/certificates").rstrip("/"),
        certificate_prefix=_getenv("CERTIFICATE_PREFIX", "CMP").upper(),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "SITE_NAME": s.site_name,
        "SITE_URL": s.site_url,
        "DEFAULT_LOCALE": s.default_locale,
        "SMTP_SERVER": s.smtp_server,
        "SMTP_PORT": s.smtp_port,
        "SMTP_USE_TLS": s.smtp_use_tls,
        "SMTP_USERNAME": s.smtp_username,
        "SMTP_PASSWORD": s.smtp_password,
        "EMAIL_FROM": s.email_from,
        "NOTIFICATION_EMAILS": list(s.notification_emails),
        "HCAPTCHA_SECRET_KEY": s.hcaptcha_secret_key,
        "HCAPTCHA_SITE_KEY": s.hcaptcha_site_key,
        "HCAPTCHA_VERIFY_URL": s.hcaptcha_verify_url,
        "CERTIFICATE_BASE_URL": s.certificate_base_url,
        "CERTIFICATE_PREFIX": s.certificate_prefix,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        "MAX_CONTENT_LENGTH": 2 * 1024 * 1024,
    }
