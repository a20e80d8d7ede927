import logging
import sys

from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)

JWT_KEY_HELP = "Generate a strong key with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'Core'

    def ready(self):
        """
        Perform startup validation checks when serving requests.

        Management commands (migrations, shell, seeding) and test runs skip
        the checks so they can run without the full production configuration.
        """
        if not self._is_serving():
            return

        validate_jwt_secret(
            getattr(settings, 'JWT_SECRET_KEY', None),
            getattr(settings, 'SECRET_KEY', None),
        )
        self._validate_security_settings()

        logger.info("Startup security validations passed")

    @staticmethod
    def _is_serving():
        program = sys.argv[0] if sys.argv else ''
        if 'gunicorn' in program or 'uvicorn' in program:
            return True
        return len(sys.argv) > 1 and sys.argv[1] == 'runserver'

    def _validate_security_settings(self):
        """Validate general security settings."""
        secret_key = getattr(settings, 'SECRET_KEY', None)

        if not secret_key:
            raise ImproperlyConfigured("SECRET_KEY must be set in environment variables.")

        if not settings.DEBUG:
            secret_lower = secret_key.lower()
            for pattern in ('your-secret-key', 'change-me', 'insecure', 'gh-dev-'):
                if pattern in secret_lower:
                    raise ImproperlyConfigured(
                        f"SECRET_KEY appears to be a default or weak value (contains '{pattern}')."
                    )

            if not getattr(settings, 'SECURE_SSL_REDIRECT', False):
                logger.warning(
                    "SECURE_SSL_REDIRECT is not enabled in production. "
                    "HTTPS should be enforced by the proxy or by Django."
                )


def validate_jwt_secret(jwt_secret, secret_key):
    """
    Validate the JWT signing key.

    Raises:
        ImproperlyConfigured: if the key is missing, shorter than 32
            characters, equal to SECRET_KEY, or has low entropy.
    """
    if not jwt_secret:
        raise ImproperlyConfigured(f"JWT_SECRET_KEY must be set in environment variables. {JWT_KEY_HELP}")

    if len(jwt_secret) < 32:
        raise ImproperlyConfigured(
            f"JWT_SECRET_KEY must be at least 32 characters long for security. "
            f"Current length: {len(jwt_secret)}. {JWT_KEY_HELP}"
        )

    if jwt_secret == secret_key:
        raise ImproperlyConfigured(f"JWT_SECRET_KEY must be different from SECRET_KEY. {JWT_KEY_HELP}")

    unique_chars = len(set(jwt_secret))
    if unique_chars < 16:
        raise ImproperlyConfigured(
            f"JWT_SECRET_KEY has insufficient entropy. "
            f"Found only {unique_chars} unique characters, need at least 16. {JWT_KEY_HELP}"
        )
